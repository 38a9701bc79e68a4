from typing import Dict, List, Tuple

import numpy

from smtdecoder.common.util import JsonDict
from smtdecoder.data.sentence import Span
from smtdecoder.data.target_phrase import TargetPhrase
from smtdecoder.feature_functions.registry import FeatureFunctionRegistry


class Derivation:
    """
    A complete translation of a sentence, detached from the search that found it.

    # Parameters

    applications : `List[Tuple[Span, TargetPhrase]]`
        The phrases (or rules) used, in the order they were applied for a stack search, and
        in pre-order for a chart search.
    target_words : `List[str]`
        The output.
    score : `float`
        The weighted total score.
    scores : `numpy.ndarray`
        The unweighted score vector.
    """

    def __init__(
        self,
        applications: List[Tuple[Span, TargetPhrase]],
        target_words: List[str],
        score: float,
        scores: numpy.ndarray,
    ) -> None:
        self.applications = applications
        self.target_words = target_words
        self.score = score
        self.scores = scores

    @property
    def text(self) -> str:
        return " ".join(self.target_words)

    def feature_breakdown(self, registry: FeatureFunctionRegistry) -> Dict[str, List[float]]:
        return registry.breakdown(self.scores)

    def to_json(self, registry: FeatureFunctionRegistry) -> JsonDict:
        return {
            "text": self.text,
            "score": self.score,
            "scores": self.feature_breakdown(registry),
            "alignment": [
                {"source": [span.start, span.end], "target": str(target_phrase)}
                for span, target_phrase in self.applications
            ],
        }

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"Derivation({self.text!r}, {self.score:.4f})"
