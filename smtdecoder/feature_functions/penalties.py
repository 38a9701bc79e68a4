"""
Simple stateless counts over the target side of a phrase.
"""
from typing import Optional

from overrides import overrides

from smtdecoder.data.target_phrase import TargetPhrase
from smtdecoder.feature_functions.feature_function import FeatureFunction, StatelessFeatureFunction


@FeatureFunction.register("WordPenalty")
class WordPenalty(StatelessFeatureFunction):
    """
    Scores `-1` for every target word, so that a positive weight favours longer output.
    """

    def __init__(self, name: Optional[str] = None, tuneable: bool = True) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)

    @overrides
    def evaluate_in_isolation(self, target_phrase: TargetPhrase) -> None:
        target_phrase.scores[self.score_range] = -float(len(target_phrase.terminals))


@FeatureFunction.register("PhrasePenalty")
class PhrasePenalty(StatelessFeatureFunction):
    """
    Scores `1` for every phrase or rule applied.
    """

    def __init__(self, name: Optional[str] = None, tuneable: bool = True) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)

    @overrides
    def evaluate_in_isolation(self, target_phrase: TargetPhrase) -> None:
        target_phrase.scores[self.score_range] = 1.0


@FeatureFunction.register("UnknownWordPenalty")
class UnknownWordPenalty(StatelessFeatureFunction):
    """
    Scores `1` for every source word copied through untranslated.
    """

    def __init__(self, name: Optional[str] = None, tuneable: bool = True) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)

    @overrides
    def evaluate_in_isolation(self, target_phrase: TargetPhrase) -> None:
        if target_phrase.is_oov:
            target_phrase.scores[self.score_range] = 1.0
