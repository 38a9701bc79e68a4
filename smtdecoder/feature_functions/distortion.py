from typing import Any, Dict, Hashable, Optional, Tuple

import numpy
from overrides import overrides

from smtdecoder.data.coverage import Coverage
from smtdecoder.data.sentence import Sentence
from smtdecoder.data.target_phrase import TargetPhrase
from smtdecoder.data.translation_option import TranslationOption
from smtdecoder.feature_functions.feature_function import FeatureFunction, StatefulFeatureFunction


@FeatureFunction.register("Distortion")
class Distortion(StatefulFeatureFunction):
    """
    Penalizes reordering: applying a phrase that starts `d` positions away from where the
    previous one ended scores `-d`.  The state is the last source position translated.
    Chart derivations have no notion of a previous phrase, so there it scores nothing.
    """

    def __init__(self, name: Optional[str] = None, tuneable: bool = True) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)

    @overrides
    def empty_state(self, sentence: Sentence) -> int:
        return -1

    @overrides
    def evaluate_when_applied(
        self, prev_state: Any, option: TranslationOption, coverage: Coverage
    ) -> Tuple[numpy.ndarray, int]:
        distance = abs(prev_state + 1 - option.span.start)
        return numpy.array([-float(distance)]), option.span.end

    @overrides
    def evaluate_chart_application(
        self, rule: TargetPhrase, child_states: Dict[int, Any]
    ) -> Tuple[numpy.ndarray, Hashable]:
        return self.local_scores(), None
