from typing import TYPE_CHECKING, Any, Dict, Hashable, List, Optional, Tuple

import numpy

from smtdecoder.common import Registrable
from smtdecoder.data.coverage import Coverage
from smtdecoder.data.sentence import Sentence, Span
from smtdecoder.data.target_phrase import TargetPhrase
from smtdecoder.data.translation_option import TranslationOption

if TYPE_CHECKING:
    from smtdecoder.feature_functions.registry import FeatureFunctionRegistry


class FeatureFunction(Registrable):
    """
    A pluggable scoring component.  Every instance owns the contiguous sub-range
    `[offset, offset + num_scores)` of the global score vector; the offset is assigned by the
    `FeatureFunctionRegistry` in the order the functions are declared.

    What a feature function can do is declared with two capability flags rather than
    discovered from its type: `is_stateful` functions take part in hypothesis expansion and
    recombination, and `provides_translations` functions are queried for target phrases when
    translation options are built.

    # Parameters

    num_scores : `int`
        How many entries of the global score vector this function writes.
    name : `str`, optional
        The name used to refer to this instance, e.g. in the weights section of a
        configuration.  The registry makes one up from the type name if it is not given.
    tuneable : `bool`, optional (default = `True`)
        Functions that are not tuneable may be left out of the weights, and get a weight of 1.
    """

    is_stateful: bool = False
    provides_translations: bool = False

    def __init__(self, num_scores: int, name: Optional[str] = None, tuneable: bool = True) -> None:
        self.num_scores = num_scores
        self.name = name
        self.tuneable = tuneable
        self.offset: Optional[int] = None

    @property
    def score_range(self) -> slice:
        if self.offset is None:
            raise ValueError(f"{self.name} has not been registered yet")
        return slice(self.offset, self.offset + self.num_scores)

    def load(self, registry: "FeatureFunctionRegistry") -> None:
        """
        Loads whatever resources this function needs.  Called once by the registry after all
        functions have been constructed and given their offsets.
        """
        pass

    def evaluate_in_isolation(self, target_phrase: TargetPhrase) -> None:
        """
        Scores a target phrase on its own, writing into `target_phrase.scores` (and, for
        stateful functions, `target_phrase.estimates`).  Called once per phrase when a
        translation provider loads, so the results are shared by every sentence.
        """
        pass

    def evaluate_with_source_context(
        self,
        sentence: Sentence,
        span: Span,
        target_phrase: TargetPhrase,
        scores: numpy.ndarray,
    ) -> None:
        """
        Adds scores that depend on the sentence being translated (but not on the derivation)
        into `scores`, the score vector of the option being built.
        """
        pass

    def evaluate_translation_options(
        self,
        sentence: Sentence,
        span: Span,
        target_phrases: List[TargetPhrase],
        scores: List[numpy.ndarray],
    ) -> None:
        """
        Scores all the candidates of one span at once, for functions that need to see the
        whole list (e.g. to normalize over it).  `scores[i]` belongs to `target_phrases[i]`.
        """
        pass

    def local_scores(self) -> numpy.ndarray:
        return numpy.zeros(self.num_scores)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, offset={self.offset})"


class StatelessFeatureFunction(FeatureFunction):
    """
    A feature function whose scores only depend on the phrase being applied and, at most,
    the source sentence.  Its scores are computed when options are built and cached there.
    """

    is_stateful = False


class StatefulFeatureFunction(FeatureFunction):
    """
    A feature function whose scores depend on the derivation so far.  Besides a score it
    returns an opaque, hashable state; two hypotheses can only be recombined when all their
    states are equal.

    The deltas returned by the `evaluate_*` methods are local vectors of length `num_scores`,
    which the search adds into the function's range of the global vector.
    """

    is_stateful = True

    def empty_state(self, sentence: Sentence) -> Hashable:
        """
        The state of the empty derivation, before anything is translated.
        """
        raise NotImplementedError

    def evaluate_when_applied(
        self, prev_state: Any, option: TranslationOption, coverage: Coverage
    ) -> Tuple[numpy.ndarray, Hashable]:
        """
        Extends a phrase-based derivation in state `prev_state` with `option`.  `coverage` is
        the coverage after the option was applied.
        """
        raise NotImplementedError

    def evaluate_chart_application(
        self, rule: TargetPhrase, child_states: Dict[int, Any]
    ) -> Tuple[numpy.ndarray, Hashable]:
        """
        Applies a rule (or a lexical phrase) in the chart.  `child_states` maps each
        nonterminal index of the rule to the state of the hypothesis filling it.
        """
        raise NotImplementedError

    def evaluate_final(self, state: Any) -> numpy.ndarray:
        """
        The scores added when a derivation covers the whole sentence.
        """
        return self.local_scores()

    def estimate_state(self, state: Any) -> numpy.ndarray:
        """
        A guess at the scores a state will still pick up once its context is known.  Chart
        hypotheses of the same cell are pruned on their score plus this estimate.
        """
        return self.local_scores()
