from typing import Optional

import numpy

from smtdecoder.data.coverage import Coverage
from smtdecoder.data.sentence import Sentence, Span
from smtdecoder.data.translation_option import TranslationOption, TranslationOptionCollection
from smtdecoder.feature_functions.registry import FeatureFunctionRegistry
from smtdecoder.search.hypothesis import HypothesisArena, PhraseHypothesis


class Expander:
    """
    Creates phrase-based hypotheses: the initial empty one, and the extension of a hypothesis
    by a translation option.

    # Parameters

    max_distortion : `int`
        The furthest the search may jump over untranslated words.  Negative means no limit.
    """

    def __init__(
        self,
        sentence: Sentence,
        registry: FeatureFunctionRegistry,
        weights: numpy.ndarray,
        options: TranslationOptionCollection,
        arena: HypothesisArena,
        max_distortion: int = -1,
    ) -> None:
        self.sentence = sentence
        self.registry = registry
        self.weights = weights
        self.options = options
        self.arena = arena
        self.max_distortion = max_distortion
        self._stateful = registry.stateful

    def create_initial(self) -> PhraseHypothesis:
        coverage = Coverage(len(self.sentence))
        hypothesis = PhraseHypothesis(
            coverage=coverage,
            score=0.0,
            scores=numpy.zeros(self.registry.num_scores),
            states=self.registry.empty_states(self.sentence),
            future_score=self.options.future_score_for(coverage),
        )
        self.arena.add(hypothesis)
        return hypothesis

    def is_applicable(self, hypothesis: PhraseHypothesis, span: Span) -> bool:
        """
        Whether a phrase over `span` may extend `hypothesis`: it must not overlap what is
        already translated, and must respect the distortion limit.
        """
        coverage = hypothesis.coverage
        if coverage.overlaps(span):
            return False
        if self.max_distortion < 0:
            return True
        previous_end = -1 if hypothesis.option is None else hypothesis.option.span.end
        if abs(previous_end + 1 - span.start) > self.max_distortion:
            return False
        first_gap = coverage.first_gap()
        if first_gap is not None and span.start != first_gap:
            # Jumping ahead must not leave the first untranslated word too far behind.
            if span.end - first_gap > self.max_distortion:
                return False
        return True

    def expand(
        self, hypothesis: PhraseHypothesis, option: TranslationOption
    ) -> Optional[PhraseHypothesis]:
        """
        Extends `hypothesis` with `option`, returning `None` when the option cannot be
        applied.  The new hypothesis is added to the arena.
        """
        if not self.is_applicable(hypothesis, option.span):
            return None

        coverage = hypothesis.coverage.cover(option.span)
        scores = hypothesis.scores + option.scores
        complete = coverage.is_complete()
        states = []
        for feature_function, prev_state in zip(self._stateful, hypothesis.states):
            delta, state = feature_function.evaluate_when_applied(prev_state, option, coverage)
            scores[feature_function.score_range] += delta
            if complete:
                scores[feature_function.score_range] += feature_function.evaluate_final(state)
            states.append(state)

        new_hypothesis = PhraseHypothesis(
            coverage=coverage,
            score=float(numpy.dot(self.weights, scores)),
            scores=scores,
            states=tuple(states),
            option=option,
            back_pointer=hypothesis.index,
            future_score=0.0 if complete else self.options.future_score_for(coverage),
        )
        self.arena.add(new_hypothesis)
        return new_hypothesis
