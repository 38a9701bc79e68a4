import logging
from typing import List, Optional, Tuple

import numpy
from overrides import overrides

from smtdecoder.common.checks import ConfigurationError, SearchFailure
from smtdecoder.data.sentence import Sentence
from smtdecoder.data.translation_option import TranslationOptionCollection
from smtdecoder.feature_functions.registry import FeatureFunctionRegistry
from smtdecoder.search.derivation import Derivation
from smtdecoder.search.expansion import Expander
from smtdecoder.search.hypothesis import HypothesisArena, PhraseHypothesis
from smtdecoder.search.hypothesis_collection import HypothesisCollection
from smtdecoder.search.search_algorithm import SearchAlgorithm, SearchResult

logger = logging.getLogger(__name__)


class Stack(HypothesisCollection):
    """
    The hypotheses that have translated the same number of source words.
    """

    pass


class StackSearchResult(SearchResult):
    def __init__(self, arena: HypothesisArena, final_stack: Stack) -> None:
        self._arena = arena
        self._final_stack = final_stack

    def _path(self, index: int) -> List[PhraseHypothesis]:
        """
        The hypotheses from the first applied option up to `index`, following back-pointers.
        """
        path = []
        hypothesis = self._arena[index]
        while hypothesis.option is not None:
            path.append(hypothesis)
            hypothesis = self._arena[hypothesis.back_pointer]
        path.reverse()
        return path

    @staticmethod
    def _derivation(path: List[PhraseHypothesis], score: float, scores: numpy.ndarray) -> Derivation:
        applications = [(node.option.span, node.option.target_phrase) for node in path]
        words: List[str] = []
        for _, target_phrase in applications:
            words.extend(target_phrase.terminals)
        return Derivation(applications, words, score, scores)

    @overrides
    def best_derivation(self) -> Derivation:
        best = self._final_stack.best()
        return self._derivation(self._path(best.index), best.score, best.scores)

    @overrides
    def nbest(self, n: int) -> List[Derivation]:
        """
        The surviving complete hypotheses, plus every derivation that differs from one of them
        by a single recombination: the history of a hypothesis that was recombined into one on
        the path, followed by the rest of the path.
        """
        candidates: List[Tuple[float, int, List[PhraseHypothesis], numpy.ndarray]] = []
        for final in self._final_stack:
            path = self._path(final.index)
            candidates.append((final.score, len(candidates), path, final.scores))
            for position, node in enumerate(path):
                for arc in node.arcs:
                    loser = self._arena[arc]
                    candidates.append(
                        (
                            final.score - node.score + loser.score,
                            len(candidates),
                            self._path(arc) + path[position + 1 :],
                            final.scores - node.scores + loser.scores,
                        )
                    )
        candidates.sort(key=lambda candidate: (-candidate[0], candidate[1]))
        return [
            self._derivation(path, score, scores) for score, _, path, scores in candidates[:n]
        ]


@SearchAlgorithm.register("stack")
class StackSearch(SearchAlgorithm):
    """
    Phrase-based beam search.  Stack `k` holds the hypotheses that have translated `k` source
    words.  Stacks are processed in order; each is pruned and then every surviving hypothesis
    is extended with every translation option it is compatible with, which only ever adds to
    later stacks.

    # Parameters

    stack_size : `int`, optional (default = `100`)
        The number of hypotheses kept per stack.  0 keeps everything.
    beam_width : `float`, optional
        Drop hypotheses whose score plus future score is more than this below the best one of
        their stack.
    max_distortion : `int`, optional (default = `6`)
        The furthest the search may jump over untranslated words.  Negative means no limit.
    """

    def __init__(
        self,
        stack_size: int = 100,
        beam_width: Optional[float] = None,
        max_distortion: int = 6,
        max_expansions: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(max_expansions=max_expansions, timeout=timeout)
        if stack_size < 0:
            raise ConfigurationError(f"stack_size must not be negative, got {stack_size}")
        if beam_width is not None and beam_width < 0:
            raise ConfigurationError(f"beam_width must not be negative, got {beam_width}")
        self.stack_size = stack_size
        self.beam_width = beam_width
        self.max_distortion = max_distortion

    @overrides
    def search(
        self,
        sentence: Sentence,
        options: TranslationOptionCollection,
        registry: FeatureFunctionRegistry,
        weights: numpy.ndarray,
        arena: HypothesisArena,
    ) -> StackSearchResult:
        budget = self.new_budget(sentence)
        size = len(sentence)
        expander = Expander(sentence, registry, weights, options, arena, self.max_distortion)
        stacks = [Stack(arena) for _ in range(size + 1)]
        stacks[0].add(expander.create_initial())
        spans = options.spans()

        for covered, stack in enumerate(stacks):
            stack.prune(self.stack_size, self.beam_width)
            if covered == size:
                break
            for hypothesis in stack.sorted():
                for span in spans:
                    if not expander.is_applicable(hypothesis, span):
                        continue
                    target_stack = stacks[covered + span.length]
                    for option in options.get(span):
                        new_hypothesis = expander.expand(hypothesis, option)
                        if new_hypothesis is None:
                            continue
                        budget.charge()
                        target_stack.add(new_hypothesis)
            logger.debug(
                "stack %d: %d hypotheses, %d recombined, %d pruned",
                covered,
                len(stack),
                stack.num_recombined,
                stack.num_pruned,
            )

        final_stack = stacks[size]
        if not any(hypothesis.coverage.is_complete() for hypothesis in final_stack):
            raise SearchFailure("no hypothesis covers the whole sentence", sentence.sentence_id)
        logger.debug("sentence %s: %d hypotheses created", sentence.sentence_id, len(arena))
        return StackSearchResult(arena, final_stack)
