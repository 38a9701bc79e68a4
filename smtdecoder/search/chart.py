import itertools
import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy
from overrides import overrides

from smtdecoder.common.checks import ConfigurationError, SearchFailure
from smtdecoder.data.sentence import Sentence, Span
from smtdecoder.data.target_phrase import NonTerminal, Symbol, TargetPhrase
from smtdecoder.data.translation_option import TranslationOption, TranslationOptionCollection
from smtdecoder.feature_functions.registry import FeatureFunctionRegistry
from smtdecoder.search.derivation import Derivation
from smtdecoder.search.hypothesis import ChartHypothesis, HypothesisArena
from smtdecoder.search.hypothesis_collection import HypothesisCollection
from smtdecoder.search.search_algorithm import SearchAlgorithm, SearchBudget, SearchResult

logger = logging.getLogger(__name__)


class Cell:
    """
    The hypotheses over one span, kept in a separate collection per left-hand-side label so
    that only hypotheses that can fill the same gaps compete with each other.
    """

    def __init__(self, span: Span, arena: HypothesisArena) -> None:
        self.span = span
        self._arena = arena
        self._collections: Dict[str, HypothesisCollection] = {}

    def collection(self, label: str) -> HypothesisCollection:
        if label not in self._collections:
            self._collections[label] = HypothesisCollection(self._arena)
        return self._collections[label]

    def add(self, hypothesis: ChartHypothesis) -> bool:
        return self.collection(hypothesis.label).add(hypothesis)

    def has(self, label: str) -> bool:
        return label in self._collections and bool(self._collections[label])

    def hypotheses(self, label: str, limit: int = 0) -> List[ChartHypothesis]:
        if label not in self._collections:
            return []
        ranked = self._collections[label].sorted()
        return ranked[:limit] if limit > 0 else ranked  # type: ignore

    def labels(self) -> List[str]:
        return [label for label, collection in self._collections.items() if collection]

    def prune(
        self, max_size: int, beam_width: Optional[float], labels: Optional[Sequence[str]] = None
    ) -> int:
        if labels is None:
            labels = list(self._collections)
        return sum(
            self._collections[label].prune(max_size, beam_width)
            for label in labels
            if label in self._collections
        )

    def __len__(self) -> int:
        return sum(len(collection) for collection in self._collections.values())


class ChartSearchResult(SearchResult):
    def __init__(self, arena: HypothesisArena, goal: HypothesisCollection) -> None:
        self._arena = arena
        self._goal = goal

    def _unfold(self, hypothesis: ChartHypothesis) -> Tuple[List[Tuple[Span, TargetPhrase]], List[str]]:
        rule = hypothesis.option.target_phrase
        applications = [(hypothesis.span, rule)]
        fillers = {
            gap.index: self._arena[child]
            for gap, child in zip(rule.source_nonterminals, hypothesis.children)
        }
        words: List[str] = []
        for symbol in rule.words:
            if isinstance(symbol, NonTerminal):
                child_applications, child_words = self._unfold(fillers[symbol.index])
                applications.extend(child_applications)
                words.extend(child_words)
            else:
                words.append(symbol)
        return applications, words

    def _derivation(self, hypothesis: ChartHypothesis) -> Derivation:
        applications, words = self._unfold(hypothesis)
        return Derivation(applications, words, hypothesis.score, hypothesis.scores)

    @overrides
    def best_derivation(self) -> Derivation:
        return self._derivation(self._goal.best())  # type: ignore

    @overrides
    def nbest(self, n: int) -> List[Derivation]:
        candidates = []
        for hypothesis in self._goal:
            candidates.append(hypothesis)
            candidates.extend(self._arena[arc] for arc in hypothesis.arcs)
        candidates.sort(key=lambda hypothesis: (-hypothesis.score, hypothesis.index))
        return [self._derivation(hypothesis) for hypothesis in candidates[:n]]


def is_unary(rule: TargetPhrase) -> bool:
    return len(rule.source) == 1 and isinstance(rule.source[0], NonTerminal)


@SearchAlgorithm.register("chart")
class ChartSearch(SearchAlgorithm):
    """
    Bottom-up CYK search over spans.  Cells are filled by increasing span length.  A cell
    gets the lexical translation options of its span and every application of a
    hierarchical rule whose source side matches the span, with the gaps filled from the
    already finished cells of its sub-spans.  Once pruned, unary rules (like `[S] -> [X,1]`)
    are applied to the cell's own hypotheses.  The translation is the best hypothesis with
    the goal label over the whole sentence.

    # Parameters

    cell_size : `int`, optional (default = `100`)
        The number of hypotheses kept per cell and label.  0 keeps everything.
    beam_width : `float`, optional
        Drop hypotheses scoring more than this below the best one of their cell and label.
    max_child_hypotheses : `int`, optional (default = `10`)
        How many of the best hypotheses of a sub-span are tried in each gap of a rule.
    goal_label : `str`, optional (default = `"S"`)
        The label a whole-sentence translation must have.
    default_label : `str`, optional (default = `"X"`)
        The label given to phrase pairs that do not come with one.
    """

    def __init__(
        self,
        cell_size: int = 100,
        beam_width: Optional[float] = None,
        max_child_hypotheses: int = 10,
        goal_label: str = "S",
        default_label: str = "X",
        max_expansions: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(max_expansions=max_expansions, timeout=timeout)
        if cell_size < 0:
            raise ConfigurationError(f"cell_size must not be negative, got {cell_size}")
        if max_child_hypotheses < 1:
            raise ConfigurationError(
                f"max_child_hypotheses must be positive, got {max_child_hypotheses}"
            )
        self.cell_size = cell_size
        self.beam_width = beam_width
        self.max_child_hypotheses = max_child_hypotheses
        self.goal_label = goal_label
        self.default_label = default_label

    @overrides
    def search(
        self,
        sentence: Sentence,
        options: TranslationOptionCollection,
        registry: FeatureFunctionRegistry,
        weights: numpy.ndarray,
        arena: HypothesisArena,
    ) -> ChartSearchResult:
        budget = self.new_budget(sentence)
        size = len(sentence)
        chart: Dict[Span, Cell] = {}
        rules: List[Tuple[int, TargetPhrase]] = []
        unary_rules: List[Tuple[int, TargetPhrase]] = []
        for provider in registry.providers:
            for rule in provider.get_hierarchical_rules():  # type: ignore
                (unary_rules if is_unary(rule) else rules).append((provider.max_span, rule))  # type: ignore

        for span in sentence.spans():
            cell = chart[span] = Cell(span, arena)

            for option in options.get(span):
                label = option.target_phrase.lhs or self.default_label
                self._add(cell, self._create(sentence, span, label, option, (), registry, weights, arena), budget)

            for max_span, rule in rules:
                if max_span > 0 and span.length > max_span:
                    continue
                for child_spans in self._bind(rule.source, span.start, span.end, sentence, chart):
                    option = TranslationOption(
                        span, rule, registry.evaluate_with_source_context(sentence, span, rule), weights
                    )
                    fillers = [
                        chart[child_span].hypotheses(gap.label, self.max_child_hypotheses)
                        for gap, child_span in zip(rule.source_nonterminals, child_spans)
                    ]
                    for children in itertools.product(*fillers):
                        hypothesis = self._create(
                            sentence, span, rule.lhs, option, children, registry, weights, arena
                        )
                        self._add(cell, hypothesis, budget)

            cell.prune(self.cell_size, self.beam_width)

            touched = set()
            for max_span, rule in unary_rules:
                if max_span > 0 and span.length > max_span:
                    continue
                gap = rule.source[0]
                if rule.lhs == gap.label:  # type: ignore
                    continue
                if span.length == size and gap.label == self.goal_label:  # type: ignore
                    continue
                children = cell.hypotheses(gap.label, self.max_child_hypotheses)  # type: ignore
                if not children:
                    continue
                option = TranslationOption(
                    span, rule, registry.evaluate_with_source_context(sentence, span, rule), weights
                )
                for child in children:
                    hypothesis = self._create(
                        sentence, span, rule.lhs, option, (child,), registry, weights, arena
                    )
                    self._add(cell, hypothesis, budget)
                touched.add(rule.lhs)
            cell.prune(self.cell_size, self.beam_width, labels=sorted(touched))  # type: ignore

            logger.debug("cell %s: %d hypotheses, labels %s", span, len(cell), cell.labels())

        top = chart.get(Span(0, size - 1))
        if top is None or not top.has(self.goal_label):
            raise SearchFailure(
                f"no hypothesis with label {self.goal_label} covers the whole sentence",
                sentence.sentence_id,
            )
        logger.debug("sentence %s: %d hypotheses created", sentence.sentence_id, len(arena))
        return ChartSearchResult(arena, top.collection(self.goal_label))

    @staticmethod
    def _add(cell: Cell, hypothesis: ChartHypothesis, budget: SearchBudget) -> None:
        budget.charge()
        cell.add(hypothesis)

    def _bind(
        self,
        symbols: Sequence[Symbol],
        start: int,
        end: int,
        sentence: Sentence,
        chart: Dict[Span, Cell],
    ) -> Iterator[Tuple[Span, ...]]:
        """
        Yields every way of matching `symbols` against the source words `start..end`: the
        terminals must equal the words, and each gap must cover a non-empty span whose cell
        has hypotheses with the gap's label.  Yields the spans of the gaps, in order.
        """
        if not symbols:
            if start == end + 1:
                yield ()
            return
        if start > end:
            return
        head, rest = symbols[0], symbols[1:]
        if isinstance(head, NonTerminal):
            for split in range(start, end - len(rest) + 1):
                child_span = Span(start, split)
                child_cell = chart.get(child_span)
                if child_cell is None or not child_cell.has(head.label):
                    continue
                for tail in self._bind(rest, split + 1, end, sentence, chart):
                    yield (child_span,) + tail
        elif sentence[start] == head:
            yield from self._bind(rest, start + 1, end, sentence, chart)

    def _create(
        self,
        sentence: Sentence,
        span: Span,
        label: str,
        option: TranslationOption,
        children: Sequence[ChartHypothesis],
        registry: FeatureFunctionRegistry,
        weights: numpy.ndarray,
        arena: HypothesisArena,
    ) -> ChartHypothesis:
        rule = option.target_phrase
        scores = option.scores.copy()
        for child in children:
            scores += child.scores
        final = span.length == len(sentence) and label == self.goal_label
        gaps = rule.source_nonterminals
        states = []
        future_score = 0.0
        for position, feature_function in enumerate(registry.stateful):
            child_states = {gap.index: child.states[position] for gap, child in zip(gaps, children)}
            delta, state = feature_function.evaluate_chart_application(rule, child_states)
            scores[feature_function.score_range] += delta
            if final:
                scores[feature_function.score_range] += feature_function.evaluate_final(state)
            else:
                future_score += float(
                    numpy.dot(
                        weights[feature_function.score_range], feature_function.estimate_state(state)
                    )
                )
            states.append(state)
        hypothesis = ChartHypothesis(
            span=span,
            label=label,
            score=float(numpy.dot(weights, scores)),
            scores=scores,
            states=tuple(states),
            option=option,
            children=tuple(child.index for child in children),
            future_score=future_score,
        )
        arena.add(hypothesis)
        return hypothesis
