import logging
from collections import defaultdict
from typing import DefaultDict, Iterator, List

import numpy

from smtdecoder.data.coverage import Coverage
from smtdecoder.data.sentence import Sentence, Span
from smtdecoder.data.target_phrase import TargetPhrase

logger = logging.getLogger(__name__)


class TranslationOption:
    """
    A target phrase applied to a particular source span, with everything the search needs
    precomputed: the full (unweighted) score vector, its weighted total, and the weighted
    total plus the stateful estimates that ranks options before any context is known.
    Options never change once created.
    """

    __slots__ = ("span", "target_phrase", "scores", "score", "estimated_score")

    def __init__(
        self,
        span: Span,
        target_phrase: TargetPhrase,
        scores: numpy.ndarray,
        weights: numpy.ndarray,
    ) -> None:
        self.span = span
        self.target_phrase = target_phrase
        self.scores = scores
        self.score = float(numpy.dot(weights, scores))
        self.estimated_score = self.score + float(numpy.dot(weights, target_phrase.estimates))

    def __repr__(self) -> str:
        return f"TranslationOption({self.span}, {str(self.target_phrase)!r}, {self.score:.4f})"


class TranslationOptionCollection:
    """
    All translation options of one sentence, indexed by span, together with the
    future-score table used to estimate how well the untranslated part of a sentence can
    still do.

    `future_score(span)` is the best estimated score of any way of tiling the span with
    options, computed bottom-up as

        future[i][j] = max(best_option[i][j], max_k future[i][k] + future[k+1][j])

    Spans that cannot be tiled at all get `-inf`.  The table is a heuristic for pruning;
    the search never depends on it for correctness.
    """

    def __init__(self, sentence: Sentence) -> None:
        self.sentence = sentence
        self._options: DefaultDict[Span, List[TranslationOption]] = defaultdict(list)
        size = len(sentence)
        self._future = numpy.full((size, size), -numpy.inf)
        self._future_computed = False

    def add(self, option: TranslationOption) -> None:
        if self._future_computed:
            raise ValueError("cannot add options after future scores were computed")
        self._options[option.span].append(option)

    def get(self, span: Span) -> List[TranslationOption]:
        return self._options.get(span, [])

    def spans(self) -> List[Span]:
        return sorted(span for span, options in self._options.items() if options)

    def __iter__(self) -> Iterator[TranslationOption]:
        for span in self.spans():
            yield from self._options[span]

    def __len__(self) -> int:
        return sum(len(options) for options in self._options.values())

    def compute_future_scores(self) -> None:
        size = len(self.sentence)
        future = self._future
        for length in range(1, size + 1):
            for start in range(size - length + 1):
                end = start + length - 1
                best = max(
                    (option.estimated_score for option in self.get(Span(start, end))),
                    default=-numpy.inf,
                )
                for split in range(start, end):
                    combined = future[start, split] + future[split + 1, end]
                    if combined > best:
                        best = combined
                future[start, end] = best
        self._future_computed = True
        logger.debug("future scores computed for %d spans", size * (size + 1) // 2)

    def future_score(self, span: Span) -> float:
        return float(self._future[span.start, span.end])

    def future_score_for(self, coverage: Coverage) -> float:
        """
        The estimated score of translating everything `coverage` leaves uncovered: the sum of
        the table over each maximal uncovered run.
        """
        return sum(self.future_score(span) for span in coverage.uncovered_spans())

    def unreachable_spans(self) -> List[Span]:
        """
        Single positions that no option covers.  A phrase-based search can never
        complete while any of these exist.
        """
        return [
            Span(i, i)
            for i in range(len(self.sentence))
            if not any(span.start <= i <= span.end for span in self.spans())
        ]
