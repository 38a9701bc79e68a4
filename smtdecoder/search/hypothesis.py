from typing import Any, Hashable, List, Optional, Tuple

import numpy

from smtdecoder.data.coverage import Coverage
from smtdecoder.data.sentence import Span
from smtdecoder.data.translation_option import TranslationOption


class Hypothesis:
    """
    A partial translation.  Hypotheses live in a `HypothesisArena` and refer to each other by
    arena index, never by reference, so that a whole search can be thrown away at once.

    `score` is the weighted score of everything translated so far and `scores` the
    corresponding unweighted vector.  `future_score` estimates what is still to come; search
    ranks and prunes on `total_score`, their sum.

    When another hypothesis with the same fingerprint beats this one, `recombined_into` is
    set to the winner's index.  The winner keeps the losers' indices in `arcs`, which is
    where alternative derivations for n-best lists come from.
    """

    __slots__ = (
        "index",
        "score",
        "scores",
        "states",
        "option",
        "future_score",
        "pruned",
        "recombined_into",
        "arcs",
    )

    def __init__(
        self,
        score: float,
        scores: numpy.ndarray,
        states: Tuple[Any, ...],
        option: Optional[TranslationOption],
        future_score: float = 0.0,
    ) -> None:
        self.index = -1
        self.score = score
        self.scores = scores
        self.states = states
        self.option = option
        self.future_score = future_score
        self.pruned = False
        self.recombined_into: Optional[int] = None
        self.arcs: List[int] = []

    @property
    def total_score(self) -> float:
        return self.score + self.future_score

    @property
    def fingerprint(self) -> Hashable:
        raise NotImplementedError


class PhraseHypothesis(Hypothesis):
    """
    A hypothesis of the stack search: the option applied last, the coverage so far, and the
    index of the hypothesis it extends.
    """

    __slots__ = ("coverage", "back_pointer")

    def __init__(
        self,
        coverage: Coverage,
        score: float,
        scores: numpy.ndarray,
        states: Tuple[Any, ...],
        option: Optional[TranslationOption] = None,
        back_pointer: Optional[int] = None,
        future_score: float = 0.0,
    ) -> None:
        super().__init__(score, scores, states, option, future_score)
        self.coverage = coverage
        self.back_pointer = back_pointer

    @property
    def fingerprint(self) -> Hashable:
        return (self.coverage, self.states)

    def __repr__(self) -> str:
        target = "" if self.option is None else str(self.option.target_phrase)
        return f"PhraseHypothesis({self.index}, {self.coverage}, {target!r}, {self.score:.4f})"


class ChartHypothesis(Hypothesis):
    """
    A hypothesis of the chart search: a rule (or lexical phrase) applied over `span`,
    producing `label`, with `children` holding the arena indices of the hypotheses that fill
    the rule's gaps, in source order.
    """

    __slots__ = ("span", "label", "children")

    def __init__(
        self,
        span: Span,
        label: str,
        score: float,
        scores: numpy.ndarray,
        states: Tuple[Any, ...],
        option: TranslationOption,
        children: Tuple[int, ...] = (),
        future_score: float = 0.0,
    ) -> None:
        super().__init__(score, scores, states, option, future_score)
        self.span = span
        self.label = label
        self.children = children

    @property
    def fingerprint(self) -> Hashable:
        return (self.label, self.states)

    def __repr__(self) -> str:
        return f"ChartHypothesis({self.index}, {self.span}, {self.label}, {self.score:.4f})"


class HypothesisArena:
    """
    Owns every hypothesis created while decoding one sentence.  Hypotheses are addressed
    by the index `add` returns; `release` drops them all in one step.
    """

    def __init__(self) -> None:
        self._hypotheses: List[Hypothesis] = []
        self._released = False

    def add(self, hypothesis: Hypothesis) -> int:
        if self._released:
            raise RuntimeError("hypothesis arena was already released")
        hypothesis.index = len(self._hypotheses)
        self._hypotheses.append(hypothesis)
        return hypothesis.index

    def __getitem__(self, index: int) -> Any:
        if self._released:
            raise RuntimeError("hypothesis arena was already released")
        return self._hypotheses[index]

    def __len__(self) -> int:
        return len(self._hypotheses)

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        self._hypotheses = []
        self._released = True
