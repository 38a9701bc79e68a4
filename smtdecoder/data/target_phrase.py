import re
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy

_NONTERMINAL_RE = re.compile(r"^\[([^\[\],]+),(\d+)\]$")


class NonTerminal(NamedTuple):
    """
    A gap in a grammar rule.  `index` links a target-side gap to the source-side gap with
    the same index (1-based, as written in the rule: `[X,1]`).
    """

    label: str
    index: int

    def __str__(self) -> str:
        return f"[{self.label},{self.index}]"


Symbol = Union[str, NonTerminal]


def parse_symbols(text: str) -> Tuple[Symbol, ...]:
    """
    Splits one side of a rule on whitespace, turning `[X,1]` tokens into `NonTerminal`s.
    """
    symbols: List[Symbol] = []
    for token in text.split():
        match = _NONTERMINAL_RE.match(token)
        if match:
            symbols.append(NonTerminal(match.group(1), int(match.group(2))))
        else:
            symbols.append(token)
    return tuple(symbols)


class TargetPhrase:
    """
    One candidate translation of a source phrase (or one grammar rule, when the symbols
    contain `NonTerminal`s).

    `scores` and `estimates` are unweighted vectors over the global score space.  `scores` is
    filled by the stateless feature functions when the phrase is evaluated in isolation;
    `estimates` holds the context-free guesses of the stateful ones (the language model score
    of the words on their own, say), which only feed pruning and future-score estimation.

    # Parameters

    words : `Sequence[Symbol]`
        The target side.
    source : `Sequence[Symbol]`
        The source side this phrase was extracted for.
    num_scores : `int`
        Size of the global score vector.
    lhs : `str`, optional
        The left-hand-side label of a grammar rule.  Plain phrase pairs have none.
    is_oov : `bool`, optional (default = `False`)
        Marks pass-through translations made up for unknown source words.
    """

    __slots__ = ("words", "source", "lhs", "is_oov", "scores", "estimates", "_target_gaps")

    def __init__(
        self,
        words: Sequence[Symbol],
        source: Sequence[Symbol],
        num_scores: int,
        lhs: Optional[str] = None,
        is_oov: bool = False,
    ) -> None:
        self.words: Tuple[Symbol, ...] = tuple(words)
        self.source: Tuple[Symbol, ...] = tuple(source)
        self.lhs = lhs
        self.is_oov = is_oov
        self.scores = numpy.zeros(num_scores)
        self.estimates = numpy.zeros(num_scores)
        self._target_gaps = tuple(w for w in self.words if isinstance(w, NonTerminal))

    @property
    def terminals(self) -> Tuple[str, ...]:
        return tuple(w for w in self.words if not isinstance(w, NonTerminal))

    @property
    def source_nonterminals(self) -> Tuple[NonTerminal, ...]:
        return tuple(s for s in self.source if isinstance(s, NonTerminal))

    @property
    def target_nonterminals(self) -> Tuple[NonTerminal, ...]:
        return self._target_gaps

    @property
    def is_hierarchical(self) -> bool:
        return any(isinstance(s, NonTerminal) for s in self.source)

    def weighted_score(self, weights: numpy.ndarray) -> float:
        return float(numpy.dot(weights, self.scores))

    def estimated_score(self, weights: numpy.ndarray) -> float:
        return float(numpy.dot(weights, self.scores + self.estimates))

    def __str__(self) -> str:
        return " ".join(str(w) for w in self.words)

    def __repr__(self) -> str:
        source = " ".join(str(s) for s in self.source)
        return f"TargetPhrase({source!r} -> {str(self)!r})"


class TargetPhraseSet:
    """
    The candidate target phrases for one source span, as collected from the translation
    providers.  It is append-only with a capacity fixed when it is created, and is
    sorted and truncated with `sort_and_prune` once everything has been added.

    # Parameters

    capacity : `int`
        The number of candidates the providers reported for the span.
    weights : `numpy.ndarray`
        The global weight vector, used to rank candidates by their estimated score.
    """

    def __init__(self, capacity: int, weights: numpy.ndarray) -> None:
        self._capacity = capacity
        self._weights = weights
        # (estimated score, insertion order, phrase)
        self._entries: List[Tuple[float, int, TargetPhrase]] = []
        self._inserted = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def add(self, phrase: TargetPhrase) -> None:
        if self._inserted >= self._capacity:
            raise ValueError(f"TargetPhraseSet is full (capacity {self._capacity})")
        self._entries.append((phrase.estimated_score(self._weights), self._inserted, phrase))
        self._inserted += 1

    def sort_and_prune(self, limit: int) -> None:
        """
        Sorts by estimated score, best first, breaking ties by insertion order, and keeps the
        first `limit` entries.  A `limit` of zero or less keeps everything.
        """
        self._entries.sort(key=lambda entry: (-entry[0], entry[1]))
        if 0 < limit < len(self._entries):
            del self._entries[limit:]

    def scores(self) -> List[float]:
        return [entry[0] for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> TargetPhrase:
        return self._entries[index][2]

    def __iter__(self) -> Iterator[TargetPhrase]:
        return (entry[2] for entry in self._entries)
