from typing import Iterator, NamedTuple, Optional, Sequence, Tuple


class Span(NamedTuple):
    """
    A contiguous range of source positions.  Both ends are inclusive.
    """

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def overlaps(self, other: "Span") -> bool:
        return self.start <= other.end and other.start <= self.end

    def __str__(self) -> str:
        return f"[{self.start},{self.end}]"


class Sentence:
    """
    An ordered, immutable sequence of source tokens.  Its length is fixed for the whole of a
    decode.

    # Parameters

    tokens : `Sequence[str]`
        The (already tokenized) source words.
    sentence_id : `int`, optional
        Position of the sentence in its input batch; only used for logging and error messages.
    """

    def __init__(self, tokens: Sequence[str], sentence_id: Optional[int] = None) -> None:
        self._tokens: Tuple[str, ...] = tuple(tokens)
        self.sentence_id = sentence_id

    @classmethod
    def from_text(cls, text: str, sentence_id: Optional[int] = None) -> "Sentence":
        return cls(text.split(), sentence_id)

    @property
    def tokens(self) -> Tuple[str, ...]:
        return self._tokens

    def words(self, span: Span) -> Tuple[str, ...]:
        return self._tokens[span.start : span.end + 1]

    def spans(self, max_length: int = 0) -> Iterator[Span]:
        """
        All spans of the sentence, shortest first.  `max_length <= 0` means no limit.
        """
        size = len(self._tokens)
        longest = size if max_length <= 0 else min(size, max_length)
        for length in range(1, longest + 1):
            for start in range(size - length + 1):
                yield Span(start, start + length - 1)

    def __len__(self) -> int:
        return len(self._tokens)

    def __getitem__(self, index: int) -> str:
        return self._tokens[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tokens)

    def __eq__(self, other) -> bool:
        if isinstance(other, Sentence):
            return self._tokens == other._tokens
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._tokens)

    def __str__(self) -> str:
        return " ".join(self._tokens)

    def __repr__(self) -> str:
        return f"Sentence({self._tokens!r})"
