from typing import Iterator, List, Optional

from smtdecoder.data.sentence import Span


class Coverage:
    """
    An immutable bit-vector marking which source positions a derivation has translated.
    Bits are only ever added: `cover` returns a new `Coverage` and never clears anything.

    The bits are stored in a python int, which keeps coverages cheap to hash and compare
    when they are used as part of a recombination fingerprint.
    """

    __slots__ = ("_size", "_bits")

    def __init__(self, size: int, bits: int = 0) -> None:
        self._size = size
        self._bits = bits

    @property
    def size(self) -> int:
        return self._size

    @property
    def bits(self) -> int:
        return self._bits

    @staticmethod
    def _mask(span: Span) -> int:
        return ((1 << span.length) - 1) << span.start

    def is_covered(self, position: int) -> bool:
        return bool(self._bits >> position & 1)

    def overlaps(self, span: Span) -> bool:
        return bool(self._bits & self._mask(span))

    def cover(self, span: Span) -> "Coverage":
        if span.start < 0 or span.end >= self._size:
            raise ValueError(f"span {span} outside a coverage of size {self._size}")
        return Coverage(self._size, self._bits | self._mask(span))

    def count(self) -> int:
        return bin(self._bits).count("1")

    def is_complete(self) -> bool:
        return self._bits == (1 << self._size) - 1

    def first_gap(self) -> Optional[int]:
        """
        The leftmost uncovered position, or `None` when everything is covered.
        """
        if self.is_complete():
            return None
        inverted = ~self._bits & ((1 << self._size) - 1)
        return (inverted & -inverted).bit_length() - 1

    def uncovered_spans(self) -> Iterator[Span]:
        """
        The maximal contiguous runs of uncovered positions, left to right.
        """
        start = None
        for position in range(self._size):
            if self.is_covered(position):
                if start is not None:
                    yield Span(start, position - 1)
                    start = None
            elif start is None:
                start = position
        if start is not None:
            yield Span(start, self._size - 1)

    def positions(self) -> List[int]:
        return [position for position in range(self._size) if self.is_covered(position)]

    def __eq__(self, other) -> bool:
        if isinstance(other, Coverage):
            return self._size == other._size and self._bits == other._bits
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._size, self._bits))

    def __str__(self) -> str:
        return "".join("1" if self.is_covered(i) else "0" for i in range(self._size))

    def __repr__(self) -> str:
        return f"Coverage({self})"
