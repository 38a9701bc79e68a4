import pytest

from smtdecoder.common.testing import SmtDecoderTestCase
from smtdecoder.data import Coverage, Sentence, Span


class TestSentence(SmtDecoderTestCase):
    def test_words_and_spans(self):
        sentence = Sentence.from_text("das haus ist klein", sentence_id=3)
        assert len(sentence) == 4
        assert sentence.sentence_id == 3
        assert sentence.words(Span(1, 2)) == ("haus", "ist")
        assert list(sentence.spans(2)) == [
            Span(0, 0),
            Span(1, 1),
            Span(2, 2),
            Span(3, 3),
            Span(0, 1),
            Span(1, 2),
            Span(2, 3),
        ]
        assert len(list(sentence.spans())) == 10

    def test_span(self):
        assert Span(2, 4).length == 3
        assert Span(0, 1).overlaps(Span(1, 3))
        assert not Span(0, 1).overlaps(Span(2, 3))
        assert str(Span(2, 4)) == "[2,4]"


class TestCoverage(SmtDecoderTestCase):
    def test_cover_never_clears_bits(self):
        empty = Coverage(5)
        covered = empty.cover(Span(1, 2))
        assert str(empty) == "00000"
        assert str(covered) == "01100"
        assert covered.count() == 2
        both = covered.cover(Span(4, 4))
        assert str(both) == "01101"
        assert all(both.is_covered(position) for position in covered.positions())

    def test_overlaps(self):
        coverage = Coverage(5).cover(Span(1, 2))
        assert coverage.overlaps(Span(0, 1))
        assert coverage.overlaps(Span(2, 4))
        assert not coverage.overlaps(Span(3, 4))
        assert not coverage.overlaps(Span(0, 0))

    def test_first_gap_and_completeness(self):
        coverage = Coverage(3)
        assert coverage.first_gap() == 0
        coverage = coverage.cover(Span(0, 0)).cover(Span(2, 2))
        assert coverage.first_gap() == 1
        assert not coverage.is_complete()
        coverage = coverage.cover(Span(1, 1))
        assert coverage.first_gap() is None
        assert coverage.is_complete()

    def test_uncovered_spans(self):
        coverage = Coverage(6).cover(Span(1, 1)).cover(Span(4, 4))
        assert list(coverage.uncovered_spans()) == [Span(0, 0), Span(2, 3), Span(5, 5)]
        assert list(Coverage(2).cover(Span(0, 1)).uncovered_spans()) == []

    def test_equality_and_hashing(self):
        first = Coverage(4).cover(Span(0, 1)).cover(Span(3, 3))
        second = Coverage(4).cover(Span(3, 3)).cover(Span(0, 1))
        assert first == second
        assert hash(first) == hash(second)
        assert first != Coverage(5).cover(Span(0, 1)).cover(Span(3, 3))
        assert len({first, second}) == 1

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            Coverage(3).cover(Span(2, 3))

    def test_empty_sentence_is_complete(self):
        assert Coverage(0).is_complete()
