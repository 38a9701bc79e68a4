import numpy
import pytest

from smtdecoder.common.testing import SmtDecoderTestCase
from smtdecoder.data import Coverage, Span
from smtdecoder.search import HypothesisArena, HypothesisCollection, PhraseHypothesis


class TestHypothesisCollection(SmtDecoderTestCase):
    def setup_method(self):
        super().setup_method()
        self.arena = HypothesisArena()
        self.collection = HypothesisCollection(self.arena)

    def _hypothesis(self, score: float, state=0, covered: int = 0, future: float = 0.0) -> PhraseHypothesis:
        coverage = Coverage(8)
        if covered:
            coverage = coverage.cover(Span(0, covered - 1))
        hypothesis = PhraseHypothesis(
            coverage, score, numpy.array([score]), (state,), future_score=future
        )
        self.arena.add(hypothesis)
        return hypothesis

    def test_recombination_keeps_the_better_hypothesis(self):
        worse = self._hypothesis(-2.0)
        better = self._hypothesis(-1.0)
        assert self.collection.add(worse)
        assert self.collection.add(better)
        assert len(self.collection) == 1
        assert self.collection.best() is better
        assert worse.recombined_into == better.index
        assert better.arcs == [worse.index]

        # A worse one arriving later is recombined straight away.
        worst = self._hypothesis(-3.0)
        assert not self.collection.add(worst)
        assert worst.recombined_into == better.index
        assert better.arcs == [worse.index, worst.index]
        assert self.collection.num_recombined == 2

    def test_the_winner_inherits_the_losers_arcs(self):
        first = self._hypothesis(-3.0)
        second = self._hypothesis(-2.0)
        third = self._hypothesis(-1.0)
        for hypothesis in (first, second, third):
            self.collection.add(hypothesis)
        assert sorted(third.arcs) == [first.index, second.index]
        assert second.arcs == []

    def test_ties_keep_the_first(self):
        first = self._hypothesis(-1.0)
        second = self._hypothesis(-1.0)
        self.collection.add(first)
        assert not self.collection.add(second)
        assert self.collection.best() is first

    def test_only_equal_fingerprints_recombine(self):
        self.collection.add(self._hypothesis(-1.0, state=0))
        self.collection.add(self._hypothesis(-1.0, state=1))
        self.collection.add(self._hypothesis(-1.0, state=0, covered=2))
        assert len(self.collection) == 3
        assert self.collection.num_recombined == 0

    def test_recombination_compares_total_scores(self):
        cheap = self._hypothesis(-1.0, future=-5.0)
        promising = self._hypothesis(-2.0, future=-1.0)
        self.collection.add(cheap)
        self.collection.add(promising)
        assert self.collection.best() is promising

    def test_histogram_pruning(self):
        hypotheses = [self._hypothesis(-float(i), state=i) for i in range(10)]
        for hypothesis in reversed(hypotheses):
            self.collection.add(hypothesis)
        assert self.collection.prune(max_size=3) == 7
        assert [h.score for h in self.collection] == [0.0, -1.0, -2.0]
        assert all(h.pruned for h in hypotheses[3:])
        assert not any(h.pruned for h in hypotheses[:3])
        assert self.collection.num_pruned == 7

    def test_threshold_pruning(self):
        for i in range(6):
            self.collection.add(self._hypothesis(-0.5 * i, state=i))
        assert self.collection.prune(beam_width=1.0) == 3
        assert [h.score for h in self.collection] == [0.0, -0.5, -1.0]

    def test_zero_beam_keeps_ties(self):
        for i in range(4):
            self.collection.add(self._hypothesis(-1.0 if i < 3 else -1.5, state=i))
        self.collection.prune(beam_width=0.0)
        assert len(self.collection) == 3

    def test_both_limits(self):
        for i in range(6):
            self.collection.add(self._hypothesis(-0.5 * i, state=i))
        self.collection.prune(max_size=2, beam_width=2.0)
        assert len(self.collection) == 2

    def test_no_limits(self):
        for i in range(5):
            self.collection.add(self._hypothesis(-float(i), state=i))
        assert self.collection.prune() == 0
        assert len(self.collection) == 5
        assert HypothesisCollection(self.arena).prune(max_size=1) == 0

    def test_pruned_slot_can_be_refilled(self):
        loser = self._hypothesis(-5.0, state=1)
        self.collection.add(self._hypothesis(0.0, state=0))
        self.collection.add(loser)
        self.collection.prune(max_size=1)
        newcomer = self._hypothesis(-6.0, state=1)
        assert self.collection.add(newcomer)
        assert newcomer.recombined_into is None


class TestHypothesisArena(SmtDecoderTestCase):
    def test_indices_and_release(self):
        arena = HypothesisArena()
        first = PhraseHypothesis(Coverage(1), 0.0, numpy.zeros(1), ())
        second = PhraseHypothesis(Coverage(1), 0.0, numpy.zeros(1), ())
        assert arena.add(first) == 0
        assert arena.add(second) == 1
        assert arena[1] is second
        assert len(arena) == 2

        arena.release()
        assert arena.released
        assert len(arena) == 0
        with pytest.raises(RuntimeError):
            arena[0]
        with pytest.raises(RuntimeError):
            arena.add(first)
