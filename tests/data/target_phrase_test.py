import numpy
import pytest

from smtdecoder.common.testing import SmtDecoderTestCase
from smtdecoder.data import NonTerminal, TargetPhrase, TargetPhraseSet, parse_symbols


def make_phrase(word: str, score: float, estimate: float = 0.0) -> TargetPhrase:
    phrase = TargetPhrase([word], ["source"], 2)
    phrase.scores[0] = score
    phrase.estimates[1] = estimate
    return phrase


class TestTargetPhrase(SmtDecoderTestCase):
    def test_parse_symbols(self):
        symbols = parse_symbols("ne [X,1] pas [NP,2]")
        assert symbols == ("ne", NonTerminal("X", 1), "pas", NonTerminal("NP", 2))
        assert parse_symbols("[X]") == ("[X]",)

    def test_rule_properties(self):
        rule = TargetPhrase(
            parse_symbols("not [X,1]"), parse_symbols("ne [X,1] pas"), 1, lhs="X"
        )
        assert rule.is_hierarchical
        assert rule.terminals == ("not",)
        assert rule.source_nonterminals == (NonTerminal("X", 1),)
        assert rule.target_nonterminals == (NonTerminal("X", 1),)
        assert str(rule) == "not [X,1]"

        phrase = TargetPhrase(["the", "house"], ["das", "haus"], 1)
        assert not phrase.is_hierarchical
        assert phrase.lhs is None

    def test_weighted_scores(self):
        phrase = make_phrase("a", -1.0, estimate=-2.0)
        weights = numpy.array([0.5, 2.0])
        assert phrase.weighted_score(weights) == pytest.approx(-0.5)
        assert phrase.estimated_score(weights) == pytest.approx(-4.5)


class TestTargetPhraseSet(SmtDecoderTestCase):
    def setup_method(self):
        super().setup_method()
        self.weights = numpy.array([1.0, 1.0])
        self.phrases = [make_phrase(str(i), score) for i, score in enumerate([-3, -1, -4, -2, -5])]

    def _filled(self) -> TargetPhraseSet:
        phrase_set = TargetPhraseSet(len(self.phrases), self.weights)
        for phrase in self.phrases:
            phrase_set.add(phrase)
        return phrase_set

    @pytest.mark.parametrize("limit", [1, 3, 5, 8])
    def test_sort_and_prune_keeps_the_best(self, limit):
        phrase_set = self._filled()
        phrase_set.sort_and_prune(limit)

        assert len(phrase_set) == min(limit, len(self.phrases))
        scores = phrase_set.scores()
        assert all(first > second for first, second in zip(scores, scores[1:]))
        assert scores == [-1.0, -2.0, -3.0, -4.0, -5.0][:limit]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_keeps_everything(self, limit):
        phrase_set = self._filled()
        phrase_set.sort_and_prune(limit)
        assert len(phrase_set) == len(self.phrases)
        assert phrase_set.scores() == [-1.0, -2.0, -3.0, -4.0, -5.0]

    def test_sort_and_prune_is_idempotent(self):
        phrase_set = self._filled()
        phrase_set.sort_and_prune(3)
        pruned = list(phrase_set)
        phrase_set.sort_and_prune(3)
        assert list(phrase_set) == pruned
        phrase_set.sort_and_prune(10)
        assert list(phrase_set) == pruned

    def test_ties_keep_insertion_order(self):
        phrase_set = TargetPhraseSet(3, self.weights)
        first, second, third = make_phrase("a", -1.0), make_phrase("b", -1.0), make_phrase("c", 0.0)
        for phrase in (first, second, third):
            phrase_set.add(phrase)
        phrase_set.sort_and_prune(0)
        assert list(phrase_set) == [third, first, second]

    def test_ranks_by_estimated_score(self):
        phrase_set = TargetPhraseSet(2, self.weights)
        cheap_but_unlikely = make_phrase("a", -1.0, estimate=-10.0)
        likely = make_phrase("b", -2.0, estimate=-1.0)
        phrase_set.add(cheap_but_unlikely)
        phrase_set.add(likely)
        phrase_set.sort_and_prune(1)
        assert list(phrase_set) == [likely]

    def test_capacity_is_fixed(self):
        phrase_set = TargetPhraseSet(1, self.weights)
        phrase_set.add(make_phrase("a", 0.0))
        with pytest.raises(ValueError):
            phrase_set.add(make_phrase("b", 0.0))
