import json

import numpy
import pytest

from smtdecoder.common.checks import ConfigurationError, SearchFailure
from smtdecoder.common.testing import SmtDecoderTestCase
from smtdecoder.data import Sentence
from smtdecoder.feature_functions import FeatureFunctionRegistry
from smtdecoder.search import StackSearch
from smtdecoder.system import System
from smtdecoder.translator import Translator

SENTENCES = ["das haus", "ist klein", "das zebra", "klein", "das haus ist klein", "haus"]


class TestTranslator(SmtDecoderTestCase):
    def setup_method(self):
        super().setup_method()
        registry = FeatureFunctionRegistry()
        registry.load(
            [
                f"PhraseDictionaryMemory path={self.FIXTURES_ROOT / 'phrase_based' / 'phrase-table.txt'}"
                " num_features=2",
                f"NgramLanguageModel path={self.FIXTURES_ROOT / 'phrase_based' / 'lm.arpa'}",
                "WordPenalty",
            ]
        )
        weights = numpy.ones(registry.num_scores)
        self.system = System(
            registry, weights, StackSearch(), pass_through_unknown=False, nbest_size=2
        )

    def test_translate(self):
        result = Translator(self.system).translate(Sentence.from_text("das haus", sentence_id=0))
        assert not result.failed
        assert result.text == "the house"
        assert len(result.derivations) == 2
        assert result.derivations[0].text == "the house"

    def test_failure_policies(self):
        sentence = Sentence.from_text("das zebra", sentence_id=7)
        with pytest.raises(SearchFailure):
            Translator(self.system, failure_policy="fail").translate(sentence)

        skipped = Translator(self.system, failure_policy="skip").translate(sentence)
        assert skipped.failed
        assert skipped.text == ""
        assert skipped.derivations == []
        assert "sentence 7" in skipped.error

        passed = Translator(self.system, failure_policy="pass_through").translate(sentence)
        assert passed.failed
        assert passed.text == "das zebra"

    def test_bad_settings(self):
        with pytest.raises(ConfigurationError):
            Translator(self.system, failure_policy="retry")
        with pytest.raises(ConfigurationError):
            Translator(self.system, num_threads=0)

    @pytest.mark.parametrize("num_threads", [1, 3])
    def test_translate_lines_keeps_the_input_order(self, num_threads):
        translator = Translator(self.system, num_threads=num_threads, failure_policy="skip")
        results = list(translator.translate_lines(SENTENCES * 4))
        assert [str(result.sentence) for result in results] == SENTENCES * 4
        assert [result.sentence.sentence_id for result in results] == list(range(len(SENTENCES) * 4))
        assert [result.text for result in results[:6]] == [
            "the house",
            "is small",
            "",
            "small",
            "the house is small",
            "house",
        ]

    def test_threads_give_the_same_translations(self):
        single = Translator(self.system, failure_policy="skip")
        threaded = Translator(self.system, num_threads=4, failure_policy="skip")
        expected = [(r.text, [d.score for d in r.derivations]) for r in single.translate_lines(SENTENCES)]
        actual = [(r.text, [d.score for d in r.derivations]) for r in threaded.translate_lines(SENTENCES)]
        assert actual == expected

    def test_output_formats(self):
        translator = Translator(self.system, failure_policy="skip")
        good, bad = translator.translate_lines(["das haus", "das zebra"])

        output = good.to_json(self.system)
        assert output["id"] == 0
        assert output["source"] == "das haus"
        assert output["translation"] == "the house"
        assert len(output["nbest"]) == 2
        assert "error" not in output
        json.dumps(output)

        failed = bad.to_json(self.system)
        assert failed["nbest"] == []
        assert "no hypothesis covers" in failed["error"]

        lines = good.nbest_lines(self.system)
        assert len(lines) == 2
        sentence_id, text, breakdown, score = lines[0].split(" ||| ")
        assert sentence_id == "0"
        assert text == "the house"
        assert breakdown.startswith("PhraseDictionaryMemory0= ")
        assert "NgramLanguageModel0= " in breakdown
        assert "WordPenalty0= -2" in breakdown
        assert float(score) == pytest.approx(good.derivations[0].score, rel=1e-5)
        assert bad.nbest_lines(self.system) == []
