import numpy
import pytest

from smtdecoder.common import Params
from smtdecoder.common.checks import ConfigurationError
from smtdecoder.common.testing import SmtDecoderTestCase
from smtdecoder.feature_functions import FeatureFunctionRegistry
from smtdecoder.search import ChartSearch, StackSearch
from smtdecoder.system import System


class TestSystem(SmtDecoderTestCase):
    def setup_method(self):
        super().setup_method()
        self.phrase_table = self.FIXTURES_ROOT / "phrase_based" / "phrase-table.txt"
        self.config = {
            "features": [
                f"PhraseDictionaryMemory path={self.phrase_table} num_features=2",
                "WordPenalty",
                "Distortion",
            ],
            "weights": {
                "PhraseDictionaryMemory0": [0.3, 0.2],
                "WordPenalty0": [-0.5],
                "Distortion0": [0.1],
            },
            "search": {"type": "stack", "stack_size": 10},
            "nbest_size": 5,
        }

    def test_from_params(self):
        system = System.from_params(Params(self.config))
        assert isinstance(system.search, StackSearch)
        assert system.search.stack_size == 10
        assert system.nbest_size == 5
        assert system.max_phrase_length == 7
        assert system.pass_through_unknown
        numpy.testing.assert_allclose(system.weights, [0.3, 0.2, -0.5, 0.1])
        assert len(system.registry) == 3

    def test_default_search_is_stack(self):
        del self.config["search"]
        assert isinstance(System.from_params(Params(self.config)).search, StackSearch)

    def test_chart_search(self):
        self.config["search"] = {"type": "chart", "cell_size": 4}
        system = System.from_params(Params(self.config))
        assert isinstance(system.search, ChartSearch)
        assert system.search.cell_size == 4

    @pytest.mark.parametrize(
        "key, value",
        [
            ("features", "WordPenalty"),
            ("nbest_size", 0),
            ("max_phrase_length", 0),
            ("decoder", "fast"),
            ("search", {"type": "beam"}),
        ],
    )
    def test_bad_configuration(self, key, value):
        self.config[key] = value
        with pytest.raises(ConfigurationError):
            System.from_params(Params(self.config))

    def test_features_are_required(self):
        del self.config["features"]
        with pytest.raises(ConfigurationError, match="features"):
            System.from_params(Params(self.config))

    def test_needs_a_translation_provider(self):
        registry = FeatureFunctionRegistry()
        registry.load(["WordPenalty"])
        with pytest.raises(ConfigurationError, match="provides translations"):
            System(registry, numpy.ones(1), StackSearch())

    def test_weights_must_fit(self):
        registry = FeatureFunctionRegistry()
        registry.load([f"PhraseDictionaryMemory path={self.phrase_table} num_features=2"])
        with pytest.raises(ConfigurationError, match="3 weights for 2 scores"):
            System(registry, numpy.ones(3), StackSearch())
