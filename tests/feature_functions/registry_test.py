from typing import List, Optional

import numpy
import pytest

from smtdecoder.common.checks import ConfigurationError, NotFoundError
from smtdecoder.common.testing import SmtDecoderTestCase
from smtdecoder.data import TargetPhrase
from smtdecoder.feature_functions import (
    Distortion,
    FeatureFunction,
    FeatureFunctionRegistry,
    NgramLanguageModel,
    PhraseDictionary,
    PhraseDictionaryMemory,
    StatelessFeatureFunction,
    WordPenalty,
    parse_feature_line,
)

LOAD_ORDER: List[str] = []


class Recorder(StatelessFeatureFunction):
    def __init__(self, name: Optional[str] = None, tuneable: bool = True) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)

    def load(self, registry) -> None:
        LOAD_ORDER.append(self.name)


class RecordingProvider(PhraseDictionary):
    def __init__(self, name: Optional[str] = None) -> None:
        super().__init__(num_features=1, name=name)

    def read_entries(self):
        yield None, ("a",), ("x", "y"), [0.5]

    def load(self, registry) -> None:
        LOAD_ORDER.append(self.name)
        super().load(registry)


@FeatureFunction.register("HalfWordPenalty", constructor="halved", exist_ok=True)
class ScaledWordPenalty(StatelessFeatureFunction):
    def __init__(self, scale: float, name: Optional[str] = None, tuneable: bool = True) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)
        self.scale = scale

    @classmethod
    def halved(cls, name: Optional[str] = None) -> "ScaledWordPenalty":
        return cls(0.5, name=name)

    def evaluate_in_isolation(self, target_phrase: TargetPhrase) -> None:
        target_phrase.scores[self.score_range] = -self.scale * len(target_phrase.terminals)


class TestFeatureFunctionRegistry(SmtDecoderTestCase):
    def setup_method(self):
        super().setup_method()
        LOAD_ORDER.clear()
        self.phrase_table = self.FIXTURES_ROOT / "phrase_based" / "phrase-table.txt"
        self.language_model = self.FIXTURES_ROOT / "phrase_based" / "lm.arpa"

    def test_parse_feature_line(self):
        name, params = parse_feature_line("PhraseDictionaryMemory path=pt.txt num-features=4")
        assert name == "PhraseDictionaryMemory"
        assert params.as_dict() == {"path": "pt.txt", "num_features": 4}

        for bad_line in ["", "WordPenalty tuneable", "WordPenalty =1", "WordPenalty a=1 a=2"]:
            with pytest.raises(ConfigurationError):
                parse_feature_line(bad_line)

    def test_load_assigns_consecutive_offsets(self):
        registry = FeatureFunctionRegistry()
        registry.load(
            [
                f"PhraseDictionaryMemory path={self.phrase_table} num_features=2",
                "WordPenalty",
                f"NgramLanguageModel path={self.language_model}",
                "Distortion",
            ]
        )
        names = [ff.name for ff in registry.feature_functions]
        assert names == [
            "PhraseDictionaryMemory0",
            "WordPenalty0",
            "NgramLanguageModel0",
            "Distortion0",
        ]
        assert [ff.offset for ff in registry.feature_functions] == [0, 2, 3, 4]
        assert registry.num_scores == 5

        assert [type(ff) for ff in registry.stateful] == [NgramLanguageModel, Distortion]
        assert [type(ff) for ff in registry.stateless] == [PhraseDictionaryMemory, WordPenalty]
        assert [type(ff) for ff in registry.providers] == [PhraseDictionaryMemory]

    def test_names_count_per_type(self):
        registry = FeatureFunctionRegistry()
        registry.load(["WordPenalty", "PhrasePenalty", "WordPenalty", "WordPenalty name=extra"])
        assert [ff.name for ff in registry] == [
            "WordPenalty0",
            "PhrasePenalty0",
            "WordPenalty1",
            "extra",
        ]

    def test_find_by_name(self):
        registry = FeatureFunctionRegistry()
        registry.load(["WordPenalty", "Distortion name=reordering"])
        assert isinstance(registry.find_by_name("reordering"), Distortion)
        with pytest.raises(NotFoundError, match="Distortion0 not found"):
            registry.find_by_name("Distortion0")

    def test_providers_load_after_everything_else(self):
        registry = FeatureFunctionRegistry(
            {"Recorder": Recorder, "RecordingProvider": RecordingProvider, "WordPenalty": WordPenalty}
        )
        registry.load(["RecordingProvider", "Recorder", "WordPenalty", "Recorder"])
        assert LOAD_ORDER == ["Recorder0", "Recorder1", "RecordingProvider0"]

        # The provider scored its entry with the functions loaded before it.
        provider = registry.find_by_name("RecordingProvider0")
        (phrase,) = provider.get_target_phrases(("a",))
        assert phrase.scores[provider.offset] == 0.5
        assert phrase.scores[registry.find_by_name("WordPenalty0").offset] == -2.0
        assert provider.get_target_phrases(("b",)) == []

    def test_explicit_constructor_table(self):
        registry = FeatureFunctionRegistry({"Recorder": Recorder})
        with pytest.raises(ConfigurationError, match="unknown feature function WordPenalty"):
            registry.load(["WordPenalty"])

    @pytest.mark.parametrize(
        "line",
        [
            "NoSuchFeature",
            "PhraseDictionaryMemory num_features=2",
            "WordPenalty colour=blue",
            "NgramLanguageModel path=lm.arpa order=high",
            "DiscriminativeClassifier path=model.th loss=hinge",
        ],
    )
    def test_bad_lines(self, line):
        with pytest.raises(ConfigurationError):
            FeatureFunctionRegistry().load([line])

    def test_duplicate_names(self):
        with pytest.raises(ConfigurationError, match="duplicate"):
            FeatureFunctionRegistry().load(["WordPenalty name=a", "PhrasePenalty name=a"])

    def test_load_only_once(self):
        registry = FeatureFunctionRegistry()
        registry.load(["WordPenalty"])
        with pytest.raises(ConfigurationError):
            registry.load(["PhrasePenalty"])

    def test_weight_vector(self):
        registry = FeatureFunctionRegistry()
        registry.load(
            [
                f"PhraseDictionaryMemory path={self.phrase_table} num_features=2",
                "WordPenalty",
                "UnknownWordPenalty tuneable=false",
            ]
        )
        weights = registry.weight_vector(
            {"PhraseDictionaryMemory0": [0.2, 0.3], "WordPenalty0": [-0.5]}
        )
        numpy.testing.assert_allclose(weights, [0.2, 0.3, -0.5, 1.0])

        with pytest.raises(ConfigurationError, match="no weights given for WordPenalty0"):
            registry.weight_vector({"PhraseDictionaryMemory0": [0.2, 0.3]})
        with pytest.raises(ConfigurationError, match="2 scores but 1 weights"):
            registry.weight_vector({"PhraseDictionaryMemory0": [0.2], "WordPenalty0": [1.0]})
        with pytest.raises(ConfigurationError, match="unknown feature function"):
            registry.weight_vector(
                {"PhraseDictionaryMemory0": [0.2, 0.3], "WordPenalty0": [1.0], "LM0": [1.0]}
            )

    def test_breakdown(self):
        registry = FeatureFunctionRegistry()
        registry.load(["WordPenalty", "Distortion"])
        assert registry.breakdown(numpy.array([-3.0, -2.0])) == {
            "WordPenalty0": [-3.0],
            "Distortion0": [-2.0],
        }

    def test_every_reference_feature_function_is_registered(self):
        assert {
            "PhraseDictionaryMemory",
            "RuleTableMemory",
            "GlueGrammar",
            "NgramLanguageModel",
            "Distortion",
            "WordPenalty",
            "PhrasePenalty",
            "UnknownWordPenalty",
            "DiscriminativeClassifier",
        } <= set(FeatureFunction.list_available())

    def test_plain_factories_get_keyword_arguments(self):
        registry = FeatureFunctionRegistry({"WordPenalty": lambda **kwargs: WordPenalty(**kwargs)})
        registry.load(["WordPenalty", "WordPenalty name=short tuneable=false"])
        assert [ff.name for ff in registry] == ["WordPenalty0", "short"]
        assert not registry.find_by_name("short").tuneable

        with pytest.raises(ConfigurationError, match="cannot construct WordPenalty"):
            FeatureFunctionRegistry({"WordPenalty": lambda **kwargs: WordPenalty(**kwargs)}).load(
                ["WordPenalty colour=blue"]
            )
        with pytest.raises(ConfigurationError, match="did not construct a feature function"):
            FeatureFunctionRegistry({"Nothing": lambda **kwargs: object()}).load(["Nothing"])

    def test_named_constructors(self):
        constructor = FeatureFunction.registered_constructors()["HalfWordPenalty"]
        assert constructor == ScaledWordPenalty.halved

        registry = FeatureFunctionRegistry()
        registry.load(["HalfWordPenalty", "HalfWordPenalty name=half"])
        assert [ff.name for ff in registry] == ["HalfWordPenalty0", "half"]
        assert all(ff.scale == 0.5 for ff in registry)

        with pytest.raises(ConfigurationError):
            FeatureFunctionRegistry().load(["HalfWordPenalty scale=2"])

    def test_missing_files(self):
        for line in [
            "PhraseDictionaryMemory path=no-such-table.txt num_features=1",
            "RuleTableMemory path=no-such-rules.txt num_features=1",
            "NgramLanguageModel path=no-such-lm.arpa",
            "DiscriminativeClassifier path=no-such-model.th",
        ]:
            name = line.split()[0]
            with pytest.raises(ConfigurationError, match=f"{name}0: cannot read no-such"):
                FeatureFunctionRegistry().load([line])
