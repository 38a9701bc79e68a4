import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy

from smtdecoder.common.checks import ConfigurationError, NotFoundError
from smtdecoder.common.from_params import FromParams
from smtdecoder.common.params import Params, infer_and_cast
from smtdecoder.data.sentence import Sentence, Span
from smtdecoder.data.target_phrase import TargetPhrase
from smtdecoder.feature_functions.feature_function import FeatureFunction, StatefulFeatureFunction

logger = logging.getLogger(__name__)


def parse_feature_line(line: str) -> Tuple[str, Params]:
    """
    Splits a feature function line of the form `Name key1=value1 key2=value2` into the type
    name and its (type-cast) parameters.  Dashes in keys become underscores, so both
    `num-features=4` and `num_features=4` work.
    """
    tokens = line.split()
    if not tokens:
        raise ConfigurationError("empty feature function line")
    type_name, arguments = tokens[0], tokens[1:]
    params: Dict[str, Any] = {}
    for token in arguments:
        key, separator, value = token.partition("=")
        if not separator or not key or not value:
            raise ConfigurationError(
                f"malformed argument {token!r} for {type_name}, expected key=value"
            )
        key = key.replace("-", "_")
        if key in params:
            raise ConfigurationError(f"argument {key} given twice for {type_name}")
        params[key] = infer_and_cast(value)
    return type_name, Params(params, history=f"{type_name}.")


class FeatureFunctionRegistry:
    """
    Owns every feature function of a decoding system and assigns each one its range of the
    global score vector.

    # Parameters

    constructors : `Mapping[str, Callable[..., FeatureFunction]]`, optional
        The table from type names (the first token of a feature line) to whatever builds
        them: a `FromParams` class, a classmethod of one (as registered with a named
        constructor), or any other callable, which gets the line's arguments as keywords.
        Defaults to everything registered with `FeatureFunction.register` at the time the
        registry is created.
    """

    def __init__(
        self, constructors: Optional[Mapping[str, Callable[..., FeatureFunction]]] = None
    ) -> None:
        if constructors is None:
            constructors = FeatureFunction.registered_constructors()
        self._constructors = dict(constructors)
        self._feature_functions: List[FeatureFunction] = []
        self._stateful: List[StatefulFeatureFunction] = []
        self._num_scores = 0
        self._type_counts: DefaultDict[str, int] = defaultdict(int)
        self._loaded = False

    def construct(self, line: str) -> FeatureFunction:
        type_name, params = parse_feature_line(line)
        constructor = self._constructors.get(type_name)
        if constructor is None:
            raise ConfigurationError(
                f"unknown feature function {type_name}, "
                f"available: {', '.join(sorted(self._constructors))}"
            )
        try:
            feature_function = self._build(constructor, params)
        except (TypeError, ValueError) as error:
            raise ConfigurationError(f"cannot construct {type_name}: {error}") from error
        if not isinstance(feature_function, FeatureFunction):
            raise ConfigurationError(f"{type_name} did not construct a feature function")
        if feature_function.name is None:
            feature_function.name = f"{type_name}{self._type_counts[type_name]}"
        self._type_counts[type_name] += 1
        return feature_function

    @staticmethod
    def _build(constructor: Callable[..., FeatureFunction], params: Params) -> FeatureFunction:
        if isinstance(constructor, type) and issubclass(constructor, FromParams):
            return constructor.from_params(params=params)
        owner = getattr(constructor, "__self__", None)
        if isinstance(owner, type) and issubclass(owner, FromParams):
            return owner.from_params(
                params=params, constructor_to_call=constructor, constructor_to_inspect=constructor
            )
        return constructor(**params.as_dict(quiet=True))

    def add(self, feature_function: FeatureFunction) -> None:
        """
        Appends an already constructed feature function and assigns its offset.
        """
        if feature_function.name is None:
            type_name = type(feature_function).__name__
            feature_function.name = f"{type_name}{self._type_counts[type_name]}"
            self._type_counts[type_name] += 1
        if any(existing.name == feature_function.name for existing in self._feature_functions):
            raise ConfigurationError(f"duplicate feature function name {feature_function.name}")
        if feature_function.num_scores < 0:
            raise ConfigurationError(f"{feature_function.name} has a negative number of scores")
        feature_function.offset = self._num_scores
        self._num_scores += feature_function.num_scores
        self._feature_functions.append(feature_function)
        if feature_function.is_stateful:
            self._stateful.append(feature_function)  # type: ignore
        logger.info(
            "feature function %s: scores [%d, %d)",
            feature_function.name,
            feature_function.offset,
            self._num_scores,
        )

    def load(self, lines: Iterable[str]) -> None:
        """
        Constructs a feature function for every line, in order, and then loads them in two
        passes: every function that does not provide translations first, then the providers.
        Providers score their entries with the other functions while they load.
        """
        if self._loaded:
            raise ConfigurationError("feature functions were already loaded")
        for line in lines:
            self.add(self.construct(line))
        for feature_function in self._feature_functions:
            if not feature_function.provides_translations:
                logger.info("loading %s", feature_function.name)
                feature_function.load(self)
        for feature_function in self._feature_functions:
            if feature_function.provides_translations:
                logger.info("loading translation provider %s", feature_function.name)
                feature_function.load(self)
        self._loaded = True

    @property
    def feature_functions(self) -> List[FeatureFunction]:
        return list(self._feature_functions)

    @property
    def stateful(self) -> List[StatefulFeatureFunction]:
        return list(self._stateful)

    @property
    def stateless(self) -> List[FeatureFunction]:
        return [ff for ff in self._feature_functions if not ff.is_stateful]

    @property
    def providers(self) -> List[FeatureFunction]:
        return [ff for ff in self._feature_functions if ff.provides_translations]

    @property
    def num_scores(self) -> int:
        return self._num_scores

    def find_by_name(self, name: str) -> FeatureFunction:
        for feature_function in self._feature_functions:
            if feature_function.name == name:
                return feature_function
        raise NotFoundError(name)

    def weight_vector(self, weights: Mapping[str, Sequence[float]]) -> numpy.ndarray:
        """
        Builds the global weight vector from per-function weight lists.  Functions that are
        not tuneable may be left out, in which case all their weights are 1.
        """
        vector = numpy.ones(self._num_scores)
        for name in weights:
            try:
                self.find_by_name(name)
            except NotFoundError as error:
                raise ConfigurationError(f"weights given for unknown feature function {error.name}")
        for feature_function in self._feature_functions:
            values = weights.get(feature_function.name)
            if values is None:
                if feature_function.tuneable and feature_function.num_scores > 0:
                    raise ConfigurationError(f"no weights given for {feature_function.name}")
                continue
            if isinstance(values, (int, float)):
                values = [values]
            if len(values) != feature_function.num_scores:
                raise ConfigurationError(
                    f"{feature_function.name} has {feature_function.num_scores} scores "
                    f"but {len(values)} weights"
                )
            vector[feature_function.score_range] = values
        return vector

    def empty_states(self, sentence: Sentence) -> Tuple[Any, ...]:
        return tuple(ff.empty_state(sentence) for ff in self._stateful)

    def evaluate_in_isolation(self, target_phrase: TargetPhrase) -> None:
        for feature_function in self._feature_functions:
            feature_function.evaluate_in_isolation(target_phrase)

    def evaluate_with_source_context(
        self, sentence: Sentence, span: Span, target_phrase: TargetPhrase
    ) -> numpy.ndarray:
        """
        Returns the score vector of `target_phrase` applied to `span`: its isolation scores plus
        whatever the source-context features add.
        """
        scores = target_phrase.scores.copy()
        for feature_function in self._feature_functions:
            feature_function.evaluate_with_source_context(sentence, span, target_phrase, scores)
        return scores

    def evaluate_translation_options(
        self,
        sentence: Sentence,
        span: Span,
        target_phrases: List[TargetPhrase],
        scores: List[numpy.ndarray],
    ) -> None:
        for feature_function in self._feature_functions:
            feature_function.evaluate_translation_options(sentence, span, target_phrases, scores)

    def breakdown(self, scores: numpy.ndarray) -> Dict[str, List[float]]:
        return {
            ff.name: [float(value) for value in scores[ff.score_range]]  # type: ignore
            for ff in self._feature_functions
        }

    def __len__(self) -> int:
        return len(self._feature_functions)

    def __iter__(self):
        return iter(self._feature_functions)
