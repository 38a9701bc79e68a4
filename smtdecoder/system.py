import logging
from typing import Callable, Dict, List, Mapping, Optional

import numpy

from smtdecoder.common import Params
from smtdecoder.common.checks import ConfigurationError
from smtdecoder.feature_functions import FeatureFunction, FeatureFunctionRegistry
from smtdecoder.search import SearchAlgorithm

logger = logging.getLogger(__name__)


class System:
    """
    Everything that is loaded once and shared by every sentence: the feature functions, the
    weights, the search algorithm and the decoding options.  Nothing here changes after
    construction, so a `System` can be used from many threads at once.

    # Parameters

    registry : `FeatureFunctionRegistry`
        The loaded feature functions.
    weights : `numpy.ndarray`
        One weight per entry of the global score vector.
    search : `SearchAlgorithm`
        How sentences are searched.
    max_phrase_length : `int`, optional (default = `7`)
        The longest source phrase translation options are looked up for.
    pass_through_unknown : `bool`, optional (default = `True`)
        Copy source words that no provider can translate to the output.  Without this, a
        sentence with such a word has no complete derivation.
    nbest_size : `int`, optional (default = `1`)
        How many derivations to produce per sentence.
    """

    def __init__(
        self,
        registry: FeatureFunctionRegistry,
        weights: numpy.ndarray,
        search: SearchAlgorithm,
        max_phrase_length: int = 7,
        pass_through_unknown: bool = True,
        nbest_size: int = 1,
    ) -> None:
        if len(weights) != registry.num_scores:
            raise ConfigurationError(
                f"got {len(weights)} weights for {registry.num_scores} scores"
            )
        if max_phrase_length < 1:
            raise ConfigurationError(f"max_phrase_length must be positive, got {max_phrase_length}")
        if nbest_size < 1:
            raise ConfigurationError(f"nbest_size must be positive, got {nbest_size}")
        if not registry.providers:
            raise ConfigurationError("no feature function provides translations")
        self.registry = registry
        self.weights = weights
        self.search = search
        self.max_phrase_length = max_phrase_length
        self.pass_through_unknown = pass_through_unknown
        self.nbest_size = nbest_size

    @classmethod
    def from_params(
        cls,
        params: Params,
        constructors: Optional[Mapping[str, Callable[..., FeatureFunction]]] = None,
    ) -> "System":
        """
        Builds a system from a configuration: the `features` lines are loaded into a new
        registry, `weights` maps feature function names to their weights, and `search`
        configures the `SearchAlgorithm`.
        """
        features: List[str] = params.pop("features")
        if not isinstance(features, list):
            raise ConfigurationError("features must be a list of feature function lines")
        registry = FeatureFunctionRegistry(constructors)
        registry.load(features)

        weights_params = params.pop("weights", {})
        weights_by_name: Dict[str, List[float]] = (
            weights_params.as_dict(quiet=True) if isinstance(weights_params, Params) else weights_params
        )
        weights = registry.weight_vector(weights_by_name)

        search = SearchAlgorithm.from_params(params.pop("search", {}))
        max_phrase_length = params.pop_int("max_phrase_length", 7)
        pass_through_unknown = params.pop_bool("pass_through_unknown", True)
        nbest_size = params.pop_int("nbest_size", 1)
        params.assert_empty(cls.__name__)

        logger.info(
            "system with %d feature functions, %d scores, %s search",
            len(registry),
            registry.num_scores,
            type(search).__name__,
        )
        return cls(
            registry=registry,
            weights=weights,
            search=search,
            max_phrase_length=max_phrase_length,
            pass_through_unknown=pass_through_unknown,
            nbest_size=nbest_size,
        )
