import logging
import time
from typing import List, Optional

import numpy

from smtdecoder.common import Registrable
from smtdecoder.common.checks import ConfigurationError, SearchBudgetExceeded
from smtdecoder.data.sentence import Sentence
from smtdecoder.data.translation_option import TranslationOptionCollection
from smtdecoder.feature_functions.registry import FeatureFunctionRegistry
from smtdecoder.search.derivation import Derivation
from smtdecoder.search.hypothesis import HypothesisArena

logger = logging.getLogger(__name__)


class SearchBudget:
    """
    Counts the hypotheses a search creates and the time it takes, and raises
    `SearchBudgetExceeded` once either passes its limit.
    """

    def __init__(
        self,
        max_expansions: Optional[int] = None,
        timeout: Optional[float] = None,
        sentence_id: Optional[int] = None,
    ) -> None:
        self.max_expansions = max_expansions
        self.timeout = timeout
        self.sentence_id = sentence_id
        self.expansions = 0
        self._start = time.monotonic()

    def charge(self, expansions: int = 1) -> None:
        self.expansions += expansions
        if self.max_expansions is not None and self.expansions > self.max_expansions:
            raise SearchBudgetExceeded(
                f"more than {self.max_expansions} hypotheses created", self.sentence_id
            )
        if self.timeout is not None and time.monotonic() - self._start > self.timeout:
            raise SearchBudgetExceeded(
                f"search took longer than {self.timeout} seconds", self.sentence_id
            )


class SearchResult:
    """
    The outcome of a successful search, from which derivations are read.
    """

    def best_derivation(self) -> Derivation:
        raise NotImplementedError

    def nbest(self, n: int) -> List[Derivation]:
        raise NotImplementedError


class SearchAlgorithm(Registrable):
    """
    Finds a high scoring derivation of one sentence given its translation options.
    Implementations must not keep any per-sentence state on `self`: one instance is shared
    by every sentence, possibly across threads.

    # Parameters

    max_expansions : `int`, optional
        Give up on a sentence after creating this many hypotheses.
    timeout : `float`, optional
        Give up on a sentence after this many seconds.
    """

    default_implementation = "stack"

    def __init__(self, max_expansions: Optional[int] = None, timeout: Optional[float] = None) -> None:
        if max_expansions is not None and max_expansions < 0:
            raise ConfigurationError(f"max_expansions must not be negative, got {max_expansions}")
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout}")
        self.max_expansions = max_expansions
        self.timeout = timeout

    def new_budget(self, sentence: Sentence) -> SearchBudget:
        return SearchBudget(self.max_expansions, self.timeout, sentence.sentence_id)

    def search(
        self,
        sentence: Sentence,
        options: TranslationOptionCollection,
        registry: FeatureFunctionRegistry,
        weights: numpy.ndarray,
        arena: HypothesisArena,
    ) -> SearchResult:
        """
        Runs the search, raising `SearchFailure` if no complete derivation is found.
        """
        raise NotImplementedError
