import logging
import zlib
from typing import TYPE_CHECKING, Dict, List, Optional

import numpy
import torch
from overrides import overrides

from smtdecoder.common.checks import ConfigurationError
from smtdecoder.common.pool import HandlePool
from smtdecoder.common.util import END_SYMBOL, START_SYMBOL
from smtdecoder.data.sentence import Sentence, Span
from smtdecoder.data.target_phrase import TargetPhrase
from smtdecoder.feature_functions.feature_function import FeatureFunction, StatelessFeatureFunction
from smtdecoder.feature_functions.phrase_dictionary import transform_score

if TYPE_CHECKING:
    from smtdecoder.feature_functions.registry import FeatureFunctionRegistry

logger = logging.getLogger(__name__)


def logistic_normalizer(losses: numpy.ndarray) -> numpy.ndarray:
    """
    Treats the classifier outputs as logistic losses (lower is better), maps them to
    probabilities and renormalizes them over the candidates.
    """
    probabilities = 1.0 / (1.0 + numpy.exp(losses))
    return probabilities / probabilities.sum()


def squared_normalizer(losses: numpy.ndarray) -> numpy.ndarray:
    """
    Treats the classifier outputs as squared losses: clips them to `[0, 1]`, takes `1 - loss`
    as an unnormalized probability, and renormalizes.  Falls back to a uniform distribution
    when every candidate has the worst possible loss.
    """
    probabilities = 1.0 - numpy.clip(losses, 0.0, 1.0)
    total = probabilities.sum()
    if total <= 0.0:
        return numpy.full(len(losses), 1.0 / len(losses))
    return probabilities / total


NORMALIZERS = {"logistic": logistic_normalizer, "squared": squared_normalizer}


class ClassifierSession:
    """
    One instance of the linear scorer, with the source-side features of the span it is
    currently scoring.  Sessions are not thread safe; the classifier hands them out through a
    `HandlePool`.
    """

    def __init__(self, state_dict: Dict[str, torch.Tensor], num_buckets: int) -> None:
        self.num_buckets = num_buckets
        self.scorer = torch.nn.EmbeddingBag(num_buckets, 1, mode="sum")
        self.scorer.load_state_dict(state_dict)
        self.scorer.eval()
        self._source_words: List[str] = []
        self._source_features: List[int] = []

    def hash_feature(self, feature: str) -> int:
        return zlib.crc32(feature.encode("utf-8")) % self.num_buckets

    def set_source(self, sentence: Sentence, span: Span) -> None:
        left = sentence[span.start - 1] if span.start > 0 else START_SYMBOL
        right = sentence[span.end + 1] if span.end + 1 < len(sentence) else END_SYMBOL
        self._source_words = list(sentence.words(span))
        features = [f"s^{word}" for word in self._source_words]
        features.append(f"l^{left}")
        features.append(f"r^{right}")
        self._source_features = [self.hash_feature(feature) for feature in features]

    def target_features(self, target_phrase: TargetPhrase) -> List[int]:
        words = [str(word) for word in target_phrase.words]
        features = [f"t^{word}" for word in words]
        features.extend(f"p^{source}^{target}" for source in self._source_words for target in words)
        return self._source_features + [self.hash_feature(feature) for feature in features]

    def predict(self, target_phrases: List[TargetPhrase]) -> numpy.ndarray:
        """
        Returns one raw classifier output per target phrase.
        """
        indices: List[int] = []
        offsets: List[int] = []
        for target_phrase in target_phrases:
            offsets.append(len(indices))
            indices.extend(self.target_features(target_phrase))
        with torch.no_grad():
            outputs = self.scorer(
                torch.tensor(indices, dtype=torch.long), torch.tensor(offsets, dtype=torch.long)
            )
        return outputs.squeeze(-1).numpy().astype(numpy.float64)

    def reset(self) -> None:
        self._source_words = []
        self._source_features = []


@FeatureFunction.register("DiscriminativeClassifier")
class DiscriminativeClassifier(StatelessFeatureFunction):
    """
    Scores all the candidate translations of a span together with a linear classifier over
    hashed source-context and target features.  The raw outputs are turned into a
    distribution over the candidates by the configured loss, and the score of a candidate is
    the log of its probability.

    # Parameters

    path : `str`
        A torch state dict for a `torch.nn.EmbeddingBag(num_buckets, 1)`.
    num_buckets : `int`, optional (default = `2 ** 18`)
        The size of the hashed feature space.
    loss : `str`, optional (default = `"logistic"`)
        Either `"logistic"` or `"squared"`.
    pool_size : `int`, optional (default = `1`)
        How many sessions to keep, which bounds how many sentences can be scored at once.
    acquire_timeout : `float`, optional
        How long to wait for a free session before raising `PoolTimeout`.  Waits forever by
        default.
    """

    def __init__(
        self,
        path: str,
        num_buckets: int = 2 ** 18,
        loss: str = "logistic",
        pool_size: int = 1,
        acquire_timeout: Optional[float] = None,
        name: Optional[str] = None,
        tuneable: bool = True,
    ) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)
        if loss not in NORMALIZERS:
            raise ConfigurationError(
                f"unknown loss {loss!r} for DiscriminativeClassifier, "
                f"expected one of {sorted(NORMALIZERS)}"
            )
        if num_buckets < 1:
            raise ConfigurationError(f"num_buckets must be positive, got {num_buckets}")
        self.path = path
        self.num_buckets = num_buckets
        self.loss = loss
        self.pool_size = pool_size
        self.acquire_timeout = acquire_timeout
        self._normalizer = NORMALIZERS[loss]
        self._pool: Optional[HandlePool[ClassifierSession]] = None

    @overrides
    def load(self, registry: "FeatureFunctionRegistry") -> None:
        try:
            state_dict = torch.load(self.path, map_location="cpu")
        except OSError as error:
            raise ConfigurationError(f"{self.name}: cannot read {self.path}: {error}") from error
        try:
            self._pool = HandlePool(
                lambda: ClassifierSession(state_dict, self.num_buckets), self.pool_size
            )
        except RuntimeError as error:
            raise ConfigurationError(f"{self.path} does not fit {self.name}: {error}") from error
        logger.info("%s: %d sessions over %d buckets", self.name, self.pool_size, self.num_buckets)

    @property
    def pool(self) -> HandlePool[ClassifierSession]:
        if self._pool is None:
            raise ValueError(f"{self.name} has not been loaded")
        return self._pool

    @overrides
    def evaluate_translation_options(
        self,
        sentence: Sentence,
        span: Span,
        target_phrases: List[TargetPhrase],
        scores: List[numpy.ndarray],
    ) -> None:
        if not target_phrases:
            return
        with self.pool.handle(self.acquire_timeout) as session:
            session.set_source(sentence, span)
            try:
                losses = session.predict(target_phrases)
            finally:
                session.reset()
        probabilities = self._normalizer(losses)
        index = self.score_range.start
        for score_vector, probability in zip(scores, probabilities):
            score_vector[index] += transform_score(float(probability))
