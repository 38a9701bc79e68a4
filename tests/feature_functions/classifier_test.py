import math
import threading

import numpy
import pytest
import torch

from smtdecoder.common.checks import ConfigurationError, PoolTimeout
from smtdecoder.common.testing import SmtDecoderTestCase
from smtdecoder.data import Sentence, Span, TargetPhrase
from smtdecoder.feature_functions import FeatureFunctionRegistry
from smtdecoder.feature_functions.classifier import (
    ClassifierSession,
    logistic_normalizer,
    squared_normalizer,
)

NUM_BUCKETS = 4096


class TestNormalizers:
    def test_logistic(self):
        probabilities = logistic_normalizer(numpy.array([0.0, 0.0]))
        numpy.testing.assert_allclose(probabilities, [0.5, 0.5])

        probabilities = logistic_normalizer(numpy.array([-3.0, 0.0, 2.0]))
        assert probabilities.sum() == pytest.approx(1.0)
        assert probabilities[0] > probabilities[1] > probabilities[2]

    def test_squared(self):
        probabilities = squared_normalizer(numpy.array([0.2, 1.5, -0.3]))
        numpy.testing.assert_allclose(probabilities, [0.8 / 1.8, 0.0, 1.0 / 1.8])

    def test_squared_falls_back_to_uniform(self):
        probabilities = squared_normalizer(numpy.array([1.0, 3.0, 1.2, 7.0]))
        numpy.testing.assert_allclose(probabilities, [0.25] * 4)


class TestDiscriminativeClassifier(SmtDecoderTestCase):
    def setup_method(self):
        super().setup_method()
        self.sentence = Sentence.from_text("das haus ist klein")
        self.span = Span(1, 1)
        self.candidates = [TargetPhrase(["house"], ["haus"], 1), TargetPhrase(["home"], ["haus"], 1)]

    def _save(self, weights: torch.Tensor, name: str = "classifier.th") -> str:
        scorer = torch.nn.EmbeddingBag(weights.size(0), 1, mode="sum")
        with torch.no_grad():
            scorer.weight.copy_(weights)
        path = self.TEST_DIR / name
        torch.save(scorer.state_dict(), path)
        return str(path)

    def _load(self, path: str, *options: str):
        registry = FeatureFunctionRegistry()
        registry.load([" ".join([f"DiscriminativeClassifier path={path} num_buckets={NUM_BUCKETS}", *options])])
        return registry.find_by_name("DiscriminativeClassifier0")

    def _score(self, classifier):
        scores = [numpy.zeros(1) for _ in self.candidates]
        classifier.evaluate_translation_options(self.sentence, self.span, self.candidates, scores)
        return [vector[0] for vector in scores]

    def test_untrained_classifier_is_uniform(self):
        classifier = self._load(self._save(torch.zeros(NUM_BUCKETS, 1)))
        assert self._score(classifier) == pytest.approx([math.log(0.5), math.log(0.5)])

    def test_scores_are_normalized_over_the_candidates(self):
        weights = torch.zeros(NUM_BUCKETS, 1)
        session = ClassifierSession({"weight": weights}, NUM_BUCKETS)
        weights[session.hash_feature("t^house")] = -4.0
        weights[session.hash_feature("p^haus^home")] += 1.0
        classifier = self._load(self._save(weights))

        session = ClassifierSession({"weight": weights}, NUM_BUCKETS)
        session.set_source(self.sentence, self.span)
        losses = numpy.array(
            [weights[session.target_features(phrase)].sum().item() for phrase in self.candidates]
        )
        expected = numpy.log(logistic_normalizer(losses))

        scores = self._score(classifier)
        assert scores == pytest.approx(expected.tolist())
        assert math.exp(scores[0]) + math.exp(scores[1]) == pytest.approx(1.0)

    def test_source_context_features(self):
        session = ClassifierSession({"weight": torch.zeros(NUM_BUCKETS, 1)}, NUM_BUCKETS)
        session.set_source(self.sentence, Span(0, 0))
        features = session.target_features(self.candidates[0])
        expected_source = [session.hash_feature(f) for f in ["s^das", "l^<s>", "r^haus"]]
        assert features[:3] == expected_source
        assert features[3:] == [session.hash_feature("t^house"), session.hash_feature("p^das^house")]

        session.set_source(self.sentence, Span(2, 3))
        assert session.target_features(self.candidates[0])[3] == session.hash_feature("r^</s>")

    def test_squared_loss(self):
        classifier = self._load(self._save(torch.zeros(NUM_BUCKETS, 1)), "loss=squared")
        # Every loss is 0, so both candidates are equally good.
        assert self._score(classifier) == pytest.approx([math.log(0.5), math.log(0.5)])

    def test_sessions_are_returned_to_the_pool(self):
        classifier = self._load(self._save(torch.zeros(NUM_BUCKETS, 1)), "pool_size=2")
        assert classifier.pool.size == 2
        self._score(classifier)
        self._score(classifier)
        assert classifier.pool.num_free() == 2

    def test_busy_pool_times_out(self):
        classifier = self._load(
            self._save(torch.zeros(NUM_BUCKETS, 1)), "pool_size=1", "acquire_timeout=0.05"
        )
        session = classifier.pool.acquire()
        try:
            with pytest.raises(PoolTimeout):
                self._score(classifier)
        finally:
            classifier.pool.release(session)
        assert classifier.pool.num_free() == 1

    def test_concurrent_scoring(self):
        classifier = self._load(self._save(torch.zeros(NUM_BUCKETS, 1)), "pool_size=2")
        results = []

        def score():
            for _ in range(20):
                results.append(self._score(classifier))

        threads = [threading.Thread(target=score) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(results) == 80
        assert all(result == pytest.approx([math.log(0.5)] * 2) for result in results)
        assert classifier.pool.num_free() == 2

    def test_model_of_the_wrong_size(self):
        path = self._save(torch.zeros(8, 1))
        with pytest.raises(ConfigurationError, match="does not fit"):
            self._load(path)

    def test_bad_configuration(self):
        with pytest.raises(ConfigurationError, match="unknown loss"):
            FeatureFunctionRegistry().load(["DiscriminativeClassifier path=x.th loss=hinge"])
        with pytest.raises(ConfigurationError, match="num_buckets"):
            FeatureFunctionRegistry().load(["DiscriminativeClassifier path=x.th num_buckets=0"])
