import logging
from typing import List, Optional

import numpy

from smtdecoder.data import Sentence, Span, TargetPhrase, TargetPhraseSet, TranslationOption
from smtdecoder.data import TranslationOptionCollection
from smtdecoder.search import Derivation, HypothesisArena
from smtdecoder.search.search_algorithm import SearchResult
from smtdecoder.system import System

logger = logging.getLogger(__name__)


class Manager:
    """
    Decodes one sentence.  A manager builds the translation options of the sentence, runs the
    system's search over them and hands out the resulting derivations.  Everything it
    creates belongs to it alone and is dropped by `release` (or when used as a context
    manager, on exit).

    # Parameters

    system : `System`
        The shared, read-only decoding system.
    sentence : `Sentence`
        The sentence to translate.
    """

    def __init__(self, system: System, sentence: Sentence) -> None:
        self.system = system
        self.sentence = sentence
        self.arena = HypothesisArena()
        self._options: Optional[TranslationOptionCollection] = None
        self._result: Optional[SearchResult] = None
        self._released = False

    def build_translation_options(self) -> TranslationOptionCollection:
        """
        Collects the candidates of every provider for every span up to the maximum phrase
        length, keeping each provider's best `table_limit` per span, scores them in the
        context of the sentence, and computes the future-score table.  Feature functions that
        score a span's candidates together see all of them at once, whichever provider they
        came from.
        """
        system = self.system
        registry = system.registry
        options = TranslationOptionCollection(self.sentence)
        for span in self.sentence.spans(system.max_phrase_length):
            source = self.sentence.words(span)
            candidates: List[TargetPhrase] = []
            for provider in registry.providers:
                phrases = provider.get_target_phrases(source)  # type: ignore
                if not phrases:
                    continue
                phrase_set = TargetPhraseSet(len(phrases), system.weights)
                for phrase in phrases:
                    phrase_set.add(phrase)
                phrase_set.sort_and_prune(provider.table_limit)  # type: ignore
                candidates.extend(phrase_set)
            if not candidates and span.length == 1 and system.pass_through_unknown:
                logger.debug("passing through unknown word %r", source[0])
                unknown = TargetPhrase(source, source, registry.num_scores, is_oov=True)
                registry.evaluate_in_isolation(unknown)
                candidates.append(unknown)
            if candidates:
                self._add_options(options, span, candidates)
        options.compute_future_scores()
        uncovered = options.unreachable_spans()
        if uncovered:
            logger.warning(
                "sentence %s: no translation option covers positions %s",
                self.sentence.sentence_id,
                ", ".join(str(span.start) for span in uncovered),
            )
        logger.debug(
            "sentence %s: %d translation options over %d spans",
            self.sentence.sentence_id,
            len(options),
            len(options.spans()),
        )
        return options

    def _add_options(
        self, options: TranslationOptionCollection, span: Span, phrases: List[TargetPhrase]
    ) -> None:
        registry = self.system.registry
        scores = [
            registry.evaluate_with_source_context(self.sentence, span, phrase) for phrase in phrases
        ]
        registry.evaluate_translation_options(self.sentence, span, phrases, scores)
        for phrase, score_vector in zip(phrases, scores):
            options.add(TranslationOption(span, phrase, score_vector, self.system.weights))

    @property
    def translation_options(self) -> TranslationOptionCollection:
        if self._options is None:
            self._check_released()
            self._options = self.build_translation_options()
        return self._options

    def decode(self) -> None:
        """
        Runs the search, unless it already ran.  Raises `SearchFailure` if the sentence has no
        complete derivation.
        """
        self._check_released()
        if self._result is not None or len(self.sentence) == 0:
            return
        options = self.translation_options
        self._result = self.system.search.search(
            self.sentence, options, self.system.registry, self.system.weights, self.arena
        )

    def best_derivation(self) -> Derivation:
        self.decode()
        if self._result is None:
            return self._empty_derivation()
        return self._result.best_derivation()

    def nbest(self, n: Optional[int] = None) -> List[Derivation]:
        """
        The `n` best derivations found, best first.  Defaults to the system's `nbest_size`.
        """
        if n is None:
            n = self.system.nbest_size
        self.decode()
        if self._result is None:
            return [self._empty_derivation()]
        return self._result.nbest(n)

    def _empty_derivation(self) -> Derivation:
        return Derivation([], [], 0.0, numpy.zeros(self.system.registry.num_scores))

    def _check_released(self) -> None:
        if self._released:
            raise RuntimeError("manager was already released")

    def release(self) -> None:
        self.arena.release()
        self._options = None
        self._result = None
        self._released = True

    def __enter__(self) -> "Manager":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()
