"""
Decoding of whole inputs: many sentences, possibly on several threads, with a policy for
sentences that cannot be translated.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional

from smtdecoder.common.checks import ConfigurationError, SearchFailure
from smtdecoder.common.tqdm import Tqdm
from smtdecoder.common.util import JsonDict, sanitize
from smtdecoder.data import Sentence
from smtdecoder.manager import Manager
from smtdecoder.search import Derivation
from smtdecoder.system import System

logger = logging.getLogger(__name__)

FAILURE_POLICIES = ("fail", "skip", "pass_through")


class TranslationResult:
    """
    The outcome of translating one sentence.  `derivations` is empty when the search failed
    and the failure policy let the batch continue; `text` is then empty or the source,
    depending on the policy.
    """

    def __init__(
        self,
        sentence: Sentence,
        derivations: List[Derivation],
        text: str,
        error: Optional[str] = None,
    ) -> None:
        self.sentence = sentence
        self.derivations = derivations
        self.text = text
        self.error = error

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_json(self, system: System) -> JsonDict:
        output = {
            "id": self.sentence.sentence_id,
            "source": str(self.sentence),
            "translation": self.text,
            "nbest": [derivation.to_json(system.registry) for derivation in self.derivations],
        }
        if self.error is not None:
            output["error"] = self.error
        return sanitize(output)

    def nbest_lines(self, system: System) -> List[str]:
        """
        The derivations in the usual n-best list format:
        `id ||| translation ||| name= scores ... ||| total score`.
        """
        lines = []
        for derivation in self.derivations:
            breakdown = " ".join(
                f"{name}= " + " ".join(f"{value:g}" for value in values)
                for name, values in derivation.feature_breakdown(system.registry).items()
            )
            lines.append(
                f"{self.sentence.sentence_id} ||| {derivation.text} ||| {breakdown} ||| "
                f"{derivation.score:g}"
            )
        return lines


class Translator:
    """
    Translates sentences with a shared `System`, one `Manager` per sentence.

    # Parameters

    system : `System`
        The decoding system.
    num_threads : `int`, optional (default = `1`)
        How many sentences to decode at once.
    failure_policy : `str`, optional (default = `"fail"`)
        What to do with a sentence that has no complete derivation: `"fail"` re-raises the
        `SearchFailure`, `"skip"` outputs an empty line, and `"pass_through"` copies the source.
    """

    def __init__(self, system: System, num_threads: int = 1, failure_policy: str = "fail") -> None:
        if num_threads < 1:
            raise ConfigurationError(f"num_threads must be positive, got {num_threads}")
        if failure_policy not in FAILURE_POLICIES:
            raise ConfigurationError(
                f"unknown failure policy {failure_policy!r}, expected one of {FAILURE_POLICIES}"
            )
        self.system = system
        self.num_threads = num_threads
        self.failure_policy = failure_policy

    def translate(self, sentence: Sentence) -> TranslationResult:
        with Manager(self.system, sentence) as manager:
            try:
                derivations = manager.nbest(self.system.nbest_size)
            except SearchFailure as failure:
                if self.failure_policy == "fail":
                    raise
                logger.warning("%s (%s)", failure, self.failure_policy)
                text = str(sentence) if self.failure_policy == "pass_through" else ""
                return TranslationResult(sentence, [], text, error=str(failure))
        return TranslationResult(sentence, derivations, derivations[0].text)

    def translate_all(self, sentences: Iterable[Sentence]) -> Iterator[TranslationResult]:
        """
        Translates `sentences`, yielding results in input order.
        """
        sentences = list(sentences)
        progress = Tqdm.tqdm(total=len(sentences), desc="translating")
        try:
            if self.num_threads == 1:
                for sentence in sentences:
                    yield self.translate(sentence)
                    progress.update(1)
            else:
                with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
                    for result in executor.map(self.translate, sentences):
                        yield result
                        progress.update(1)
        finally:
            progress.close()

    def translate_lines(self, lines: Iterable[str]) -> Iterator[TranslationResult]:
        return self.translate_all(
            Sentence.from_text(line, sentence_id) for sentence_id, line in enumerate(lines)
        )
