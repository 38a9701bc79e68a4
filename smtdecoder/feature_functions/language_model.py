import logging
import math
import re
from typing import TYPE_CHECKING, Any, Dict, NamedTuple, Optional, Sequence, Tuple

import numpy
from overrides import overrides

from smtdecoder.common.checks import ConfigurationError
from smtdecoder.common.tqdm import Tqdm
from smtdecoder.common.util import END_SYMBOL, START_SYMBOL
from smtdecoder.data.coverage import Coverage
from smtdecoder.data.sentence import Sentence
from smtdecoder.data.target_phrase import NonTerminal, TargetPhrase
from smtdecoder.data.translation_option import TranslationOption
from smtdecoder.feature_functions.feature_function import FeatureFunction, StatefulFeatureFunction

if TYPE_CHECKING:
    from smtdecoder.feature_functions.registry import FeatureFunctionRegistry

logger = logging.getLogger(__name__)

UNKNOWN_SYMBOL = "<unk>"

# ARPA files store log10 probabilities; everything else in the decoder is a natural log.
_LOG_10 = math.log(10.0)

# Score of a word the model has never seen, when it has no <unk> entry either.
UNKNOWN_WORD_SCORE = -100.0

_NGRAM_HEADER_RE = re.compile(r"^ngram (\d+)=(\d+)$")
_SECTION_RE = re.compile(r"^\\(\d+)-grams:$")


class LanguageModelState(NamedTuple):
    """
    What the language model needs to remember about a partial translation.

    `suffix` holds the last `order - 1` words, the context of whatever comes next.  `prefix`
    holds the first words of a chart hypothesis whose left context was not known when they
    were produced, and whose scores are therefore still missing; phrase-based hypotheses
    always know their left context and keep it empty.
    """

    prefix: Tuple[str, ...]
    suffix: Tuple[str, ...]


@FeatureFunction.register("NgramLanguageModel")
class NgramLanguageModel(StatefulFeatureFunction):
    """
    A back-off n-gram language model read from an ARPA file.

    # Parameters

    path : `str`
        The ARPA file.
    order : `int`, optional
        Use at most this many words of context plus one.  Defaults to the highest order in
        the file.
    """

    def __init__(
        self,
        path: str,
        order: Optional[int] = None,
        name: Optional[str] = None,
        tuneable: bool = True,
    ) -> None:
        super().__init__(num_scores=1, name=name, tuneable=tuneable)
        if order is not None and order < 1:
            raise ConfigurationError(f"language model order must be positive, got {order}")
        self.path = path
        self.order = order or 0
        self._probabilities: Dict[Tuple[str, ...], float] = {}
        self._backoffs: Dict[Tuple[str, ...], float] = {}
        self._unknown_score = UNKNOWN_WORD_SCORE

    @overrides
    def load(self, registry: "FeatureFunctionRegistry") -> None:
        file_order = self._read_arpa()
        if not self.order or self.order > file_order:
            self.order = file_order
        if (UNKNOWN_SYMBOL,) in self._probabilities:
            self._unknown_score = self._probabilities[(UNKNOWN_SYMBOL,)]
        logger.info("%s: %d n-grams, order %d", self.name, len(self._probabilities), self.order)

    def _read_arpa(self) -> int:
        expected: Dict[int, int] = {}
        current_order = 0
        try:
            arpa_file = open(self.path, "r", encoding="utf-8")
        except OSError as error:
            raise ConfigurationError(f"{self.name}: cannot read {self.path}: {error}") from error
        with arpa_file:
            for line_number, line in enumerate(Tqdm.tqdm(arpa_file, desc=f"reading {self.name}"), 1):
                line = line.strip()
                if not line or line == "\\data\\":
                    continue
                if line == "\\end\\":
                    break
                header = _NGRAM_HEADER_RE.match(line)
                if header and current_order == 0:
                    expected[int(header.group(1))] = int(header.group(2))
                    continue
                section = _SECTION_RE.match(line)
                if section:
                    current_order = int(section.group(1))
                    continue
                if current_order == 0:
                    raise ConfigurationError(f"{self.path}:{line_number}: unexpected line {line!r}")
                fields = line.split()
                try:
                    probability = float(fields[0])
                    words = tuple(fields[1 : 1 + current_order])
                    if len(words) != current_order:
                        raise ValueError(line)
                    if len(fields) > current_order + 1:
                        self._backoffs[words] = float(fields[current_order + 1]) * _LOG_10
                except (ValueError, IndexError):
                    raise ConfigurationError(f"{self.path}:{line_number}: malformed n-gram {line!r}")
                self._probabilities[words] = probability * _LOG_10
        if not expected:
            raise ConfigurationError(f"{self.path}: no \\data\\ section")
        return max(expected)

    @property
    def context_size(self) -> int:
        return self.order - 1

    def _context(self, words: Sequence[str]) -> Tuple[str, ...]:
        return tuple(words[max(0, len(words) - self.context_size) :])

    def score_word(self, context: Sequence[str], word: str) -> float:
        """
        The natural-log probability of `word` following `context`, backing off to shorter
        contexts as needed.
        """
        history = self._context(context)
        total = 0.0
        while True:
            probability = self._probabilities.get(history + (word,))
            if probability is not None:
                return total + probability
            if not history:
                return total + self._unknown_score
            total += self._backoffs.get(history, 0.0)
            history = history[1:]

    def score_sequence(self, words: Sequence[str], context: Sequence[str] = ()) -> float:
        total = 0.0
        history = tuple(context)
        for word in words:
            total += self.score_word(history, word)
            history = self._context(history + (word,))
        return total

    def _score_vector(self, value: float) -> numpy.ndarray:
        return numpy.array([value])

    @overrides
    def evaluate_in_isolation(self, target_phrase: TargetPhrase) -> None:
        # Score each run of words between gaps on its own, as if nothing came before it.
        estimate = 0.0
        run: Tuple[str, ...] = ()
        for symbol in target_phrase.words + (NonTerminal("", 0),):
            if isinstance(symbol, NonTerminal):
                estimate += self.score_sequence(run)
                run = ()
            else:
                run += (symbol,)
        target_phrase.estimates[self.score_range] = estimate

    @overrides
    def empty_state(self, sentence: Sentence) -> LanguageModelState:
        return LanguageModelState((), (START_SYMBOL,))

    @overrides
    def evaluate_when_applied(
        self, prev_state: Any, option: TranslationOption, coverage: Coverage
    ) -> Tuple[numpy.ndarray, LanguageModelState]:
        words = option.target_phrase.terminals
        score = self.score_sequence(words, prev_state.suffix)
        suffix = self._context(prev_state.suffix + words)
        return self._score_vector(score), LanguageModelState(prev_state.prefix, suffix)

    @overrides
    def evaluate_chart_application(
        self, rule: TargetPhrase, child_states: Dict[int, Any]
    ) -> Tuple[numpy.ndarray, LanguageModelState]:
        score = 0.0
        prefix: Tuple[str, ...] = ()
        history: Tuple[str, ...] = ()
        # Words seen so far; the first `context_size` of them have no full context yet.
        seen = 0
        for symbol in rule.words:
            if isinstance(symbol, NonTerminal):
                child = child_states[symbol.index]
                words = child.prefix
            else:
                child = None
                words = (symbol,)
            for word in words:
                if seen < self.context_size:
                    prefix += (word,)
                else:
                    score += self.score_word(history, word)
                history = self._context(history + (word,))
                seen += 1
            if child is not None and len(child.prefix) >= self.context_size:
                # The child's remaining words were scored inside it.
                history = child.suffix
        return self._score_vector(score), LanguageModelState(prefix, history)

    @overrides
    def evaluate_final(self, state: Any) -> numpy.ndarray:
        score = self.score_sequence(state.prefix, (START_SYMBOL,))
        if len(state.suffix) >= self.context_size:
            history = state.suffix
        else:
            history = self._context((START_SYMBOL,) + state.prefix)
        score += self.score_word(history, END_SYMBOL)
        return self._score_vector(score)

    @overrides
    def estimate_state(self, state: Any) -> numpy.ndarray:
        return self._score_vector(self.score_sequence(state.prefix))
