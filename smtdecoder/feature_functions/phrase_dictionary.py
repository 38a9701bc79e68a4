import logging
import math
from collections import defaultdict
from typing import TYPE_CHECKING, DefaultDict, Iterator, List, Optional, Sequence, Tuple

from overrides import overrides

from smtdecoder.common.checks import ConfigurationError
from smtdecoder.common.tqdm import Tqdm
from smtdecoder.data.target_phrase import Symbol, TargetPhrase, parse_symbols
from smtdecoder.feature_functions.feature_function import FeatureFunction, StatelessFeatureFunction

if TYPE_CHECKING:
    from smtdecoder.feature_functions.registry import FeatureFunctionRegistry

logger = logging.getLogger(__name__)

# The log of a probability of zero; tables with zeros in them are not unusual.
LOWEST_SCORE = -100.0

# (lhs, source, target, scores); lhs is None for plain phrase pairs.
TableEntry = Tuple[Optional[str], Sequence[Symbol], Sequence[Symbol], List[float]]


def transform_score(value: float) -> float:
    if value <= 0.0:
        return LOWEST_SCORE
    return max(math.log(value), LOWEST_SCORE)


class PhraseDictionary(StatelessFeatureFunction):
    """
    Base class of the feature functions that provide translations.  A provider owns the
    scores that come with its entries, and hands out the entries, already scored in isolation
    by every loaded feature function, through `get_target_phrases` (for contiguous source
    phrases) and `get_hierarchical_rules` (for rules with gaps).

    # Parameters

    num_features : `int`
        The number of scores each entry carries.
    table_limit : `int`, optional (default = `20`)
        How many candidates to keep per source span, best first.  0 keeps them all.
    max_span : `int`, optional (default = `0`)
        The longest span the rules of this provider may cover in a chart search.  0 means no
        limit.
    """

    provides_translations = True

    def __init__(
        self,
        num_features: int,
        table_limit: int = 20,
        max_span: int = 0,
        name: Optional[str] = None,
        tuneable: bool = True,
    ) -> None:
        super().__init__(num_scores=num_features, name=name, tuneable=tuneable)
        self.table_limit = table_limit
        self.max_span = max_span
        self._phrases: DefaultDict[Tuple[str, ...], List[TargetPhrase]] = defaultdict(list)
        self._rules: List[TargetPhrase] = []

    def read_entries(self) -> Iterator[TableEntry]:
        """
        Yields `(lhs, source, target, scores)` for every entry of the table.
        """
        raise NotImplementedError

    @overrides
    def load(self, registry: "FeatureFunctionRegistry") -> None:
        num_entries = 0
        for lhs, source, target, scores in self.read_entries():
            if len(scores) != self.num_scores:
                raise ConfigurationError(
                    f"{self.name}: entry {' '.join(map(str, source))!r} has {len(scores)} "
                    f"scores, expected {self.num_scores}"
                )
            self.add_entry(registry, lhs, source, target, scores)
            num_entries += 1
        logger.info(
            "%s: loaded %d entries (%d rules with gaps)", self.name, num_entries, len(self._rules)
        )

    def add_entry(
        self,
        registry: "FeatureFunctionRegistry",
        lhs: Optional[str],
        source: Sequence[Symbol],
        target: Sequence[Symbol],
        scores: Sequence[float],
    ) -> TargetPhrase:
        phrase = TargetPhrase(target, source, registry.num_scores, lhs=lhs)
        phrase.scores[self.score_range] = scores
        registry.evaluate_in_isolation(phrase)
        if phrase.is_hierarchical:
            self._rules.append(phrase)
        else:
            self._phrases[phrase.source].append(phrase)  # type: ignore
        return phrase

    def get_target_phrases(self, source: Sequence[str]) -> List[TargetPhrase]:
        return list(self._phrases.get(tuple(source), []))

    def get_hierarchical_rules(self) -> List[TargetPhrase]:
        return list(self._rules)


def read_table(path: str, name: str) -> Iterator[Tuple[int, List[str]]]:
    try:
        table_file = open(path, "r", encoding="utf-8")
    except OSError as error:
        raise ConfigurationError(f"{name}: cannot read {path}: {error}") from error
    with table_file:
        for line_number, line in enumerate(Tqdm.tqdm(table_file, desc=f"reading {name}"), start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            yield line_number, [field.strip() for field in line.split("|||")]


def parse_scores(field: str, log_scores: bool) -> List[float]:
    values = [float(value) for value in field.split()]
    if log_scores:
        values = [transform_score(value) for value in values]
    return values


@FeatureFunction.register("PhraseDictionaryMemory")
class PhraseDictionaryMemory(PhraseDictionary):
    """
    A phrase table read completely into memory, one entry per line:

        source words ||| target words ||| score1 score2 ...

    Any further `|||` fields (alignments, counts) are ignored.

    # Parameters

    path : `str`
        The table file.
    log_scores : `bool`, optional (default = `True`)
        Whether the file holds probabilities, which are turned into natural logs on load.
    """

    def __init__(
        self,
        path: str,
        num_features: int,
        log_scores: bool = True,
        table_limit: int = 20,
        max_span: int = 0,
        name: Optional[str] = None,
        tuneable: bool = True,
    ) -> None:
        super().__init__(
            num_features=num_features,
            table_limit=table_limit,
            max_span=max_span,
            name=name,
            tuneable=tuneable,
        )
        self.path = path
        self.log_scores = log_scores

    @overrides
    def read_entries(self) -> Iterator[TableEntry]:
        for line_number, fields in read_table(self.path, self.name):
            if len(fields) < 3 or not fields[0] or not fields[1]:
                raise ConfigurationError(f"{self.path}:{line_number}: malformed phrase table entry")
            try:
                scores = parse_scores(fields[2], self.log_scores)
            except ValueError:
                raise ConfigurationError(f"{self.path}:{line_number}: bad scores {fields[2]!r}")
            yield None, tuple(fields[0].split()), tuple(fields[1].split()), scores
