import logging
import re
from typing import Iterator, Optional

from overrides import overrides

from smtdecoder.common.checks import ConfigurationError
from smtdecoder.data.target_phrase import NonTerminal, parse_symbols
from smtdecoder.feature_functions.feature_function import FeatureFunction
from smtdecoder.feature_functions.phrase_dictionary import (
    PhraseDictionary,
    TableEntry,
    parse_scores,
    read_table,
)

logger = logging.getLogger(__name__)

_LHS_RE = re.compile(r"^\[([^\[\],]+)\]$")

GOAL_LABEL = "S"
DEFAULT_LABEL = "X"


@FeatureFunction.register("RuleTableMemory")
class RuleTableMemory(PhraseDictionary):
    """
    A synchronous grammar read completely into memory, one rule per line:

        [LHS] ||| source symbols ||| target symbols ||| score1 score2 ...

    Gaps are written `[LABEL,INDEX]`; a gap on the target side refers to the source gap with
    the same index, e.g. `[X] ||| ne [X,1] pas ||| not [X,1] ||| 0.5`.  Rules without gaps
    are ordinary phrase pairs, looked up with `get_target_phrases`.
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
            location = f"{self.path}:{line_number}"
            if len(fields) < 4:
                raise ConfigurationError(f"{location}: malformed rule")
            match = _LHS_RE.match(fields[0])
            if not match:
                raise ConfigurationError(f"{location}: bad left-hand side {fields[0]!r}")
            source = parse_symbols(fields[1])
            target = parse_symbols(fields[2])
            if not source:
                raise ConfigurationError(f"{location}: empty source side")
            check_gaps(source, target, location)
            try:
                scores = parse_scores(fields[3], self.log_scores)
            except ValueError:
                raise ConfigurationError(f"{location}: bad scores {fields[3]!r}")
            yield match.group(1), source, target, scores


def check_gaps(source, target, location: str) -> None:
    source_gaps = [symbol for symbol in source if isinstance(symbol, NonTerminal)]
    target_gaps = [symbol for symbol in target if isinstance(symbol, NonTerminal)]
    if len({gap.index for gap in source_gaps}) != len(source_gaps):
        raise ConfigurationError(f"{location}: gap index used twice on the source side")
    if sorted(source_gaps, key=lambda gap: gap.index) != sorted(target_gaps, key=lambda gap: gap.index):
        raise ConfigurationError(f"{location}: source and target gaps do not match")


@FeatureFunction.register("GlueGrammar")
class GlueGrammar(PhraseDictionary):
    """
    The two rules that let a chart search join partial translations left to right when the
    grammar cannot build a single tree over the sentence:

        [S] -> [X,1]
        [S] -> [S,1] [X,2]

    Its one score counts glue rule applications.
    """

    def __init__(
        self,
        goal_label: str = GOAL_LABEL,
        label: str = DEFAULT_LABEL,
        name: Optional[str] = None,
        tuneable: bool = True,
    ) -> None:
        super().__init__(num_features=1, table_limit=0, max_span=0, name=name, tuneable=tuneable)
        self.goal_label = goal_label
        self.label = label

    @overrides
    def read_entries(self) -> Iterator[TableEntry]:
        start = NonTerminal(self.goal_label, 1)
        unary = NonTerminal(self.label, 1)
        last = NonTerminal(self.label, 2)
        yield self.goal_label, (unary,), (unary,), [1.0]
        yield self.goal_label, (start, last), (start, last), [1.0]
