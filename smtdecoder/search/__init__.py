from smtdecoder.search.derivation import Derivation
from smtdecoder.search.hypothesis import ChartHypothesis, Hypothesis, HypothesisArena, PhraseHypothesis
from smtdecoder.search.hypothesis_collection import HypothesisCollection
from smtdecoder.search.expansion import Expander
from smtdecoder.search.search_algorithm import SearchAlgorithm, SearchBudget, SearchResult
from smtdecoder.search.stack import Stack, StackSearch
from smtdecoder.search.chart import Cell, ChartSearch
