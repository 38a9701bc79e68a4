"""
Feature functions score translation hypotheses.  Importing this package registers every
implementation with `FeatureFunction`, so that they can be named in configuration files.
"""
from smtdecoder.feature_functions.feature_function import (
    FeatureFunction,
    StatefulFeatureFunction,
    StatelessFeatureFunction,
)
from smtdecoder.feature_functions.classifier import DiscriminativeClassifier
from smtdecoder.feature_functions.distortion import Distortion
from smtdecoder.feature_functions.language_model import LanguageModelState, NgramLanguageModel
from smtdecoder.feature_functions.penalties import PhrasePenalty, UnknownWordPenalty, WordPenalty
from smtdecoder.feature_functions.phrase_dictionary import PhraseDictionary, PhraseDictionaryMemory
from smtdecoder.feature_functions.registry import FeatureFunctionRegistry, parse_feature_line
from smtdecoder.feature_functions.rule_table import GlueGrammar, RuleTableMemory
