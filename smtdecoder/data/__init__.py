from smtdecoder.data.coverage import Coverage
from smtdecoder.data.sentence import Sentence, Span
from smtdecoder.data.target_phrase import NonTerminal, Symbol, TargetPhrase, TargetPhraseSet, parse_symbols
from smtdecoder.data.translation_option import TranslationOption, TranslationOptionCollection
