"""
Exceptions raised by the decoder, and functions for checking that
it is configured correctly.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """
    The exception raised by any smtdecoder object when it's misconfigured
    (e.g. missing properties, invalid properties, unknown properties).
    """

    def __init__(self, message: str):
        super().__init__()
        self.message = message

    def __str__(self):
        return self.message


class NotFoundError(Exception):
    """
    Raised when a feature function is looked up by a name that was never loaded.
    """

    def __init__(self, name: str):
        super().__init__()
        self.name = name

    def __str__(self):
        return f"{self.name} not found"


class SearchFailure(Exception):
    """
    No complete derivation could be found for a sentence.  This is recoverable at the
    granularity of a batch: the caller decides whether to skip the sentence, pass the
    source through, or fail the whole job.
    """

    def __init__(self, message: str, sentence_id: Optional[int] = None):
        super().__init__()
        self.message = message
        self.sentence_id = sentence_id

    def __str__(self):
        if self.sentence_id is None:
            return self.message
        return f"sentence {self.sentence_id}: {self.message}"


class SearchBudgetExceeded(SearchFailure):
    """
    The search for one sentence created more hypotheses, or ran for longer, than its
    configured budget allows.
    """

    pass


class PoolTimeout(Exception):
    """
    A handle could not be acquired from a `HandlePool` within the requested timeout.
    """

    pass


def log_numpy_version_info():
    import numpy

    logger.info("Numpy version: %s", numpy.__version__)
