"""
Utilities and helpers for writing tests.
"""
from smtdecoder.common.testing.test_case import SmtDecoderTestCase
