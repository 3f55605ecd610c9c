"""
Exceptions raised while decoding P1 telegrams
"""


class P1Error(ValueError):
    """
    Base class for all errors raised when decoding a P1 telegram
    """

    # Telegrams completed before the error by P1Parser.feed
    telegrams: tuple = ()


class ConversionError(P1Error):
    """
    A value could not be converted to a decimal number or time stamp
    """


class UnrecognizedCodeError(P1Error):
    """
    An enumerated value (tariff, protocol version) had a code that
    is not known
    """
