"""
Decoders for the values found inside the brackets of a P1 object
"""

import datetime
import decimal
import enum
import logging
import re
from typing import Optional, Union

from .exceptions import ConversionError, UnrecognizedCodeError

LOGGER = logging.getLogger(__name__)

# A decimal number as it appears in a telegram. Meters zero pad
# these (000051.775), which the Decimal constructor handles fine.
_DECIMAL_RE = re.compile(r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)")

# YYMMddHHmmss
_TST_RE = re.compile(r"[0-9]{12}")


class PowerTariff(enum.Enum):
    """
    The tariff the meter is currently registering against
    """

    LOW = "0001"
    NORMAL = "0002"


class P1Version(enum.Enum):
    """
    Version of the P1 protocol, as reported by the meter
    """

    V20 = "20"
    V42 = "42"
    V50 = "50"


class ConverterKind(enum.Enum):
    """
    The kind of conversion to apply to a raw value
    """

    STRING = "string"
    DECIMAL = "decimal"
    TIMESTAMP = "timestamp"
    TARIFF = "tariff"
    VERSION = "version"


P1Value = Union[str, decimal.Decimal, datetime.datetime, PowerTariff, P1Version]


def decode_p1_string(string: str) -> str:
    """
    Strings (serial numbers and the like) are kept verbatim
    """
    return string


def decode_p1_decimal(string: str) -> decimal.Decimal:
    """
    Return a decoded version of a plain decimal number
    """

    if not _DECIMAL_RE.fullmatch(string.strip()):
        raise ConversionError(f"'{string}' is not a valid decimal")

    try:
        return decimal.Decimal(string.strip())
    except decimal.InvalidOperation as exc:
        raise ConversionError(f"'{string}' is not a valid decimal") from exc


def decode_p1_unitdecimal(string: str, unit: Optional[str]) -> decimal.Decimal:
    """
    Return a decoded version of a decimal with a unit attached.

    The unit is only removed when it is the one we expect, a value
    carrying any other unit fails to decode.
    """

    if unit:
        string = string.replace("*" + unit, "")

    return decode_p1_decimal(string)


def decode_p1_tst(string: str) -> datetime.datetime:
    """
    Return a decoded version of a P1 TST (time stamp).

    The format is YYMMddHHmmss, followed by a single character
    indicating summer (S) or winter (W) time. That marker is dropped,
    the result is the naive wall clock time of the meter.
    """

    digits = string[:-1]
    if not _TST_RE.fullmatch(digits):
        raise ConversionError(f"'{string}' is not a valid P1 TST")

    try:
        return datetime.datetime(
            2000 + int(digits[0:2]),
            int(digits[2:4]),
            int(digits[4:6]),
            int(digits[6:8]),
            int(digits[8:10]),
            int(digits[10:12]),
        )
    except ValueError as exc:
        raise ConversionError(f"'{string}' is not a valid P1 TST: {exc}") from exc


def decode_p1_tariff(string: str) -> PowerTariff:
    """
    Return the tariff indicated by a tariff code
    """

    try:
        return PowerTariff(string)
    except ValueError as exc:
        raise UnrecognizedCodeError(
            f"'{string}' is not a recognized tariff code"
        ) from exc


def decode_p1_version(string: str) -> P1Version:
    """
    Return the protocol version indicated by a version code
    """

    try:
        return P1Version(string)
    except ValueError as exc:
        raise UnrecognizedCodeError(
            f"'{string}' is not a recognized P1 version"
        ) from exc


def convert(kind: ConverterKind, string: str, unit: Optional[str] = None) -> P1Value:
    """
    Convert the raw value `string` according to `kind`.

    `unit` is only relevant for decimals
    """

    LOGGER.debug("Converting '%s' as %s (unit %s)", string, kind.value, unit)

    if kind is ConverterKind.STRING:
        return decode_p1_string(string)
    if kind is ConverterKind.DECIMAL:
        return decode_p1_unitdecimal(string, unit)
    if kind is ConverterKind.TIMESTAMP:
        return decode_p1_tst(string)
    if kind is ConverterKind.TARIFF:
        return decode_p1_tariff(string)
    if kind is ConverterKind.VERSION:
        return decode_p1_version(string)

    raise ValueError(f"Unknown converter kind {kind}")
