#!/usr/bin/python3
"""
Test the decoding of P1 values
"""

import datetime
import decimal

import pytest

from dsmr_p1.p1.converters import (
    ConverterKind,
    P1Version,
    PowerTariff,
    convert,
    decode_p1_decimal,
    decode_p1_tariff,
    decode_p1_tst,
    decode_p1_unitdecimal,
    decode_p1_version,
)
from dsmr_p1.p1.exceptions import ConversionError, P1Error, UnrecognizedCodeError

# Raw value, unit, expected decimal
DECIMAL_TESTDATA = (
    ("001.193*kWh", "kWh", decimal.Decimal("1.193")),
    ("00694.497*m3", "m3", decimal.Decimal("694.497")),
    ("001*A", "A", decimal.Decimal(1)),
    ("00.000*kW", "kW", decimal.Decimal(0)),
    ("12.5", "kW", decimal.Decimal("12.5")),
    ("-3.25", None, decimal.Decimal("-3.25")),
)


def generate_test_list():
    """
    Generate a list of test from the test data
    """

    for raw, unit, expected in DECIMAL_TESTDATA:
        yield raw, unit, expected


@pytest.mark.parametrize("raw,unit,expected", generate_test_list())
def test_decode_unitdecimal(raw, unit, expected):
    """
    Decimals lose their unit and their zero padding
    """
    assert decode_p1_unitdecimal(raw, unit) == expected


@pytest.mark.parametrize(
    "raw,unit",
    (
        ("001.193*kWh", "kW"),
        ("001.193*kWh", None),
        ("", "kWh"),
        ("abc", None),
        ("NaN", None),
        ("Infinity", None),
        ("1.2.3", None),
        ("\u0661\u0662*kW", "kW"),
        ("1.\u0665", None),
        ("1\n2", None),
    ),
)
def test_decode_unitdecimal_invalid(raw, unit):
    """
    Anything that is not a decimal after removing the expected
    unit fails to decode
    """
    with pytest.raises(ConversionError):
        decode_p1_unitdecimal(raw, unit)


def test_decode_decimal_is_exact():
    """
    Decimals are not rounded through floats
    """
    assert decode_p1_decimal("000051.775") == decimal.Decimal("51.775")
    assert str(decode_p1_decimal("0.1")) == "0.1"


@pytest.mark.parametrize(
    "raw,expected",
    (
        ("101209110000W", datetime.datetime(2010, 12, 9, 11, 0, 0)),
        ("171105201324W", datetime.datetime(2017, 11, 5, 20, 13, 24)),
        ("170624213128S", datetime.datetime(2017, 6, 24, 21, 31, 28)),
        ("991231235959W", datetime.datetime(2099, 12, 31, 23, 59, 59)),
    ),
)
def test_decode_tst(raw, expected):
    """
    Time stamps are naive, the summer/winter marker is dropped
    """
    decoded = decode_p1_tst(raw)
    assert decoded == expected
    assert decoded.tzinfo is None


@pytest.mark.parametrize(
    "raw",
    (
        "",
        "W",
        "101209110000",
        "10120911000W",
        "101309110000W",
        "101232110000W",
        "101209250000W",
        "1012091100xxW",
        "101209110000\nW",
        "\u0661\u0660\u0661\u0662\u0660\u0669\u0661\u0661\u0660\u0660\u0660\u0660W",
    ),
)
def test_decode_tst_invalid(raw):
    """
    Test time stamps that are not valid

    Only ASCII digits count, and nothing may follow them except the
    summer/winter marker
    """
    with pytest.raises(ConversionError):
        decode_p1_tst(raw)


def test_decode_tariff():
    """
    Only the two known tariff codes decode
    """
    assert decode_p1_tariff("0001") is PowerTariff.LOW
    assert decode_p1_tariff("0002") is PowerTariff.NORMAL

    for raw in ("0003", "1", "", "0001 "):
        with pytest.raises(UnrecognizedCodeError):
            decode_p1_tariff(raw)


def test_decode_version():
    """
    Only the three known versions decode
    """
    assert decode_p1_version("20") is P1Version.V20
    assert decode_p1_version("42") is P1Version.V42
    assert decode_p1_version("50") is P1Version.V50

    for raw in ("40", "5.0", ""):
        with pytest.raises(UnrecognizedCodeError):
            decode_p1_version(raw)


def test_convert_dispatch():
    """
    convert picks the decoder based on the kind
    """
    assert convert(ConverterKind.STRING, "4530") == "4530"
    assert convert(ConverterKind.DECIMAL, "001.193*kWh", "kWh") == decimal.Decimal(
        "1.193"
    )
    assert convert(ConverterKind.TIMESTAMP, "101209110000W") == datetime.datetime(
        2010, 12, 9, 11
    )
    assert convert(ConverterKind.TARIFF, "0002") is PowerTariff.NORMAL
    assert convert(ConverterKind.VERSION, "42") is P1Version.V42


def test_errors_are_value_errors():
    """
    All decoding errors can be caught as ValueError
    """
    assert issubclass(ConversionError, P1Error)
    assert issubclass(UnrecognizedCodeError, P1Error)
    assert issubclass(P1Error, ValueError)
