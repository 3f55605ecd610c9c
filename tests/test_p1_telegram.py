#!/usr/bin/python3
"""
Test decoding real P1 telegrams, and turning them back into text
"""

import datetime
import decimal

import pytest

from dsmr_p1.p1.converters import P1Version, PowerTariff
from dsmr_p1.p1.parser import P1Parser

# The test data is a list of tuples, each tuple containing
# a P1 telegram and the expected decoded values
TESTDATA = (
    (
        b"""
/Ene5\\XS210 ESMR 5.0

1-3:0.2.8(50)
0-0:1.0.0(171105201324W)
0-0:96.1.1(4530303437303030303037363330383137)
1-0:1.8.1(000051.775*kWh)
1-0:1.8.2(000000.000*kWh)
1-0:2.8.1(000024.413*kWh)
1-0:2.8.2(000000.000*kWh)
0-0:96.14.0(0001)
1-0:1.7.0(00.335*kW)
1-0:2.7.0(00.000*kW)
0-0:96.7.21(00003)
0-0:96.7.9(00001)
1-0:99.97.0(0)(0-0:96.7.19)
1-0:32.32.0(00002)
1-0:32.36.0(00000)
0-0:96.13.0()
1-0:32.7.0(229.0*V)
1-0:31.7.0(001*A)
1-0:21.7.0(00.335*kW)
1-0:22.7.0(00.000*kW)
0-1:24.1.0(003)
0-1:96.1.0(4730303538353330303031313633323137)
0-1:24.2.1(171105201000W)(00016.713*m3)
!8F46
    """,
        {
            "header": "Ene5\\XS210 ESMR 5.0",
            "version": P1Version.V50,
            "timestamp": datetime.datetime(2017, 11, 5, 20, 13, 24),
            "electricity_serial": "4530303437303030303037363330383137",
            "gas_serial": "4730303538353330303031313633323137",
            "energy_consumed_tariff1": decimal.Decimal("51.775"),
            "energy_consumed_tariff2": decimal.Decimal(0),
            "energy_produced_tariff1": decimal.Decimal("24.413"),
            "energy_produced_tariff2": decimal.Decimal(0),
            "tariff": PowerTariff.LOW,
            "power_consuming": decimal.Decimal("0.335"),
            "power_producing": decimal.Decimal(0),
            "current": decimal.Decimal(1),
            "gas_timestamp": datetime.datetime(2017, 11, 5, 20, 10, 0),
            "gas_volume": decimal.Decimal("16.713"),
            "checksum": "8F46",
            "device_id": "E0047000007630817",
        },
    ),
    (
        b"""
/KFM5KAIFA-METER

1-3:0.2.8(42)
0-0:1.0.0(170124213128W)
0-0:96.1.1(4530303236303030303234343934333135)
1-0:1.8.1(000306.946*kWh)
1-0:1.8.2(000210.088*kWh)
1-0:2.8.1(000000.000*kWh)
1-0:2.8.2(000000.000*kWh)
0-0:96.14.0(0001)
1-0:1.7.0(02.793*kW)
1-0:2.7.0(00.000*kW)
0-0:96.7.21(00001)
0-0:96.7.9(00001)
1-0:99.97.0(1)(0-0:96.7.19)(000101000006W)(2147483647*s)
1-0:32.32.0(00000)
1-0:52.32.0(00000)
1-0:72.32.0(00000)
1-0:32.36.0(00000)
1-0:52.36.0(00000)
1-0:72.36.0(00000)
0-0:96.13.1()
0-0:96.13.0()
1-0:31.7.0(003*A)
1-0:51.7.0(005*A)
1-0:71.7.0(005*A)
1-0:21.7.0(00.503*kW)
1-0:41.7.0(01.100*kW)
1-0:61.7.0(01.190*kW)
1-0:22.7.0(00.000*kW)
1-0:42.7.0(00.000*kW)
1-0:62.7.0(00.000*kW)
0-1:24.1.0(003)
0-1:96.1.0(4730303331303033333738373931363136)
0-1:24.2.1(170124210000W)(00671.790*m3)
!29ED
        """,
        {
            "header": "KFM5KAIFA-METER",
            "version": P1Version.V42,
            "timestamp": datetime.datetime(2017, 1, 24, 21, 31, 28),
            "electricity_serial": "4530303236303030303234343934333135",
            "gas_serial": "4730303331303033333738373931363136",
            "energy_consumed_tariff1": decimal.Decimal("306.946"),
            "energy_consumed_tariff2": decimal.Decimal("210.088"),
            "energy_produced_tariff1": decimal.Decimal(0),
            "energy_produced_tariff2": decimal.Decimal(0),
            "tariff": PowerTariff.LOW,
            "power_consuming": decimal.Decimal("0.503"),
            "power_producing": decimal.Decimal(0),
            "current": decimal.Decimal(3),
            "gas_timestamp": datetime.datetime(2017, 1, 24, 21, 0, 0),
            "gas_volume": decimal.Decimal("671.790"),
            "checksum": "29ED",
            "device_id": "E0026000024494315",
        },
    ),
    (
        b"""
/ISk5\\2MT382-1000

1-3:0.2.8(20)
0-0:96.1.1(4B384547303034303436333935353037)
1-0:1.8.1(12345.678*kWh)
1-0:1.8.2(12345.678*kWh)
0-0:96.14.0(0002)
1-0:21.7.0(0001.19*kW)
!
""",
        {
            "header": "ISk5\\2MT382-1000",
            "version": P1Version.V20,
            "timestamp": None,
            "electricity_serial": "4B384547303034303436333935353037",
            "gas_serial": None,
            "energy_consumed_tariff1": decimal.Decimal("12345.678"),
            "energy_consumed_tariff2": decimal.Decimal("12345.678"),
            "tariff": PowerTariff.NORMAL,
            "power_consuming": decimal.Decimal("1.19"),
            "gas_timestamp": None,
            "gas_volume": decimal.Decimal(0),
            "checksum": "",
            "device_id": "K8EG004046395507",
        },
    ),
)


def generate_test_list():
    """
    Generate a list of test from the test data
    """

    for testcase, expected in TESTDATA:
        yield testcase, expected


@pytest.mark.parametrize("testcase,expected", generate_test_list())
def test_p1_telegram(testcase, expected):
    """
    Test decoding a telegram by inspecting its attributes
    """
    parser = P1Parser()

    # The test data contains the "wrong" line breaks, \n instead of
    # \r\n, which meters send. Fix this.
    (telegram,) = parser.feed(testcase.replace(b"\n", b"\r\n"))

    for name, value in expected.items():
        assert getattr(telegram, name) == value, name


@pytest.mark.parametrize("testcase,expected", generate_test_list())
def test_p1_telegram_text(testcase, expected):
    """
    The text of a telegram is the lines it was read from
    """
    parser = P1Parser()
    data = testcase.replace(b"\n", b"\r\n")
    (telegram,) = parser.feed(data)

    start = data.index(b"/")
    end = data.index(b"!")
    end = data.index(b"\r\n", end) + 2
    assert telegram.to_text().encode("ascii") == data[start:end]
    assert str(telegram) == telegram.to_text()
    assert len(telegram) == end - start
    assert telegram.lines[-1] == "!" + expected["checksum"]


@pytest.mark.parametrize("testcase,expected", generate_test_list())
def test_p1_telegram_roundtrip(testcase, expected):
    """
    Parsing the text of a telegram again gives the same telegram
    """
    del expected
    parser = P1Parser()
    (telegram,) = parser.feed(testcase.replace(b"\n", b"\r\n"))

    (reparsed,) = P1Parser().parse(telegram.to_text())
    assert reparsed == telegram


def test_p1_telegram_end_line_normalized():
    """
    The end line is rebuilt from the checksum, so extra text after it
    is lost, and the text round trip is stable from then on
    """
    data = "/header\r\n1-3:0.2.8(50)\r\n!ABCDEF\r\n"
    (telegram,) = P1Parser().parse(data)

    assert telegram.checksum == "ABCD"
    assert telegram.to_text() == "/header\r\n1-3:0.2.8(50)\r\n!ABCD\r\n"

    (reparsed,) = P1Parser().parse(telegram.to_text())
    assert reparsed == telegram


def test_p1_telegram_is_immutable():
    """
    Telegrams handed out cannot be changed
    """
    (telegram,) = P1Parser().parse("/header\r\n!\r\n")

    with pytest.raises(AttributeError):
        telegram.header = "other"

    assert isinstance(telegram.lines, tuple)
