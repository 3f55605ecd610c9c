"""
Class representing a decoded P1 telegram, and the builder used to
populate one line by line
"""

import dataclasses
import datetime
import decimal
import logging
from typing import Any, Dict, List, Optional, Tuple

import pytz

from .converters import P1Value, P1Version, PowerTariff

LOGGER = logging.getLogger(__name__)

LINE_ENDING = "\r\n"

# Versions that carry a checksum after the end marker
CHECKSUM_VERSIONS = (P1Version.V42, P1Version.V50)

_ZERO = decimal.Decimal(0)


def _utc_unixtime(
    timestamp: datetime.datetime, timezone: datetime.tzinfo
) -> int:
    """
    Turn a naive meter time stamp into a UTC unix timestamp, assuming
    it is wall clock time in `timezone`
    """

    if hasattr(timezone, "localize"):
        localized = timezone.localize(timestamp)
    else:
        localized = timestamp.replace(tzinfo=timezone)

    return int(localized.astimezone(pytz.UTC).timestamp())


@dataclasses.dataclass(frozen=True)
class P1Telegram:  # pylint: disable=too-many-instance-attributes
    """
    A complete, decoded P1 telegram.

    Instances are only ever created once all lines of a telegram have
    been read, and cannot be changed afterwards.
    """

    header: str = ""
    version: Optional[P1Version] = None
    electricity_serial: Optional[str] = None
    gas_serial: Optional[str] = None
    timestamp: Optional[datetime.datetime] = None
    energy_consumed_tariff1: decimal.Decimal = _ZERO
    energy_consumed_tariff2: decimal.Decimal = _ZERO
    energy_produced_tariff1: decimal.Decimal = _ZERO
    energy_produced_tariff2: decimal.Decimal = _ZERO
    tariff: Optional[PowerTariff] = None
    power_consuming: decimal.Decimal = _ZERO
    power_producing: decimal.Decimal = _ZERO
    current: decimal.Decimal = _ZERO
    gas_volume: decimal.Decimal = _ZERO
    gas_timestamp: Optional[datetime.datetime] = None
    checksum: str = ""
    lines: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.to_text()

    def __len__(self) -> int:
        """
        The length of a telegram is the length of its text representation
        """
        return len(self.to_text())

    def to_text(self) -> str:
        """
        Return the telegram as text, the way it was received.

        The end marker line is the normalized version, so a checksum
        longer than four characters (or any checksum on a version that
        does not carry one) does not survive this.
        """
        return LINE_ENDING.join(self.lines) + LINE_ENDING

    @property
    def device_id(self) -> Optional[str]:
        """
        The electricity meter serial number. Meters send this as an
        octet string of ASCII characters, decode it if possible.
        """

        if self.electricity_serial is None:
            return None

        try:
            return bytearray.fromhex(self.electricity_serial).decode("ASCII")
        except ValueError:
            return self.electricity_serial

    def to_mqtt(self, timezone: datetime.tzinfo = pytz.UTC) -> Dict[str, Any]:
        """
        Return a dictionary representation of the telegram that can be
        fed to mqtt.

        Time stamps in a telegram have no time zone, `timezone` is the
        zone the meter clock runs in. They are converted to UTC unix
        time stamps. Decimals become floats, enumerations their names.
        """

        output: Dict[str, Any] = {"p1_header": self.header}

        for field in dataclasses.fields(self):
            if field.name in ("header", "lines", "checksum"):
                continue

            value = getattr(self, field.name)
            if value is None:
                continue

            if isinstance(value, datetime.datetime):
                output["p1_" + field.name] = _utc_unixtime(value, timezone)
            elif isinstance(value, decimal.Decimal):
                output["p1_" + field.name] = float(value)
            elif isinstance(value, (P1Version, PowerTariff)):
                output["p1_" + field.name] = value.name
            else:
                output["p1_" + field.name] = value

        if self.timestamp is not None:
            output["p1mqtt_telegram_timestamp"] = _utc_unixtime(
                self.timestamp, timezone
            )

        if self.device_id is not None:
            output["p1mqtt_device_id"] = self.device_id

        return output


class P1TelegramBuilder:
    """
    Collects the values and raw lines of a telegram that is still
    being read. Only the assembler holds one of these.
    """

    def __init__(self, header_line: str) -> None:
        self._values: Dict[str, P1Value] = {"header": header_line[1:]}
        self._lines: List[str] = [header_line]

    @property
    def version(self) -> Optional[P1Version]:
        """
        The protocol version decoded so far, if any
        """
        version = self._values.get("version")
        if isinstance(version, P1Version):
            return version
        return None

    def add_line(self, line: str) -> None:
        """
        Record a raw line
        """
        self._lines.append(line)

    def set_value(self, name: str, value: P1Value) -> None:
        """
        Set the telegram attribute `name` to `value`
        """
        LOGGER.debug("Setting %s to %r", name, value)
        self._values[name] = value

    def build(self, checksum: str = "") -> P1Telegram:
        """
        Return the finished telegram
        """
        return P1Telegram(
            checksum=checksum,
            lines=tuple(self._lines),
            **self._values,  # type: ignore[arg-type]
        )
