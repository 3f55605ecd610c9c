"""
Definitions of the P1 objects we know how to decode, and which
attribute of a telegram they end up in
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

from .converters import ConverterKind

LOGGER = logging.getLogger(__name__)


class P1Field(NamedTuple):
    """
    Describe how one value of a P1 object maps onto a telegram attribute
    """

    # OBIS reference, as it appears in front of the first (
    reference: str
    # Name of the P1Telegram attribute to set
    name: str
    kind: ConverterKind
    # Which of the bracketed values to use
    index: int = 0
    # Unit that is expected after the * in the value, if any
    unit: Optional[str] = None


P1FIELDS: Tuple[P1Field, ...] = (
    P1Field("1-3:0.2.8", "version", ConverterKind.VERSION),
    P1Field("0-0:96.1.1", "electricity_serial", ConverterKind.STRING),
    P1Field("0-1:96.1.0", "gas_serial", ConverterKind.STRING),
    P1Field("0-0:1.0.0", "timestamp", ConverterKind.TIMESTAMP),
    P1Field("1-0:1.8.1", "energy_consumed_tariff1", ConverterKind.DECIMAL, unit="kWh"),
    P1Field("1-0:1.8.2", "energy_consumed_tariff2", ConverterKind.DECIMAL, unit="kWh"),
    P1Field("1-0:2.8.1", "energy_produced_tariff1", ConverterKind.DECIMAL, unit="kWh"),
    P1Field("1-0:2.8.2", "energy_produced_tariff2", ConverterKind.DECIMAL, unit="kWh"),
    P1Field("0-0:96.14.0", "tariff", ConverterKind.TARIFF),
    P1Field("1-0:21.7.0", "power_consuming", ConverterKind.DECIMAL, unit="kW"),
    P1Field("1-0:22.7.0", "power_producing", ConverterKind.DECIMAL, unit="kW"),
    P1Field("1-0:31.7.0", "current", ConverterKind.DECIMAL, unit="A"),
    P1Field("0-1:24.2.1", "gas_timestamp", ConverterKind.TIMESTAMP, index=0),
    P1Field("0-1:24.2.1", "gas_volume", ConverterKind.DECIMAL, index=1, unit="m3"),
)


def _index_fields(fields: Tuple[P1Field, ...]) -> Dict[str, Tuple[P1Field, ...]]:
    """
    Group the field definitions by reference
    """

    index: Dict[str, List[P1Field]] = {}
    for field in fields:
        if field.index < 0:
            raise ValueError(f"Negative value index for {field.reference}")
        index.setdefault(field.reference, []).append(field)

    return {reference: tuple(found) for reference, found in index.items()}


_FIELDS_BY_REFERENCE = _index_fields(P1FIELDS)


def fields_for_reference(reference: Optional[str]) -> Tuple[P1Field, ...]:
    """
    Return all field definitions for the P1 object `reference`.

    References are matched exactly. Unknown or empty references
    return an empty tuple, meters send plenty of objects we do not
    care about.
    """

    if not reference:
        return ()

    fields = _FIELDS_BY_REFERENCE.get(reference, ())
    if not fields:
        LOGGER.debug("Ignoring object with unknown reference '%s'", reference)

    return fields
