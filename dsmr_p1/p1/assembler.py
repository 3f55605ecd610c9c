"""
State machine turning a sequence of lines into P1 telegrams
"""

import enum
import logging
from typing import Optional

from .converters import convert
from .exceptions import P1Error
from .objects import fields_for_reference
from .telegram import CHECKSUM_VERSIONS, P1Telegram, P1TelegramBuilder
from .tokenizer import split_p1_line

LOGGER = logging.getLogger(__name__)

START_MARKER = "/"
END_MARKER = "!"

# Checksums are four hex characters
CHECKSUM_LENGTH = 4


class AssemblerState(enum.Enum):
    """
    Whether the assembler is currently inside a telegram
    """

    IDLE = "idle"
    IN_TELEGRAM = "in_telegram"


class P1Assembler:
    """
    Consumes lines one by one and returns a P1Telegram whenever
    a line completes one.

    A telegram starts with a line beginning with / and ends with a line
    beginning with !. Everything outside of a telegram is ignored.
    """

    def __init__(self) -> None:
        self._builder: Optional[P1TelegramBuilder] = None

    @property
    def state(self) -> AssemblerState:
        """
        The current state of the assembler
        """
        if self._builder is None:
            return AssemblerState.IDLE
        return AssemblerState.IN_TELEGRAM

    def reset(self) -> None:
        """
        Throw away any telegram that is being assembled
        """
        if self._builder is not None:
            LOGGER.debug("Discarding incomplete telegram")
        self._builder = None

    def feed_line(self, line: str) -> Optional[P1Telegram]:
        """
        Process a single line (without line ending).

        Returns the telegram if `line` ended one, None otherwise.

        If a value in the line cannot be decoded the telegram being
        assembled is discarded and the error is raised to the caller.
        """

        if self._builder is None:
            if line.startswith(START_MARKER):
                LOGGER.debug("Start of telegram: %s", line)
                self._builder = P1TelegramBuilder(line)
            else:
                LOGGER.debug("Ignoring line outside of telegram: %s", line)
            return None

        if line.startswith(END_MARKER):
            return self._finish(line)

        try:
            self._parse_content(line)
        except P1Error:
            self._builder = None
            raise

        return None

    def _parse_content(self, line: str) -> None:
        """
        Decode all known values in `line` into the builder, and record
        the line itself
        """
        assert self._builder is not None

        reference, *values = split_p1_line(line)

        for field in fields_for_reference(reference):
            if field.index >= len(values):
                LOGGER.debug(
                    "%s has no value at index %d, skipping %s",
                    reference,
                    field.index,
                    field.name,
                )
                continue

            self._builder.set_value(
                field.name, convert(field.kind, values[field.index], field.unit)
            )

        self._builder.add_line(line)

    def _finish(self, line: str) -> P1Telegram:
        """
        Handle the end marker line and return the complete telegram.

        Only versions 4.2 and 5.0 carry a checksum. The line stored in
        the telegram is rebuilt from the checksum, not kept verbatim.
        """
        assert self._builder is not None

        checksum = ""
        if self._builder.version in CHECKSUM_VERSIONS:
            checksum = line[len(END_MARKER) :][:CHECKSUM_LENGTH]

        self._builder.add_line(END_MARKER + checksum)
        telegram = self._builder.build(checksum)
        self._builder = None

        LOGGER.debug("End of telegram, checksum '%s'", checksum)

        return telegram
