"""
Class to handle a byte stream that may contain one or multiple P1
telegrams
"""

import logging
from typing import (
    AsyncIterable,
    BinaryIO,
    Callable,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    Union,
)

from dsmr_p1.p1.assembler import P1Assembler
from dsmr_p1.p1.exceptions import P1Error
from dsmr_p1.p1.telegram import LINE_ENDING, P1Telegram

LOGGER = logging.getLogger(__name__)

# Telegrams are plain ASCII. latin-1 maps every byte to a character,
# so stray bytes from line noise never make decoding fail.
ENCODING = "latin-1"

Chunk = Union[bytes, str]
TelegramCallback = Callable[[P1Telegram], None]
ErrorCallback = Callable[[P1Error], None]


class P1Parser:
    """
    This class consumes a stream of arbitrary sized chunks and returns
    P1Telegrams as soon as they are completely read.

    A line split over two chunks is kept in an internal buffer until
    the rest of it arrives.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._assembler = P1Assembler()

    def __len__(self) -> int:
        """
        The number of characters read but not processed yet
        """
        return len(self._buffer)

    @staticmethod
    def _decode(data: Chunk) -> str:
        if isinstance(data, str):
            return data
        return data.decode(ENCODING)

    def reset(self) -> None:
        """
        Discard all buffered data, and any telegram being assembled
        """
        self._buffer = ""
        self._assembler.reset()

    def iter_feed(self, data: Chunk) -> Iterator[P1Telegram]:
        """
        Add `data` to the internal buffer, and yield every telegram that
        is completed by the lines now available.

        Each line is taken out of the buffer before it is processed. If
        a line fails to decode the error is raised, and the lines after
        it stay buffered for the next call.
        """

        self._buffer += self._decode(data)

        LOGGER.debug("Buffer after consuming inputdata: %r", self._buffer)

        while True:
            index = self._buffer.find(LINE_ENDING)
            if index == -1:
                break

            line = self._buffer[:index]
            self._buffer = self._buffer[index + len(LINE_ENDING) :]

            telegram = self._assembler.feed_line(line)
            if telegram is not None:
                LOGGER.debug("Found telegram of length %d", len(telegram))
                yield telegram

    def feed(self, data: Chunk) -> Tuple[P1Telegram, ...]:
        """
        Add `data` to the internal buffer, and return a tuple of all
        telegrams that could be completed (which may be empty)

        If a telegram fails to decode the error is raised, with the
        telegrams completed before it in its `telegrams` attribute.
        """
        found: List[P1Telegram] = []
        try:
            for telegram in self.iter_feed(data):
                found.append(telegram)
        except P1Error as exc:
            # These are out of the buffer already, do not lose them
            exc.telegrams = tuple(found)
            raise

        return tuple(found)

    def flush(self) -> Optional[P1Telegram]:
        """
        Treat whatever is left in the buffer as a complete line. This is
        needed at the end of input that does not end with a line ending.
        """

        if not self._buffer:
            return None

        line, self._buffer = self._buffer, ""
        return self._assembler.feed_line(line)

    def finish(
        self,
        on_telegram: TelegramCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Flush the buffer at the end of bounded input, handing a telegram
        completed by the last line to `on_telegram`
        """

        try:
            telegram = self.flush()
        except P1Error as exc:
            if on_error is None:
                raise
            on_error(exc)
            return

        if telegram is not None:
            on_telegram(telegram)

    def parse(self, message: str) -> List[P1Telegram]:
        """
        Parse a complete message and return all telegrams in it.

        Unlike a stream, a stored message may have lost its CRLF line
        endings, so any line ending is accepted here.

        This starts from a clean state and does not keep any data
        around afterwards.
        """

        self.reset()
        telegrams: List[P1Telegram] = []
        try:
            for line in message.splitlines():
                telegram = self._assembler.feed_line(line)
                if telegram is not None:
                    telegrams.append(telegram)
        finally:
            self.reset()

        return telegrams

    def _drain(
        self,
        data: Chunk,
        on_telegram: TelegramCallback,
        on_error: Optional[ErrorCallback],
    ) -> None:
        """
        Feed `data` and hand all telegrams to `on_telegram`.

        Without `on_error` decoding errors are raised. With it they are
        passed on, and processing resumes with the next buffered line.
        """

        while True:
            try:
                for telegram in self.iter_feed(data):
                    on_telegram(telegram)
            except P1Error as exc:
                if on_error is None:
                    raise
                on_error(exc)
                # The remaining lines are still in the buffer
                data = ""
                continue

            break

    def parse_stream(
        self,
        chunks: Iterable[Chunk],
        on_telegram: TelegramCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Read all chunks from `chunks`, calling `on_telegram` for every
        telegram found
        """

        for chunk in chunks:
            if len(chunk) == 0:
                continue
            self._drain(chunk, on_telegram, on_error)

    async def aparse_stream(
        self,
        chunks: AsyncIterable[Chunk],
        on_telegram: TelegramCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Like parse_stream, but for an asynchronous source of chunks
        """

        async for chunk in chunks:
            if len(chunk) == 0:
                continue
            self._drain(chunk, on_telegram, on_error)

    def parse_file(
        self,
        handle: BinaryIO,
        on_telegram: TelegramCallback,
        chunk_size: int = 8192,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Read the binary file `handle` in chunks of `chunk_size` until
        it is exhausted, calling `on_telegram` for every telegram found.
        The last line of the file does not need a line ending.
        """

        self.parse_stream(
            iter(lambda: handle.read(chunk_size), b""), on_telegram, on_error
        )
        self.finish(on_telegram, on_error)
