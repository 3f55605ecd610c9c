"""
DSMR P1 reader. Handle reading from the data source (serial port, TCP
socket or a file with recorded data) and P1 telegram parsing
"""

import logging
import multiprocessing
import socket
import time
from typing import Any, BinaryIO, Callable, Dict, Optional, Protocol

import pytz
import serial  # type: ignore

from dsmr_p1.p1.exceptions import P1Error
from dsmr_p1.p1.parser import P1Parser
from dsmr_p1.p1.telegram import P1Telegram

LOGGER = logging.getLogger(__name__)

# Serial port parameters for different DSMR
# protocols
DSMR_PARAMETERS = {
    "2.2": {
        "speed": 9600,
        "databits": serial.SEVENBITS,
        "stopbits": serial.STOPBITS_ONE,
        "parity": serial.PARITY_EVEN,
    },
    "4.0": {
        "speed": 115200,
        "databits": serial.EIGHTBITS,
        "stopbits": serial.STOPBITS_ONE,
        "parity": serial.PARITY_NONE,
    },
}

# We never read less than this from the source, to make
# sure we make forward progress
MIN_READ_SIZE = 64


class Source(Protocol):
    """
    Anything we can read P1 data from
    """

    def read(self, size: int) -> bytes:
        ...


class TCPFullReader:
    """
    A slight abstraction over a socket that will block until the whole
    buffersize passed to read() is available
    """

    def __init__(self, host: str, port: int) -> None:
        self.buffer = b""
        try:
            self.socket = socket.create_connection((host, port))
            self.socket.settimeout(30)
        except ConnectionRefusedError:
            LOGGER.error(
                "Could not connect to P1 source at %s:%d: Connection refused",
                host,
                port,
            )
            raise SystemExit(1)  # pylint: disable=raise-missing-from

    def read(self, size: int) -> bytes:
        """
        Block reading from the socket until we can return `size` bytes

        If a timeout occurs, return b''
        """
        try:
            while len(self.buffer) < size:
                LOGGER.debug("Attemping to read %d bytes from socket", size)
                newdata = self.socket.recv(size)
                LOGGER.debug("Read %d bytes from socket", len(newdata))
                if len(newdata) == 0:
                    # EOF from socket
                    LOGGER.error("EOF from socket, connection closed?")
                    return b""
                self.buffer += newdata

            data, self.buffer = self.buffer[:size], self.buffer[size:]
            return data
        except socket.timeout:
            LOGGER.error("Timeout reading %d bytes from TCP socket", size)
            return b""


def open_source(config: Dict[str, Any]) -> Source:
    """
    Open the data source described by `config`.

    If a host and port were given, prefer those over a serial port. A
    file is only used if neither is given.
    """

    if "host" in config and "port" in config:
        LOGGER.info(
            "Attempting TCP connection to %s:%s", config["host"], config["port"]
        )
        return TCPFullReader(config["host"], config["port"])

    if "device" in config:
        # The timeout is mainly there to deal with wrong speed
        # settings, if we have not heard anything for 30 seconds it's
        # likely something is wrong
        LOGGER.info("Attempting to open serial port %s", config["device"])
        portconf = DSMR_PARAMETERS[config["dsmr"]]
        return serial.Serial(
            config["device"],
            baudrate=portconf["speed"],
            bytesize=portconf["databits"],
            parity=portconf["parity"],
            stopbits=portconf["stopbits"],
            timeout=30,
        )

    if "file" in config:
        LOGGER.info("Reading recorded data from %s", config["file"])
        return open(config["file"], "rb")  # pylint: disable=consider-using-with

    # This cannot be hit, because of the way configuration parsing works,
    # but pylint can't figure that out
    raise ValueError("Neither host, device nor file given")


def read_telegrams(
    config: Dict[str, Any],
    on_telegram: Callable[[P1Telegram], None],
    source: Optional[Source] = None,
) -> None:
    """
    Read from the data source, feed the data to the P1 parser and pass
    every telegram to `on_telegram`.

    Telegrams that fail to decode are logged and dropped. Running out
    of data from a serial port or socket is an error, reaching the end
    of a recorded file ends the loop.
    """

    # Running the parser on a small amount of data is wasteful, so we try
    # to read one complete telegram from the source (and not more!) at a
    # time. The length of a telegram is pretty static, so we assume that
    # the next telegram will have the same length as the last one, minus
    # whatever the parser already has buffered.
    #
    # If that is wrong we either get part of the next telegram (which
    # stays in the parser buffer and is taken into account for the next
    # read), or no telegram at all, in which case we read the minimum
    # amount until we see one again.

    # This is the size of the last telegram parsed, and our best guess
    # as to the size of the next one.
    telegram_size = 0

    # Start with 1k bytes.
    source_read_size = config.get("read_size", 1024)

    replay = "file" in config and not (
        "device" in config or ("host" in config and "port" in config)
    )

    opened = source is None
    if source is None:
        source = open_source(config)

    def on_error(exc: P1Error) -> None:
        LOGGER.error("Could not parse message as valid Telegram: %s", exc)

    parser = P1Parser()
    found: list[P1Telegram] = []

    dumpfile: Optional[BinaryIO] = None
    try:
        # If needed, open the source log file
        dumpfilename = config.get("source_dump")
        if dumpfilename:
            dumpfile = open(dumpfilename, "wb")  # pylint: disable=consider-using-with
            LOGGER.info("Writing source data to %s", dumpfilename)

        while True:
            to_read = max(MIN_READ_SIZE, source_read_size)
            LOGGER.debug(
                "Reading from source, telegram_size=%d, to_read=%d",
                telegram_size,
                to_read,
            )
            data = source.read(to_read)

            if dumpfile is not None:
                dumpfile.write(data)
                dumpfile.flush()

            if len(data) != to_read and not replay:
                raise RuntimeError(
                    "Timeout reading from source, check "
                    "connection parameters and that the DSMR setting is "
                    "correct"
                )

            found.clear()
            parser.parse_stream((data,), found.append, on_error)

            for telegram in found:
                on_telegram(telegram)

            if len(data) < to_read:
                # End of recorded data
                parser.finish(on_telegram, on_error)
                LOGGER.info("End of source data reached")
                break

            if len(found) == 0:
                source_read_size = 0
                continue

            new_telegram_size = len(found[-1])
            if new_telegram_size != telegram_size:
                LOGGER.info(
                    "Telegram size changed %d -> %d",
                    telegram_size,
                    new_telegram_size,
                )
                telegram_size = new_telegram_size

            source_read_size = telegram_size - len(parser)
    finally:
        if dumpfile is not None:
            dumpfile.close()
        if opened and hasattr(source, "close"):
            source.close()


def p1io_main(queue: multiprocessing.Queue, config: Dict[str, Any]) -> None:
    """
    Main function for the P1 process.

    This will open the data source, read data from it, feed it to the
    P1 parser, take the parsed P1 telegrams, and send a MQTT compatible
    serialized version to the queue
    """

    LOGGER.info("p1 process starting")

    timezone = pytz.timezone(config["timezone"])

    def publish(telegram: P1Telegram) -> None:
        data = telegram.to_mqtt(timezone)
        data["p1mqtt_collector_timestamp"] = time.time()
        LOGGER.debug("Local time: %f, telegram: %s", time.time(), data)
        queue.put(data)

    read_telegrams(config, publish)
