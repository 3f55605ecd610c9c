"""
This file contains the CLI script entry points
"""

import argparse
import codecs
import configparser
import json
import logging
import multiprocessing
import os
import sys
import time
from typing import Any

import pytz

from .mqtt import mqtt_main
from .p1.telegram import P1Telegram
from .p1io import p1io_main, read_telegrams

LOGGER = logging.getLogger(__name__)

# Default values for command line args
DEFAULTS: dict[str, Any] = {
    "mqtt_port": 1883,
    "buffer_size": 100000,
    "mqtt_topic": "dsmr-p1/tele/%(device_id)s/SENSOR",
    "mqtt_client_id": "dsmr-p1-gateway",
    "mqtt_rate": 0,
    "read_size": 1024,
    "timezone": "Europe/Amsterdam",
}

# Options in the [general] section of the config file, and
# whether they are integers
CONFIG_OPTIONS: dict[str, bool] = {
    "device": False,
    "host": False,
    "port": True,
    "file": False,
    "timezone": False,
    "mqtt-host": False,
    "mqtt-port": True,
    "mqtt-username": False,
    "mqtt-password": False,
    "mqtt-topic": False,
    "mqtt-client-id": False,
    "buffer-size": True,
    "mqtt-rate": True,
    "read-size": True,
}


def setup_logging() -> None:
    """
    Configure the root logger
    """
    if "INVOCATION_ID" in os.environ:
        # Running under systemd
        logging.basicConfig(format="%(levelname)s: %(message)s", level=logging.INFO)
    else:
        logging.basicConfig(
            format="%(asctime)-15s %(levelname)s: %(message)s", level=logging.INFO
        )


def load_config_file(filename: str) -> dict[str, Any]:
    """
    Load the ini style config file given by `filename`
    """

    config: dict[str, Any] = {}
    ini = configparser.ConfigParser()
    try:
        with codecs.open(filename, encoding="utf-8") as configfile:
            ini.read_file(configfile)
    except Exception as exc:  # pylint: disable=broad-except
        LOGGER.error("Could not read config file %s: %s", filename, exc)
        raise SystemExit(1)  # pylint: disable=raise-missing-from

    for option, is_int in CONFIG_OPTIONS.items():
        if not ini.has_option("general", option):
            continue

        key = option.replace("-", "_")
        if not is_int:
            config[key] = ini.get("general", option)
            continue

        try:
            config[key] = ini.getint("general", option)
        except ValueError:
            LOGGER.error(
                "%s: %s is not a valid value for %s",
                filename,
                ini.get("general", option),
                option,
            )
            raise SystemExit(1)  # pylint: disable=raise-missing-from

    return config


def build_parser() -> argparse.ArgumentParser:
    """
    Return the argument parser for the dsmr-p1 script
    """
    parser = argparse.ArgumentParser()
    parser_input = parser.add_mutually_exclusive_group()
    parser_input.add_argument("--device", "-d", type=str, help="Serial device to use")
    parser_input.add_argument("--host", type=str, help="TCP source host to use")
    parser_input.add_argument(
        "--file", "-f", type=str, help="File with recorded P1 data to read"
    )
    parser.add_argument("--port", type=int, help="TCP source port to use")
    parser.add_argument("--config", type=str, help="Configuration file to load")
    parser.add_argument(
        "--timezone",
        type=str,
        default=None,
        help="Time zone the meter clock runs in. "
        f"(Default: {DEFAULTS['timezone']})",
    )
    parser.add_argument(
        "--print",
        action="store_true",
        help="Print decoded telegrams as JSON instead of sending them to MQTT",
    )
    parser.add_argument(
        "--mqtt-topic",
        type=str,
        default=None,
        help="MQTT topic to publish to. May contain a python format string "
        "reference to the variable `device_id` (containing the serial number "
        "of the meter generating the data). "
        f"(Default: {DEFAULTS['mqtt_topic'].replace('%','%%')})",
    )
    parser.add_argument("--mqtt-host", type=str, help="MQTT server to connect to")
    parser.add_argument(
        "--mqtt-port", type=int, default=None, help="MQTT port to connect to"
    )
    parser.add_argument(
        "--mqtt-username", type=str, default=None, help="MQTT user name to use"
    )
    parser.add_argument(
        "--mqtt-password", type=str, default=None, help="MQTT password to use"
    )
    parser.add_argument(
        "--mqtt-client-id",
        type=str,
        default=None,
        help="MQTT client ID. Needs to be unique between all clients connecting "
        "to the same broker",
    )
    parser.add_argument(
        "--dsmr-22",
        action="store_true",
        help="Use DSMR 2.2 configuration for the serial port. The default is "
        "to use DSMR 4.0 and newer.",
    )
    parser.add_argument(
        "--source-dump",
        "--serial-dump",
        type=str,
        default=None,
        help="File name to dump all data read from the source to. "
        "This is mainly for debugging purposes.",
    )
    parser.add_argument(
        "--read-size",
        type=int,
        default=None,
        help="Number of bytes to read from the source initially",
    )
    parser.add_argument(
        "--buffer-size",
        type=int,
        default=None,
        help="How many measurements to buffer if the MQTT "
        "server should be unavailable. This buffer is not "
        "persistent across program restarts.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--prefer-local-timestamp",
        action="store_true",
        help="Use the device local time as authoritative in "
        "the MQTT data instead of the timestamp from the P1 "
        "telegram",
    )
    parser.add_argument(
        "--time-ms",
        action="store_true",
        help="Send timestamps to MQTT in milliseconds instead of seconds. "
        "This will only affect p1mqtt* timestamp values",
    )
    parser.add_argument(
        "--mqtt-rate",
        type=int,
        help="Time between messages sent to the broker in seconds.",
    )

    return parser


def build_config(args: argparse.Namespace) -> dict[str, Any]:
    """
    Merge the config file (if any), the command line and the defaults.
    Command line arguments win over the config file, which wins over
    the defaults.
    """

    if args.config:
        config = load_config_file(args.config)
    else:
        config = {}

    LOGGER.debug("Config after loading config file: %s", config)

    for key in (
        "device",
        "host",
        "port",
        "file",
        "mqtt_host",
        "mqtt_username",
        "mqtt_password",
        "source_dump",
    ):
        if getattr(args, key):
            config[key] = getattr(args, key)

    for key in (
        "mqtt_topic",
        "mqtt_port",
        "mqtt_client_id",
        "mqtt_rate",
        "buffer_size",
        "read_size",
        "timezone",
    ):
        if getattr(args, key):
            config[key] = getattr(args, key)
        elif key not in config:
            # Not set through config file, not set through CLI, use default
            config[key] = DEFAULTS[key]

    config.setdefault("mqtt_username", None)
    config.setdefault("mqtt_password", None)

    # mqtt_rate sanity check
    if config["mqtt_rate"] < 0:
        config["mqtt_rate"] = 0

    if args.dsmr_22:
        config["dsmr"] = "2.2"
    else:
        config["dsmr"] = "4.0"

    config["prefer_local_timestamp"] = args.prefer_local_timestamp
    config["time_ms"] = args.time_ms
    config["print"] = args.print

    LOGGER.debug("Completed config: %s", config)

    return config


def check_config(config: dict[str, Any]) -> None:
    """
    Make sure the configuration is usable, exit if it is not
    """

    if not (
        "device" in config
        or "file" in config
        or ("host" in config and "port" in config)
    ):
        LOGGER.error("No serial device, file or host/port given as data source")
        raise SystemExit(1)

    if config["timezone"] not in pytz.all_timezones_set:
        LOGGER.error("Unknown time zone %s", config["timezone"])
        raise SystemExit(1)


def print_telegrams(config: dict[str, Any]) -> None:
    """
    Decode telegrams from the source and print them to stdout, one JSON
    object per line
    """

    timezone = pytz.timezone(config["timezone"])

    def output(telegram: P1Telegram) -> None:
        print(json.dumps(telegram.to_mqtt(timezone)), file=sys.stdout, flush=True)

    read_telegrams(config, output)


def run_gateway(config: dict[str, Any]) -> None:
    """
    Run the P1 reader and the MQTT publisher as separate processes,
    until one of them dies
    """

    p1_mqtt_queue: multiprocessing.Queue = multiprocessing.Queue(
        maxsize=config["buffer_size"]
    )

    procs: list[multiprocessing.Process] = []
    p1_proc = multiprocessing.Process(
        target=p1io_main, name="p1", args=(p1_mqtt_queue, config)
    )
    p1_proc.start()
    procs.append(p1_proc)

    mqtt_proc = multiprocessing.Process(
        target=mqtt_main, name="mqtt", args=(p1_mqtt_queue, config)
    )
    mqtt_proc.start()
    procs.append(mqtt_proc)

    # Wait forever for one of the processes to die. If that happens,
    # kill the whole program.
    run = True
    while run:
        try:
            for proc in procs:
                if not proc.is_alive():
                    LOGGER.error("Child process died, terminating program")
                    run = False

            time.sleep(1)
        except KeyboardInterrupt:
            LOGGER.info("Caught keyboard interrupt, exiting")
            run = False

    for proc in procs:
        proc.terminate()
    raise SystemExit(1)


def dsmr_p1() -> None:
    """
    Main function for the dsmr-p1 script
    """
    setup_logging()

    args = build_parser().parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = build_config(args)
    check_config(config)

    # Without a broker there is nowhere to send data to but stdout
    if config["print"] or "mqtt_host" not in config:
        print_telegrams(config)
        return

    run_gateway(config)
