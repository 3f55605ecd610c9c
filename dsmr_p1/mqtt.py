"""
DSMR P1 to MQTT gateway

Publishing of decoded telegrams. The P1 process puts the `to_mqtt()`
dictionary of every telegram on a queue, this side picks the time stamps,
applies the rate limit and sends it to the broker as JSON.
"""

import json
import logging
import multiprocessing
import threading
import time
from typing import Any, Callable, Optional

import paho.mqtt
import paho.mqtt.client as mqtt
from typing_extensions import TypedDict

LOGGER = logging.getLogger(__name__)

# Seconds between attempts to reach the broker for the first time
CONNECT_RETRY_INTERVAL = 2.0

TelegramData = dict[str, Any]


class MQTTSettings(TypedDict):
    """
    The part of the gateway configuration used for publishing
    """

    host: str
    port: int
    client_id: str
    username: Optional[str]
    password: Optional[str]
    topic: str
    rate: float
    time_ms: bool
    prefer_local_timestamp: bool


def mqtt_settings(config: dict[str, Any]) -> MQTTSettings:
    """
    Pick the publishing settings out of the gateway configuration
    """
    return {
        "host": config["mqtt_host"],
        "port": config["mqtt_port"],
        "client_id": config["mqtt_client_id"],
        "username": config.get("mqtt_username"),
        "password": config.get("mqtt_password"),
        "topic": config["mqtt_topic"],
        "rate": config.get("mqtt_rate", 0),
        "time_ms": config.get("time_ms", False),
        "prefer_local_timestamp": config.get("prefer_local_timestamp", False),
    }


def prepare_payload(data: TelegramData, settings: MQTTSettings) -> TelegramData:
    """
    Set the time stamp fields of a telegram dictionary to the accuracy
    asked for in `settings`, and pick the authoritative one.

    Telegrams without a time stamp of their own use the time they were
    collected.
    """

    data = dict(data)
    data.setdefault("p1mqtt_telegram_timestamp", data["p1mqtt_collector_timestamp"])

    for key in ("p1mqtt_collector_timestamp", "p1mqtt_telegram_timestamp"):
        if settings["time_ms"]:
            data[key] = int(data[key] * 1000)
        else:
            # Round times properly here
            data[key] = int(data[key] + 0.5)

    if settings["prefer_local_timestamp"]:
        data["p1mqtt_timestamp"] = data["p1mqtt_collector_timestamp"]
    else:
        data["p1mqtt_timestamp"] = data["p1mqtt_telegram_timestamp"]

    return data


def mqtt_topic(data: TelegramData, settings: MQTTSettings) -> str:
    """
    Return the topic to publish the telegram dictionary `data` to
    """
    return settings["topic"] % {
        "device_id": data.get("p1mqtt_device_id", "unknown"),
    }


class P1Publisher:
    """
    Sends telegram dictionaries to an MQTT broker.

    The paho network thread keeps the connection up once `connect()` got
    through the first time. Telegrams arriving closer together than the
    configured rate are dropped.
    """

    def __init__(
        self,
        settings: MQTTSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self._connected = threading.Event()
        self._last_publish: Optional[float] = None

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=settings["client_id"],
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        if settings["username"]:
            self.client.username_pw_set(settings["username"], settings["password"])

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        # Called from the paho network thread
        del client, userdata
        LOGGER.debug(
            "on_connect flags=%s rc=%s properties=%s", flags, reason_code, properties
        )
        if reason_code == 0:
            LOGGER.info(
                "Connected to MQTT broker %s:%s",
                self.settings["host"],
                self.settings["port"],
            )
            self._connected.set()
        else:
            LOGGER.error("MQTT broker refused the connection: %s", reason_code)
            self._connected.clear()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        # Called from the paho network thread
        del client, userdata
        LOGGER.debug(
            "on_disconnect flags=%s rc=%s properties=%s",
            flags,
            reason_code,
            properties,
        )
        if reason_code != 0:
            LOGGER.error("Unexpected disconnect from MQTT: %s", reason_code)
        self._connected.clear()

    def connect(self, retry_interval: float = CONNECT_RETRY_INTERVAL) -> None:
        """
        Start the network thread and try to reach the broker until it
        answers. Reconnects after that are left to paho.
        """

        self.client.loop_start()

        while True:
            try:
                self.client.connect(self.settings["host"], port=self.settings["port"])
            except OSError as exc:
                LOGGER.info(
                    "Could not connect to %s:%s, retrying (%s)",
                    self.settings["host"],
                    self.settings["port"],
                    exc,
                )
                time.sleep(retry_interval)
                continue
            return

    def wait_connected(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the broker accepted the connection
        """
        return self._connected.wait(timeout)

    def publish(self, data: TelegramData) -> bool:
        """
        Send one telegram dictionary, unless the rate limit says it is
        too early. Returns whether it was sent.
        """

        now = self._clock()
        if (
            self._last_publish is not None
            and now - self._last_publish < self.settings["rate"]
        ):
            LOGGER.debug("Rate limited, dropping telegram")
            return False
        self._last_publish = now

        payload = prepare_payload(data, self.settings)
        topic = mqtt_topic(payload, self.settings)
        LOGGER.debug("Publishing to %s: %s", topic, payload)
        self.client.publish(topic, json.dumps(payload))
        return True


def mqtt_main(queue: multiprocessing.Queue, config: dict[str, Any]) -> None:
    """
    Main function for the MQTT process: publish everything the P1
    process puts on `queue`
    """

    LOGGER.info("mqtt process starting, paho.mqtt version %s", paho.mqtt.__version__)

    publisher = P1Publisher(mqtt_settings(config))
    publisher.connect()

    while True:
        # Telegrams stay queued while the broker is away
        publisher.wait_connected()
        data = queue.get(block=True)
        LOGGER.debug("Read from queue: %s", data)
        publisher.publish(data)
