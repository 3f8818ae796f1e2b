"""MQTT broadcaster for conversion progress events."""

import time
from typing import Protocol
from urllib.parse import urlparse

import paho.mqtt.client as mqtt
from loguru import logger
from paho.mqtt.client import ConnectFlags, DisconnectFlags
from paho.mqtt.enums import CallbackAPIVersion
from paho.mqtt.properties import Properties
from paho.mqtt.reasoncodes import ReasonCode

DEFAULT_MQTT_PORT = 1883


class InvalidMQTTURLException(ValueError):
    def __init__(self, url: str):
        self.url: str = url
        super().__init__(f"Invalid MQTT URL '{url}'. Expected mqtt://<host>:<port>")


class UnsupportedMQTTURLException(ValueError):
    def __init__(self, url: str, scheme: str):
        self.url: str = url
        self.scheme: str = scheme
        super().__init__(f"Unsupported MQTT URL scheme '{scheme}' in '{url}'")


def parse_mqtt_url(url: str) -> tuple[str, int]:
    """Split ``mqtt://host:port`` into broker host and port."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        raise InvalidMQTTURLException(url)
    if parsed.scheme != "mqtt":
        raise UnsupportedMQTTURLException(url, parsed.scheme)
    try:
        port = parsed.port or DEFAULT_MQTT_PORT
    except ValueError as exc:
        raise InvalidMQTTURLException(url) from exc
    return parsed.hostname, port


# NoOpBroadcaster must not require configuration. So protocol
# should not enforce broker and port mandatory
class BroadcasterBase(Protocol):
    connected: bool

    def connect(self) -> bool:
        return False

    def disconnect(self) -> None:
        pass

    def publish_event(self, *, topic: str, payload: str, qos: int = 1) -> bool:
        return False

    def publish_retained(self, *, topic: str, payload: str, qos: int = 1) -> bool:
        return False


class MQTTBroadcaster(BroadcasterBase):
    """MQTT event broadcaster using modern MQTT v5 protocol."""

    def __init__(self, broker: str | None = None, port: int | None = None):
        if not broker or not port:
            raise ValueError("MQTT broadcaster must be provided with broker and its port")
        self.broker: str = broker
        self.port: int = port
        self.client: mqtt.Client | None = None
        self.connected: bool = False

    @classmethod
    def from_url(cls, url: str) -> "MQTTBroadcaster":
        broker, port = parse_mqtt_url(url)
        return cls(broker, port)

    def connect(self) -> bool:
        try:
            logger.info(f"Assuming MQTT client configuration: broker={self.broker}:{self.port}")
            self.client = mqtt.Client(
                callback_api_version=CallbackAPIVersion.VERSION2,
                protocol=mqtt.MQTTv5,
            )

            self.client.on_connect = self._on_connect
            self.client.on_disconnect = self._on_disconnect

            _ = self.client.reconnect_delay_set(min_delay=1, max_delay=30)

            _ = self.client.loop_start()
            _ = self.client.connect(self.broker, self.port, keepalive=60, clean_start=True)

            # Wait for connection to be established (up to 5 seconds)
            timeout = 5
            start_time = time.time()
            while not self.connected and (time.time() - start_time) < timeout:
                time.sleep(0.1)

            return self.connected
        except Exception as e:
            logger.warning(f"Failed to connect to MQTT broker:{self.broker}:{self.port} {e}")
            self.connected = False
            return False

    def disconnect(self) -> None:
        if self.client:
            _ = self.client.loop_stop()
            _ = self.client.disconnect()
            self.connected = False

    def publish_event(self, *, topic: str, payload: str, qos: int = 1) -> bool:
        if not self.connected or not self.client:
            return False

        try:
            result = self.client.publish(topic, payload, qos=qos, retain=False)
            return result.rc == mqtt.MQTT_ERR_SUCCESS
        except Exception as e:
            logger.error(f"Error publishing event: {e}")
            return False

    def publish_retained(self, *, topic: str, payload: str, qos: int = 1) -> bool:
        if not self.connected or not self.client:
            return False
        try:
            result = self.client.publish(topic, payload, qos=qos, retain=True)
            return result.rc == mqtt.MQTT_ERR_SUCCESS
        except Exception as e:
            logger.error(f"Error publishing retained message: {e}")
            return False

    #
    # MQTT v5 Callback APIs
    #
    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: object,
        _flags: ConnectFlags,
        reason_code: ReasonCode,
        properties: Properties | None,
    ) -> None:
        self.connected = reason_code == 0
        if self.connected:
            logger.info("MQTT connected using v5")
        else:
            logger.warning(f"MQTT connection failed: reason={reason_code}, props={properties}")

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: object,
        _disconnect_flags: DisconnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None,
    ) -> None:
        self.connected = False
        logger.warning(f"MQTT disconnected: {reason_code}")


class NoOpBroadcaster(BroadcasterBase):
    """No-operation broadcaster for when MQTT is disabled or unavailable."""

    def __init__(self) -> None:
        self.connected: bool = True

    def connect(self) -> bool:
        return True

    def disconnect(self) -> None:
        pass

    def publish_event(self, *, topic: str, payload: str, qos: int = 1) -> bool:
        return True

    def publish_retained(self, *, topic: str, payload: str, qos: int = 1) -> bool:
        return True
