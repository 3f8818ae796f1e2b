from typing import TypedDict

from loguru import logger

from .mqtt_impl import MQTTBroadcaster, NoOpBroadcaster


class BroadcasterConfig(TypedDict):
    """Configuration for broadcaster instance."""

    url: str | None


_broadcaster: MQTTBroadcaster | NoOpBroadcaster | None = None
_broadcaster_config: BroadcasterConfig | None = None


def get_broadcaster(url: str | None = None) -> MQTTBroadcaster | NoOpBroadcaster:
    """Get or create global broadcaster instance based on config.

    Args:
        url: MQTT broker URL (e.g., mqtt://<host_ip>:<port>).
             If None, returns NoOpBroadcaster.

    Returns:
        MQTTBroadcaster if url is provided, NoOpBroadcaster if url is None.

    Raises:
        RuntimeError: If broadcaster creation or connection fails.
    """
    global _broadcaster, _broadcaster_config

    desired_config: BroadcasterConfig = {
        "url": url,
    }

    if _broadcaster is not None and _broadcaster_config == desired_config:
        return _broadcaster

    # Config mismatch, shutdown old broadcaster if needed
    if _broadcaster is not None:
        shutdown_broadcaster()

    try:
        broadcaster: MQTTBroadcaster | NoOpBroadcaster
        if url is None:
            broadcaster = NoOpBroadcaster()
        else:
            broadcaster = MQTTBroadcaster.from_url(url)

        if not broadcaster.connect():
            raise RuntimeError(
                f"Failed to connect to MQTT broker at {url}. "
                "Check that the broker is running and the URL is correct."
            )
    except RuntimeError:
        raise
    except Exception as e:
        logger.error(f"Error creating broadcaster: {e}")
        raise RuntimeError(f"Failed to create broadcaster: {e}") from e

    _broadcaster = broadcaster
    _broadcaster_config = desired_config
    return _broadcaster


def shutdown_broadcaster() -> None:
    """Shutdown global broadcaster."""
    global _broadcaster, _broadcaster_config
    if _broadcaster:
        _broadcaster.disconnect()
    _broadcaster = None
    _broadcaster_config = None
