import re
from enum import StrEnum


class DeviceClass(StrEnum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


_TABLET = re.compile(r"iPad|Tablet|PlayBook|Silk|Kindle|Android(?!.*Mobile)", re.IGNORECASE)
_MOBILE = re.compile(r"Mobile|Android|iPhone|iPod|Windows Phone|Opera Mini", re.IGNORECASE)


def device_class_from_user_agent(user_agent: str | None) -> DeviceClass:
    """Classify the caller's device from its User-Agent header."""
    if not user_agent or not user_agent.strip():
        return DeviceClass.UNKNOWN
    if _TABLET.search(user_agent):
        return DeviceClass.TABLET
    if _MOBILE.search(user_agent):
        return DeviceClass.MOBILE
    return DeviceClass.DESKTOP
