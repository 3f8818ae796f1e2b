"""Unit tests for User-Agent device classification."""

import pytest

from cl_media_convert.utils.device_class import DeviceClass, device_class_from_user_agent


@pytest.mark.parametrize(
    ("user_agent", "expected"),
    [
        (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148 Safari/604.1",
            DeviceClass.MOBILE,
        ),
        (
            "Mozilla/5.0 (Linux; Android 14; Pixel 8) Chrome/120.0 Mobile Safari/537.36",
            DeviceClass.MOBILE,
        ),
        (
            "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Version/17.0 Safari/604.1",
            DeviceClass.TABLET,
        ),
        (
            "Mozilla/5.0 (Linux; Android 13; SM-X700) Chrome/120.0 Safari/537.36",
            DeviceClass.TABLET,
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36",
            DeviceClass.DESKTOP,
        ),
        ("curl/8.4.0", DeviceClass.DESKTOP),
        ("", DeviceClass.UNKNOWN),
        ("   ", DeviceClass.UNKNOWN),
        (None, DeviceClass.UNKNOWN),
    ],
)
def test_device_class_from_user_agent(user_agent: str | None, expected: DeviceClass):
    assert device_class_from_user_agent(user_agent) == expected
