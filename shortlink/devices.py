"""User-agent based device classification for click events."""

import re

from shortlink.enums import DeviceType

__all__ = ["classify_device"]

# Tablet must be checked before mobile: many tablet agents contain mobile markers.
_TABLET = re.compile(r"(ipad|tablet|playbook|silk)|(android(?!.*mobile))", re.IGNORECASE)
_MOBILE = re.compile(r"mobile|iphone|ipod|android|blackberry|opera mini|windows phone", re.IGNORECASE)


def classify_device(user_agent: str | None) -> DeviceType:
    if not user_agent:
        return DeviceType.UNKNOWN
    if _TABLET.search(user_agent):
        return DeviceType.TABLET
    if _MOBILE.search(user_agent):
        return DeviceType.MOBILE
    return DeviceType.DESKTOP
