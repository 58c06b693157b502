"""User-agent classification for access analytics.

Heuristic, order-sensitive regex checks: a more specific token is tested
before any generic one it also matches. Tablet comes before mobile (an
Android UA without ``Mobile`` is a tablet). Edge and Opera UAs contain
``Chrome``, and Chrome UAs contain ``Safari``. iOS UAs say
``like Mac OS X``, so iOS is tested before macOS.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

UNKNOWN = 'Unknown'

_TABLET = re.compile(r'iPad|Android(?!.*Mobile)', re.IGNORECASE)
_MOBILE = re.compile(r'Mobile|Android|iPhone|iPod', re.IGNORECASE)

_BROWSERS: list[tuple[str, re.Pattern[str], re.Pattern[str] | None]] = [
    ('Edge', re.compile(r'Edg/', re.IGNORECASE), None),
    ('Opera', re.compile(r'Opera|OPR/', re.IGNORECASE), None),
    ('Chrome', re.compile(r'Chrome', re.IGNORECASE), re.compile(r'Chromium', re.IGNORECASE)),
    ('Firefox', re.compile(r'Firefox', re.IGNORECASE), None),
    ('Safari', re.compile(r'Safari', re.IGNORECASE), re.compile(r'Chrome', re.IGNORECASE)),
]

_OPERATING_SYSTEMS: list[tuple[str, re.Pattern[str], re.Pattern[str] | None]] = [
    ('Windows 10/11', re.compile(r'Windows NT 10', re.IGNORECASE), None),
    ('Windows', re.compile(r'Windows', re.IGNORECASE), None),
    ('iOS', re.compile(r'iPhone|iPad|iPod', re.IGNORECASE), None),
    ('macOS', re.compile(r'Mac OS X', re.IGNORECASE), None),
    ('Linux', re.compile(r'Linux', re.IGNORECASE), re.compile(r'Android', re.IGNORECASE)),
    ('Android', re.compile(r'Android', re.IGNORECASE), None),
]


@dataclass(frozen=True, slots=True)
class UserAgentInfo:
    device: str
    browser: str
    os: str


def _first_match(
    ua: str,
    rules: list[tuple[str, re.Pattern[str], re.Pattern[str] | None]],
) -> str:
    for label, include, exclude in rules:
        if include.search(ua) and not (exclude and exclude.search(ua)):
            return label
    return UNKNOWN


def parse_user_agent(ua: str | None) -> UserAgentInfo:
    """Classify a UA string into device type, browser and OS."""
    if not ua:
        return UserAgentInfo(device='desktop', browser=UNKNOWN, os=UNKNOWN)

    if _TABLET.search(ua):
        device = 'tablet'
    elif _MOBILE.search(ua):
        device = 'mobile'
    else:
        device = 'desktop'

    return UserAgentInfo(
        device=device,
        browser=_first_match(ua, _BROWSERS),
        os=_first_match(ua, _OPERATING_SYSTEMS),
    )
