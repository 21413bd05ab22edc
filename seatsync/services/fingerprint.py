"""Per-request browser fingerprint rotation.

Every upstream call carries a user agent picked at random plus the client-hint
headers a real browser of that family/version/platform would send. Chromium
builds emit ``sec-ch-ua*``; Firefox and Safari emit none, so mixing them would
be a stronger signal than sending no hints at all.
"""

from __future__ import annotations

import random
from typing import Dict

ORIGIN = "https://chatgpt.com"
ACCOUNT_HEADER = "chatgpt-account-id"

# (major, full version) pairs for recent stable Chrome releases
_CHROME_RELEASES = [
    ("141", "141.0.7390.123"),
    ("140", "140.0.7339.208"),
    ("139", "139.0.7258.155"),
]

# platform name -> (UA os token, sec-ch-ua-platform-version, sec-ch-ua-arch)
_CHROMIUM_PLATFORMS = {
    "Windows": ("Windows NT 10.0; Win64; x64", "19.0.0", "x86"),
    "macOS": ("Macintosh; Intel Mac OS X 10_15_7", "15.1.0", "arm"),
    "Linux": ("X11; Linux x86_64", "6.8.0", "x86"),
}

_FIREFOX_OS_TOKENS = [
    "Windows NT 10.0; Win64; x64",
    "Macintosh; Intel Mac OS X 10.15",
    "X11; Linux x86_64",
]

_ACCEPT_LANGUAGES = [
    "en-US,en;q=0.9",
    "en-US,en;q=0.9,fr-FR;q=0.8,fr;q=0.7",
    "en-GB,en;q=0.9,en-US;q=0.8",
    "en-US,en;q=0.8",
]


def _chromium_profile(rng: random.Random) -> Dict[str, str]:
    major, full = rng.choice(_CHROME_RELEASES)
    platform = rng.choice(sorted(_CHROMIUM_PLATFORMS))
    os_token, platform_version, arch = _CHROMIUM_PLATFORMS[platform]
    return {
        "user-agent": (
            f"Mozilla/5.0 ({os_token}) AppleWebKit/537.36 (KHTML, like Gecko) "
            f"Chrome/{major}.0.0.0 Safari/537.36"
        ),
        "sec-ch-ua": f'"Google Chrome";v="{major}", "Not?A_Brand";v="8", "Chromium";v="{major}"',
        "sec-ch-ua-full-version-list": (
            f'"Google Chrome";v="{full}", "Not?A_Brand";v="8.0.0.0", "Chromium";v="{full}"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": f'"{platform}"',
        "sec-ch-ua-platform-version": f'"{platform_version}"',
        "sec-ch-ua-arch": f'"{arch}"',
        "sec-ch-ua-bitness": '"64"',
    }


def _firefox_profile(rng: random.Random) -> Dict[str, str]:
    os_token = rng.choice(_FIREFOX_OS_TOKENS)
    version = rng.choice(["121.0", "128.0", "131.0"])
    return {"user-agent": f"Mozilla/5.0 ({os_token}; rv:{version}) Gecko/20100101 Firefox/{version}"}


def _safari_profile(rng: random.Random) -> Dict[str, str]:
    version = rng.choice(["17.6", "18.0.1", "18.1.1"])
    return {
        "user-agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
            f"(KHTML, like Gecko) Version/{version} Safari/605.1.15"
        )
    }


def random_profile(rng: random.Random | None = None) -> Dict[str, str]:
    """Return one internally consistent set of browser identity headers."""
    rng = rng or random
    family = rng.choices(["chromium", "firefox", "safari"], weights=[6, 2, 2])[0]
    if family == "firefox":
        profile = _firefox_profile(rng)
    elif family == "safari":
        profile = _safari_profile(rng)
    else:
        profile = _chromium_profile(rng)
    profile["accept-language"] = rng.choice(_ACCEPT_LANGUAGES)
    return profile


def build_headers(
    credential: str,
    account_id: str | None = None,
    *,
    rng: random.Random | None = None,
) -> Dict[str, str]:
    """Headers for one upstream call: auth, account scope and a fresh fingerprint."""
    headers = {
        "accept": "*/*",
        "authorization": f"Bearer {credential}",
        "origin": ORIGIN,
        "referer": f"{ORIGIN}/admin/members",
        "sec-fetch-dest": "empty",
        "sec-fetch-mode": "cors",
        "sec-fetch-site": "same-origin",
    }
    if account_id:
        headers[ACCOUNT_HEADER] = account_id
    headers.update(random_profile(rng))
    return headers
