import random

from seatsync.services.fingerprint import ACCOUNT_HEADER, build_headers, random_profile


def test_chromium_hints_match_user_agent():
    rng = random.Random(7)
    seen_families = set()
    for _ in range(200):
        profile = random_profile(rng)
        ua = profile["user-agent"]
        if "Chrome/" in ua:
            seen_families.add("chrome")
            major = ua.split("Chrome/")[1].split(".")[0]
            assert f'v="{major}"' in profile["sec-ch-ua"]
            assert profile["sec-ch-ua-mobile"] == "?0"
            platform = profile["sec-ch-ua-platform"].strip('"')
            token = {"Windows": "Windows NT", "macOS": "Macintosh", "Linux": "Linux"}[platform]
            assert token in ua
        else:
            seen_families.add("firefox" if "Firefox/" in ua else "safari")
            assert not any(key.startswith("sec-ch-ua") for key in profile)
    assert seen_families == {"chrome", "firefox", "safari"}


def test_build_headers_scopes_account():
    headers = build_headers("tok", "acct-9", rng=random.Random(1))
    assert headers["authorization"] == "Bearer tok"
    assert headers[ACCOUNT_HEADER] == "acct-9"
    assert headers["accept-language"]

    assert ACCOUNT_HEADER not in build_headers("tok", rng=random.Random(1))


def test_consecutive_calls_rotate_identity():
    rng = random.Random(3)
    agents = {build_headers("tok", rng=rng)["user-agent"] for _ in range(20)}
    assert len(agents) > 1
