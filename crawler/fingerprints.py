"""브라우저 핑거프린트 로테이션 세트 -- 컨텍스트마다 UA/뷰포트/로케일 랜덤 선택."""

import random
from dataclasses import dataclass


# sec-ch-ua-platform → navigator.platform
NAVIGATOR_PLATFORMS = {"Windows": "Win32", "macOS": "MacIntel", "Linux": "Linux x86_64"}


@dataclass(frozen=True)
class Fingerprint:
    user_agent: str
    viewport_width: int
    viewport_height: int
    locale: str
    timezone_id: str
    platform_hint: str  # sec-ch-ua-platform
    chrome_version: str | None = None

    @property
    def navigator_platform(self) -> str:
        return NAVIGATOR_PLATFORMS.get(self.platform_hint, "Win32")

    @property
    def accept_language(self) -> str:
        lang = self.locale.split("-")[0]
        return f"{self.locale},{lang};q=0.9"

    def context_options(self) -> dict:
        """Playwright new_context() 인자."""
        return {
            "user_agent": self.user_agent,
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
            "device_scale_factor": 1,
            "is_mobile": False,
            "has_touch": False,
            "locale": self.locale,
            "timezone_id": self.timezone_id,
            "java_script_enabled": True,
            "ignore_https_errors": True,
            "extra_http_headers": self.extra_headers(),
        }

    def extra_headers(self) -> dict[str, str]:
        headers = {
            "Accept-Language": self.accept_language,
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,image/apng,*/*;q=0.8"
            ),
        }
        # Safari/Firefox UA에는 client hint를 붙이지 않는다
        if self.chrome_version:
            headers["sec-ch-ua"] = (
                f'"Chromium";v="{self.chrome_version}", '
                f'"Google Chrome";v="{self.chrome_version}"'
            )
            headers["sec-ch-ua-mobile"] = "?0"
            headers["sec-ch-ua-platform"] = f'"{self.platform_hint}"'
        return headers


USER_AGENTS: list[tuple[str, str, str | None]] = [
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "Windows",
        "131",
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "macOS",
        "131",
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36 Edg/130.0.0.0",
        "Windows",
        "130",
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.6 Safari/605.1.15",
        "macOS",
        None,
    ),
]

VIEWPORTS: list[tuple[int, int]] = [
    (1920, 1080),
    (1680, 1050),
    (1536, 864),
    (1440, 900),
    (1366, 768),
]

# (locale, timezone)
LOCALES: list[tuple[str, str]] = [
    ("en-US", "America/New_York"),
    ("en-US", "America/Chicago"),
    ("en-US", "America/Los_Angeles"),
    ("en-GB", "Europe/London"),
]


def random_fingerprint(rng: random.Random | None = None) -> Fingerprint:
    """로테이션 세트에서 핑거프린트 하나를 무작위로 조합."""
    rng = rng or random
    ua, platform_hint, chrome_version = rng.choice(USER_AGENTS)
    width, height = rng.choice(VIEWPORTS)
    locale, tz = rng.choice(LOCALES)
    return Fingerprint(
        user_agent=ua,
        viewport_width=width,
        viewport_height=height,
        locale=locale,
        timezone_id=tz,
        platform_hint=platform_hint,
        chrome_version=chrome_version,
    )
