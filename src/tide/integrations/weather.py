"""One-line weather report from wttr.in."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

WEATHER_URL = "https://wttr.in"
WEATHER_FORMAT = "%l: %c %t %w %h"
DEFAULT_TIMEOUT_SECONDS = 5.0


def fetch_weather(
    *,
    client: httpx.Client | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> str | None:
    """Return the current weather line, or None when unavailable."""

    owns_client = client is None
    http = client or httpx.Client(timeout=httpx.Timeout(timeout_seconds), follow_redirects=True)
    try:
        response = http.get(WEATHER_URL, params={"format": WEATHER_FORMAT})
    except httpx.HTTPError as exc:
        logger.debug("Weather fetch failed: %s", exc)
        return None
    finally:
        if owns_client:
            http.close()

    if not response.is_success:
        logger.debug("Weather fetch returned HTTP %s", response.status_code)
        return None
    text = response.text.strip()
    if not text or "Unknown" in text:
        return None
    return text


def render_weather_lines(weather: str | None) -> list[str]:
    if weather is None:
        return []
    return ["", "🌤️  Weather", "─" * 60, f"  {weather}"]
