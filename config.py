"""Centralized runtime settings for the Agents UI suite.

Values are resolved from CLI options, environment variables and defaults (in
that order of precedence) into one immutable Settings object that fixtures,
hooks and page-object factories share for the whole pytest session.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from timeouts import TIMEOUTS, TimeoutPolicy

if TYPE_CHECKING:
    from pytest import Config

DEFAULT_BASE_URL = "https://next.elitea.ai"
DEFAULT_AGENTS_PATH = "/alita_ui/agents/all"
DEFAULT_BROWSER = "chromium"
DEFAULT_VIEWPORT = "1280x720"
DEFAULT_ARTIFACTS_DIR = "test-results"
DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000
DEFAULT_TRACE_MODE = "on-failure"
DEFAULT_VIDEO_MODE = "on-failure"
DEFAULT_SCREENSHOT_MODE = "on-failure"
DEFAULT_LOCALE = "en-US"
DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_EDIT_TARGET_AGENT = "kpi_aqa_agent"
DEFAULT_FILTER_TAG = "Feature"
MODE_CHOICES = {"on", "off", "on-failure"}
BROWSER_CHOICES = {"chromium", "firefox", "webkit"}
LOG_LEVEL_CHOICES = {"DEBUG", "INFO", "WARNING", "ERROR"}
CREDENTIAL_ENV_VARS = ("AGENTS_USER_EMAIL", "AGENTS_USER_PASSWORD")


@dataclass(frozen=True)
class Settings:
    """Resolved suite settings shared by fixtures and reporting hooks."""

    base_url: str
    agents_path: str
    browser_name: str
    browser_channel: str | None
    headless: bool
    slowmo_ms: int
    viewport_width: int
    viewport_height: int
    artifacts_dir: Path
    timeout_ms: int
    navigation_timeout_ms: int
    timeout_scale: float
    trace: str
    video: str
    screenshot: str
    locale: str
    timezone_id: str
    ignore_https_errors: bool
    retries: int
    user_email: str | None
    user_password: str | None
    edit_target_agent: str
    filter_tag: str
    log_level: str

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @property
    def headed(self) -> bool:
        return not self.headless

    @property
    def agents_url(self) -> str:
        return f"{self.base_url}{self.agents_path}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.user_email and self.user_password)

    @property
    def timeouts(self) -> TimeoutPolicy:
        if self.timeout_scale == 1.0:
            return TIMEOUTS
        return TIMEOUTS.scaled(self.timeout_scale)


def _get_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _parse_bool(value: str, *, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def _parse_int(value: str, *, name: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer for {name}: {value!r}") from exc
    if parsed < 0:
        raise ValueError(f"{name} must be >= 0, got {parsed}")
    return parsed


def _parse_scale(value: str, *, name: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid number for {name}: {value!r}") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be > 0, got {parsed}")
    return parsed


def parse_viewport(value: str) -> tuple[int, int]:
    """Parse a WIDTHxHEIGHT viewport string into integer dimensions."""

    normalized = value.lower().strip()
    width_str, sep, height_str = normalized.partition("x")
    if not sep:
        raise ValueError(f"Viewport must be WIDTHxHEIGHT, got {value!r}")
    width = _parse_int(width_str, name="viewport width")
    height = _parse_int(height_str, name="viewport height")
    if width == 0 or height == 0:
        raise ValueError(f"Viewport dimensions must be > 0, got {value!r}")
    return width, height


def normalize_agents_path(value: str) -> str:
    path = "/" + value.strip().strip("/")
    return path if path != "/" else ""


def _pick(cli_value, env_value, default_value):
    if cli_value is not None:
        return cli_value
    if env_value is not None:
        return env_value
    return default_value


def _pick_int(cli_value, env_value, default_value: int, *, name: str) -> int:
    raw = _pick(cli_value, env_value, default_value)
    return raw if isinstance(raw, int) else _parse_int(str(raw), name=name)


def _build_settings_from_sources(*, cli: dict[str, object] | None) -> Settings:
    """Merge CLI/env/defaults with precedence CLI > env > defaults."""

    cli = cli or {}

    base_url = str(_pick(cli.get("base_url"), _get_env("BASE_URL"), DEFAULT_BASE_URL)).rstrip("/")
    agents_path = normalize_agents_path(
        str(_pick(cli.get("agents_path"), _get_env("AGENTS_PATH"), DEFAULT_AGENTS_PATH))
    )
    browser_name = (
        str(_pick(cli.get("browser"), _get_env("BROWSER"), DEFAULT_BROWSER)).strip().lower()
    )
    if browser_name not in BROWSER_CHOICES:
        raise ValueError(
            f"Unsupported browser {browser_name!r}; expected one of {sorted(BROWSER_CHOICES)}"
        )

    headless_cli = cli.get("headless")
    headless_env = _get_env("HEADLESS")
    if isinstance(headless_cli, bool):
        headless = headless_cli
    elif headless_env is not None:
        headless = _parse_bool(headless_env, name="HEADLESS")
    else:
        headless = True

    slowmo_ms = _pick_int(cli.get("slowmo_ms"), _get_env("SLOWMO_MS"), 0, name="SLOWMO_MS")

    viewport_raw = str(_pick(cli.get("viewport"), _get_env("VIEWPORT"), DEFAULT_VIEWPORT))
    viewport_width, viewport_height = parse_viewport(viewport_raw)

    artifacts_raw = str(
        _pick(cli.get("artifacts_dir"), _get_env("ARTIFACTS_DIR"), DEFAULT_ARTIFACTS_DIR)
    )
    artifacts_dir = Path(artifacts_raw)

    timeout_ms = _pick_int(
        cli.get("timeout_ms"), _get_env("TIMEOUT_MS"), TIMEOUTS.ACTION, name="TIMEOUT_MS"
    )
    navigation_timeout_ms = _pick_int(
        None,
        _get_env("NAVIGATION_TIMEOUT_MS"),
        DEFAULT_NAVIGATION_TIMEOUT_MS,
        name="NAVIGATION_TIMEOUT_MS",
    )

    scale_raw = _pick(cli.get("timeout_scale"), _get_env("TIMEOUT_SCALE"), 1.0)
    timeout_scale = (
        float(scale_raw)
        if isinstance(scale_raw, (int, float))
        else _parse_scale(str(scale_raw), name="TIMEOUT_SCALE")
    )
    if timeout_scale <= 0:
        raise ValueError(f"TIMEOUT_SCALE must be > 0, got {timeout_scale}")

    trace = str(_pick(cli.get("trace"), _get_env("TRACE"), DEFAULT_TRACE_MODE)).lower()
    video = str(_pick(cli.get("video"), _get_env("VIDEO"), DEFAULT_VIDEO_MODE)).lower()
    screenshot = str(
        _pick(cli.get("screenshot"), _get_env("SCREENSHOT"), DEFAULT_SCREENSHOT_MODE)
    ).lower()
    for mode_name, mode_value in (("trace", trace), ("video", video), ("screenshot", screenshot)):
        if mode_value not in MODE_CHOICES:
            raise ValueError(
                f"Invalid {mode_name} mode {mode_value!r}; expected one of {sorted(MODE_CHOICES)}"
            )

    locale = str(_pick(cli.get("locale"), _get_env("LOCALE"), DEFAULT_LOCALE))
    timezone_id = str(_pick(cli.get("timezone_id"), _get_env("TIMEZONE_ID"), DEFAULT_TIMEZONE))

    https_env = _get_env("IGNORE_HTTPS_ERRORS")
    ignore_https_errors = (
        True if https_env is None else _parse_bool(https_env, name="IGNORE_HTTPS_ERRORS")
    )

    # CI gets one extra rerun; flaky UI timing is more common on shared runners.
    default_retries = 2 if _get_env("CI") else 1
    retries = _pick_int(
        cli.get("retries"), _get_env("E2E_RETRIES"), default_retries, name="E2E_RETRIES"
    )

    log_level = str(_get_env("LOG_LEVEL") or "INFO").upper()
    if log_level not in LOG_LEVEL_CHOICES:
        raise ValueError(
            f"Invalid LOG_LEVEL {log_level!r}; expected one of {sorted(LOG_LEVEL_CHOICES)}"
        )

    return Settings(
        base_url=base_url,
        agents_path=agents_path,
        browser_name=browser_name,
        browser_channel=_get_env("BROWSER_CHANNEL"),
        headless=headless,
        slowmo_ms=slowmo_ms,
        viewport_width=viewport_width,
        viewport_height=viewport_height,
        artifacts_dir=artifacts_dir,
        timeout_ms=timeout_ms,
        navigation_timeout_ms=navigation_timeout_ms,
        timeout_scale=timeout_scale,
        trace=trace,
        video=video,
        screenshot=screenshot,
        locale=locale,
        timezone_id=timezone_id,
        ignore_https_errors=ignore_https_errors,
        retries=retries,
        user_email=_get_env("AGENTS_USER_EMAIL"),
        user_password=_get_env("AGENTS_USER_PASSWORD"),
        edit_target_agent=_get_env("EDIT_TARGET_AGENT") or DEFAULT_EDIT_TARGET_AGENT,
        filter_tag=_get_env("FILTER_TAG") or DEFAULT_FILTER_TAG,
        log_level=log_level,
    )


def get_settings(pytest_config: Config | None = None) -> Settings:
    """Return the cached Settings for a pytest session, or an env/default-only copy."""

    if pytest_config is None:
        return _build_settings_from_sources(cli=None)

    # Cache on pytest config so hooks/fixtures share one consistent view of options.
    cached = getattr(pytest_config, "_qa_settings_cache", None)
    if cached is not None:
        return cached

    cli_values: dict[str, object] = {
        "base_url": pytest_config.getoption("base_url"),
        "agents_path": pytest_config.getoption("agents_path"),
        "browser": pytest_config.getoption("browser"),
        "headless": pytest_config.getoption("headless"),
        "slowmo_ms": pytest_config.getoption("slowmo_ms"),
        "viewport": pytest_config.getoption("viewport"),
        "artifacts_dir": pytest_config.getoption("artifacts_dir"),
        "trace": pytest_config.getoption("pw_trace"),
        "video": pytest_config.getoption("video"),
        "screenshot": pytest_config.getoption("screenshot"),
        "timeout_ms": pytest_config.getoption("timeout_ms"),
        "timeout_scale": pytest_config.getoption("timeout_scale"),
        "retries": pytest_config.getoption("e2e_retries"),
        "locale": pytest_config.getoption("locale"),
        "timezone_id": pytest_config.getoption("timezone_id"),
    }
    settings = _build_settings_from_sources(cli=cli_values)
    pytest_config._qa_settings_cache = settings  # type: ignore[attr-defined]
    return settings
