"""Pytest entrypoint for the Agents suite.

Settings are resolved once per session. Each test gets its own browser
context; page-object fixtures log in on demand and agents a scenario creates
are deleted after it. Hooks emit JSON start/end events, keep the failure
bundle (screenshot, trace, video, page errors) and export Prometheus metrics.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Generator

import pytest
from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from agent_factory import AgentTracker, KnownAgents
from artifacts import (
    PAGE_ERRORS_NAME,
    SCREENSHOT_NAME,
    artifact_dir_name,
    capture_at_failure,
    capture_page,
    remove_path,
    should_persist,
    write_page_errors,
)
from config import BROWSER_CHOICES, CREDENTIAL_ENV_VARS, MODE_CHOICES, Settings, get_settings
from metrics import SessionTally, merge_action_counts, write_metrics
from pages.agents_page import AgentsPage
from pages.base_page import BasePage
from pages.login_page import LoginPage
from qa_logging import bind_test, setup_logging, unbind_test
from timeouts import TimeoutPolicy

try:
    from pytest_metadata.plugin import metadata_key
except ImportError:  # pragma: no cover - optional plugin path
    metadata_key = None

LOGGER = logging.getLogger("qa")
_TALLY = SessionTally()
_session_start: float | None = None

_MODE = {"choices": sorted(MODE_CHOICES), "default": None}
_OPTIONS: tuple[tuple[tuple[str, ...], dict[str, object]], ...] = (
    (("--base-url",), {"dest": "base_url", "help": "Application base URL"}),
    (("--agents-path",), {"dest": "agents_path", "help": "Agents list path under the base URL"}),
    (("--browser",), {"dest": "browser", "choices": sorted(BROWSER_CHOICES), "help": "Engine"}),
    (("--headed",), {"dest": "headless", "action": "store_const", "const": False}),
    (("--headless",), {"dest": "headless", "action": "store_const", "const": True}),
    (("--slowmo-ms",), {"dest": "slowmo_ms", "type": int, "help": "Launch slow motion (ms)"}),
    (("--viewport",), {"dest": "viewport", "help": "WIDTHxHEIGHT, e.g. 1280x720"}),
    (("--artifacts-dir",), {"dest": "artifacts_dir", "help": "Per-test artifacts root"}),
    (("--pw-trace", "--playwright-trace"), {"dest": "pw_trace", **_MODE}),
    (("--video",), {"dest": "video", **_MODE}),
    (("--screenshot",), {"dest": "screenshot", **_MODE}),
    (("--timeout-ms",), {"dest": "timeout_ms", "type": int, "help": "Default action timeout"}),
    (("--timeout-scale",), {"dest": "timeout_scale", "type": float, "help": "Timeout multiplier"}),
    (("--e2e-retries",), {"dest": "e2e_retries", "type": int, "help": "Reruns per scenario"}),
    (("--locale",), {"dest": "locale", "help": "Context locale (default en-US)"}),
    (("--timezone-id",), {"dest": "timezone_id", "help": "Context timezone"}),
)


def pytest_addoption(parser: pytest.Parser) -> None:
    """CLI options; each one overrides the matching environment variable."""
    group = parser.getgroup("agents-ui")
    for flags, kwargs in _OPTIONS:
        group.addoption(*flags, **{"default": None, **kwargs})


def pytest_configure(config: pytest.Config) -> None:
    for marker in (
        "smoke: critical path agent scenarios",
        "regression: broader agent management coverage",
        "e2e: drives the live application through a browser",
        "unit: page-object and helper tests, no browser",
    ):
        config.addinivalue_line("markers", marker)
    if not config.pluginmanager.hasplugin("rerunfailures"):
        config.addinivalue_line("markers", "flaky(reruns): rerun policy (pytest-rerunfailures)")

    if metadata_key is None:
        return
    settings = get_settings(config)
    config.stash.setdefault(metadata_key, {}).update(
        {
            "agents_url": settings.agents_url,
            "browser": settings.browser_name,
            "headless": str(settings.headless),
            "timeout_scale": str(settings.timeout_scale),
            "commit_sha": os.getenv("GITHUB_SHA", "")[:12] or "local",
        }
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip browser scenarios without credentials; attach the rerun policy otherwise."""
    settings = get_settings(config)
    missing = [name for name in CREDENTIAL_ENV_VARS if not os.getenv(name, "").strip()]
    skip_marker = pytest.mark.skip(reason=f"credentials not configured: {', '.join(missing)}")
    for item in items:
        if item.get_closest_marker("e2e") is None:
            continue
        if not settings.has_credentials:
            item.add_marker(skip_marker)
        elif settings.retries > 0 and item.get_closest_marker("flaky") is None:
            item.add_marker(pytest.mark.flaky(reruns=settings.retries))


def pytest_sessionstart(session: pytest.Session) -> None:
    global _session_start
    _session_start = time.perf_counter()


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    metrics_path = os.getenv("METRICS_PATH")
    if not metrics_path or _session_start is None:
        return
    duration = time.perf_counter() - _session_start
    write_metrics(metrics_path, _TALLY.summary(session.testscollected or 0, duration))


@pytest.fixture(scope="session")
def settings(pytestconfig: pytest.Config) -> Settings:
    configured = get_settings(pytestconfig)
    configured.artifacts_dir.mkdir(parents=True, exist_ok=True)
    return configured


@pytest.fixture(scope="session", autouse=True)
def _init_logging(pytestconfig: pytest.Config) -> None:
    setup_logging(get_settings(pytestconfig).log_level)


@pytest.fixture(scope="session")
def timeouts(settings: Settings) -> TimeoutPolicy:
    return settings.timeouts


@pytest.fixture(scope="session")
def playwright_instance() -> Generator[Playwright, None, None]:
    with sync_playwright() as playwright:
        yield playwright


@pytest.fixture(scope="session")
def browser(settings: Settings, playwright_instance: Playwright) -> Generator[Browser, None, None]:
    """One browser per session; isolation comes from per-test contexts."""
    options: dict[str, object] = {"headless": settings.headless, "slow_mo": settings.slowmo_ms}
    if settings.browser_channel and settings.browser_name == "chromium":
        options["channel"] = settings.browser_channel
    browser = getattr(playwright_instance, settings.browser_name).launch(**options)
    yield browser
    browser.close()


def _open_context(browser: Browser, settings: Settings, test_dir: Path) -> BrowserContext:
    options: dict[str, object] = {
        "viewport": settings.viewport,
        "locale": settings.locale,
        "timezone_id": settings.timezone_id,
        "ignore_https_errors": settings.ignore_https_errors,
    }
    if settings.video != "off":
        options["record_video_dir"] = str(test_dir)
    context = browser.new_context(**options)
    context.set_default_timeout(settings.timeout_ms)
    context.set_default_navigation_timeout(settings.navigation_timeout_ms)
    if settings.trace != "off":
        context.tracing.start(screenshots=True, snapshots=True, sources=True)
    return context


def _close_context(
    node: pytest.Item, context: BrowserContext, page: Page, settings: Settings, failed: bool
) -> None:
    """Settle retention for trace, video, screenshots and page errors, then close."""
    test_dir: Path = node._qa_artifact_dir  # type: ignore[attr-defined]
    artifacts: dict[str, str] = node._qa_artifacts  # type: ignore[attr-defined]
    keep_screens = should_persist(settings.screenshot, failed)

    if keep_screens and "screenshot" not in artifacts:
        shot = capture_page(page, test_dir / SCREENSHOT_NAME)
        if shot is not None:
            artifacts["screenshot"] = shot
    steps_dir = test_dir / "steps"
    if steps_dir.is_dir():
        if keep_screens and any(steps_dir.iterdir()):
            artifacts["steps"] = str(steps_dir)
        else:
            remove_path(steps_dir)

    if settings.trace != "off":
        trace_path = test_dir / "trace.zip"
        keep_trace = should_persist(settings.trace, failed)
        try:
            context.tracing.stop(path=str(trace_path) if keep_trace else None)
            if keep_trace:
                artifacts["trace"] = str(trace_path)
        except PlaywrightError:
            LOGGER.exception("trace_capture_failed", extra={"test_nodeid": node.nodeid})

    if failed:
        errors = write_page_errors(
            test_dir / PAGE_ERRORS_NAME, node._qa_console_errors, node._qa_page_errors
        )
        if errors is not None:
            artifacts["console_errors"] = errors

    video = page.video
    context.close()
    if video is not None:
        video_path = Path(video.path())
        if should_persist(settings.video, failed):
            artifacts["video"] = str(video_path)
        else:
            remove_path(video_path)

    if not artifacts:
        remove_path(test_dir)


@pytest.fixture
def page(
    request: pytest.FixtureRequest, browser: Browser, settings: Settings
) -> Generator[Page, None, None]:
    """Fresh context and page per test; artifacts follow the retention modes."""
    node = request.node
    test_dir = settings.artifacts_dir / artifact_dir_name(node.nodeid)
    test_dir.mkdir(parents=True, exist_ok=True)
    # Shared with the report hooks through the pytest item.
    node._qa_artifact_dir = test_dir
    node._qa_artifacts = {}
    node._qa_console_errors = []
    node._qa_page_errors = []

    context = _open_context(browser, settings, test_dir)
    page = context.new_page()

    def on_console(msg) -> None:
        if msg.type == "error":
            node._qa_console_errors.append(msg.text)

    page.on("console", on_console)
    page.on("pageerror", lambda exc: node._qa_page_errors.append(str(exc)))

    yield page

    for page_object in getattr(node, "_qa_page_objects", []):
        merge_action_counts(_TALLY.actions, page_object.outcomes.counts())
    rep_call = getattr(node, "rep_call", None)
    _close_context(node, context, page, settings, failed=bool(rep_call and rep_call.failed))


def _register(request: pytest.FixtureRequest, page_object: BasePage) -> None:
    # The page fixture drains action outcomes from every registered page object.
    if not hasattr(request.node, "_qa_page_objects"):
        request.node._qa_page_objects = []
    request.node._qa_page_objects.append(page_object)


def _steps_dir(request: pytest.FixtureRequest, settings: Settings) -> Path | None:
    if settings.screenshot == "off":
        return None
    return request.node._qa_artifact_dir / "steps"


@pytest.fixture
def login_page(request: pytest.FixtureRequest, page: Page, settings: Settings) -> LoginPage:
    """Unauthenticated login page object; the caller opens and submits it."""
    login = LoginPage(
        page=page,
        base_url=settings.base_url,
        timeouts=settings.timeouts,
        screenshots_dir=_steps_dir(request, settings),
    )
    _register(request, login)
    return login


@pytest.fixture
def agents_page(request: pytest.FixtureRequest, page: Page, settings: Settings) -> AgentsPage:
    agents = AgentsPage(
        page=page,
        base_url=settings.base_url,
        agents_path=settings.agents_path,
        timeouts=settings.timeouts,
        screenshots_dir=_steps_dir(request, settings),
    )
    _register(request, agents)
    return agents


@pytest.fixture
def authenticated_agents_page(
    login_page: LoginPage, agents_page: AgentsPage, settings: Settings
) -> AgentsPage:
    """Log in once for this test's browser context and land on the agents list."""
    if not settings.has_credentials:
        pytest.skip(f"credentials not configured: {', '.join(CREDENTIAL_ENV_VARS)}")
    login_page.open(settings.agents_url)
    login_page.login(settings.user_email or "", settings.user_password or "")
    return agents_page


@pytest.fixture
def known_agents(settings: Settings) -> KnownAgents:
    return KnownAgents.from_settings(settings)


@pytest.fixture
def created_agents(
    authenticated_agents_page: AgentsPage,
) -> Generator[AgentTracker, None, None]:
    """Track agents a scenario creates; leftovers are deleted best-effort at teardown."""
    tracker = AgentTracker()
    yield tracker

    for agent_name in tracker.tracked():
        try:
            authenticated_agents_page.navigate_to_agents_list()
            authenticated_agents_page.search_agent(agent_name)
            if authenticated_agents_page.is_agent_in_list(agent_name):
                authenticated_agents_page.delete_agent(agent_name)
                LOGGER.info("agent_cleanup_deleted", extra={"agent_name": agent_name})
        except (PlaywrightError, AssertionError):
            LOGGER.exception("agent_cleanup_failed", extra={"agent_name": agent_name})
    tracker.clear()


def _event_fields(item: pytest.Item) -> dict[str, object]:
    settings = get_settings(item.config)
    return {
        "test_nodeid": item.nodeid,
        "browser": settings.browser_name,
        "worker": os.getenv("PYTEST_XDIST_WORKER", "master"),
        "artifact_dir": str(settings.artifacts_dir / artifact_dir_name(item.nodeid)),
        "retries": max(getattr(item, "execution_count", 1) - 1, 0),
    }


def _final_outcome(item: pytest.Item, teardown: pytest.TestReport) -> str:
    setup = getattr(item, "rep_setup", None)
    call = getattr(item, "rep_call", None)
    if setup is not None and setup.failed:
        return "error"
    if call is not None:
        return call.outcome
    if setup is not None and setup.skipped:
        return "skipped"
    return "error" if teardown.failed else teardown.outcome


def _attach_html_extras(item: pytest.Item, report: pytest.TestReport) -> None:
    pytest_html = item.config.pluginmanager.getplugin("html")
    if not pytest_html:
        return
    artifacts: dict[str, str] = getattr(item, "_qa_artifacts", {})
    extras = list(getattr(report, "extras", []))
    if "screenshot" in artifacts:
        extras.append(pytest_html.extras.image(artifacts["screenshot"]))
    if "steps" in artifacts:
        for step in sorted(Path(artifacts["steps"]).glob("*.png")):
            extras.append(pytest_html.extras.image(str(step), name=step.name))
    for key, label in (
        ("trace", "trace.zip"),
        ("video", "video.webm"),
        ("console_errors", PAGE_ERRORS_NAME),
    ):
        if key in artifacts:
            extras.append(pytest_html.extras.url(artifacts[key], name=label))
    report.extras = extras


def pytest_runtest_setup(item: pytest.Item) -> None:
    item._qa_test_started_at = time.perf_counter()  # type: ignore[attr-defined]
    bind_test(item.nodeid)
    LOGGER.info("test_start", extra={"event": "test_start", **_event_fields(item)})


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]):
    outcome = yield
    report = outcome.get_result()
    setattr(item, f"rep_{report.when}", report)

    if report.when == "call" and report.failed:
        # Before fixture teardown, which may navigate away from the failing state.
        capture_at_failure(item, get_settings(item.config).screenshot)
    if report.when != "teardown":
        return

    _attach_html_extras(item, report)
    started_at = getattr(item, "_qa_test_started_at", None)
    LOGGER.info(
        "test_end",
        extra={
            "event": "test_end",
            "outcome": _final_outcome(item, report),
            "duration_ms": int((time.perf_counter() - started_at) * 1000) if started_at else None,
            **_event_fields(item),
        },
    )


def pytest_runtest_logfinish(nodeid: str, location: tuple[str, int | None, str]) -> None:
    unbind_test()


def pytest_runtest_logreport(report: pytest.TestReport) -> None:
    _TALLY.record(report)


@pytest.hookimpl(optionalhook=True)
def pytest_html_report_title(report) -> None:
    report.title = "Agents UI Automation Report"
