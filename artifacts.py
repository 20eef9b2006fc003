"""Per-test artifact directory: naming, retention policy and the failure bundle.

The failure screenshot is taken from the report hook right after the test body
fails. Fixture teardown (agent cleanup in particular) navigates away, so a
screenshot taken later would show the cleanup instead of the failing step.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

LOGGER = logging.getLogger("qa.artifacts")

SCREENSHOT_NAME = "screenshot.png"
PAGE_ERRORS_NAME = "console-errors.txt"


def artifact_dir_name(nodeid: str) -> str:
    """Filesystem-safe directory name for a pytest nodeid."""
    return re.sub(r"[^\w.-]+", "__", nodeid).strip("._") or "test"


def should_persist(mode: str, failed: bool) -> bool:
    """`on` keeps everything, `off` nothing, `on-failure` only failed tests."""
    return mode == "on" or (mode == "on-failure" and failed)


def remove_path(path: Path) -> None:
    try:
        if path.is_dir():
            shutil.rmtree(path, ignore_errors=True)
        else:
            path.unlink(missing_ok=True)
    except OSError:
        LOGGER.exception("artifact_cleanup_failed", extra={"path": str(path)})


def capture_page(page: Page, path: Path) -> str | None:
    """Full-page screenshot; a closed or crashed page is logged, not raised."""
    try:
        page.screenshot(path=str(path), full_page=True)
    except PlaywrightError:
        LOGGER.exception("screenshot_capture_failed", extra={"path": str(path)})
        return None
    return str(path)


def capture_at_failure(item, mode: str) -> str | None:
    """Screenshot the page of a test whose body just failed.

    Stores the path under `item._qa_artifacts["screenshot"]` so the fixture
    teardown keeps it instead of taking a later one.
    """

    page = getattr(item, "funcargs", {}).get("page")
    test_dir: Path | None = getattr(item, "_qa_artifact_dir", None)
    if page is None or test_dir is None or mode == "off":
        return None
    shot = capture_page(page, test_dir / SCREENSHOT_NAME)
    if shot is not None:
        item._qa_artifacts["screenshot"] = shot
        LOGGER.info("failure_screenshot", extra={"path": shot})
    return shot


def write_page_errors(path: Path, console_errors: list[str], page_errors: list[str]) -> str | None:
    lines = [f"[console] {msg}" for msg in console_errors]
    lines += [f"[pageerror] {msg}" for msg in page_errors]
    if not lines:
        return None
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)
