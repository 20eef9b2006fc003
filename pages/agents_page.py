"""Agents page object: list, detail/edit form, versions and deletion.

Selectors, candidate priorities and wait behavior live here so scenarios read
as intent-level steps. Optional controls (search, description, context, tabs,
notifications) degrade to logged warnings and boolean results; deletion and
version dialogs are mandatory and fail through `expect`.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page, expect
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from agent_factory import AgentData
from pages.actions import ActionOutcome, run_redirect_aware
from pages.base_page import BasePage
from pages.locators import CandidateSet, label, role, selector
from timeouts import TIMEOUTS, NetworkWait, TimeoutPolicy

LOGGER = logging.getLogger("qa.pages.agents")

LIST_SEGMENT = "/agents/all"
DETAIL_URL = re.compile(r"/agents/all/(\d+)(?:[/?#]|$)")
VERSION_URL = re.compile(r"/agents/all/(\d+)/(\d+)(?:[/?#]|$)")
NUMERIC_VALUE = re.compile(r"[0-9]+")
NO_RESULTS_TEXT = re.compile(r"no (agents|results)", re.IGNORECASE)

_DIALOG = role("dialog")


@dataclass(frozen=True)
class VersionReference:
    """Agent and version ids taken from a `/agents/all/{id}/{versionId}` URL; opaque."""

    agent_id: str
    version_id: str

    @classmethod
    def from_url(cls, url: str) -> VersionReference | None:
        match = VERSION_URL.search(url)
        if match is None:
            return None
        return cls(agent_id=match.group(1), version_id=match.group(2))


def is_detail_url(url: str) -> bool:
    return DETAIL_URL.search(url) is not None


def _quoted(value: str) -> str:
    # JSON string escaping matches what Playwright's text engines expect.
    return json.dumps(value)


class AgentsPage(BasePage):
    """Page object for agent management on the Agents list and detail views."""

    CREATE_AGENT_BUTTON = CandidateSet(
        "create agent button",
        (
            selector('button:has-text("+ Agent")'),
            selector('button:has-text("Create Agent")'),
            selector('button:has-text("Add Agent")'),
            selector('button:has-text("New Agent")'),
            selector('[aria-label*="Create"]'),
            selector('[aria-label*="Add"]'),
        ),
    )
    SEARCH_INPUT = CandidateSet(
        "search input",
        (
            selector('input[placeholder*="Search" i]'),
            selector('input[aria-label*="Search" i]'),
        ),
    )
    TAG_FILTER = CandidateSet(
        "tag filter",
        (
            selector('input[placeholder*="tag" i]'),
            selector('input[placeholder*="filter" i]'),
            selector('input[name*="tag"]'),
            selector('input[type="text"]'),
        ),
        pick="last",
    )
    CONFIGURATION_TAB = CandidateSet(
        "configuration tab",
        (
            role("tab", "Configuration"),
            selector("text=Configuration"),
            selector("text=Config"),
        ),
    )
    RUN_TAB = CandidateSet(
        "run tab",
        (
            role("tab", "Run"),
            selector("text=Run"),
        ),
    )
    SAVE_BUTTON = CandidateSet(
        "save button",
        (
            role("button", "Save", exact=True),
            selector('button:has-text("Save")'),
            selector('button:has-text("Update")'),
        ),
    )
    CANCEL_BUTTON = CandidateSet("cancel button", (selector('button:has-text("Cancel")'),))
    MENU_BUTTON = CandidateSet("agent menu button", (selector("#undefined-action"),))
    DELETE_MENU_ITEM = CandidateSet("delete menu item", (role("menuitem", "Delete"),))
    DELETE_CONFIRMATION_INPUT = CandidateSet(
        "delete confirmation input", (role("textbox", "Name").within(_DIALOG),)
    )
    DELETE_CONFIRM_BUTTON = CandidateSet(
        "delete confirm button", (role("button", "Delete").within(_DIALOG),)
    )
    DIALOG_CANCEL_BUTTON = CandidateSet(
        "dialog cancel button", (role("button", "Cancel").within(_DIALOG),)
    )
    SAVE_AS_VERSION_BUTTON = CandidateSet(
        "save as version button", (role("button", "Save As Version"),)
    )
    VERSION_NAME_INPUT = CandidateSet(
        "version name input", (role("textbox", "Name").within(_DIALOG),)
    )
    VERSION_SAVE_BUTTON = CandidateSet(
        "version save button", (role("button", "Save").within(_DIALOG),)
    )
    NAME_FIELD = CandidateSet(
        "name field",
        (
            selector('input[name="name"]'),
            selector('input[placeholder*="Name" i]'),
            selector('textarea[name="name"]'),
        ),
    )
    DESCRIPTION_FIELD = CandidateSet(
        "description field",
        (
            selector('textarea[name="description"]'),
            selector('input[name="description"]'),
            selector('textarea[placeholder*="escription" i]'),
            selector('textarea, input[type="text"]').nth(1),
        ),
    )
    CONTEXT_FIELD = CandidateSet(
        "context field",
        (
            label("Guidelines for the AI agent"),
            label("Context"),
            selector('textarea[name="context"]'),
            selector('textarea[name="guidelines"]'),
            selector('textarea[placeholder*="ontext" i]'),
            selector('textarea[placeholder*="uideline" i]'),
            selector("textarea").nth(2),
        ),
    )

    SUCCESS_INDICATORS = (
        "text=updated successfully",
        "text=successfully updated",
        "text=Agent has been updated",
        "text=Changes saved",
        "text=saved successfully",
        "text=created successfully",
        ".toast",
        ".notification",
        '[role="alert"]',
    )
    DELETE_INDICATORS = (
        "text=deleted successfully",
        "text=successfully deleted",
        "text=Agent has been deleted",
        "text=removed successfully",
        "text=successfully removed",
        ".toast",
        ".notification",
        '[role="alert"]',
    )
    VERSION_INDICATORS = (
        "text=Saved new version successfully",
        "text=Version saved",
        "text=New version created",
        '[role="alert"]:has-text("version")',
        '.notification:has-text("version")',
    )
    VALIDATION_INDICATORS = (
        "text=required",
        "text=Required",
        "text=mandatory",
        "text=cannot be empty",
        '[role="alert"]',
        ".error",
        '[aria-invalid="true"]',
    )
    ROWS = '[role="row"]'

    def __init__(
        self,
        page: Page,
        base_url: str,
        agents_path: str = "/alita_ui/agents/all",
        timeouts: TimeoutPolicy = TIMEOUTS,
        screenshots_dir: Path | None = None,
    ) -> None:
        super().__init__(
            page=page, base_url=base_url, timeouts=timeouts, screenshots_dir=screenshots_dir
        )
        self.agents_url = f"{self.base_url}{agents_path}"

    # Navigation

    def open(self) -> None:
        self.goto(self.agents_url)

    def navigate_to_agents_list(self) -> None:
        """Go to the list view once pending saves/redirects have settled."""

        self.page.wait_for_timeout(self.timeouts.LONG)
        self._settle()
        try:
            self.goto(self.agents_url)
        except PlaywrightError as exc:
            # A redirect still in flight can abort our navigation after landing on the list.
            if LIST_SEGMENT in self.url and not is_detail_url(self.url):
                LOGGER.warning("list_navigation_interrupted", extra={"error": str(exc)})
                return
            raise
        self._settle()
        LOGGER.info("agents_list_opened", extra={"url": self.url})

    def click_create_agent(self) -> None:
        button = self.CREATE_AGENT_BUTTON.locator(self.page).first
        expect(button).to_be_visible(timeout=self.timeouts.PAGE_LOAD)
        button.click()
        self.page.wait_for_timeout(self.timeouts.LONG)
        LOGGER.info("create_agent_form_opened")

    def search_agent(self, agent_name: str) -> bool:
        """Submit a name search; a missing search box is logged and skipped."""

        field = self.resolve(self.SEARCH_INPUT)
        if field is None:
            LOGGER.warning("search_input_not_found", extra={"agent_name": agent_name})
            return False
        field.fill(agent_name)
        field.press("Enter")
        self.page.wait_for_timeout(self.timeouts.MEDIUM)
        LOGGER.info("agent_search_submitted", extra={"agent_name": agent_name})
        return True

    def clear_search(self) -> bool:
        field = self.resolve(self.SEARCH_INPUT)
        if field is None:
            return False
        field.clear()
        self.page.wait_for_timeout(self.timeouts.MEDIUM)
        return True

    def open_agent(self, agent_name: str) -> ActionOutcome:
        """Click the agent by its visible name; a missing URL change is not an error.

        Some layouts open the agent in place, so only a failed click is fatal.
        """

        link = self.page.locator(f"text={_quoted(agent_name)}").first
        outcome = run_redirect_aware(
            self.page, link.click, action="open_agent", timeouts=self.timeouts
        ).raise_for_failure()
        self._settle()
        LOGGER.info("agent_opened", extra={"agent_name": agent_name, "url": self.url})
        return outcome

    def go_to_configuration_tab(self) -> bool:
        return self._switch_tab(self.CONFIGURATION_TAB, "Configuration")

    def go_to_run_tab(self) -> bool:
        return self._switch_tab(self.RUN_TAB, "Run")

    def _switch_tab(self, candidates: CandidateSet, tab_text: str) -> bool:
        tab = self.resolve(candidates)
        if tab is None:
            tab = self.page.get_by_text(tab_text, exact=True).first
        clicked = self.safe_click(tab, f"{tab_text} tab")
        self.page.wait_for_timeout(self.timeouts.LONG)
        return clicked

    # Form fields

    def fill_name(self, name: str) -> None:
        field = self.resolve(self.NAME_FIELD) or self.NAME_FIELD.locator(self.page).first
        expect(field).to_be_visible(timeout=self.timeouts.PAGE_LOAD)
        field.fill(name)
        LOGGER.info("name_filled", extra={"agent_name": name})

    def fill_description(self, description: str) -> bool:
        field = self.resolve(self.DESCRIPTION_FIELD)
        if field is None:
            LOGGER.warning("description_field_not_found")
            return False
        field.fill(description)
        LOGGER.info("description_filled")
        return True

    def fill_context(self, context: str) -> bool:
        """Replace the context/guidelines text.

        The field is cleared first: on some layouts the widget appends to the
        existing text instead of overwriting it.
        """

        field = self._context_field()
        if field is None:
            LOGGER.warning("context_field_not_found")
            return False
        field.clear()
        field.fill(context)
        LOGGER.info("context_filled", extra={"length": len(context)})
        return True

    def get_context_value(self) -> str:
        field = self._context_field()
        if field is None:
            return ""
        return field.input_value()

    def _context_field(self) -> Locator | None:
        return self.resolve(self.CONTEXT_FIELD.with_visibility(self.timeouts.ELEMENT_VISIBLE))

    # Save

    def _save_button(self) -> Locator:
        return self.resolve(self.SAVE_BUTTON) or self.SAVE_BUTTON.locator(self.page).first

    def click_save(self) -> None:
        self._save_button().click()
        LOGGER.info("save_clicked")

    def save(self) -> ActionOutcome:
        """Click Save and classify the result under a possible redirect."""

        button = self._save_button()
        outcome = run_redirect_aware(self.page, button.click, action="save", timeouts=self.timeouts)
        return self.record(outcome)

    def save_with_redirect(self) -> bool:
        return bool(self.save())

    @property
    def last_outcome(self) -> ActionOutcome | None:
        return self.outcomes.last

    def is_save_button_disabled(self) -> bool:
        return self._save_button().is_disabled()

    def cancel_edit(self) -> bool:
        return self.safe_click(self.CANCEL_BUTTON.locator(self.page).first, "cancel edit")

    # Notifications

    def _probe(self, indicators: tuple[str, ...], event: str, timeout: int) -> bool:
        """Return True on the first indicator that is present and becomes visible."""

        for indicator in indicators:
            locator = self.page.locator(indicator)
            try:
                if locator.count() == 0:
                    continue
                first = locator.first
                first.wait_for(state="visible", timeout=timeout)
                message = first.text_content(timeout=timeout) or ""
            except PlaywrightError:
                continue
            LOGGER.info(event, extra={"indicator": indicator, "text": message.strip()})
            return True
        LOGGER.warning(f"{event}_not_found")
        return False

    def check_success_notification(self, timeout: int | None = None) -> bool:
        return self._probe(
            self.SUCCESS_INDICATORS,
            "success_notification",
            self.timeouts.MEDIUM if timeout is None else timeout,
        )

    def check_delete_notification(self, timeout: int | None = None) -> bool:
        return self._probe(
            self.DELETE_INDICATORS,
            "delete_notification",
            self.timeouts.MEDIUM if timeout is None else timeout,
        )

    def check_version_save_notification(self) -> bool:
        self.page.wait_for_timeout(self.timeouts.SHORT)
        return self._probe(self.VERSION_INDICATORS, "version_notification", self.timeouts.MEDIUM)

    def check_validation_error(self) -> bool:
        return self._probe(self.VALIDATION_INDICATORS, "validation_error", self.timeouts.SHORT)

    # List presence

    def _presence_selectors(self, agent_name: str) -> tuple[str, ...]:
        quoted = _quoted(agent_name)
        return (
            f"text={quoted}",
            f"a:has-text({quoted})",
            f"{self.ROWS}:has-text({quoted})",
            f'[data-testid*="agent"]:has-text({quoted})',
        )

    def _matched_selector(self, agent_name: str) -> str | None:
        for candidate in self._presence_selectors(agent_name):
            if self.page.locator(candidate).count() > 0:
                return candidate
        return None

    def verify_agent_in_list(self, agent_name: str) -> bool:
        """Selector match first, then a rendered-text substring fallback.

        The fallback catches names rendered inside elements the selectors miss.
        It reads visible text only, so the search box value does not count, and
        it is skipped while the empty-result message (which echoes the query) shows.
        """

        matched = self._matched_selector(agent_name)
        if matched is not None:
            LOGGER.info("agent_found", extra={"agent_name": agent_name, "selector": matched})
            return True
        if self.has_no_results_message():
            LOGGER.warning("agent_not_found", extra={"agent_name": agent_name, "no_results": True})
            return False
        if agent_name in self.page.locator("body").inner_text():
            LOGGER.info("agent_found_in_text", extra={"agent_name": agent_name})
            return True
        LOGGER.warning("agent_not_found", extra={"agent_name": agent_name})
        return False

    def verify_agent_not_in_list(self, agent_name: str) -> bool:
        self.page.wait_for_timeout(self.timeouts.LONG)
        matched = self._matched_selector(agent_name)
        if matched is not None:
            LOGGER.warning(
                "agent_still_listed", extra={"agent_name": agent_name, "selector": matched}
            )
            return False
        LOGGER.info("agent_absent", extra={"agent_name": agent_name})
        return True

    def is_agent_in_list(self, agent_name: str) -> bool:
        self.page.wait_for_timeout(self.timeouts.MEDIUM)
        return self._matched_selector(agent_name) is not None

    # Tags and rows

    def filter_by_tag(self, tag: str) -> Locator | None:
        """Apply a tag filter; returns the filter input, or None if none is visible."""

        field = self.resolve(self.TAG_FILTER.with_visibility(self.timeouts.SHORT, skip_hidden=True))
        if field is None:
            LOGGER.warning("tag_filter_not_found", extra={"tag": tag})
            return None
        field.click()
        field.fill(tag)
        field.press("Enter")
        self.page.wait_for_timeout(self.timeouts.MEDIUM)
        try:
            self.page.wait_for_load_state(NetworkWait.IDLE, timeout=self.timeouts.NAVIGATION)
        except PlaywrightError as exc:
            LOGGER.debug("network_idle_not_reached", extra={"error": str(exc)})
        LOGGER.info("tag_filter_applied", extra={"tag": tag})
        return field

    def row_count(self) -> int:
        return self.page.locator(self.ROWS).count()

    def has_no_results_message(self) -> bool:
        return self.page.get_by_text(NO_RESULTS_TEXT).count() > 0

    def tag_occurrences(self, tag: str) -> int:
        return self.page.locator(f"text={_quoted(tag)}").count()

    def expand_run_context(self) -> bool:
        """Click the Run tab's "Context: Show" toggle when it is rendered."""

        toggle = self.page.locator("text=Context").locator("..").locator("text=Show")
        if not self.exists(toggle):
            return False
        clicked = self.safe_click(toggle.first, "run tab context toggle")
        self.page.wait_for_timeout(self.timeouts.MEDIUM)
        return clicked

    # Composite flows

    def create_agent(self, agent: AgentData) -> ActionOutcome:
        self.click_create_agent()
        self.capture_screenshot("agent-form-opened.png")

        self.fill_name(agent.name)
        if agent.description:
            self.fill_description(agent.description)
        if agent.context:
            self.fill_context(agent.context)
        self.capture_screenshot("agent-form-filled.png")

        outcome = self.save()
        LOGGER.info(
            "agent_created",
            extra={"agent_name": agent.name, "outcome": outcome.status.value, "url": self.url},
        )
        return outcome

    def edit_agent_context(self, agent_name: str, new_context: str) -> ActionOutcome:
        self.search_agent(agent_name)
        self.open_agent(agent_name)
        self.capture_screenshot("agent-opened.png")

        self.go_to_configuration_tab()
        self.capture_screenshot("config-tab.png")

        self.fill_context(new_context)
        self.capture_screenshot("context-modified.png")
        return self.save()

    def open_delete_dialog(self, agent_name: str) -> None:
        """Open the agent (unless already on its detail view) and its delete dialog."""

        if not is_detail_url(self.url):
            self.search_agent(agent_name)
            self.open_agent(agent_name)
        self.page.wait_for_timeout(self.timeouts.LONG)
        self.capture_screenshot("agent-detail-before-delete.png")

        menu = self.MENU_BUTTON.locator(self.page).first
        expect(menu).to_be_visible(timeout=self.timeouts.PAGE_LOAD)
        menu.click()
        self.page.wait_for_timeout(self.timeouts.MEDIUM)

        item = self.DELETE_MENU_ITEM.locator(self.page).first
        expect(item).to_be_visible(timeout=self.timeouts.ELEMENT_VISIBLE)
        item.click()
        self.page.wait_for_timeout(self.timeouts.MEDIUM)
        self.capture_screenshot("delete-confirmation-dialog.png")

    def delete_agent(self, agent_name: str) -> ActionOutcome:
        """Delete through the type-to-confirm dialog; every step is mandatory."""

        LOGGER.info("agent_delete_started", extra={"agent_name": agent_name})
        self.open_delete_dialog(agent_name)

        confirmation = self.DELETE_CONFIRMATION_INPUT.locator(self.page).first
        expect(confirmation).to_be_visible(timeout=self.timeouts.ELEMENT_VISIBLE)
        confirmation.fill(agent_name)
        self.page.wait_for_timeout(self.timeouts.SHORT)

        # The confirm button stays disabled until the typed name matches exactly.
        confirm = self.DELETE_CONFIRM_BUTTON.locator(self.page).first
        expect(confirm).to_be_enabled(timeout=self.timeouts.ELEMENT_ENABLED)
        outcome = run_redirect_aware(
            self.page,
            confirm.click,
            action="delete",
            timeouts=self.timeouts,
            wait_timeout_ms=self.timeouts.LONG,
        )
        self.record(outcome).raise_for_failure()
        LOGGER.info(
            "agent_deleted", extra={"agent_name": agent_name, "outcome": outcome.status.value}
        )
        return outcome

    def cancel_deletion(self) -> None:
        self.DIALOG_CANCEL_BUTTON.locator(self.page).first.click()
        LOGGER.info("agent_delete_cancelled")
        self.page.wait_for_timeout(self.timeouts.MEDIUM)

    # Versions

    def save_as_new_version(self, version_name: str) -> ActionOutcome:
        """Save the open agent as a named version.

        Success is the URL moving to a different `/agents/all/{id}/{versionId}`.
        """

        LOGGER.info("version_save_started", extra={"version_name": version_name})
        button = self.SAVE_AS_VERSION_BUTTON.locator(self.page).first
        expect(button).to_be_visible(timeout=self.timeouts.ELEMENT_VISIBLE)
        button.click()
        self.page.wait_for_timeout(self.timeouts.SHORT)

        name_input = self.VERSION_NAME_INPUT.locator(self.page).first
        expect(name_input).to_be_visible(timeout=self.timeouts.ELEMENT_VISIBLE)
        name_input.fill(version_name)

        save = self.VERSION_SAVE_BUTTON.locator(self.page).first
        expect(save).to_be_enabled(timeout=self.timeouts.ELEMENT_VISIBLE)
        start_url = self.url
        outcome = run_redirect_aware(
            self.page,
            save.click,
            action="save_as_version",
            timeouts=self.timeouts,
            url_matcher=lambda url: url != start_url and VERSION_URL.search(url) is not None,
            wait_timeout_ms=self.timeouts.API_RESPONSE,
        )
        self.record(outcome)
        if outcome.ok:
            try:
                self.page.wait_for_timeout(self.timeouts.LONG)
            except PlaywrightError as exc:
                LOGGER.debug("version_settle_skipped", extra={"error": str(exc)})
        LOGGER.info(
            "version_saved",
            extra={"version_name": version_name, "outcome": outcome.status.value, "url": self.url},
        )
        return outcome

    def current_version_reference(self) -> VersionReference | None:
        return VersionReference.from_url(self.url)

    def get_current_version(self) -> str:
        """Best-effort version number read from the UI.

        There is no stable identifier for the version field, so this takes the
        first read-only input holding a purely numeric value, then any text
        input holding a positive integer. Returns "" when nothing qualifies.
        """

        self.page.wait_for_timeout(self.timeouts.SHORT)
        readonly = self._first_numeric(
            self.page.locator('input[type="text"][readonly], input[readonly]')
        )
        if readonly is not None:
            LOGGER.info("version_read", extra={"version": readonly, "source": "readonly"})
            return readonly

        fallback = self._first_numeric(self.page.locator('input[type="text"]'), positive=True)
        if fallback is not None:
            LOGGER.info("version_read", extra={"version": fallback, "source": "text_input"})
            return fallback

        LOGGER.warning("version_not_found")
        return ""

    @staticmethod
    def _first_numeric(inputs: Locator, positive: bool = False) -> str | None:
        for index in range(inputs.count()):
            try:
                value = (inputs.nth(index).input_value() or "").strip()
            except PlaywrightTimeoutError:
                continue
            if NUMERIC_VALUE.fullmatch(value) and (not positive or int(value) > 0):
                return value
        return None

    def _settle(self) -> None:
        try:
            self.page.wait_for_load_state(NetworkWait.DOM_LOADED, timeout=self.timeouts.NAVIGATION)
        except PlaywrightError as exc:
            LOGGER.debug("dom_content_not_loaded", extra={"error": str(exc)})
