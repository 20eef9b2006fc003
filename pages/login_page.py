"""Login form page object used by the authentication fixtures."""

from __future__ import annotations

import logging

from playwright.sync_api import Error as PlaywrightError

from pages.base_page import BasePage
from pages.locators import CandidateSet, selector
from timeouts import NetworkWait

LOGGER = logging.getLogger("qa.pages.login")


class LoginPage(BasePage):
    """Email/password sign-in in front of the Agents application."""

    EMAIL_INPUT = CandidateSet(
        "email input",
        (
            selector('input[name="email"]'),
            selector('input[type="email"]'),
            selector("input#username"),
            selector('input[name="username"]'),
        ),
    )
    PASSWORD_INPUT = CandidateSet(
        "password input",
        (
            selector('input[name="password"]'),
            selector('input[type="password"]'),
            selector("input#password"),
        ),
    )
    SIGN_IN_BUTTON = CandidateSet(
        "sign-in button",
        (
            selector('button:has-text("Sign in")'),
            selector('button:has-text("Log in")'),
            selector('button[type="submit"]'),
        ),
    )

    def open(self, url_or_path: str = "") -> None:
        self.goto(url_or_path)

    def login(self, email: str, password: str) -> None:
        """Sign in and wait for the post-login redirect to settle.

        Missing email or password inputs fail the caller; the post-submit
        navigation wait is best-effort because some identity providers
        redirect more than once.
        """

        LOGGER.info("login_started", extra={"user": email})
        email_input = self.EMAIL_INPUT.locator(self.page).first
        self.wait_for_visible(email_input, timeout=self.timeouts.PAGE_LOAD * 2)
        email_input.fill(email)

        password_input = self.PASSWORD_INPUT.locator(self.page).first
        self.wait_for_visible(password_input, timeout=self.timeouts.PAGE_LOAD)
        password_input.fill(password)

        start_url = self.url
        self.SIGN_IN_BUTTON.locator(self.page).first.click()
        try:
            self.page.wait_for_url(
                lambda url: url != start_url,
                wait_until=NetworkWait.IDLE,
                timeout=self.timeouts.PAGE_LOAD * 2,
            )
        except PlaywrightError as exc:
            LOGGER.warning("login_navigation_not_observed", extra={"error": str(exc)})

        self.wait_for_stable(self.timeouts.NAVIGATION)
        LOGGER.info("login_completed", extra={"user": email, "url": self.url})

    def is_login_page(self) -> bool:
        return self.exists(self.EMAIL_INPUT.locator(self.page)) and self.exists(
            self.PASSWORD_INPUT.locator(self.page)
        )
