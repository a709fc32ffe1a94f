"""Browser smoke test for the Twenty CRM.

Logs in with the service account and walks one Person/Company journey:
create, relate, search, open and delete. Run without arguments as a local
command; the exit status is the health signal:

    TWENTY_EMAIL=... TWENTY_PASSWORD=... python -m smoke_tests.twenty

The first failed expectation raises and aborts the run. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
import time

from playwright.async_api import Page

from healthchecks.common_check import _safe_url  # noqa: SLF001
from smoke_tests.session import browser_session
from smoke_tests.settings import TwentySettings


LOGGER = logging.getLogger("twenty-smoke")

START_LINE = "Running twenty login..."
DONE_LINE = "Test completed successfully!"

# Twenty renders these placeholders with two U+200C characters after the
# first letter; the locators must match them byte for byte.
FIRST_NAME_PLACEHOLDER = "F\u200c\u200cirst name"
LAST_NAME_PLACEHOLDER = "L\u200c\u200cast name"

PERSON_FIRST_NAME = "Play"
PERSON_LAST_NAME = "Wright"
PERSON_FULL_NAME = f"{PERSON_FIRST_NAME} {PERSON_LAST_NAME}"
COMPANY_NAME = "Playwright"

CONFIRM_BUTTON_TEST_ID = "confirmation-modal-confirm-button"

_TITLE_POLL_SECONDS = 0.25


async def expect_title(page: Page, pattern: str, *, timeout_ms: int) -> str:
    """Poll the page title until it matches `pattern` or the timeout expires."""
    regex = re.compile(pattern)
    deadline = time.monotonic() + max(0.0, timeout_ms / 1000.0)
    while True:
        title = await page.title()
        if regex.search(title or ""):
            return title
        if time.monotonic() >= deadline:
            raise AssertionError(f"title_mismatch: {title!r} does not match {pattern!r}")
        await asyncio.sleep(_TITLE_POLL_SECONDS)


async def login(page: Page, settings: TwentySettings) -> None:
    LOGGER.info("Opening %s", _safe_url(settings.target_url))
    await page.goto(settings.target_url, wait_until="domcontentloaded")
    await expect_title(page, settings.title_pattern, timeout_ms=settings.timeout_ms)

    # Skip the SSO buttons; the service account signs in with a password.
    await page.get_by_text("Continue with Email").click()

    # Email and password are two separate submit steps in Twenty's login form.
    await page.get_by_placeholder("Email").fill(settings.account_email)
    await page.locator('[type="submit"]').click()
    await page.get_by_placeholder("Password").fill(settings.account_password)
    await page.locator('[type="submit"]').click()

    # Signed in once the workspace navigation has rendered.
    await page.get_by_text("People").first.wait_for(state="visible")
    LOGGER.info("Authenticated")


async def item_with_relation(page: Page) -> None:
    await page.get_by_text("People").click()
    await page.get_by_text("New record").click()
    await page.get_by_placeholder(FIRST_NAME_PLACEHOLDER).fill(PERSON_FIRST_NAME)
    await page.get_by_placeholder(LAST_NAME_PLACEHOLDER).fill(PERSON_LAST_NAME)
    await page.get_by_text("Open").click()
    LOGGER.info("Person created name=%s", PERSON_FULL_NAME)

    await page.get_by_text("Companies").click()
    await page.get_by_text("New record").click()
    await page.get_by_placeholder("Name").fill(COMPANY_NAME)
    await page.get_by_text("Open").click()
    LOGGER.info("Company created name=%s", COMPANY_NAME)

    people_banner = page.get_by_role("banner").filter(has_text="People")
    await people_banner.first.wait_for(state="visible")
    await people_banner.locator("button").click()
    await page.get_by_placeholder("Search").fill(PERSON_FULL_NAME)
    # The record row is overlaid by other cells, so normal hit-testing misses it.
    await page.get_by_text(PERSON_FULL_NAME, exact=True).first.click(force=True)
    LOGGER.info("Person opened from search")

    await page.wait_for_selector('text="Delete"', state="visible")
    await page.get_by_text("Delete").dblclick(force=True)
    await page.wait_for_selector('text="Delete Record"', state="visible")
    await page.get_by_test_id(CONFIRM_BUTTON_TEST_ID).click()
    await page.wait_for_selector('text="Delete Record"', state="visible")
    LOGGER.info("Person deleted (double-click path)")

    await page.get_by_text("People").click()
    await page.get_by_text(PERSON_FULL_NAME).first.click(force=True)
    await page.get_by_text("Open").click()
    LOGGER.info("Person reopened from list")

    await page.wait_for_selector('text="Delete"', state="visible")
    await page.get_by_text("Delete").click(force=True)
    await page.wait_for_selector('text="Delete Record"', state="visible")
    await page.get_by_test_id(CONFIRM_BUTTON_TEST_ID).click()
    LOGGER.info("Person deleted (single-click path)")


async def run(settings: TwentySettings) -> None:
    print(START_LINE, flush=True)
    async with browser_session(settings) as page:
        await login(page, settings)
        await item_with_relation(page)
    print(DONE_LINE, flush=True)


def main() -> None:
    log_level = (os.getenv("TWENTY_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    settings = TwentySettings().validate()
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
