from __future__ import annotations

import json
import logging
import os
import traceback
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from healthchecks.common_check import _safe_url, find_chromium_executable  # noqa: SLF001
from smoke_tests.settings import TwentySettings


LOGGER = logging.getLogger("twenty-smoke")


_CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-sync",
    "--metrics-recording-only",
    "--no-first-run",
    "--no-default-browser-check",
]


def _safe_str(x: Any, *, max_len: int = 2000) -> str:
    s = str(x or "")
    return s if len(s) <= max_len else s[:max_len]


def _write_text(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8", errors="replace")
    except Exception:
        pass


def _chromium_args() -> list[str]:
    args = list(_CHROMIUM_ARGS)
    # Avoid renderer crashes when /dev/shm is tiny.
    try:
        st = os.statvfs("/dev/shm")
        shm_bytes = int(st.f_frsize) * int(st.f_blocks)
    except Exception:
        shm_bytes = 0
    if shm_bytes and shm_bytes < (512 * 1024 * 1024):
        args.insert(1, "--disable-dev-shm-usage")
    return args


async def _launch_browser(p, *, headless: bool) -> Browser:
    chromium_path = find_chromium_executable()
    if chromium_path:
        LOGGER.debug("Launching chromium executable_path=%s", chromium_path)
    else:
        # Playwright-managed browser, located through PLAYWRIGHT_BROWSERS_PATH.
        LOGGER.debug("No system chromium found; using the Playwright-managed browser")
    return await p.chromium.launch(headless=headless, executable_path=chromium_path, args=_chromium_args())


async def _apply_route_filter(context: BrowserContext) -> None:
    try:
        async def _route_filter(route):
            try:
                if route.request.resource_type in {"image", "media", "font"}:
                    await route.abort()
                    return
            except Exception:
                pass
            await route.continue_()

        await context.route("**/*", _route_filter)
    except Exception:
        pass


async def _capture_failure_artifacts(
    *,
    exc: Exception,
    page: Page | None,
    context: BrowserContext | None,
    artifacts_dir: Path,
    tracing_started: bool,
) -> dict[str, str]:
    artifacts: dict[str, str] = {}
    try:
        artifacts_dir.mkdir(parents=True, exist_ok=True)
    except Exception:
        pass
    final_url = None
    title = None
    if page is not None:
        try:
            final_url = _safe_url(page.url) or None
        except Exception:
            final_url = None
        try:
            title = _safe_str(await page.title(), max_len=500)
        except Exception:
            title = None
        try:
            await page.screenshot(path=str(artifacts_dir / "failure.png"), full_page=True)
            artifacts["failure_screenshot"] = "failure.png"
        except Exception:
            pass

    if tracing_started and context is not None:
        try:
            await context.tracing.stop(path=str(artifacts_dir / "trace.zip"))
            artifacts["trace_zip"] = "trace.zip"
        except Exception:
            try:
                await context.tracing.stop()
            except Exception:
                pass

    _write_text(
        artifacts_dir / "run.log",
        json.dumps(
            {
                "error_kind": type(exc).__name__,
                "error_message": _safe_str(exc),
                "final_url": final_url,
                "title": title,
                "artifacts": artifacts,
                "traceback": _safe_str(traceback.format_exc(), max_len=50_000),
            },
            ensure_ascii=False,
            sort_keys=True,
            indent=2,
        ),
    )
    artifacts["run_log"] = "run.log"
    return artifacts


@asynccontextmanager
async def browser_session(settings: TwentySettings) -> AsyncIterator[Page]:
    """
    One browser, one context, one page; all three are closed on every exit path.

    Exceptions raised by the caller propagate unchanged after failure artifacts
    have been written (when an artifacts directory is configured).
    """
    artifacts_dir = Path(settings.artifacts_dir).resolve() if settings.artifacts_dir else None

    async with async_playwright() as p:
        browser = await _launch_browser(p, headless=settings.headless)
        context: BrowserContext | None = None
        page: Page | None = None
        tracing_started = False
        try:
            context = await browser.new_context(viewport={"width": 1280, "height": 720})
            await _apply_route_filter(context)
            page = await context.new_page()
            page.set_default_timeout(settings.timeout_ms)

            if settings.trace_on_failure and artifacts_dir is not None:
                try:
                    await context.tracing.start(screenshots=True, snapshots=True, sources=False)
                    tracing_started = True
                except Exception:
                    tracing_started = False

            yield page

            if tracing_started:
                try:
                    await context.tracing.stop()
                except Exception:
                    pass
        except Exception as exc:
            if artifacts_dir is not None:
                artifacts = await _capture_failure_artifacts(
                    exc=exc,
                    page=page,
                    context=context,
                    artifacts_dir=artifacts_dir,
                    tracing_started=tracing_started,
                )
                LOGGER.error("Smoke test failed; artifacts=%s dir=%s", sorted(artifacts), artifacts_dir)
            raise
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception:
                    pass
            if context is not None:
                try:
                    await context.close()
                except Exception:
                    pass
            try:
                await browser.close()
            except Exception:
                pass
