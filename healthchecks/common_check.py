from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx


_SCRIPT_AND_STYLE_RE = re.compile(r"(?is)<(script|style)[^>]*>.*?</\1>")
_HTML_TAG_RE = re.compile(r"(?is)<[^>]+>")


@dataclass(frozen=True)
class HttpCheckSpec:
    name: str
    url: str
    # Both assertions are optional; None means "not enforced".
    expected_content: str | None = None
    not_expected_content: str | None = None
    allowed_status_codes: list[int] | None = None
    http_timeout_seconds: float = 15.0


@dataclass(frozen=True)
class HttpCheckResult:
    name: str
    ok: bool
    reason: str
    details: dict[str, Any]


def _normalize_text(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip().lower()


def _html_to_visible_text(html: str) -> str:
    without_scripts = _SCRIPT_AND_STYLE_RE.sub(" ", html)
    without_tags = _HTML_TAG_RE.sub(" ", without_scripts)
    return _normalize_text(without_tags)


def _safe_url(url: str) -> str:
    """
    Drop query strings and fragments so tokens never end up in status output.
    """
    s = (url or "").strip()
    if not s:
        return s
    try:
        parts = urlsplit(s)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    except Exception:
        return s[:500]


async def http_get_check(spec: HttpCheckSpec, client: httpx.AsyncClient) -> tuple[bool, dict[str, Any]]:
    started = time.perf_counter()
    try:
        resp = await client.get(spec.url, follow_redirects=True, timeout=spec.http_timeout_seconds)
    except httpx.RequestError as e:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return False, {
            "error": f"http_error: {type(e).__name__}: {e}",
            "http_elapsed_ms": round(elapsed_ms, 3),
        }

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    body_norm = _html_to_visible_text(resp.text or "")

    expected_content_ok = True
    if spec.expected_content:
        expected_content_ok = _normalize_text(spec.expected_content) in body_norm

    not_expected_content_hit = False
    if spec.not_expected_content:
        not_expected_content_hit = _normalize_text(spec.not_expected_content) in body_norm

    if spec.allowed_status_codes is not None:
        status_ok = resp.status_code in spec.allowed_status_codes
    else:
        status_ok = 200 <= resp.status_code < 300

    ok = status_ok and expected_content_ok and not not_expected_content_hit
    return ok, {
        "status_code": resp.status_code,
        "status_ok": status_ok,
        "final_url": _safe_url(str(resp.url)),
        "expected_content": spec.expected_content,
        "expected_content_ok": expected_content_ok,
        "not_expected_content": spec.not_expected_content,
        "not_expected_content_hit": not_expected_content_hit,
        "http_elapsed_ms": round(elapsed_ms, 3),
    }


async def check_one_target(spec: HttpCheckSpec, client: httpx.AsyncClient) -> HttpCheckResult:
    ok, details = await http_get_check(spec, client)
    if ok:
        reason = "ok"
    elif "error" in details:
        reason = "http_error"
    elif not details.get("status_ok", True):
        reason = "unexpected_status"
    elif not details.get("expected_content_ok", True):
        reason = "expected_content_missing"
    else:
        reason = "not_expected_content_found"
    return HttpCheckResult(name=spec.name, ok=ok, reason=reason, details=details)


def load_check_spec_from_module_dict(module_vars: dict[str, Any]) -> HttpCheckSpec:
    if "CHECK" not in module_vars or not isinstance(module_vars["CHECK"], dict):
        raise ValueError("Health check module must define a dict named CHECK")

    cfg = module_vars["CHECK"]
    for key in ("name", "url"):
        if not str(cfg.get(key) or "").strip():
            raise ValueError(f"Health check CHECK is missing {key!r}")

    allowed_status_codes_raw = cfg.get("allowed_status_codes", None)
    allowed_status_codes: list[int] | None
    if allowed_status_codes_raw is None:
        allowed_status_codes = None
    else:
        if not isinstance(allowed_status_codes_raw, list) or not allowed_status_codes_raw:
            raise ValueError("allowed_status_codes must be a non-empty list of ints")
        allowed_status_codes = [int(x) for x in allowed_status_codes_raw]

    expected = cfg.get("expected_content")
    not_expected = cfg.get("not_expected_content")

    return HttpCheckSpec(
        name=str(cfg["name"]).strip(),
        url=str(cfg["url"]).strip(),
        expected_content=str(expected) if expected else None,
        not_expected_content=str(not_expected) if not_expected else None,
        allowed_status_codes=allowed_status_codes,
        http_timeout_seconds=float(cfg.get("http_timeout_seconds", 15.0)),
    )


def find_chromium_executable() -> str | None:
    env_path = os.getenv("CHROMIUM_PATH")
    if env_path and Path(env_path).exists():
        return env_path

    candidates = [
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/run/current-system/sw/bin/chromium",
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    ]
    for path in candidates:
        if Path(path).exists():
            return path
    return None
