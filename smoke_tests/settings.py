from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    s = str(raw).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(str(raw).strip())
    except Exception:
        return float(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


@dataclass(frozen=True)
class TwentySettings:
    target_url: str = field(default_factory=lambda: _env_str("TWENTY_URL", "https://twenty.np-tools.technative.cloud"))
    # Service-account credentials are injected by the environment; there is no default.
    account_email: str = field(default_factory=lambda: os.getenv("TWENTY_EMAIL", "").strip())
    account_password: str = field(default_factory=lambda: os.getenv("TWENTY_PASSWORD", ""))
    title_pattern: str = field(default_factory=lambda: _env_str("TWENTY_TITLE_PATTERN", "Twenty"))

    # Applied to every locator wait and navigation.
    timeout_seconds: float = field(default_factory=lambda: _env_float("TWENTY_TIMEOUT_SECONDS", 30.0))
    headless: bool = field(default_factory=lambda: _env_bool("TWENTY_HEADLESS", True))

    # Failure artifacts (screenshot, run.log, optional trace) are only written when set.
    artifacts_dir: str = field(default_factory=lambda: os.getenv("TWENTY_ARTIFACTS_DIR", "").strip())
    trace_on_failure: bool = field(default_factory=lambda: _env_bool("TWENTY_TRACE_ON_FAILURE", False))

    @property
    def timeout_ms(self) -> int:
        return int(max(1.0, float(self.timeout_seconds)) * 1000.0)

    def validate(self) -> "TwentySettings":
        if not self.target_url.startswith(("http://", "https://")):
            raise RuntimeError(f"TWENTY_URL must be an http(s) URL, got {self.target_url!r}")
        if not self.account_email:
            raise RuntimeError("Missing TWENTY_EMAIL")
        if not self.account_password:
            raise RuntimeError("Missing TWENTY_PASSWORD")
        return self
