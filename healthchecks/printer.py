from __future__ import annotations

from typing import Any

from healthchecks.local_commands import CommandResult


STYLES = ("emoji", "prometheus")


def parse_label_pair(value: str) -> tuple[str, str]:
    parts = str(value).split(":")
    if len(parts) != 2:
        raise ValueError("Key-value pair must be in the format 'key:value'")
    key, val = parts[0].strip(), parts[1].strip()
    if not key:
        raise ValueError("Key-value pair must be in the format 'key:value'")
    return key, val


def _format_seconds(value: Any) -> str:
    try:
        if value is None:
            return "n/a"
        return f"{float(value):.2f}s"
    except Exception:
        return "n/a"


def _escape_label_value(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_labels(title: str, labels: dict[str, str]) -> str:
    pairs = [("name", title), *((k, v) for k, v in labels.items() if k != "name")]
    return ",".join(f'{k}="{_escape_label_value(v)}"' for k, v in pairs)


def format_emoji(result: CommandResult) -> list[str]:
    if result.error:
        return [f"❌ {result.title}: {result.error}"]

    mark = "✅" if result.success else "❌"
    lines = [f"{mark} {result.title} ({_format_seconds(result.duration_seconds)})"]
    if not result.success and result.output:
        lines.extend(f"    {line}" for line in result.output.splitlines())
    return lines


def format_prometheus(result: CommandResult, labels: dict[str, str]) -> list[str]:
    lbl = _format_labels(result.title, labels)
    lines = [f"healthcheck_status{{{lbl}}} {1 if result.success else 0}"]
    if result.duration_seconds is not None:
        lines.append(f"healthcheck_duration_seconds{{{lbl}}} {float(result.duration_seconds):.3f}")
    return lines


def format_results(
    results: list[CommandResult],
    *,
    style: str = "emoji",
    labels: dict[str, str] | None = None,
) -> list[str]:
    style_norm = str(style or "emoji").strip().lower()
    if style_norm not in STYLES:
        raise ValueError(f"unknown output style: {style!r} (expected one of {', '.join(STYLES)})")

    out: list[str] = []
    if style_norm == "prometheus":
        out.append("# TYPE healthcheck_status gauge")
        out.append("# TYPE healthcheck_duration_seconds gauge")
        for r in results:
            out.extend(format_prometheus(r, labels or {}))
        return out

    for r in results:
        out.extend(format_emoji(r))
    return out
