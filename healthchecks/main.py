from __future__ import annotations

import argparse
import asyncio
import logging
import os
import runpy
import shutil
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import yaml

from healthchecks.common_check import HttpCheckResult, HttpCheckSpec, check_one_target, load_check_spec_from_module_dict
from healthchecks.local_commands import (
    DEFAULT_JOBS,
    DEFAULT_TIMEOUT_SECONDS,
    CommandResult,
    LocalCommand,
    parse_title_path_pair,
    run_local_commands,
)
from healthchecks.printer import STYLES, format_results, parse_label_pair


LOGGER = logging.getLogger("healthchecks")

USER_AGENT = "TechNative Healthchecks"


def load_config(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data


@dataclass(frozen=True)
class CheckEntryConfig:
    name: str
    raw_entry: Any
    disabled: bool = False
    disabled_reason: str | None = None


def _normalize_check_entries(entries_cfg: list[Any]) -> list[CheckEntryConfig]:
    out: list[CheckEntryConfig] = []
    for raw in entries_cfg:
        if isinstance(raw, str):
            name = raw.strip()
            if not name:
                raise ValueError("http entry must not be empty")
            out.append(CheckEntryConfig(name=name, raw_entry=name))
            continue
        if not isinstance(raw, dict) or not str(raw.get("name") or "").strip():
            raise ValueError(f"Invalid http entry: {raw!r}")
        reason = raw.get("disabled_reason")
        out.append(
            CheckEntryConfig(
                name=str(raw["name"]).strip(),
                raw_entry=raw,
                disabled=bool(raw.get("disabled", False)),
                disabled_reason=str(reason).strip() if reason else None,
            )
        )
    return out


def _check_plugin_path(name: str) -> Path:
    return Path(__file__).parent / name / "check.py"


def load_check_spec(entry: Any) -> HttpCheckSpec:
    if isinstance(entry, str):
        name = entry
        inline_check = None
    else:
        name = str(entry["name"])
        inline_check = entry.get("check")

    plugin_path = _check_plugin_path(name)
    if plugin_path.exists():
        module_vars = runpy.run_path(str(plugin_path))
        return load_check_spec_from_module_dict(module_vars)

    if isinstance(inline_check, dict):
        return load_check_spec_from_module_dict({"CHECK": {"name": name, **inline_check}})

    raise FileNotFoundError(
        f"Missing health check module for {name}: expected {plugin_path} (or inline 'check' in config.yaml)"
    )


def _resolve_command(command: str, *, base_dir: Path) -> str:
    """
    Resolve a configured command to an executable path.

    Relative paths resolve against `base_dir`. A bare name (no path separator)
    with no such file there is a console script: it is looked up next to the
    running interpreter first, so it belongs to the same environment, then on
    PATH. An unresolvable bare name is returned as is and reported as missing later.
    """
    bare = os.sep not in command and "/" not in command
    if bare and not (base_dir / command).exists():
        local = Path(sys.executable).parent / command
        if local.exists() and os.access(local, os.X_OK):
            return str(local)
        return shutil.which(command) or command
    path = Path(command)
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


def load_local_commands(config: dict[str, Any], *, base_dir: Path) -> list[LocalCommand]:
    raw = config.get("local_commands") or []
    if not isinstance(raw, list):
        raise ValueError("local_commands must be a list")
    out: list[LocalCommand] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValueError(f"Invalid local command: {item!r}")
        title = str(item.get("title") or "").strip()
        command = str(item.get("command") or "").strip()
        if not title or not command:
            raise ValueError(f"local command needs title and command: {item!r}")
        out.append(LocalCommand(title=title, path=_resolve_command(command, base_dir=base_dir)))
    return out


def _http_result_to_command_result(result: HttpCheckResult) -> CommandResult:
    d = result.details or {}
    elapsed_ms = d.get("http_elapsed_ms")
    duration = round(float(elapsed_ms) / 1000.0, 3) if elapsed_ms is not None else None
    output = None
    if not result.ok:
        lines = [f"Reason: {result.reason}"]
        if d.get("status_code") is not None:
            lines.append(f"HTTP: {d['status_code']}")
        if d.get("final_url"):
            lines.append(f"Final URL: {d['final_url']}")
        if d.get("expected_content_ok") is False:
            lines.append(f"Missing content: {d.get('expected_content')!r}")
        if d.get("not_expected_content_hit"):
            lines.append(f"Unexpected content: {d.get('not_expected_content')!r}")
        error = d.get("error")
        if isinstance(error, str) and error.strip():
            lines.append(f"Error: {error.strip()[:500]}")
        output = "\n".join(lines)
    return CommandResult(title=result.name, success=result.ok, duration_seconds=duration, output=output)


async def run_http_checks(specs: list[HttpCheckSpec]) -> list[HttpCheckResult]:
    if not specs:
        return []
    async with httpx.AsyncClient(headers={"User-Agent": USER_AGENT}) as client:
        return list(await asyncio.gather(*(check_one_target(s, client) for s in specs)))


async def run_checks(
    specs: list[HttpCheckSpec],
    commands: list[LocalCommand],
    *,
    jobs: int = DEFAULT_JOBS,
    command_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[CommandResult]:
    started = time.perf_counter()
    http_results, command_results = await asyncio.gather(
        run_http_checks(specs),
        run_local_commands(commands, jobs=jobs, timeout_seconds=command_timeout_seconds),
    )
    results = [_http_result_to_command_result(r) for r in http_results] + list(command_results)
    failed = [r.title for r in results if not r.success]
    LOGGER.info(
        "Check cycle done checks=%s failed=%s elapsed_seconds=%.2f",
        len(results),
        failed,
        time.perf_counter() - started,
    )
    return results


def _config_labels(config: dict[str, Any]) -> dict[str, str]:
    raw = config.get("labels") or {}
    if not isinstance(raw, dict):
        raise ValueError("labels must be a mapping")
    return {str(k): str(v) for k, v in raw.items()}


def main() -> int:
    parser = argparse.ArgumentParser(description="Run HTTP health checks and local command checks once")
    parser.add_argument(
        "--config",
        default=str(Path(__file__).with_name("config.yaml")),
        help="Path to YAML config",
    )
    parser.add_argument("--style", choices=STYLES, default=None, help="Output style (default from config, else emoji)")
    parser.add_argument("-j", "--jobs", type=int, default=None, help="Number of parallel local commands")
    parser.add_argument(
        "--label",
        dest="labels",
        action="append",
        type=parse_label_pair,
        default=[],
        help="Label in the format key:value, added to prometheus output",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "WARNING"),
        help="Logging level (INFO, WARNING, ...)",
    )
    parser.add_argument(
        "pairs",
        nargs="*",
        type=parse_title_path_pair,
        help="Additional local commands as 'title=path'",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    config_path = Path(args.config)
    config = load_config(config_path) if config_path.exists() else {}
    if not config_path.exists():
        LOGGER.warning("Config not found path=%s; running command-line checks only", config_path)

    entries = _normalize_check_entries(config.get("http") or [])
    specs: list[HttpCheckSpec] = []
    for entry in entries:
        if entry.disabled:
            LOGGER.info("Skipping disabled check name=%s reason=%s", entry.name, entry.disabled_reason)
            continue
        specs.append(load_check_spec(entry.raw_entry))

    commands = load_local_commands(config, base_dir=config_path.resolve().parent) + list(args.pairs)
    if not specs and not commands:
        LOGGER.error("No checks configured")
        return 1

    jobs = args.jobs if args.jobs is not None else int(config.get("jobs") or DEFAULT_JOBS)
    timeout = float(config.get("command_timeout_seconds") or DEFAULT_TIMEOUT_SECONDS)
    style = args.style or str(config.get("style") or "emoji")
    labels = {**_config_labels(config), **dict(args.labels)}

    results = asyncio.run(run_checks(specs, commands, jobs=jobs, command_timeout_seconds=timeout))
    for line in format_results(results, style=style, labels=labels):
        print(line)

    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
