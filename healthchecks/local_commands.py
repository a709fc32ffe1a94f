from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path


LOGGER = logging.getLogger("healthchecks.local_commands")

DEFAULT_JOBS = 3
DEFAULT_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class LocalCommand:
    title: str
    path: str


@dataclass(frozen=True)
class CommandResult:
    title: str
    success: bool
    duration_seconds: float | None
    # Captured stdout/stderr, only kept for failed commands.
    output: str | None = None
    # Set when the command could not be executed at all.
    error: str | None = None


def parse_title_path_pair(value: str) -> LocalCommand:
    parts = str(value).split("=")
    if len(parts) != 2:
        raise ValueError("Each pair must be in the format 'title=path'")
    title, path = parts[0].strip(), parts[1].strip()
    if not title or not path:
        raise ValueError("Each pair must be in the format 'title=path'")
    return LocalCommand(title=title, path=path)


def _format_failure_output(stdout: str, stderr: str) -> str | None:
    lines: list[str] = []
    if stdout.strip():
        lines.append("Output:")
        lines.extend(stdout.splitlines())
    if stderr.strip():
        lines.append("Error:")
        lines.extend(stderr.splitlines())
    return "\n".join(lines) if lines else None


async def run_local_command(
    cmd: LocalCommand,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> CommandResult:
    path = Path(cmd.path)
    if not path.exists():
        return CommandResult(
            title=cmd.title,
            success=False,
            duration_seconds=None,
            error=f"{cmd.path} does not exist",
        )

    LOGGER.debug("Running local command title=%s path=%s", cmd.title, cmd.path)
    started = time.perf_counter()
    try:
        proc = await asyncio.create_subprocess_exec(
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return CommandResult(
            title=cmd.title,
            success=False,
            duration_seconds=None,
            error=f"failed to execute {cmd.path}: {exc}",
        )

    # Never less than a second, so a zero or negative setting still runs the command.
    wait_seconds = max(1.0, float(timeout_seconds))
    try:
        out_b, err_b = await asyncio.wait_for(proc.communicate(), timeout=wait_seconds)
    except asyncio.TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        duration = time.perf_counter() - started
        LOGGER.warning("Local command timed out title=%s timeout_seconds=%s", cmd.title, wait_seconds)
        return CommandResult(
            title=cmd.title,
            success=False,
            duration_seconds=round(duration, 3),
            error=f"timeout after {wait_seconds:g}s",
        )

    duration = time.perf_counter() - started
    success = proc.returncode == 0
    output = None
    if not success:
        out = (out_b or b"").decode("utf-8", errors="replace")
        err = (err_b or b"").decode("utf-8", errors="replace")
        output = _format_failure_output(out, err)
        LOGGER.info("Local command failed title=%s returncode=%s", cmd.title, proc.returncode)

    return CommandResult(
        title=cmd.title,
        success=success,
        duration_seconds=round(duration, 3),
        output=output,
    )


async def run_local_commands(
    commands: list[LocalCommand],
    *,
    jobs: int = DEFAULT_JOBS,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[CommandResult]:
    """
    Run commands with at most `jobs` in flight; results keep the input order.
    """
    semaphore = asyncio.Semaphore(max(1, int(jobs)))

    async def _one(cmd: LocalCommand) -> CommandResult:
        async with semaphore:
            return await run_local_command(cmd, timeout_seconds=timeout_seconds)

    return list(await asyncio.gather(*(_one(c) for c in commands)))
