from __future__ import annotations

import importlib.metadata
import os
import sys
from pathlib import Path

import pytest

import healthchecks.main as healthchecks_main
from healthchecks.common_check import load_check_spec_from_module_dict
from healthchecks.local_commands import run_local_command
from healthchecks.main import _normalize_check_entries, load_check_spec, load_config, load_local_commands


CONFIG_PATH = Path(__file__).resolve().parents[1] / "healthchecks" / "config.yaml"


def test_all_config_http_entries_have_check_specs() -> None:
    config = load_config(CONFIG_PATH)
    entries = config.get("http")
    assert isinstance(entries, list)
    assert entries, "config.yaml http list is empty"

    specs = [load_check_spec(entry.raw_entry) for entry in _normalize_check_entries(entries)]
    assert len(specs) == len(entries)
    for spec in specs:
        assert spec.name
        assert spec.url.startswith(("http://", "https://"))


def test_twenty_declaration_has_content_assertions_disabled() -> None:
    spec = load_check_spec("twenty")
    assert spec.name == "twenty"
    assert spec.url == "https://crm.technative.eu"
    assert spec.expected_content is None
    assert spec.not_expected_content is None


def _packaged_config_path() -> Path:
    # Same location the CLI defaults to, i.e. wherever the package is installed.
    return Path(healthchecks_main.__file__).with_name("config.yaml")


def test_packaged_config_runs_smoke_console_script() -> None:
    config_path = _packaged_config_path()
    config = load_config(config_path)
    assert [c.get("command") for c in config["local_commands"]] == ["twenty-smoke"]

    try:
        dist = importlib.metadata.distribution("twenty-healthchecks")
    except importlib.metadata.PackageNotFoundError:
        pytest.skip("twenty-healthchecks is not installed; console scripts are unavailable")
    scripts = {ep.name: ep.value for ep in dist.entry_points if ep.group == "console_scripts"}
    assert scripts["twenty-smoke"] == "smoke_tests.twenty:main"

    commands = load_local_commands(config, base_dir=config_path.parent)
    assert [c.title for c in commands] == ["twenty_Login"]
    path = Path(commands[0].path)
    assert path.is_absolute()
    assert path.name == "twenty-smoke"
    assert os.access(path, os.X_OK), f"{path} is not executable"


def _fake_console_script(directory: Path, name: str = "twenty-smoke") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    p = directory / name
    p.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    p.chmod(0o755)
    return p


def test_bare_command_prefers_interpreter_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    venv_script = _fake_console_script(tmp_path / "venv" / "bin")
    _fake_console_script(tmp_path / "elsewhere")
    monkeypatch.setattr(sys, "executable", str(tmp_path / "venv" / "bin" / "python"))
    monkeypatch.setenv("PATH", str(tmp_path / "elsewhere"))

    commands = load_local_commands({"local_commands": [{"title": "t", "command": "twenty-smoke"}]}, base_dir=tmp_path)
    assert commands[0].path == str(venv_script)


def test_bare_command_falls_back_to_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    on_path = _fake_console_script(tmp_path / "elsewhere")
    monkeypatch.setattr(sys, "executable", str(tmp_path / "venv" / "bin" / "python"))
    monkeypatch.setenv("PATH", str(tmp_path / "elsewhere"))

    commands = load_local_commands({"local_commands": [{"title": "t", "command": "twenty-smoke"}]}, base_dir=tmp_path)
    assert commands[0].path == str(on_path)


@pytest.mark.asyncio
async def test_unresolved_console_script_is_reported_missing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(sys, "executable", str(tmp_path / "venv" / "bin" / "python"))
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))
    monkeypatch.chdir(tmp_path)

    commands = load_local_commands({"local_commands": [{"title": "t", "command": "twenty-smoke"}]}, base_dir=tmp_path)
    assert commands[0].path == "twenty-smoke"
    result = await run_local_command(commands[0])
    assert result.success is False
    assert result.error == "twenty-smoke does not exist"


def test_inline_check_entry() -> None:
    spec = load_check_spec(
        {"name": "inline-only", "check": {"url": "https://example.com", "expected_content": "example"}}
    )
    assert spec.name == "inline-only"
    assert spec.expected_content == "example"


def test_missing_check_module_raises() -> None:
    with pytest.raises(FileNotFoundError):
        load_check_spec("does-not-exist")


def test_module_dict_requires_url() -> None:
    with pytest.raises(ValueError):
        load_check_spec_from_module_dict({"CHECK": {"name": "x"}})
    with pytest.raises(ValueError):
        load_check_spec_from_module_dict({})


def test_module_dict_rejects_empty_status_codes() -> None:
    with pytest.raises(ValueError):
        load_check_spec_from_module_dict({"CHECK": {"name": "x", "url": "https://x", "allowed_status_codes": []}})


def test_normalize_check_entries_handles_disabled_flags() -> None:
    entries = _normalize_check_entries(
        [
            "twenty",
            {"name": "a", "disabled": True, "disabled_reason": "migration"},
            {"name": "b"},
        ]
    )
    by_name = {e.name: e for e in entries}
    assert by_name["twenty"].disabled is False
    assert by_name["a"].disabled is True
    assert by_name["a"].disabled_reason == "migration"
    assert by_name["b"].disabled is False


def test_normalize_check_entries_rejects_nameless_entry() -> None:
    with pytest.raises(ValueError):
        _normalize_check_entries([{"check": {"url": "https://x"}}])


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(p)


def test_relative_command_paths_resolve_against_base_dir(tmp_path: Path) -> None:
    commands = load_local_commands(
        {"local_commands": [{"title": "t", "command": "bin/check.sh"}, {"title": "abs", "command": "/bin/true"}]},
        base_dir=tmp_path,
    )
    assert commands[0].path == str((tmp_path / "bin" / "check.sh").resolve())
    assert commands[1].path == "/bin/true"


def test_bare_name_next_to_config_wins_over_console_script(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _fake_console_script(tmp_path / "venv" / "bin", name="check.sh")
    local = _fake_console_script(tmp_path / "config", name="check.sh")
    monkeypatch.setattr(sys, "executable", str(tmp_path / "venv" / "bin" / "python"))

    commands = load_local_commands({"local_commands": [{"title": "t", "command": "check.sh"}]}, base_dir=tmp_path / "config")
    assert commands[0].path == str(local.resolve())
