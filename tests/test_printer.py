from __future__ import annotations

import pytest

from healthchecks.local_commands import CommandResult
from healthchecks.printer import format_results, parse_label_pair


def _results() -> list[CommandResult]:
    return [
        CommandResult(title="twenty", success=True, duration_seconds=0.25),
        CommandResult(
            title="twenty_Login",
            success=False,
            duration_seconds=12.5,
            output="Output:\nRunning twenty login...",
        ),
        CommandResult(title="gone", success=False, duration_seconds=None, error="/x does not exist"),
    ]


def test_emoji_style() -> None:
    lines = format_results(_results(), style="emoji")
    assert lines == [
        "✅ twenty (0.25s)",
        "❌ twenty_Login (12.50s)",
        "    Output:",
        "    Running twenty login...",
        "❌ gone: /x does not exist",
    ]


def test_prometheus_style_with_labels() -> None:
    lines = format_results(_results(), style="prometheus", labels={"host": "mcs", "env": 'p"rod'})
    assert lines[0] == "# TYPE healthcheck_status gauge"
    assert lines[1] == "# TYPE healthcheck_duration_seconds gauge"
    assert 'healthcheck_status{name="twenty",host="mcs",env="p\\"rod"} 1' in lines
    assert 'healthcheck_duration_seconds{name="twenty",host="mcs",env="p\\"rod"} 0.250' in lines
    assert 'healthcheck_status{name="twenty_Login",host="mcs",env="p\\"rod"} 0' in lines
    assert 'healthcheck_status{name="gone",host="mcs",env="p\\"rod"} 0' in lines
    # No duration sample when the command never ran.
    assert not any(line.startswith('healthcheck_duration_seconds{name="gone"') for line in lines)


def test_unknown_style_raises() -> None:
    with pytest.raises(ValueError):
        format_results(_results(), style="xml")


def test_parse_label_pair() -> None:
    assert parse_label_pair("host:mcs") == ("host", "mcs")
    with pytest.raises(ValueError):
        parse_label_pair("host=mcs")
    with pytest.raises(ValueError):
        parse_label_pair("a:b:c")
