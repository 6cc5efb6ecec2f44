"""Tests for debug-file logging and request timing helpers."""

from __future__ import annotations

import logging

import pytest

from sliding_llama.cli.cli_args import build_parser
from sliding_llama.logging import (
    LOG_LEVEL_ENV_VAR,
    configure_debug_file_logging,
    configure_logging,
    get_logger,
    parse_level,
)
from sliding_llama.runtime.metrics import TimingStats, format_timings, timer, tokens_per_second


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    package = logging.getLogger("sliding_llama")
    saved = [(handler, handler.level, list(handler.filters)) for handler in root.handlers]
    level = package.level
    yield
    for handler in list(root.handlers):
        if handler not in [h for h, _, _ in saved]:
            root.removeHandler(handler)
            handler.close()
    for handler, handler_level, filters in saved:
        handler.setLevel(handler_level)
        handler.filters[:] = filters
    package.setLevel(level)


def test_debug_file_receives_package_debug_logs(tmp_path, restore_logging) -> None:
    path = tmp_path / "logs" / "debug.log"
    configure_debug_file_logging(path)
    configure_debug_file_logging(path)

    get_logger("sliding_llama.test").debug("window 40 -> 20 tokens")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert path.read_text(encoding="utf-8").count("window 40 -> 20 tokens") == 1


def test_timing_stats_accumulate() -> None:
    stats = TimingStats()
    stats.add("scorer", 0.5)
    stats.add("scorer", 1.5)
    with timer(stats, "window"):
        pass
    assert stats.totals["scorer"] == 2.0
    assert stats.mean("scorer") == 1.0
    assert stats.mean("missing") == 0.0
    assert set(stats.snapshot()) == {"scorer", "window"}


def test_format_timings() -> None:
    assert tokens_per_second(10, 0.0) == 0.0
    summary = format_timings({"window": 0.01, "scorer": 2.0}, tokens=10)
    assert summary == "scorer 2.00s (5.0 tok/s), window 0.01s"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
        ("10", logging.DEBUG),
        (logging.ERROR, logging.ERROR),
        (None, logging.INFO),
    ],
)
def test_parse_level(value, expected) -> None:
    assert parse_level(value) == expected


def test_parse_level_rejects_unknown_name() -> None:
    with pytest.raises(ValueError):
        parse_level("loud")


def test_explicit_level_sets_package_level(restore_logging) -> None:
    configure_logging("warning")
    assert logging.getLogger("sliding_llama").level == logging.WARNING


def test_level_from_environment(monkeypatch, restore_logging) -> None:
    logging.getLogger("sliding_llama").setLevel(logging.NOTSET)
    monkeypatch.setenv(LOG_LEVEL_ENV_VAR, "debug")
    configure_logging()
    assert logging.getLogger("sliding_llama").level == logging.DEBUG


def test_invalid_environment_level_falls_back_to_info(monkeypatch, restore_logging) -> None:
    logging.getLogger("sliding_llama").setLevel(logging.NOTSET)
    monkeypatch.setenv(LOG_LEVEL_ENV_VAR, "loud")
    configure_logging()
    assert logging.getLogger("sliding_llama").level == logging.INFO


def test_log_level_flag() -> None:
    assert build_parser().parse_args(["--log-level", "warning"]).log_level == logging.WARNING
    assert build_parser().parse_args([]).log_level is None
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--log-level", "loud"])
