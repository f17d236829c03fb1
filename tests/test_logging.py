import logging

import pytest

from superthanks_logging import (
    LEVEL_ENV_VAR,
    ROOT_LOGGER_NAME,
    configure_logging,
    get_logger,
    parse_level,
)


@pytest.mark.parametrize(
    "level, expected",
    [
        ("debug", logging.DEBUG),
        (" WARNING ", logging.WARNING),
        ("15", 15),
        (logging.ERROR, logging.ERROR),
        ("no-such-level", logging.INFO),
    ],
)
def test_parse_level(level, expected):
    assert parse_level(level) == expected


def test_parse_level_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv(LEVEL_ENV_VAR, "error")
    assert parse_level(None) == logging.ERROR
    monkeypatch.delenv(LEVEL_ENV_VAR)
    assert parse_level(None) == logging.INFO


def test_configure_logging_keeps_one_handler_on_current_stderr(capsys):
    root = logging.getLogger(ROOT_LOGGER_NAME)
    configure_logging("info")
    configure_logging("debug")

    named = [h for h in root.handlers if h.name == ROOT_LOGGER_NAME]
    assert len(named) == 1
    assert root.level == logging.DEBUG
    assert root.propagate is False

    get_logger("superthanks.test").info("batch stored")
    assert "superthanks.test INFO batch stored" in capsys.readouterr().err

    root.removeHandler(named[0])
    root.setLevel(logging.NOTSET)
    root.propagate = True
