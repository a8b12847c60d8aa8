"""Tests for per-module log level overrides."""

from __future__ import annotations

import logging
import uuid

import pytest

from lca_engine.config import Config
from lca_engine.utils.logging_utils import get_logger, level_for, parse_level_overrides, setup_logger


def _fresh_name(prefix: str) -> str:
    return f"{prefix}.{uuid.uuid4().hex}"


def test_parse_level_overrides():
    overrides = parse_level_overrides(" lca_engine.stages.sensitivity=debug , lca_engine=Warning ,")
    assert overrides == {"lca_engine.stages.sensitivity": "DEBUG", "lca_engine": "WARNING"}
    assert parse_level_overrides("") == {}


@pytest.mark.parametrize("text", ["lca_engine", "=DEBUG", "lca_engine="])
def test_parse_level_overrides_rejects_malformed_entries(text):
    with pytest.raises(ValueError):
        parse_level_overrides(text)


def test_longest_matching_prefix_wins(monkeypatch):
    monkeypatch.setattr(Config, "LOG_LEVEL", "INFO")
    overrides = {"lca_engine": "WARNING", "lca_engine.stages.sensitivity": "DEBUG"}

    assert level_for("lca_engine.stages.sensitivity", overrides) == "DEBUG"
    assert level_for("lca_engine.stages.provenance", overrides) == "WARNING"
    # Prefixes match whole dotted components only
    assert level_for("lca_engine_tools.report", overrides) == "INFO"
    assert level_for("scripts.run_chain", overrides) == "INFO"


def test_setup_logger_applies_configured_override(monkeypatch):
    monkeypatch.setattr(Config, "LOG_LEVEL", "INFO")
    monkeypatch.setattr(Config, "LOG_LEVELS", "lca_engine_test.noisy=DEBUG")

    noisy = setup_logger(_fresh_name("lca_engine_test.noisy"))
    quiet = get_logger(_fresh_name("lca_engine_test.quiet"))

    assert noisy.level == logging.DEBUG
    assert quiet.level == logging.INFO
    assert noisy.propagate is False


def test_explicit_level_beats_override(monkeypatch):
    monkeypatch.setattr(Config, "LOG_LEVELS", "lca_engine_test=DEBUG")
    logger = setup_logger(_fresh_name("lca_engine_test"), level="ERROR")
    assert logger.level == logging.ERROR
