"""Tests for operator configuration parsing."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError
from safir.logging import LogLevel, Profile

from nodeoperator.config import Config

from .support.data import data_path


def test_from_file() -> None:
    config = Config.from_file(data_path("config.yaml"))
    assert config.log_level == LogLevel.DEBUG
    assert config.profile == Profile.development
    assert config.workers == 2
    assert config.reconcile_timeout == timedelta(seconds=30)
    assert config.failure_backoff == timedelta(seconds=1)
    assert config.device_timeout == timedelta(seconds=2)
    assert config.resync_interval == timedelta(minutes=10)
    assert config.namespace is None
    assert config.node_config_namespace is None
    assert not config.enable_network_attachments
    assert config.slack_webhook is None


def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POD_NAMESPACE", "network-system")
    monkeypatch.setenv("ENABLE_NAD", "true")
    monkeypatch.setenv(
        "NODE_OPERATOR_SLACK_WEBHOOK", "https://slack.example.com/hook"
    )

    config = Config.from_file(data_path("config.yaml"))
    assert config.node_config_namespace == "network-system"
    assert config.enable_network_attachments
    assert config.slack_webhook
    webhook = config.slack_webhook.get_secret_value()
    assert webhook == "https://slack.example.com/hook"


def test_invalid(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("workers: 0\n")
    with pytest.raises(ValidationError):
        Config.from_file(path)

    path.write_text("unknownSetting: true\n")
    with pytest.raises(ValidationError):
        Config.from_file(path)

    path.write_text("")
    assert Config.from_file(path).workers == 4
