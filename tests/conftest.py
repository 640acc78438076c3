"""Test fixtures for network node operator tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager

import pytest
import pytest_asyncio
import respx
from pydantic import SecretStr
from safir.testing.kubernetes import MockKubernetesApi, patch_kubernetes
from safir.testing.slack import MockSlackWebhook, mock_slack_webhook

from nodeoperator.config import Config
from nodeoperator.factory import Factory

from .support.data import data_path
from .support.device import MockDeviceSessionFactory


@pytest.fixture
def config() -> Config:
    """Construct default configuration for tests."""
    return Config.from_file(data_path("config.yaml"))


@pytest.fixture
def mock_device() -> MockDeviceSessionFactory:
    """Replace SSH sessions to devices with in-memory recorders."""
    return MockDeviceSessionFactory()


@pytest.fixture
def mock_kubernetes() -> Iterator[MockKubernetesApi]:
    with contextmanager(patch_kubernetes)() as mock:
        yield mock


@pytest.fixture
def mock_slack(
    config: Config, respx_mock: respx.Router
) -> Iterator[MockSlackWebhook]:
    config.slack_webhook = SecretStr("https://slack.example.com/webhook")
    yield mock_slack_webhook(
        config.slack_webhook.get_secret_value(), respx_mock
    )
    config.slack_webhook = None


@pytest_asyncio.fixture
async def factory(
    config: Config,
    mock_device: MockDeviceSessionFactory,
    mock_kubernetes: MockKubernetesApi,
    mock_slack: MockSlackWebhook,
) -> AsyncIterator[Factory]:
    """Create a component factory for tests."""
    async with Factory.standalone(
        config, session_factory=mock_device
    ) as factory:
        yield factory
        await factory.stop_background_services()
