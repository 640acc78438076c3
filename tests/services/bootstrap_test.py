"""Tests for running bootstrap scripts on devices."""

from __future__ import annotations

import pytest
import structlog

from nodeoperator.exceptions import BootstrapError
from nodeoperator.models.domain.bootstrap import (
    CommandMode,
    DeviceCommand,
    DeviceCredentials,
)
from nodeoperator.services.bootstrap import DeviceBootstrapper

from ..support.device import MockDeviceSessionFactory

SCRIPT = [
    DeviceCommand("enter candidate private"),
    DeviceCommand("set / system lldp admin state enable"),
    DeviceCommand("commit save"),
    DeviceCommand("set / system banner login-banner hi", CommandMode.EAGER),
]


@pytest.mark.asyncio
async def test_run(mock_device: MockDeviceSessionFactory) -> None:
    bootstrapper = DeviceBootstrapper(mock_device, structlog.get_logger())
    credentials = DeviceCredentials(username="admin", password="admin")

    await bootstrapper.run(["10.0.0.1", "10.0.0.2"], credentials, SCRIPT)
    assert [s.address for s in mock_device.sessions] == ["10.0.0.1"]
    assert mock_device.sessions[0].commands == SCRIPT
    assert mock_device.sessions[0].closed


@pytest.mark.asyncio
async def test_first_failure_aborts(
    mock_device: MockDeviceSessionFactory,
) -> None:
    bootstrapper = DeviceBootstrapper(mock_device, structlog.get_logger())
    credentials = DeviceCredentials(username="admin", password="admin")
    mock_device.fail_on = "commit"

    with pytest.raises(BootstrapError) as excinfo:
        await bootstrapper.run(["10.0.0.1"], credentials, SCRIPT)
    assert excinfo.value.address == "10.0.0.1"
    assert excinfo.value.command == "commit save"
    session = mock_device.sessions[0]
    assert session.commands == SCRIPT[:2]
    assert session.closed


@pytest.mark.asyncio
async def test_no_session(mock_device: MockDeviceSessionFactory) -> None:
    bootstrapper = DeviceBootstrapper(mock_device, structlog.get_logger())
    credentials = DeviceCredentials(username="admin", password="admin")

    with pytest.raises(BootstrapError, match="No address"):
        await bootstrapper.run([], credentials, SCRIPT)

    mock_device.refuse = "Authentication failed"
    with pytest.raises(BootstrapError, match="Authentication failed"):
        await bootstrapper.run(["10.0.0.1"], credentials, SCRIPT)
    assert mock_device.sessions == []
