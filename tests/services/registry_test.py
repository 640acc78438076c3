"""Tests for the provider driver registry."""

from __future__ import annotations

import pytest

from nodeoperator.exceptions import NotSupportedError
from nodeoperator.factory import Factory, build_driver_registry
from nodeoperator.services.driver.server import ServerDriver
from nodeoperator.services.driver.srlinux import SRLinuxDriver
from nodeoperator.services.driver.sros import SROSDriver


@pytest.mark.asyncio
async def test_resolve(factory: Factory) -> None:
    registry = build_driver_registry()
    context = factory.create_driver_context()
    assert registry.providers == [
        "srlinux.nokia.com",
        "sros.nokia.com",
        "x.server.com",
    ]

    driver = registry.resolve("srlinux.nokia.com", context)
    assert isinstance(driver, SRLinuxDriver)
    assert driver.bootstraps_device
    assert isinstance(registry.resolve("sros.nokia.com", context), SROSDriver)
    server = registry.resolve("x.server.com", context)
    assert isinstance(server, ServerDriver)
    assert not server.bootstraps_device

    # Each resolve builds a new driver.
    assert registry.resolve("srlinux.nokia.com", context) is not driver


@pytest.mark.asyncio
async def test_unsupported(factory: Factory) -> None:
    registry = build_driver_registry()
    context = factory.create_driver_context()
    with pytest.raises(NotSupportedError) as excinfo:
        registry.resolve("netos.example.com", context)
    assert str(excinfo.value) == (
        'provider "netos.example.com" is not supported. supported providers'
        ' are "srlinux.nokia.com, sros.nokia.com, x.server.com"'
    )
    assert excinfo.value.supported == [
        "srlinux.nokia.com",
        "sros.nokia.com",
        "x.server.com",
    ]


@pytest.mark.asyncio
async def test_register_replaces(factory: Factory) -> None:
    registry = build_driver_registry()
    context = factory.create_driver_context()
    registry.register("srlinux.nokia.com", ServerDriver)
    driver = registry.resolve("srlinux.nokia.com", context)
    assert isinstance(driver, ServerDriver)
