"""Registry of provider drivers."""

from collections.abc import Callable

from ..exceptions import NotSupportedError
from .driver.base import DriverContext, ProviderDriver

__all__ = ["DriverFactory", "DriverRegistry"]

type DriverFactory = Callable[[DriverContext], ProviderDriver]
"""Builds a driver bound to the operator's storage and settings."""


class DriverRegistry:
    """Maps provider identifiers to driver factories.

    Drivers are registered once at startup and only looked up afterwards, so
    no locking is done.
    """

    def __init__(self) -> None:
        self._factories: dict[str, DriverFactory] = {}

    @property
    def providers(self) -> list[str]:
        """Registered provider identifiers, sorted."""
        return sorted(self._factories)

    def register(self, provider: str, factory: DriverFactory) -> None:
        """Register a driver, replacing any driver for the same provider.

        Parameters
        ----------
        provider
            Provider identifier, matched against ``spec.provider`` of nodes.
        factory
            Factory for the driver.
        """
        self._factories[provider] = factory

    def resolve(self, provider: str, context: DriverContext) -> ProviderDriver:
        """Build the driver for a provider.

        Parameters
        ----------
        provider
            Provider identifier.
        context
            Storage and settings the driver is bound to.

        Returns
        -------
        ProviderDriver
            New driver instance.

        Raises
        ------
        NotSupportedError
            Raised if no driver is registered for that provider.
        """
        factory = self._factories.get(provider)
        if not factory:
            raise NotSupportedError(provider, self._factories.keys())
        return factory(context)
