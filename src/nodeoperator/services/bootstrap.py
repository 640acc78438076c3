"""Run bootstrap scripts on devices."""

from structlog.stdlib import BoundLogger

from ..exceptions import BootstrapError
from ..models.domain.bootstrap import DeviceCommand, DeviceCredentials
from ..storage.device import DeviceSessionFactory

__all__ = ["DeviceBootstrapper"]


class DeviceBootstrapper:
    """Push an ordered command script to a device.

    Parameters
    ----------
    session_factory
        Opens command sessions to devices.
    logger
        Logger to use.
    """

    def __init__(
        self, session_factory: DeviceSessionFactory, logger: BoundLogger
    ) -> None:
        self._session_factory = session_factory
        self._logger = logger

    async def run(
        self,
        addresses: list[str],
        credentials: DeviceCredentials,
        script: list[DeviceCommand],
    ) -> None:
        """Send a script to the device at the first address.

        Commands are sent strictly in order and the first failure aborts the
        rest of the script. The session is always closed before returning.

        Parameters
        ----------
        addresses
            Addresses of the device. Only the first is used.
        credentials
            Login credentials for the device.
        script
            Commands to send.

        Raises
        ------
        BootstrapError
            Raised if the session could not be opened or any command failed.
        """
        if not addresses:
            raise BootstrapError("No address for device")
        address = addresses[0]
        logger = self._logger.bind(address=address)
        session = await self._session_factory(address, credentials)
        try:
            for command in script:
                await session.send(command)
        finally:
            await session.close()
        logger.info("Sent bootstrap configuration", commands=len(script))
