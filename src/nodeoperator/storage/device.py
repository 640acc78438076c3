"""Remote command sessions to network devices."""

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Protocol, Self

import paramiko
from structlog.stdlib import BoundLogger

from ..constants import DEVICE_SESSION_TIMEOUT
from ..exceptions import BootstrapError
from ..models.domain.bootstrap import (
    CommandMode,
    DeviceCommand,
    DeviceCredentials,
)

__all__ = [
    "DeviceSession",
    "DeviceSessionFactory",
    "SSHDeviceSession",
    "SSHSessionFactory",
]

_ERROR_REGEX = re.compile(
    r"^\s*(Error|MINOR|MAJOR|CRITICAL):.*$", re.MULTILINE
)
"""Output lines the device CLI uses to report a rejected command."""

_PROMPT_REGEX = re.compile(r"[#>$]\s*$")
"""Matches the device prompt at the end of the output read so far."""

_EAGER_DRAIN = 0.2
"""Seconds to collect output after sending a command in eager mode."""


class DeviceSession(Protocol):
    """An open command session to a device."""

    async def send(self, command: DeviceCommand) -> str:
        """Send one command and return its output."""

    async def close(self) -> None:
        """Close the session."""


type DeviceSessionFactory = Callable[
    [str, DeviceCredentials], Awaitable[DeviceSession]
]
"""Opens an authenticated session to the device at an address."""


class SSHDeviceSession:
    """Interactive SSH shell on a device.

    All paramiko calls block, so they are run in a worker thread. Use `open`
    to create instances.

    Parameters
    ----------
    client
        Connected SSH client.
    channel
        Interactive shell channel on that client.
    address
        Address of the device, for error reporting.
    timeout
        Timeout for each read from the device.
    logger
        Logger to use.
    """

    @classmethod
    async def open(
        cls,
        address: str,
        credentials: DeviceCredentials,
        *,
        port: int = 22,
        timeout: timedelta = DEVICE_SESSION_TIMEOUT,
        logger: BoundLogger,
    ) -> Self:
        """Connect and authenticate to a device and start a shell.

        Host keys are not checked, since devices are freshly created and
        cannot have a known host key.

        Parameters
        ----------
        address
            Address of the device.
        credentials
            Login credentials.
        port
            SSH port.
        timeout
            Timeout for connecting and for each subsequent read.
        logger
            Logger to use.

        Returns
        -------
        SSHDeviceSession
            Open session, positioned at the first prompt.

        Raises
        ------
        BootstrapError
            Raised if the connection or login failed.
        """
        logger = logger.bind(address=address)
        seconds = timeout.total_seconds()

        def connect() -> tuple[paramiko.SSHClient, paramiko.Channel]:
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                client.connect(
                    hostname=address,
                    port=port,
                    username=credentials.username,
                    password=credentials.password,
                    look_for_keys=False,
                    allow_agent=False,
                    timeout=seconds,
                    auth_timeout=seconds,
                    banner_timeout=seconds,
                )
                channel = client.invoke_shell(width=1000)
                channel.settimeout(seconds)
            except Exception:
                client.close()
                raise
            return client, channel

        logger.debug("Opening device session")
        try:
            client, channel = await asyncio.to_thread(connect)
        except (paramiko.SSHException, OSError) as e:
            msg = f"Cannot connect to device: {type(e).__name__}: {e!s}"
            raise BootstrapError(msg, address=address) from e
        session = cls(client, channel, address, timeout, logger)
        try:
            await asyncio.to_thread(session._read_until_prompt)
        except (paramiko.SSHException, OSError) as e:
            await session.close()
            msg = f"No prompt from device: {type(e).__name__}: {e!s}"
            raise BootstrapError(msg, address=address) from e
        return session

    def __init__(
        self,
        client: paramiko.SSHClient,
        channel: paramiko.Channel,
        address: str,
        timeout: timedelta,
        logger: BoundLogger,
    ) -> None:
        self._client = client
        self._channel = channel
        self._address = address
        self._timeout = timeout
        self._logger = logger

    async def close(self) -> None:
        """Close the shell and the connection."""
        self._logger.debug("Closing device session")
        await asyncio.to_thread(self._client.close)

    async def send(self, command: DeviceCommand) -> str:
        """Send one command to the device.

        Parameters
        ----------
        command
            Command to send.

        Returns
        -------
        str
            Output of the command, including its echo.

        Raises
        ------
        BootstrapError
            Raised if sending failed, the device did not respond in time, or
            the device reported an error.
        """
        self._logger.debug(
            "Sending command", mode=command.mode.value, size=len(command.text)
        )
        try:
            output = await asyncio.to_thread(self._send, command)
        except (paramiko.SSHException, OSError) as e:
            msg = f"Sending command failed: {type(e).__name__}: {e!s}"
            raise BootstrapError(
                msg, address=self._address, command=command.text
            ) from e
        if match := _ERROR_REGEX.search(output):
            raise BootstrapError(
                match.group(0).strip(),
                address=self._address,
                command=command.text,
            )
        return output

    def _drain(self) -> str:
        """Read whatever output arrives shortly after a command."""
        output = ""
        deadline = time.monotonic() + _EAGER_DRAIN
        while time.monotonic() < deadline:
            if self._channel.recv_ready():
                output += self._channel.recv(65535).decode(errors="replace")
            else:
                time.sleep(0.05)
        return output

    def _read_until_prompt(self) -> str:
        """Read output until the device prompt appears.

        Raises
        ------
        TimeoutError
            Raised if no output arrived within the timeout.
        """
        output = ""
        while not _PROMPT_REGEX.search(output):
            data = self._channel.recv(65535)
            if not data:
                raise paramiko.SSHException("Device closed the session")
            output += data.decode(errors="replace")
        return output

    def _send(self, command: DeviceCommand) -> str:
        self._channel.sendall(command.text + "\n")
        if command.mode == CommandMode.EAGER:
            return self._drain()
        return self._read_until_prompt()


class SSHSessionFactory:
    """Opens SSH sessions to devices.

    Parameters
    ----------
    timeout
        Timeout for each operation on a session.
    logger
        Logger to use.
    port
        SSH port of the devices.
    """

    def __init__(
        self,
        timeout: timedelta,
        logger: BoundLogger,
        *,
        port: int = 22,
    ) -> None:
        self._timeout = timeout
        self._logger = logger
        self._port = port

    async def __call__(
        self, address: str, credentials: DeviceCredentials
    ) -> SSHDeviceSession:
        return await SSHDeviceSession.open(
            address,
            credentials,
            port=self._port,
            timeout=self._timeout,
            logger=self._logger,
        )
