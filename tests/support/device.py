"""Mock device command sessions for tests."""

from __future__ import annotations

from nodeoperator.exceptions import BootstrapError
from nodeoperator.models.domain.bootstrap import (
    DeviceCommand,
    DeviceCredentials,
)

__all__ = [
    "MockDeviceSession",
    "MockDeviceSessionFactory",
]


class MockDeviceSession:
    """Records the commands sent to one device.

    Parameters
    ----------
    address
        Address the session was opened to.
    credentials
        Credentials used to open the session.
    fail_on
        If set, sending a command starting with this text raises
        `~nodeoperator.exceptions.BootstrapError` with ``error`` as its
        message.
    error
        Message of the raised error.
    """

    def __init__(
        self,
        address: str,
        credentials: DeviceCredentials,
        *,
        fail_on: str | None = None,
        error: str = "Error: command failed",
    ) -> None:
        self.address = address
        self.credentials = credentials
        self.commands: list[DeviceCommand] = []
        self.closed = False
        self._fail_on = fail_on
        self._error = error

    async def close(self) -> None:
        self.closed = True

    async def send(self, command: DeviceCommand) -> str:
        assert not self.closed, "Command sent on closed session"
        if self._fail_on and command.text.startswith(self._fail_on):
            raise BootstrapError(
                self._error, address=self.address, command=command.text
            )
        self.commands.append(command)
        return ""


class MockDeviceSessionFactory:
    """Opens mock sessions and remembers them for later inspection.

    Attributes
    ----------
    sessions
        Every session opened, in order.
    fail_on
        Passed to each new session.
    error
        Passed to each new session.
    refuse
        If set, opening a session fails with this message.
    """

    def __init__(self) -> None:
        self.sessions: list[MockDeviceSession] = []
        self.fail_on: str | None = None
        self.error = "Error: command failed"
        self.refuse: str | None = None

    async def __call__(
        self, address: str, credentials: DeviceCredentials
    ) -> MockDeviceSession:
        if self.refuse:
            raise BootstrapError(self.refuse, address=address)
        session = MockDeviceSession(
            address, credentials, fail_on=self.fail_on, error=self.error
        )
        self.sessions.append(session)
        return session
