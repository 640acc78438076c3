"""Models for the device bootstrap protocol."""

from dataclasses import dataclass, field
from enum import Enum

__all__ = [
    "CertificateBundle",
    "CommandMode",
    "DeviceCommand",
    "DeviceCredentials",
]


@dataclass(frozen=True, slots=True)
class CertificateBundle:
    """PEM material for the TLS server profile installed on a device.

    The CA and certificate include their ``BEGIN``/``END`` markers. The key
    does not, and has had its newlines removed, which is the form the device
    CLI expects inside a quoted argument.
    """

    profile_name: str
    """Name of the TLS server profile to create."""

    ca: str = field(repr=False)
    """Trust anchor."""

    cert: str = field(repr=False)
    """Server certificate."""

    key: str = field(repr=False)
    """Server private key."""


class CommandMode(Enum):
    """How a command is transmitted over a device session."""

    INTERACTIVE = "interactive"
    """Send the command and wait until the device prompt returns."""

    EAGER = "eager"
    """Send the command and only drain the output already available.

    Used for commands with large quoted payloads, which the device echoes
    slowly enough that waiting for the prompt is unreliable.
    """


@dataclass(frozen=True, slots=True)
class DeviceCommand:
    """One command in a bootstrap script."""

    text: str
    """Command to send, without a trailing newline."""

    mode: CommandMode = CommandMode.INTERACTIVE
    """Transmission mode."""


@dataclass(frozen=True, slots=True)
class DeviceCredentials:
    """Username and password used to log into a device."""

    username: str
    """Login name."""

    password: str = field(repr=False)
    """Login password."""
