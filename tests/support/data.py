"""Utilities for reading test data."""

from __future__ import annotations

from pathlib import Path

from nodeoperator.constants import (
    CERTIFICATE_CA_KEY,
    CERTIFICATE_CERT_KEY,
    CERTIFICATE_KEY_KEY,
)

__all__ = [
    "data_path",
    "read_certificate_data",
    "read_input_data",
]


def data_path(filename: str) -> Path:
    """Return the path to a file in the test data directory.

    Parameters
    ----------
    filename
        Path relative to ``tests/data``.

    Returns
    -------
    pathlib.Path
        Absolute path to the file.
    """
    return Path(__file__).parent.parent / "data" / filename


def read_input_data(filename: str) -> str:
    """Read a test data file as text.

    Parameters
    ----------
    filename
        Path relative to ``tests/data``.

    Returns
    -------
    str
        Contents of the file.
    """
    return data_path(filename).read_text()


def read_certificate_data() -> dict[str, str]:
    """Read the test certificate material in secret data form.

    Returns
    -------
    dict of str
        Decoded data of a node certificate secret.
    """
    return {
        key: read_input_data(f"certificates/{key}")
        for key in (
            CERTIFICATE_CA_KEY,
            CERTIFICATE_CERT_KEY,
            CERTIFICATE_KEY_KEY,
        )
    }
