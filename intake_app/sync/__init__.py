"""
Client for the remote application backend.
"""

from .client import (
    BackendClient,
    BackendError,
    BackendUnreachableError,
    InvalidCredentialsError,
    remote_to_payload,
)

__all__ = [
    "BackendClient",
    "BackendError",
    "BackendUnreachableError",
    "InvalidCredentialsError",
    "remote_to_payload",
]
