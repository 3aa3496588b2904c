"""
Container engine client interface, docker implementation and error types.
"""
from .client import ContainerDetails, ContainerHandle, ContainerParameters, EngineClient
from .errors import (
    EngineError,
    ErrorKind,
    NotFoundError,
    OrchestrationError,
    PermissionDeniedError,
    SoftFailure,
)

__all__ = [
    "ContainerDetails",
    "ContainerHandle",
    "ContainerParameters",
    "EngineClient",
    "EngineError",
    "ErrorKind",
    "NotFoundError",
    "OrchestrationError",
    "PermissionDeniedError",
    "SoftFailure",
]
