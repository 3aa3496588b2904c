# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Error types shared by the engine client and the orchestrator.

Engine clients raise EngineError (or one of its subclasses); the orchestrator
wraps anything fatal in OrchestrationError and records tolerated problems as
SoftFailure values.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification carried by every orchestration error and soft failure."""

    CONFIGURATION = "configuration"
    NOT_FOUND = "not-found"
    ENGINE = "engine"
    HEALTH_CHECK_TIMEOUT = "health-check-timeout"
    STREAM = "stream"
    IO = "io"


class EngineError(Exception):
    """Base exception for container engine client failures."""

    pass


class NotFoundError(EngineError):
    """Raised when an image or container does not exist."""

    pass


class PermissionDeniedError(EngineError):
    """Raised when the daemon refused an operation with an OS permission error."""

    pass


class OrchestrationError(Exception):
    """
    The single error type surfaced by orchestrator operations.

    :param message: Human readable description.
    :param kind: Classification of the failure.
    :param cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.ENGINE,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.cause = cause

    @classmethod
    def wrap(cls, error: BaseException) -> "OrchestrationError":
        """Wrap an engine or I/O error, picking the kind from its type."""
        if isinstance(error, OrchestrationError):
            return error
        if isinstance(error, NotFoundError):
            kind = ErrorKind.NOT_FOUND
        elif isinstance(error, OSError):
            kind = ErrorKind.IO
        else:
            kind = ErrorKind.ENGINE
        return cls(str(error) or type(error).__name__, kind=kind, cause=error)


@dataclass(frozen=True)
class SoftFailure:
    """A failure that was tolerated by policy and logged instead of raised."""

    id: str
    kind: ErrorKind
    message: str
    cause: Optional[BaseException] = None

    def __str__(self) -> str:
        return f"{self.id}: {self.message} ({self.kind.value})"
