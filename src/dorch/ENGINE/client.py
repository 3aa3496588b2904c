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
Engine client interface consumed by the orchestrator.

Implementations raise EngineError, NotFoundError or PermissionDeniedError
from dorch.ENGINE.errors and never leak library specific exceptions.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class ContainerHandle:
    """A container as reported by a list call."""

    id: str
    names: Tuple[str, ...] = ()
    image: str = ""


@dataclass(frozen=True)
class ContainerDetails:
    """A container as reported by an inspect call."""

    id: str
    image_id: str
    ip_address: str = ""
    running: bool = False


@dataclass(frozen=True)
class ContainerParameters:
    """Everything needed to create a container for one definition."""

    image_id: str
    name: str
    ports: Dict[int, int] = field(default_factory=dict)  # {container: host}
    binds: List[Tuple[str, str]] = field(default_factory=list)  # [(host path, container path)]
    env: List[str] = field(default_factory=list)
    links: List[Tuple[str, str]] = field(default_factory=list)  # [(container name, alias)]


class EngineClient(ABC):
    """Operations the orchestrator needs from a container engine daemon."""

    @abstractmethod
    def build_image(
        self,
        path: Path,
        tag: str,
        no_cache: bool = False,
        remove_intermediate: bool = False,
        quiet: bool = False,
    ) -> Iterator[str]:
        """Build an image from a context directory, yielding output lines."""

    @abstractmethod
    def tag_image(self, image_id: str, repository: str, tag: Optional[str], force: bool = True) -> None:
        """Apply an additional tag to an image."""

    @abstractmethod
    def image_id(self, tag: str) -> str:
        """Return the id of the image carrying tag; raise NotFoundError otherwise."""

    @abstractmethod
    def remove_image(self, image_id: str, force: bool = True) -> None:
        """Remove an image."""

    @abstractmethod
    def push_image(self, repository: str) -> Iterator[str]:
        """Push a repository, yielding output lines."""

    @abstractmethod
    def list_containers(self, all: bool = False) -> List[ContainerHandle]:
        """List containers; stopped ones are included only when all is set."""

    @abstractmethod
    def inspect_container(self, container: str) -> ContainerDetails:
        """Inspect a container by id or name."""

    @abstractmethod
    def create_container(self, parameters: ContainerParameters) -> str:
        """Create a container and return its id."""

    @abstractmethod
    def start_container(self, container_id: str) -> None:
        """Start a created or stopped container."""

    @abstractmethod
    def stop_container(self, container_id: str, timeout: int = 1) -> None:
        """Stop a running container, killing it after timeout seconds."""

    @abstractmethod
    def remove_container(self, container_id: str, force: bool = True) -> None:
        """Remove a container; raises PermissionDeniedError on OS permission failures."""

    @abstractmethod
    def fetch_logs(
        self, container_id: str, stdout: bool = True, stderr: bool = True, tail: Optional[int] = None
    ) -> bytes:
        """Return raw container log output, possibly with stream framing headers."""
