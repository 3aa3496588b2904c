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
Engine client backed by the docker SDK's low-level APIClient.
"""
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional

import docker
import requests
from docker.errors import APIError, DockerException, NotFound

from .client import ContainerDetails, ContainerHandle, ContainerParameters, EngineClient
from .errors import EngineError, NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

# Phrase the daemon uses when the storage driver refuses a removal
PERMISSION_DENIED_PHRASE = "operation not permitted"


def classify(error: Exception, operation: str) -> EngineError:
    """
    Translates a docker SDK or transport exception into an EngineError.

    :param error: The exception raised by the SDK.
    :param operation: Short description used as message prefix.
    :return: NotFoundError, PermissionDeniedError or EngineError.
    """
    if isinstance(error, NotFound):
        return NotFoundError(f"{operation}: {error.explanation or error}")
    if isinstance(error, APIError):
        explanation = str(error.explanation or error)
        if error.is_server_error() and PERMISSION_DENIED_PHRASE in explanation:
            return PermissionDeniedError(f"{operation}: {explanation}")
        return EngineError(f"{operation}: {explanation}")
    return EngineError(f"{operation}: {error}")


@contextmanager
def _translated(operation: str):
    try:
        yield
    except (DockerException, requests.exceptions.RequestException) as e:
        raise classify(e, operation) from e


def _lines(chunks: Iterable[Any]) -> Iterator[str]:
    """
    Re-assembles streamed chunks into complete lines.
    """
    buffer = ""
    for chunk in chunks:
        if isinstance(chunk, dict):
            chunk = json.dumps(chunk) + "\n"
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")
        buffer += chunk
        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            line = line.strip()
            if line:
                yield line
    if buffer.strip():
        yield buffer.strip()


class DockerEngineClient(EngineClient):
    """
    EngineClient implementation talking to a Docker daemon.

    Usage:
        client = DockerEngineClient.from_env()
        for line in client.build_image(Path("ctx"), "me/app:1.0"):
            print(line)
    """

    def __init__(self, api: docker.APIClient):
        """
        :param api: A configured low-level docker API client.
        """
        self.api = api

    @classmethod
    def from_env(cls, timeout: int = 120) -> "DockerEngineClient":
        """Connect using DOCKER_HOST / DOCKER_TLS_VERIFY / DOCKER_CERT_PATH."""
        with _translated("connect"):
            api = docker.APIClient(version="auto", timeout=timeout, **docker.utils.kwargs_from_env())
        return cls(api)

    def _stream(self, operation: str, chunks: Iterable[Any]) -> Iterator[str]:
        with _translated(operation):
            yield from _lines(chunks)

    def build_image(self, path: Path, tag: str, no_cache: bool = False,
                    remove_intermediate: bool = False, quiet: bool = False) -> Iterator[str]:
        with _translated(f"build {tag}"):
            chunks = self.api.build(
                path=str(path), tag=tag, nocache=no_cache, rm=remove_intermediate, quiet=quiet
            )
        return self._stream(f"build {tag}", chunks)

    def tag_image(self, image_id: str, repository: str, tag: Optional[str], force: bool = True) -> None:
        with _translated(f"tag {image_id}"):
            self.api.tag(image_id, repository, tag=tag, force=force)

    def image_id(self, tag: str) -> str:
        with _translated(f"inspect image {tag}"):
            return self.api.inspect_image(tag)["Id"]

    def remove_image(self, image_id: str, force: bool = True) -> None:
        with _translated(f"remove image {image_id}"):
            self.api.remove_image(image_id, force=force)

    def push_image(self, repository: str) -> Iterator[str]:
        with _translated(f"push {repository}"):
            chunks = self.api.push(repository, stream=True)
        return self._stream(f"push {repository}", chunks)

    def list_containers(self, all: bool = False) -> List[ContainerHandle]:
        with _translated("list containers"):
            containers = self.api.containers(all=all)
        return [
            ContainerHandle(id=c["Id"], names=tuple(c.get("Names") or ()), image=c.get("Image", ""))
            for c in containers
        ]

    def inspect_container(self, container: str) -> ContainerDetails:
        with _translated(f"inspect container {container}"):
            info = self.api.inspect_container(container)
        network = info.get("NetworkSettings") or {}
        state = info.get("State") or {}
        return ContainerDetails(
            id=info["Id"],
            image_id=info.get("Image", ""),
            ip_address=network.get("IPAddress") or "",
            running=bool(state.get("Running")),
        )

    def create_container(self, parameters: ContainerParameters) -> str:
        with _translated(f"create container {parameters.name}"):
            host_config = self.api.create_host_config(
                port_bindings=dict(parameters.ports),
                binds=[f"{host}:{target}:rw" for host, target in parameters.binds],
                links=list(parameters.links),
                publish_all_ports=True,
            )
            response = self.api.create_container(
                image=parameters.image_id,
                name=parameters.name,
                ports=list(parameters.ports),
                environment=list(parameters.env),
                host_config=host_config,
            )
        return response["Id"]

    def start_container(self, container_id: str) -> None:
        with _translated(f"start container {container_id}"):
            self.api.start(container_id)

    def stop_container(self, container_id: str, timeout: int = 1) -> None:
        with _translated(f"stop container {container_id}"):
            self.api.stop(container_id, timeout=timeout)

    def remove_container(self, container_id: str, force: bool = True) -> None:
        with _translated(f"remove container {container_id}"):
            self.api.remove_container(container_id, force=force)

    def fetch_logs(self, container_id: str, stdout: bool = True, stderr: bool = True,
                   tail: Optional[int] = None) -> bytes:
        with _translated(f"logs {container_id}"):
            return self.api.logs(
                container_id, stdout=stdout, stderr=stderr, tail=tail if tail else "all"
            )
