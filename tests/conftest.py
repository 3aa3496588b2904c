import itertools
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import pytest

from dorch.ENGINE.client import ContainerDetails, ContainerHandle, ContainerParameters, EngineClient
from dorch.ENGINE.errors import EngineError, NotFoundError
from dorch.MANAGERS.orchestrator import DockerOrchestrator
from dorch.MODELS.orchestration_config import OrchestrationConfig

ERROR_LINE = '{"errorDetail":{"message":"boom"},"error":"boom"}'


class FakeContainer:
    def __init__(self, id, name, image_id):
        self.id = id
        self.name = name
        self.image_id = image_id
        self.running = False
        self.ip_address = ""
        self.aliases = []


class FakeEngineClient(EngineClient):
    """
    In-memory engine that records every call made against it.
    """
    def __init__(self):
        self.calls = []
        self.images: Dict[str, str] = {}
        self.containers: Dict[str, FakeContainer] = {}
        self.logs: Dict[str, bytes] = {}
        self.default_logs = b""
        self.build_output: Dict[str, List[str]] = {}
        self.push_output: List[str] = ["The push refers to repository", "latest: digest: sha256:abc"]
        self.errors: Dict[str, Exception] = {}
        self.closed_streams = 0
        self._counter = itertools.count(1)

    def fail_on(self, method: str, error: Exception):
        self.errors[method] = error

    def _call(self, method: str, *args):
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def methods(self) -> List[str]:
        return [call[0] for call in self.calls]

    def add_image(self, tag: str) -> str:
        image_id = f"sha256:{next(self._counter):04d}"
        self.images[tag] = image_id
        return image_id

    def add_container(self, name: str, image_id: str, running: bool = False) -> FakeContainer:
        container = FakeContainer(f"c{next(self._counter):04d}", name, image_id)
        self.containers[container.id] = container
        if running:
            self._run(container)
        return container

    def _run(self, container: FakeContainer):
        container.running = True
        container.ip_address = f"172.17.0.{len(self.containers) + 1}"

    def _lookup(self, container: str) -> FakeContainer:
        for c in self.containers.values():
            if container in (c.id, c.name):
                return c
        raise NotFoundError(f"No such container: {container}")

    def _stream(self, lines: List[str], on_success=None) -> Iterator[str]:
        try:
            for line in lines:
                yield line
            if on_success is not None:
                on_success()
        finally:
            self.closed_streams += 1

    def build_image(self, path: Path, tag: str, no_cache: bool = False,
                    remove_intermediate: bool = False, quiet: bool = False) -> Iterator[str]:
        self._call("build_image", tag, no_cache, remove_intermediate, quiet)
        lines = self.build_output.get(tag, ["Step 1/1 : FROM busybox", "Successfully built"])
        return self._stream(lines, on_success=lambda: self.add_image(tag))

    def tag_image(self, image_id: str, repository: str, tag: Optional[str], force: bool = True) -> None:
        self._call("tag_image", image_id, repository, tag)
        self.images[f"{repository}:{tag}"] = image_id

    def image_id(self, tag: str) -> str:
        self._call("image_id", tag)
        if tag not in self.images:
            raise NotFoundError(f"No such image: {tag}")
        return self.images[tag]

    def remove_image(self, image_id: str, force: bool = True) -> None:
        self._call("remove_image", image_id)
        tags = [tag for tag, value in self.images.items() if value == image_id]
        if not tags:
            raise NotFoundError(f"No such image: {image_id}")
        for tag in tags:
            del self.images[tag]

    def push_image(self, repository: str) -> Iterator[str]:
        self._call("push_image", repository)
        return self._stream(self.push_output)

    def list_containers(self, all: bool = False) -> List[ContainerHandle]:
        self._call("list_containers", all)
        return [
            ContainerHandle(id=c.id, names=tuple([f"/{c.name}"] + c.aliases), image=c.image_id)
            for c in self.containers.values()
            if all or c.running
        ]

    def inspect_container(self, container: str) -> ContainerDetails:
        self._call("inspect_container", container)
        c = self._lookup(container)
        return ContainerDetails(id=c.id, image_id=c.image_id, ip_address=c.ip_address, running=c.running)

    def create_container(self, parameters: ContainerParameters) -> str:
        self._call("create_container", parameters)
        if any(c.name == parameters.name for c in self.containers.values()):
            raise EngineError(f"Conflict. The container name /{parameters.name} is already in use")
        container = self.add_container(parameters.name, parameters.image_id)
        for target, alias in parameters.links:
            self._lookup(target).aliases.append(f"/{parameters.name}/{alias}")
        return container.id

    def start_container(self, container_id: str) -> None:
        self._call("start_container", container_id)
        self._run(self._lookup(container_id))

    def stop_container(self, container_id: str, timeout: int = 1) -> None:
        self._call("stop_container", container_id, timeout)
        c = self._lookup(container_id)
        c.running = False
        c.ip_address = ""

    def remove_container(self, container_id: str, force: bool = True) -> None:
        self._call("remove_container", container_id, force)
        del self.containers[self._lookup(container_id).id]

    def fetch_logs(self, container_id: str, stdout: bool = True, stderr: bool = True,
                   tail: Optional[int] = None) -> bytes:
        self._call("fetch_logs", container_id, tail)
        return self.logs.get(container_id, self.default_logs)


def write_dockerfile(base: Path, id: str, content: str = "FROM busybox\n") -> Path:
    src = base / "src" / "main" / "docker" / id
    src.mkdir(parents=True, exist_ok=True)
    (src / "Dockerfile").write_text(content)
    return src


@pytest.fixture
def client():
    return FakeEngineClient()


@pytest.fixture
def make_config():
    def factory(containers, **kwargs):
        kwargs.setdefault("project", "demo")
        kwargs.setdefault("user", "me")
        kwargs.setdefault("version", "1.0")
        return OrchestrationConfig(containers=containers, **kwargs)
    return factory


@pytest.fixture
def make_orchestrator(tmp_path, client, make_config):
    """
    Builds an orchestrator over the fake client with a Dockerfile per container.
    """
    def factory(containers, config_kwargs=None, **kwargs):
        config = make_config(containers, **(config_kwargs or {}))
        for id in containers:
            write_dockerfile(tmp_path, id)
        kwargs.setdefault("sleep", lambda seconds: None)
        return DockerOrchestrator.from_config(config, client, base_dir=str(tmp_path), **kwargs)
    return factory
