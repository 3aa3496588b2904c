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
Orchestration of multiple containers: build, start, stop, clean and push
every included definition in the order the configuration declares them.
"""
import logging
import os
import time
from pathlib import Path
from typing import AbstractSet, Callable, Dict, Iterable, List, Optional, Type, TypeVar, Union

from ..BUILDERS.context_builder import ContextBuilder
from ..BUILDERS.dockerfile_validator import DockerfileValidator
from ..ENGINE.client import ContainerParameters, EngineClient
from ..ENGINE.errors import EngineError, ErrorKind, NotFoundError, OrchestrationError, SoftFailure
from ..MODELS.container_conf import BuildFlag
from ..MODELS.identity import Id
from ..MODELS.orchestration_config import OrchestrationConfig
from .failure_policy import FailurePolicy
from .health_checker import HealthChecker
from .image_pipeline import ImagePipeline
from .inclusion import ANY, DefinitionFilter, InclusionFilter
from .link_resolver import LinkResolver
from .plugins import Plugin, PluginDispatcher
from .repo import Repo

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=Plugin)

STOP_TIMEOUT_SECONDS = 1


class DockerOrchestrator:
    """
    Decides, for each container definition, whether to build, create, recreate,
    start, skip or fail, and drives the engine accordingly.

    Definitions are processed strictly one after another in the repo's order;
    links assume their targets were started earlier in the same pass.
    """
    def __init__(
        self,
        client: EngineClient,
        repo: Repo,
        context_builder: ContextBuilder,
        build_flags: AbstractSet[BuildFlag] = frozenset(),
        plugins: Iterable[Plugin] = (),
        definition_filter: DefinitionFilter = ANY,
        permission_error_tolerant: bool = False,
        validator: Optional[DockerfileValidator] = None,
        health_checker: Optional[HealthChecker] = None,
        log: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initializes the orchestrator.

        :param client: Engine client.
        :param repo: Identity and configuration store.
        :param context_builder: Prepares build contexts.
        :param build_flags: Flags applied to every build.
        :param plugins: Lifecycle observers, notified in this order.
        :param definition_filter: External inclusion predicate.
        :param permission_error_tolerant: Tolerate permission errors on container removal.
        :param validator: Dockerfile validator.
        :param health_checker: Health check engine.
        :param log: Logger for progress output.
        :param sleep: Used for the post-start delay.
        """
        self.client = client
        self.repo = repo
        self.log = log or logger
        self.sleep = sleep
        self.inclusion = InclusionFilter(repo, definition_filter, self.log)
        self.plugins = PluginDispatcher(plugins, self.log)
        self.failure_policy = FailurePolicy(client, repo, permission_error_tolerant, self.log)
        self.links = LinkResolver(repo)
        self.health_checker = health_checker or HealthChecker(client, repo)
        self.images = ImagePipeline(
            client, repo, context_builder, validator or DockerfileValidator(), build_flags, self.log
        )

    @classmethod
    def from_config(
        cls,
        config: OrchestrationConfig,
        client: EngineClient,
        base_dir: str = ".",
        extra_build_flags: AbstractSet[BuildFlag] = frozenset(),
        permission_error_tolerant: Optional[bool] = None,
        **kwargs,
    ) -> "DockerOrchestrator":
        """
        Wires an orchestrator from a parsed manifest.

        :param config: Parsed manifest.
        :param client: Engine client.
        :param base_dir: Directory of the manifest; relative paths resolve against it.
        :param extra_build_flags: Flags added to the manifest's build_flags.
        :param permission_error_tolerant: Overrides the manifest setting when not None.
        """
        repo = Repo(client, config, base_dir)
        properties = dict(config.properties)
        properties.setdefault("project.version", config.version)
        context_builder = ContextBuilder(
            work_dir=os.path.join(base_dir, config.work_dir), root_dir=base_dir, properties=properties
        )
        tolerant = config.permission_error_tolerant if permission_error_tolerant is None else permission_error_tolerant
        return cls(
            client,
            repo,
            context_builder,
            build_flags=frozenset(config.build_flags) | frozenset(extra_build_flags),
            permission_error_tolerant=tolerant,
            **kwargs,
        )

    # Public operations

    def ids(self) -> List[Id]:
        return self.repo.ids()

    def build(self, id: Union[Id, str, None] = None) -> None:
        """
        Builds one image, or every included one in order.
        """
        if id is not None:
            self.images.build(_as_id(id))
            return
        for id in self.ids():
            if self.inclusion.included(id):
                self.images.build(id)

    def validate(self) -> None:
        """
        Validates every included definition, raising the last failure after trying all.
        """
        last: Optional[OrchestrationError] = None
        for id in self.ids():
            if not self.inclusion.included(id):
                continue
            try:
                self.images.validate(id)
            except OrchestrationError as e:
                self.log.error(f"{id} is invalid: {e}")
                last = e
        if last is not None:
            raise OrchestrationError(str(last), last.kind, last) from last

    def start(self, id: Union[Id, str, None] = None) -> None:
        """
        Starts one definition, or every included one in order.
        """
        if id is not None:
            self._start(_as_id(id))
            return
        for id in self.ids():
            if self.inclusion.included(id):
                self._start(id)

    def stop(self, id: Union[Id, str, None] = None) -> None:
        """
        Stops one definition, or every included one including leftovers
        that only exist as containers.
        """
        if id is not None:
            self._stop(_as_id(id))
            return
        for id in self._teardown_ids():
            if self.inclusion.included(id):
                self._stop(id)

    def clean(self, id: Union[Id, str, None] = None) -> List[SoftFailure]:
        """
        Stops and removes containers and images.

        :return: The soft failures tolerated along the way.
        """
        if id is not None:
            return self._clean(_as_id(id))
        failures = []
        for id in self._teardown_ids():
            if self.inclusion.included(id):
                failures.extend(self._clean(id))
        return failures

    def push(self, id: Union[Id, str, None] = None) -> None:
        """
        Pushes one image, or every included one in order.
        """
        if id is not None:
            self.images.push(_as_id(id))
            return
        for id in self.ids():
            if self.inclusion.included(id):
                self.images.push(id)

    def is_running(self) -> bool:
        """
        True iff every included definition has a running container.
        """
        try:
            return all(
                self.repo.find_running_container(id) is not None
                for id in self.ids()
                if self.inclusion.included(id)
            )
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e

    def get_ip_addresses(self) -> Dict[str, str]:
        """
        Maps id to container IP for included definitions that expose it.
        """
        addresses = {}
        try:
            for id in self.ids():
                if self.inclusion.included(id) and self.repo.conf(id).expose_container_ip:
                    details = self.client.inspect_container(self.repo.container_name(id))
                    addresses[str(id)] = details.ip_address
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e
        return addresses

    def get_plugin(self, plugin_class: Type[P]) -> P:
        return self.plugins.get(plugin_class)

    def container_parameters(self, id: Id) -> ContainerParameters:
        """
        Builds everything needed to create id's container, resolving links eagerly.

        :raises OrchestrationError: NOT_FOUND when a link target is not running.
        """
        conf = self.repo.conf(id)
        image_id = self.repo.find_image_id(id)

        links = self.links.resolve(id)

        ports = {}
        for mapping in conf.ports:
            self.log.info(f" - port {mapping.host}->{mapping.container}")
            ports[mapping.container] = mapping.host

        binds = []
        for container_path, host_path in conf.volumes.items():
            path = str(Path(host_path).absolute())
            self.log.info(f" - volumes {container_path} <- {path}")
            binds.append((path, container_path))

        self.log.info(f" - env {conf.env}")
        env = [f"{key}={value}" for key, value in conf.env.items()]

        return ContainerParameters(
            image_id=image_id,
            name=self.repo.container_name(id),
            ports=ports,
            binds=binds,
            env=env,
            links=links,
        )

    # Per-id operations

    def _teardown_ids(self) -> List[Id]:
        try:
            return self.repo.ids(include_existing=True)
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e

    def _start(self, id: Id) -> None:
        self.log.info(f"Starting {id}")

        try:
            image_exists = self.repo.image_exists(id)
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e
        if not image_exists:
            self.log.info("Image does not exist, so building it")
            self.images.build(id)

        failed = True
        try:
            existing = self.repo.find_container(id)
            if existing is None:
                self.log.info("No existing container so creating and starting new one")
                self._start_container(self._create_container(id))
            else:
                details = self.client.inspect_container(existing.id)
                if details.image_id != self.repo.find_image_id(id):
                    self.log.info("Image IDs do not match, removing container and creating new one from image")
                    self.failure_policy.remove_container(id, existing)
                    self._start_container(self._create_container(id))
                elif details.running:
                    self.log.info("Container already running")
                else:
                    self.log.info(f"Starting existing container {existing.id}")
                    self._start_container(existing.id)

            self.plugins.started(id, self.repo.conf(id))
            self.health_checker.check(id)
            self._post_start_delay(id)
            failed = False
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e
        finally:
            if failed:
                self.failure_policy.capture_logs(id)

    def _create_container(self, id: Id) -> str:
        self.log.info(f"Creating container for {id}")
        return self.client.create_container(self.container_parameters(id))

    def _start_container(self, container_id: str) -> None:
        self.client.start_container(container_id)

    def _post_start_delay(self, id: Id) -> None:
        delay = self.repo.conf(id).sleep
        self.log.info(f"Sleeping for {delay}s")
        if delay > 0:
            self.sleep(delay)

    def _stop(self, id: Id) -> None:
        self.log.info(f"Stopping {id}")
        try:
            for container in self.repo.find_containers(id, False):
                self.log.info(f"Stopping container {list(container.names)}")
                self.client.stop_container(container.id, timeout=STOP_TIMEOUT_SECONDS)
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e
        self.plugins.stopped(id, self.repo.conf(id))

    def _clean(self, id: Id) -> List[SoftFailure]:
        self._stop(id)
        self.log.info(f"Cleaning {id}")
        failures = []
        try:
            for container in self.repo.find_containers(id, True):
                self.log.info(f"Removing container {container.id}")
                failure = self.failure_policy.remove_container(id, container)
                if failure is not None:
                    failures.append(failure)
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e

        try:
            image_id = self.repo.find_image_id(id)
        except NotFoundError as e:
            failures.append(self.failure_policy.soft_failure(id, ErrorKind.NOT_FOUND, f"Image {id} not found", e))
            return failures
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e

        self.log.info(f"Removing image {image_id}")
        try:
            self.client.remove_image(image_id, force=True)
        except EngineError as e:
            kind = ErrorKind.NOT_FOUND if isinstance(e, NotFoundError) else ErrorKind.ENGINE
            failures.append(self.failure_policy.soft_failure(id, kind, str(e), e))
        return failures


def _as_id(id: Union[Id, str]) -> Id:
    return id if isinstance(id, Id) else Id(id)
