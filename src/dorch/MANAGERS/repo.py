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
Lookup surface mapping container ids to configuration, names, tags and the
containers and images that currently exist in the engine.
"""
import logging
from pathlib import Path
from typing import List, Optional

from ..ENGINE.client import ContainerHandle, EngineClient
from ..ENGINE.errors import NotFoundError
from ..MODELS.container_conf import Conf
from ..MODELS.identity import Id
from ..MODELS.orchestration_config import OrchestrationConfig

logger = logging.getLogger(__name__)


class Repo:
    """
    Read-only view over the configuration and the engine's current state.

    Nothing here is cached: every container or image query goes to the engine.
    """
    def __init__(self, client: EngineClient, config: OrchestrationConfig, base_dir: str = "."):
        """
        Initializes the repo.

        :param client: Engine client used for queries.
        :param config: The loaded orchestration configuration.
        :param base_dir: Directory the manifest's relative src path is resolved against.
        """
        self.client = client
        self.config = config
        self.src_dir = Path(base_dir) / config.src

    @property
    def project(self) -> str:
        return self.config.project

    def conf(self, id: Id) -> Conf:
        """
        Returns the configuration for id; ids only known from the engine get defaults.
        """
        conf = self.config.containers.get(str(id))
        return conf if conf is not None else Conf()

    def src(self, id: Id) -> Path:
        return self.src_dir / str(id)

    def container_name(self, id: Id) -> str:
        return f"{self.project}_{id}"

    def tag(self, id: Id) -> str:
        """
        Returns the primary image tag for id.
        """
        tags = self.conf(id).tags
        if tags:
            return tags[0]
        return f"{self.config.user}/{self.project}_{id}:{self.config.version}"

    def secondary_tags(self, id: Id) -> List[str]:
        return list(self.conf(id).tags[1:])

    def ids(self, include_existing: bool = False) -> List[Id]:
        """
        Returns the configured ids in declared order.

        :param include_existing: Also append ids that only exist as engine
            containers of this project, so they can be torn down.
        :return: Ordered ids.
        """
        ids = self.config.ids()
        if not include_existing:
            return ids
        prefix = f"/{self.project}_"
        known = set(ids)
        for container in self.client.list_containers(all=True):
            for name in container.names:
                if not name.startswith(prefix):
                    continue
                candidate = name[len(prefix):]
                # Skip link aliases such as /web/database
                if "/" in candidate:
                    continue
                try:
                    id = Id(candidate)
                except ValueError:
                    continue
                if id not in known:
                    logger.debug(f"Found container {name} with no definition")
                    known.add(id)
                    ids.append(id)
        return ids

    def find_containers(self, id: Id, all: bool) -> List[ContainerHandle]:
        """
        Returns the engine containers named after id.

        :param all: Include stopped containers.
        """
        name = "/" + self.container_name(id)
        return [c for c in self.client.list_containers(all=all) if name in c.names]

    def find_container(self, id: Id) -> Optional[ContainerHandle]:
        """
        Returns the container for id in any state, or None.
        """
        containers = self.find_containers(id, True)
        return containers[0] if containers else None

    def find_running_container(self, id: Id) -> Optional[ContainerHandle]:
        containers = self.find_containers(id, False)
        return containers[0] if containers else None

    def find_image_id(self, id: Id) -> str:
        """
        Returns the id of the image currently tagged for id.

        :raises NotFoundError: If no such image exists.
        """
        return self.client.image_id(self.tag(id))

    def image_exists(self, id: Id) -> bool:
        try:
            self.find_image_id(id)
            return True
        except NotFoundError:
            return False
