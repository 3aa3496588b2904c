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
Image build, tag and push pipelines.
"""
import logging
from typing import AbstractSet, Iterable

from ..BUILDERS.context_builder import ContextBuilder
from ..BUILDERS.dockerfile_validator import DockerfileValidationError, DockerfileValidator
from ..ENGINE.client import EngineClient
from ..ENGINE.errors import EngineError, ErrorKind, OrchestrationError
from ..MODELS.container_conf import BuildFlag
from ..MODELS.identity import Id
from ..UTILS.image_tag import repository_of, split_tag
from .repo import Repo

logger = logging.getLogger(__name__)

ERROR_MARKER = '{"errorDetail'


class ImagePipeline:
    """
    Validates, builds, tags and pushes the image of a container definition.
    """
    def __init__(
        self,
        client: EngineClient,
        repo: Repo,
        context_builder: ContextBuilder,
        validator: DockerfileValidator,
        build_flags: AbstractSet[BuildFlag] = frozenset(),
        log: logging.Logger = logger,
    ):
        self.client = client
        self.repo = repo
        self.context_builder = context_builder
        self.validator = validator
        self.build_flags = frozenset(build_flags)
        self.log = log

    def validate(self, id: Id) -> None:
        """
        Checks id's Dockerfile without touching the engine.

        :raises OrchestrationError: CONFIGURATION on a structural problem.
        """
        try:
            self.validator.validate(self.repo.src(id), packaged=self.repo.conf(id).packaging.add)
        except DockerfileValidationError as e:
            raise OrchestrationError(str(e), ErrorKind.CONFIGURATION, e) from e
        except OSError as e:
            raise OrchestrationError.wrap(e) from e

    def build(self, id: Id) -> None:
        """
        Builds id's image and applies its secondary tags.

        :raises OrchestrationError: On validation, preparation, build or tag failure.
        """
        self.validate(id)
        self.log.info(f"Preparing {id}")
        try:
            context = self.context_builder.prepare(id, self.repo.src(id), self.repo.conf(id))
        except OSError as e:
            raise OrchestrationError.wrap(e) from e

        tag = self.repo.tag(id)
        no_cache = BuildFlag.NO_CACHE in self.build_flags
        remove = BuildFlag.REMOVE_INTERMEDIATE_IMAGES in self.build_flags
        quiet = BuildFlag.QUIET in self.build_flags
        self.log.info(f"Building {id} ({tag})")
        self.log.info(f" - no cache: {no_cache}")
        self.log.info(f" - remove intermediate images: {remove}")
        self.log.info(f" - quiet: {quiet}")

        try:
            self.consume(self.client.build_image(
                context, tag, no_cache=no_cache, remove_intermediate=remove, quiet=quiet
            ))
            self.tag_secondary(id)
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e

    def tag_secondary(self, id: Id) -> None:
        """
        Applies every secondary tag of id to its freshly built image, forcing overwrite.
        """
        tags = self.repo.secondary_tags(id)
        if not tags:
            return
        image_id = self.repo.find_image_id(id)
        for other in tags:
            repository, tag = split_tag(other)
            if tag is None:
                self.log.debug(f"Not tagging {other}, no tag component")
                continue
            if not repository or not tag:
                raise OrchestrationError(f"Malformed tag {other!r} for {id}", ErrorKind.CONFIGURATION)
            self.log.info(f"Tagging {image_id} as {repository}:{tag}")
            self.client.tag_image(image_id, repository, tag, force=True)

    def push(self, id: Id) -> None:
        """
        Pushes id's repository (the primary tag without its tag component).
        """
        repository = repository_of(self.repo.tag(id))
        self.log.info(f"Pushing {id} ({repository})")
        try:
            self.consume(self.client.push_image(repository))
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e

    def consume(self, lines: Iterable[str]) -> None:
        """
        Logs streamed output; the first error line aborts without draining the rest.

        :raises OrchestrationError: STREAM with the offending line as message.
        """
        try:
            for line in lines:
                self.log.info(line)
                if line.startswith(ERROR_MARKER):
                    raise OrchestrationError(line, ErrorKind.STREAM)
        finally:
            close = getattr(lines, "close", None)
            if close is not None:
                close()
