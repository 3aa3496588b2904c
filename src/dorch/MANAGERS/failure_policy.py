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
Policies that downgrade specific failures to logged soft failures:
permission-tolerant container removal and best-effort log capture.
"""
import logging
from typing import Optional

from ..ENGINE.client import ContainerHandle, EngineClient
from ..ENGINE.errors import ErrorKind, OrchestrationError, PermissionDeniedError, SoftFailure
from ..MODELS.identity import Id
from ..UTILS.docker_logs import trim_log_headers
from .repo import Repo

logger = logging.getLogger(__name__)


class FailurePolicy:
    """
    Applies the tolerance rules and reports what was tolerated.
    """
    def __init__(
        self,
        client: EngineClient,
        repo: Repo,
        permission_error_tolerant: bool = False,
        log: logging.Logger = logger,
    ):
        """
        :param client: Engine client.
        :param repo: Repo used to locate containers.
        :param permission_error_tolerant: Swallow permission errors on removal.
        :param log: Logger soft failures are reported to.
        """
        self.client = client
        self.repo = repo
        self.permission_error_tolerant = permission_error_tolerant
        self.log = log

    def soft_failure(self, id: Id, kind: ErrorKind, message: str,
                     cause: Optional[BaseException] = None) -> SoftFailure:
        """
        Creates and logs a soft failure.
        """
        failure = SoftFailure(id=str(id), kind=kind, message=message, cause=cause)
        self.log.warning(str(failure))
        return failure

    def remove_container(self, id: Id, container: ContainerHandle) -> Optional[SoftFailure]:
        """
        Force-removes a container.

        :return: A SoftFailure when a permission error was tolerated, else None.
        :raises PermissionDeniedError: When not configured to tolerate it.
        """
        try:
            self.client.remove_container(container.id, force=True)
        except PermissionDeniedError as e:
            if not self.permission_error_tolerant:
                raise
            return self.soft_failure(
                id,
                ErrorKind.ENGINE,
                f"ignoring {e} when removing container as we are configured to be permission error tolerant",
                e,
            )
        return None

    def capture_logs(self, id: Id) -> Optional[SoftFailure]:
        """
        Logs the recent output of id's container, if configured to.

        Never raises; any problem is returned as a SoftFailure.
        """
        container = None
        try:
            container = self.repo.find_container(id)
            if container is None:
                return None
            conf = self.repo.conf(id)
            if not conf.log_on_failure:
                return None
            tail = conf.max_log_lines if conf.max_log_lines > 0 else None
            raw = self.client.fetch_logs(container.id, stdout=True, stderr=True, tail=tail)
            limit = f" (max last {tail} lines)" if tail else ""
            self.log.info(f"Logs{limit} from container {container.id}:\n{trim_log_headers(raw)}")
            return None
        except Exception as e:
            target = container.id if container is not None else str(id)
            error = OrchestrationError.wrap(e)
            return self.soft_failure(
                id, error.kind, f"Unable to obtain logs from container {target}, will continue: {e}", e
            )
