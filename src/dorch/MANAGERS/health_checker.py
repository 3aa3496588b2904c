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
Health checks run after a container starts: each configured ping polls a URL
until its body matches a pattern or the ping's timeout elapses.
"""
import logging
import re
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import httpx
from tenacity import Retrying, retry_if_result, stop_after_delay, wait_fixed

from ..ENGINE.client import EngineClient
from ..ENGINE.errors import EngineError, ErrorKind, OrchestrationError
from ..MODELS.container_conf import Ping
from ..MODELS.identity import Id
from .repo import Repo

logger = logging.getLogger(__name__)

CONTAINER_IP_PLACEHOLDER = "__CONTAINER.IP__"


class HealthChecker:
    """
    Runs the configured pings for a container, fail-fast in declared order.
    """

    def __init__(
        self,
        client: EngineClient,
        repo: Repo,
        http_client: Optional[httpx.Client] = None,
        poll_interval: float = 0.5,
        request_timeout: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initializes the health checker.

        :param client: Engine client, used to look up container IPs.
        :param repo: Repo for configuration and container names.
        :param http_client: HTTP client for probes, left open. If omitted a client
            is opened for each check and closed when it ends.
        :param poll_interval: Seconds between attempts.
        :param request_timeout: Upper bound for a single request.
        :param sleep: Sleep function used between attempts.
        """
        self.client = client
        self.repo = repo
        self.http = http_client
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout
        self.sleep = sleep

    def check(self, id: Id) -> None:
        """
        Runs every ping configured for id.

        :raises OrchestrationError: On a malformed URL or a ping timeout.
        """
        pings = self.repo.conf(id).health_checks.pings
        if not pings:
            return
        with self._session() as http:
            for ping in pings:
                url = self.resolve_url(id, ping.url)
                logger.info(f'Pinging {url} for pattern "{ping.pattern}"')
                if not self.ping(url, ping, http):
                    raise OrchestrationError(
                        f"timeout waiting for {url} for {ping.timeout}s with pattern {ping.pattern}",
                        ErrorKind.HEALTH_CHECK_TIMEOUT,
                    )

    @contextmanager
    def _session(self) -> Iterator[httpx.Client]:
        if self.http is not None:
            yield self.http
            return
        with httpx.Client(follow_redirects=True) as http:
            yield http

    def resolve_url(self, id: Id, url: str) -> str:
        """
        Substitutes the container IP placeholder and validates the result.

        :param id: Container whose IP replaces the placeholder.
        :param url: The configured URL.
        :return: The resolved URL.
        :raises OrchestrationError: CONFIGURATION if the URL is malformed.
        """
        if CONTAINER_IP_PLACEHOLDER in url:
            url = url.replace(CONTAINER_IP_PLACEHOLDER, self._container_ip(id))
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise OrchestrationError(
                f"Bad health check URL {url!r}: {e}", ErrorKind.CONFIGURATION, e
            ) from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise OrchestrationError(f"Bad health check URL {url!r}", ErrorKind.CONFIGURATION)
        return url

    def _container_ip(self, id: Id) -> str:
        try:
            details = self.client.inspect_container(self.repo.container_name(id))
        except EngineError as e:
            raise OrchestrationError.wrap(e) from e
        if not details.ip_address:
            raise OrchestrationError(
                f"container for {id} has no IP address; is it running?", ErrorKind.CONFIGURATION
            )
        return details.ip_address

    def ping(self, url: str, ping: Ping, http: Optional[httpx.Client] = None) -> bool:
        """
        Polls url until its body matches ping.pattern or ping.timeout elapses.

        :param http: Client to poll with; defaults to the checker's own session.
        :return: True on a match, False on timeout.
        """
        if http is None:
            with self._session() as http:
                return self.ping(url, ping, http)
        try:
            regex = re.compile(ping.pattern)
        except re.error as e:
            raise OrchestrationError(
                f"Bad health check pattern {ping.pattern!r}: {e}", ErrorKind.CONFIGURATION, e
            ) from e
        retryer = Retrying(
            stop=stop_after_delay(ping.timeout),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda matched: not matched),
            retry_error_callback=lambda state: False,
            sleep=self.sleep,
        )
        return retryer(self._probe, http, url, regex, min(self.request_timeout, ping.timeout))

    def _probe(self, http: httpx.Client, url: str, regex: re.Pattern, timeout: float) -> bool:
        try:
            response = http.get(url, timeout=timeout)
        except httpx.HTTPError as e:
            logger.debug(f"{url}: {e}")
            return False
        matched = regex.search(response.text) is not None
        logger.debug(f"{url}: {response.status_code}, matched={matched}")
        return matched
