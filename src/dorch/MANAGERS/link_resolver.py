"""
Turns declared links into engine-level link directives.
"""
import logging
from typing import List, Sequence, Tuple

from ..ENGINE.errors import ErrorKind, OrchestrationError
from ..MODELS.identity import Id
from .repo import Repo

logger = logging.getLogger(__name__)


def link_name(names: Sequence[str]) -> str:
    """
    Picks a container's own name out of the names the engine reports.

    Linked containers are also listed under "/<dependent>/<alias>", so the
    name with the fewest path segments wins.
    """
    if not names:
        raise ValueError("container has no names")
    name = min(names, key=lambda n: (n.count("/"), len(n)))
    return name.lstrip("/")


class LinkResolver:
    """
    Resolves every link of a definition against running containers.
    """
    def __init__(self, repo: Repo):
        self.repo = repo

    def resolve(self, id: Id) -> List[Tuple[str, str]]:
        """
        Resolves all links for id eagerly.

        :param id: The dependent container id.
        :return: One (target container name, alias) pair per declared link, in order.
        :raises OrchestrationError: NOT_FOUND if any target has no running container.
        """
        links = []
        for link in self.repo.conf(id).links:
            target = Id(link.id)
            container = self.repo.find_running_container(target)
            if container is None:
                raise OrchestrationError(
                    f"cannot link {id} to {target}: no running container for {target}",
                    ErrorKind.NOT_FOUND,
                )
            name = link_name(container.names)
            logger.info(f" - link {name} as {link.alias}")
            links.append((name, link.alias))
        return links
