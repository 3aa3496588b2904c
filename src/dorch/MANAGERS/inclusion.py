"""
Decides whether a container definition takes part in a run.
"""
import logging
from typing import Callable, Iterable

from ..MODELS.container_conf import Conf
from ..MODELS.identity import Id
from .repo import Repo

logger = logging.getLogger(__name__)

DefinitionFilter = Callable[[Id, Conf], bool]


def ANY(id: Id, conf: Conf) -> bool:
    """Accepts every definition."""
    return True


def only(names: Iterable[str]) -> DefinitionFilter:
    """
    Builds a filter accepting only the given ids, e.g. from a --only option.
    """
    selected = frozenset(str(n) for n in names)

    def predicate(id: Id, conf: Conf) -> bool:
        return str(id) in selected

    return predicate


class InclusionFilter:
    """
    Combines the external predicate with each definition's enabled flag.
    """
    def __init__(self, repo: Repo, predicate: DefinitionFilter = ANY, log: logging.Logger = logger):
        self.repo = repo
        self.predicate = predicate
        self.log = log

    def included(self, id: Id) -> bool:
        """
        Evaluated on every call; the predicate may depend on run-time context.
        """
        conf = self.repo.conf(id)
        if not self.predicate(id, conf):
            self.log.info(f"not including {id}, filtered out")
            return False
        if not conf.enabled:
            self.log.info(f"not including {id}, not enabled")
            return False
        return True
