"""
Identity of a single container definition within a run.
"""
import re
from dataclasses import dataclass

_VALID_NAME = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_.-]*$')


@dataclass(frozen=True, order=True)
class Id:
    """
    Stable, human readable name for one container definition.
    """
    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or not _VALID_NAME.match(self.name):
            raise ValueError(f"Invalid container id: {self.name!r}")

    def __str__(self) -> str:
        return self.name
