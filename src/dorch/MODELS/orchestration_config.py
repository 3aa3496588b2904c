"""
Models for overall orchestration configuration.
"""
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

from .container_conf import BuildFlag, Conf
from .identity import Id


class OrchestrationConfig(BaseModel):
    """
    Complete configuration for a set of containers.
    Equivalent to a parsed dorch.yml manifest; container order is the start order.
    """
    project: str
    user: str = "dorch"
    version: str = "latest"
    src: str = "src/main/docker"
    work_dir: str = ".dorch/work"
    properties: Dict[str, str] = {}
    build_flags: List[BuildFlag] = []
    permission_error_tolerant: bool = False
    containers: Dict[str, Conf] = Field(default_factory=dict)

    @field_validator("containers")
    @classmethod
    def _check_ids(cls, value: Dict[str, Conf]) -> Dict[str, Conf]:
        for name in value:
            Id(name)
        return value

    def ids(self) -> List[Id]:
        """
        Returns the container ids in declared order.
        """
        return [Id(name) for name in self.containers]
