"""
Typed configuration models.
"""
from .container_conf import BuildFlag, Conf, HealthChecks, Link, Packaging, Ping, PortMapping
from .identity import Id
from .orchestration_config import OrchestrationConfig

__all__ = [
    "BuildFlag",
    "Conf",
    "HealthChecks",
    "Id",
    "Link",
    "OrchestrationConfig",
    "Packaging",
    "Ping",
    "PortMapping",
]
