"""
Orchestration managers: the repo, inclusion, image pipeline, health checks,
link resolution, plugins, failure policy and the orchestrator itself.
"""
from .inclusion import ANY, DefinitionFilter, only
from .orchestrator import DockerOrchestrator
from .plugins import Plugin
from .repo import Repo

__all__ = ["ANY", "DefinitionFilter", "DockerOrchestrator", "Plugin", "Repo", "only"]
