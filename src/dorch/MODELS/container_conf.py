"""
Models for the desired state of a container: ports, volumes, links, health checks.
"""
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BuildFlag(str, Enum):
    """
    Toggles applied uniformly to every image build in a run.
    """
    NO_CACHE = "no-cache"
    REMOVE_INTERMEDIATE_IMAGES = "remove-intermediate-images"
    QUIET = "quiet"


class PortMapping(BaseModel):
    """
    Binds a host port to a container port.
    """
    model_config = ConfigDict(frozen=True)

    host: int
    container: int

    @classmethod
    def parse(cls, value: Any) -> "PortMapping":
        """
        Parses "8080", "8080 80", "8080:80" or a bare int.

        :param value: The raw port declaration.
        :return: A PortMapping; container port defaults to the host port.
        """
        if isinstance(value, PortMapping):
            return value
        if isinstance(value, dict):
            host = int(value["host"])
            return cls(host=host, container=int(value.get("container", host)))
        if isinstance(value, int):
            return cls(host=value, container=value)
        parts = str(value).replace(":", " ").split()
        if len(parts) not in (1, 2):
            raise ValueError(f"Invalid port mapping: {value!r}")
        host = int(parts[0])
        container = int(parts[1]) if len(parts) == 2 else host
        return cls(host=host, container=container)


class Link(BaseModel):
    """
    A dependency on another container, exposed under a local alias.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    alias: str

    @classmethod
    def parse(cls, value: Any) -> "Link":
        """
        Parses "db" or "db:database"; the alias defaults to the target id.
        """
        if isinstance(value, Link):
            return value
        if isinstance(value, dict):
            return cls(id=value["id"], alias=value.get("alias") or value["id"])
        target, _, alias = str(value).partition(":")
        if not target:
            raise ValueError(f"Invalid link: {value!r}")
        return cls(id=target, alias=alias or target)


class Ping(BaseModel):
    """
    A single liveness probe: poll url until the body matches pattern.
    """
    url: str
    pattern: str = ".*"
    timeout: float = Field(default=120.0, gt=0)


class HealthChecks(BaseModel):
    """
    Ordered probes run after a container starts.
    """
    pings: List[Ping] = []


class Packaging(BaseModel):
    """
    Extra files to copy into the build context.
    """
    add: List[str] = []


class Conf(BaseModel):
    """
    Desired state for a single container definition.
    """
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    tags: List[str] = []
    ports: List[PortMapping] = []
    volumes: Dict[str, str] = {}  # {container path: host path}
    env: Dict[str, str] = {}
    links: List[Link] = []
    health_checks: HealthChecks = Field(default_factory=HealthChecks)
    sleep: float = Field(default=0.0, ge=0)
    log_on_failure: bool = True
    max_log_lines: int = Field(default=0, ge=0)
    expose_container_ip: bool = False
    packaging: Packaging = Field(default_factory=Packaging)

    @field_validator("ports", mode="before")
    @classmethod
    def _parse_ports(cls, value):
        return [PortMapping.parse(p) for p in value or []]

    @field_validator("links", mode="before")
    @classmethod
    def _parse_links(cls, value):
        return [Link.parse(link) for link in value or []]

    @field_validator("env", mode="before")
    @classmethod
    def _parse_env(cls, value):
        # Accept the compose style list of KEY=VALUE strings as well as a mapping
        if isinstance(value, list):
            env = {}
            for entry in value:
                key, sep, val = str(entry).partition("=")
                if not sep:
                    raise ValueError(f"Invalid env entry: {entry!r}")
                if key in env:
                    raise ValueError(f"Duplicate env key: {key}")
                env[key] = val
            return env
        return {str(k): "" if v is None else str(v) for k, v in (value or {}).items()}
