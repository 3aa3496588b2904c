"""
Structural checks run on a Dockerfile before anything is sent to the engine.
"""
import logging
import os
from pathlib import Path
from typing import Iterable, Set

from ..MODELS.dockerfile_ast import Instruction
from ..PARSERS.dockerfile_parser import DockerfileParser

logger = logging.getLogger(__name__)

KNOWN_INSTRUCTIONS = {
    "ADD", "ARG", "CMD", "COPY", "ENTRYPOINT", "ENV", "EXPOSE", "FROM",
    "HEALTHCHECK", "LABEL", "MAINTAINER", "ONBUILD", "RUN", "SHELL",
    "STOPSIGNAL", "USER", "VOLUME", "WORKDIR",
}


class DockerfileValidationError(ValueError):
    """Raised when a Dockerfile is structurally invalid."""


class DockerfileValidator:
    """
    Validates the Dockerfile found in a source directory.
    """
    def __init__(self):
        self.parser = DockerfileParser()

    def validate(self, src: Path, packaged: Iterable[str] = ()) -> None:
        """
        Validates src/Dockerfile.

        :param src: Directory containing the Dockerfile.
        :param packaged: Names that will be added to the context at build time.
        :raises DockerfileValidationError: If the file is missing or malformed.
        """
        src = Path(src)
        dockerfile = src / "Dockerfile"
        logger.info(f"Validating {dockerfile}")
        if not dockerfile.is_file():
            raise DockerfileValidationError(f"{dockerfile} does not exist")

        try:
            instructions = self.parser.parse(dockerfile)
        except UnicodeDecodeError as e:
            raise DockerfileValidationError(f"{dockerfile} is not valid UTF-8 text: {e}") from e
        if not instructions:
            raise DockerfileValidationError(f"{dockerfile} has no instructions")

        first = next((i for i in instructions if i.instruction != "ARG"), None)
        if first is None or first.instruction != "FROM":
            raise DockerfileValidationError(f"{dockerfile}: first instruction must be FROM")

        packaged = {os.path.basename(os.path.normpath(p)) for p in packaged}
        for inst in instructions:
            if inst.instruction not in KNOWN_INSTRUCTIONS:
                raise DockerfileValidationError(
                    f"{dockerfile}:{inst.line}: unknown instruction {inst.instruction}"
                )
            if inst.instruction in ("ADD", "COPY"):
                self._check_sources(dockerfile, src, inst, packaged)

    def _check_sources(self, dockerfile: Path, src: Path, inst: Instruction, packaged: Set[str]) -> None:
        if any(flag.startswith("--from") for flag in inst.flags):
            return
        if len(inst.arguments) < 2:
            raise DockerfileValidationError(
                f"{dockerfile}:{inst.line}: {inst.instruction} requires a source and a destination"
            )
        for source in inst.arguments[:-1]:
            if "://" in source or any(c in source for c in "*?[") or "$" in source:
                continue
            if Path(source).parts and Path(source).parts[0] in packaged:
                continue
            if not (src / source).exists():
                raise DockerfileValidationError(
                    f"{dockerfile}:{inst.line}: {source} does not exist in {src}"
                )
