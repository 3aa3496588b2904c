"""
Builders for preparing the directory an image is built from.
"""
import logging
import os
import shutil
from pathlib import Path
from typing import Mapping, Optional

from ..MODELS.container_conf import Conf
from ..MODELS.identity import Id
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)


class ContextBuilder:
    """
    Copies a definition's source directory into a staging directory, adds any
    packaged files and expands known ${property} references in the Dockerfile.
    """
    def __init__(self, work_dir: str, root_dir: str = ".", properties: Optional[Mapping[str, str]] = None):
        """
        Initializes the ContextBuilder.

        :param work_dir: Directory under which per-id contexts are staged.
        :param root_dir: The base directory for resolving packaging.add paths.
        :param properties: Values substituted into the Dockerfile.
        """
        self.work_dir = Path(work_dir)
        self.root_dir = Path(root_dir)
        self.properties = dict(properties or {})

    def prepare(self, id: Id, src: Path, conf: Conf) -> Path:
        """
        Stages the build context for id.

        :param id: The container id.
        :param src: Source directory holding the Dockerfile.
        :param conf: The container configuration.
        :return: Path to a ready-to-build directory.
        :raises OSError: If any file operation fails.
        """
        dest = self.work_dir / str(id)
        if dest.exists():
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Copying {src} to {dest}")
        shutil.copytree(src, dest)

        for entry in conf.packaging.add:
            source = self.root_dir / entry
            target = dest / os.path.basename(os.path.normpath(entry))
            logger.info(f" - adding {source}")
            if source.is_dir():
                shutil.copytree(source, target, dirs_exist_ok=True)
            elif source.exists():
                shutil.copy2(source, target)
            else:
                raise FileNotFoundError(f"Packaging entry not found: {source}")

        dockerfile = dest / "Dockerfile"
        if dockerfile.exists() and self.properties:
            content = dockerfile.read_text()
            dockerfile.write_text(EnvironmentInterpolator.expand_known(content, self.properties))

        return dest
