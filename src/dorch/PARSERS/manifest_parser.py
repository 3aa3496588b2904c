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
Parser for dorch.yml orchestration manifests.
"""
import logging
import os
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..ENGINE.errors import ErrorKind, OrchestrationError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..UTILS.string_interpolation import EnvironmentInterpolator, build_context

logger = logging.getLogger(__name__)


class ManifestParser:
    """
    Parser for dorch.yml files.
    """
    def __init__(self, context: Optional[Mapping[str, str]] = None):
        """
        Initializes the parser with an optional environment context for interpolation.

        :param context: Variables for interpolation; defaults to os.environ.
        """
        self.context = dict(os.environ) if context is None else dict(context)

    def parse(self, manifest_path: str) -> OrchestrationConfig:
        """
        Parses a manifest from a path.

        :param manifest_path: Path to the manifest.
        :return: Parsed configuration.
        """
        with open(manifest_path, 'r') as f:
            content = f.read()
        logger.debug(f"Loaded manifest {manifest_path}")
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> OrchestrationConfig:
        """
        Parses a manifest from a string.

        The manifest's own properties block is read first so that it can be
        used, together with the environment, to interpolate the rest.

        :param content: YAML content of the manifest.
        :return: Parsed configuration.
        :raises OrchestrationError: On YAML, interpolation or validation errors.
        """
        try:
            raw = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise OrchestrationError(f"Invalid manifest: {e}", ErrorKind.CONFIGURATION, e) from e
        if not isinstance(raw, dict):
            raise OrchestrationError("Manifest must be a mapping", ErrorKind.CONFIGURATION)

        properties = raw.get('properties') or {}
        context = build_context(properties, self.context)
        try:
            content = EnvironmentInterpolator.interpolate(content, context)
        except KeyError as e:
            raise OrchestrationError(
                f"Unresolved manifest variable: {e.args[0]}", ErrorKind.CONFIGURATION, e
            ) from e

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise OrchestrationError(f"Invalid manifest after interpolation: {e}", ErrorKind.CONFIGURATION, e) from e
        return self._to_config(data)

    def _to_config(self, data: Dict[str, Any]) -> OrchestrationConfig:
        """
        Validates the interpolated manifest data.

        :param data: Parsed YAML mapping.
        :return: An OrchestrationConfig instance.
        """
        data = dict(data)
        data.setdefault('user', self.context.get('USER') or 'dorch')
        # YAML reads "version: 1.0" as a float
        for key in ('project', 'user', 'version'):
            if isinstance(data.get(key), (int, float)):
                data[key] = str(data[key])
        containers = data.get('containers') or {}
        if not isinstance(containers, dict):
            raise OrchestrationError("containers must be a mapping of id to definition", ErrorKind.CONFIGURATION)
        # An entry with no body ("db:") means all defaults
        data['containers'] = {str(name): (body or {}) for name, body in containers.items()}
        if 'properties' in data:
            data['properties'] = {str(k): str(v) for k, v in (data['properties'] or {}).items()}
        try:
            return OrchestrationConfig(**data)
        except ValidationError as e:
            raise OrchestrationError(f"Invalid manifest: {e}", ErrorKind.CONFIGURATION, e) from e
