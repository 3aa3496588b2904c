"""
Utilities for string interpolation using properties and environment variables.
"""
import re
from typing import Dict, Mapping

_PATTERN = re.compile(r'\$\{([^}:]+)(?::(-|\+)([^}]*))?\}')


class EnvironmentInterpolator:
    """
    Utility for interpolating variables in strings.
    Supports ${VAR}, ${VAR:-default}, and ${VAR:+value}.
    """
    @staticmethod
    def interpolate(template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The variables context.
        :return: The interpolated string.
        :raises KeyError: If a variable is not found and no default is provided.
        """
        def replace(match):
            var_name = match.group(1)
            modifier = match.group(2)  # None, '-', or '+'
            alt_value = match.group(3)

            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            elif modifier == '+':
                return alt_value if value else ''
            if value is None:
                raise KeyError(f"Variable {var_name} not found in context")
            return value

        return _PATTERN.sub(replace, template)

    @staticmethod
    def expand_known(template: str, context: Mapping[str, str]) -> str:
        """
        Lenient variant: only ${VAR} names present in the context are replaced,
        everything else (including Dockerfile ARG references) is left untouched.

        :param template: The string containing ${VAR} placeholders.
        :param context: The variables context.
        :return: The expanded string.
        """
        def replace(match):
            if match.group(2) is None and match.group(1) in context:
                return context[match.group(1)]
            return match.group(0)

        return _PATTERN.sub(replace, template)


def build_context(properties: Mapping[str, str], environ: Mapping[str, str]) -> Dict[str, str]:
    """
    Merges manifest properties over the process environment.
    """
    context = dict(environ)
    context.update({k: str(v) for k, v in properties.items()})
    return context
