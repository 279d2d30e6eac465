"""
Parameter Substitution

Replaces {{name}} placeholders in query and endpoint templates.
Unmatched placeholders are left verbatim; substitution never raises.
"""

import re
from typing import Any

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")


def substitute_parameters(template: str | None, parameters: dict[str, Any] | None) -> str:
    """
    Substitute parameters into a template.

    Args:
        template: Text containing {{placeholders}}
        parameters: Values by placeholder name

    Returns:
        Template with every matched placeholder replaced by str(value)

    Example:
        >>> substitute_parameters("GET /items/{{id}}", {"id": 42})
        'GET /items/42'
        >>> substitute_parameters("project = {{project}}", {})
        'project = {{project}}'
    """
    if not template:
        return template or ""

    params = parameters or {}

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in params:
            return match.group(0)
        return str(params[name])

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def find_placeholders(template: str | None) -> list[str]:
    """Names of every placeholder in a template, in order of appearance."""
    return PLACEHOLDER_PATTERN.findall(template or "")
