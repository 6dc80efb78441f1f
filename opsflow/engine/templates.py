"""Template interpolation for task and grey area titles."""

import json
import re
from typing import Any

from opsflow.engine.conditions import MISSING, get_nested_value

PLACEHOLDER = re.compile(r"\{\{\s*(\w+(?:\.\w+)*)\s*\}\}")


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate_template(template: str, *contexts: Any) -> str:
    """Replace ``{{dotted.path}}`` tokens with values from the contexts.

    Contexts are tried in order; the first that resolves a path wins. An
    unresolved path is echoed back as ``[path]`` so half-configured rules stay
    visible instead of failing.
    """
    if not template:
        return ""

    def substitute(match: re.Match) -> str:
        path = match.group(1)
        for context in contexts:
            value = get_nested_value(context, path)
            if value is not MISSING and value is not None:
                return _render(value)
        return f"[{path}]"

    return PLACEHOLDER.sub(substitute, template)
