"""
Template variables in prompt text.

Variables are written as ``{{variable_name}}``; whitespace inside the braces is
ignored.
"""

import re
from typing import Dict, List

VARIABLE_PATTERN = re.compile(r"\{\{([^{}]+?)\}\}")


def extract_variables(text: str) -> List[str]:
    """
    Return the distinct variable names in ``text``, in order of first use.

    Example:
        >>> extract_variables("Hi {{ name }}, {{topic}} and {{name}}")
        ['name', 'topic']
    """
    if not text:
        return []
    names: List[str] = []
    for match in VARIABLE_PATTERN.finditer(text):
        name = match.group(1).strip()
        if name and name not in names:
            names.append(name)
    return names


def fill_template(text: str, values: Dict[str, str]) -> str:
    """Replace each ``{{ name }}`` with ``values[name]``; unknown variables are left as-is."""
    if not text:
        return ""

    def replace(match: re.Match) -> str:
        name = match.group(1).strip()
        return str(values[name]) if name in values else match.group(0)

    return VARIABLE_PATTERN.sub(replace, text)
