"""Expansion of range groups in tensor tables.

A key of the form ``@<start>..<end>`` holds a table of tensor templates. Each
template is instantiated once per integer in ``range(start, end)`` with the
``$`` placeholder replaced in both its name and its ``source`` field::

    [weights.tensors."@0..2"."blocks.$.ln1.weight"]
    source = "blocks.$.ln1.weight"
    type = "F16"
    dimensions = [768]

expands to ``blocks.0.ln1.weight`` and ``blocks.1.ln1.weight``.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Tuple

logger = logging.getLogger(__name__)

RANGE_PREFIX = "@"
RANGE_PATTERN = re.compile(r"^@(\d+)\.\.(\d+)$")
PLACEHOLDER = "$"


def parse_range(key: str) -> range:
    """Parse a ``@<start>..<end>`` group key.

    Raises:
        ValueError: If the key is malformed or start exceeds end
    """
    match = RANGE_PATTERN.match(key)
    if match is None:
        raise ValueError(f"malformed range key {key!r}, expected '@<start>..<end>'")
    start, end = int(match.group(1)), int(match.group(2))
    if start > end:
        raise ValueError(f"range key {key!r} has start greater than end")
    return range(start, end)


def substitute(template: Dict[str, Any], index: int) -> Dict[str, Any]:
    """Instantiate one template entry for ``index``."""
    entry = dict(template)
    source = entry.get("source")
    if isinstance(source, str):
        entry["source"] = source.replace(PLACEHOLDER, str(index))
    return entry


def expand_tensor_table(table: Mapping[str, Any]) -> List[Tuple[str, Dict[str, Any]]]:
    """Flatten a tensor table, expanding range groups in place.

    Args:
        table: Mapping of tensor name or range key to entry table

    Returns:
        ``(name, entry)`` pairs in manifest order

    Raises:
        ValueError: On a malformed group, a non-table entry or a duplicate name
    """
    expanded: List[Tuple[str, Dict[str, Any]]] = []
    seen = set()

    def append(name: str, entry: Any) -> None:
        if not isinstance(entry, Mapping):
            raise ValueError(f"tensor {name!r} must be a table")
        if name in seen:
            raise ValueError(f"duplicate tensor name {name!r}")
        seen.add(name)
        expanded.append((name, dict(entry)))

    for key, value in table.items():
        if not key.startswith(RANGE_PREFIX):
            append(key, value)
            continue

        indices = parse_range(key)
        if not isinstance(value, Mapping):
            raise ValueError(f"range group {key!r} must be a table of tensors")

        # Index-major so that whole blocks stay contiguous in the output
        for index in indices:
            for template_name, template in value.items():
                if not isinstance(template, Mapping):
                    raise ValueError(f"tensor {template_name!r} must be a table")
                name = template_name.replace(PLACEHOLDER, str(index))
                append(name, substitute(dict(template), index))

        logger.debug(f"Expanded range group {key} into {len(indices)} copies")

    return expanded
