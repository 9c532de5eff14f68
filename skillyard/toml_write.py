"""Small TOML writer helpers.

skillyard writes exactly one TOML file (config.toml): a handful of tables
holding strings, ints and bools. Parsing lives in config.py (tomllib).

Constraints:
- Deterministic ordering (tables in the order given, keys as given)
- No comment preservation
- Only the subset of TOML the tool emits
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, Mapping


_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def toml_basic_string(s: str) -> str:
    """Quote a string as a TOML basic string (JSON escaping is a valid subset)."""

    if not isinstance(s, str):
        raise TypeError("toml_basic_string: expected str")
    return json.dumps(s, ensure_ascii=False)


def toml_key(k: str) -> str:
    if not isinstance(k, str) or not k:
        raise TypeError("toml_key: expected non-empty str")
    return k if _BARE_KEY.match(k) else toml_basic_string(k)


def toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, int):
        return str(v)
    if isinstance(v, str):
        return toml_basic_string(v)
    if isinstance(v, (list, tuple)):
        return "[" + ", ".join(toml_value(x) for x in v) + "]"
    raise TypeError(f"toml_value: unsupported type: {type(v).__name__}")


def toml_table(path: Iterable[str], values: Mapping[str, Any]) -> str:
    header = ".".join(toml_key(p) for p in path)
    lines = [f"[{header}]"]
    for k, v in values.items():
        lines.append(f"{toml_key(k)} = {toml_value(v)}")
    return "\n".join(lines) + "\n"


def dump_tables(tables: Iterable[tuple[Iterable[str], Mapping[str, Any]]]) -> str:
    """Render `[(path, values), ...]` as TOML tables separated by blank lines."""

    return "\n".join(toml_table(path, values) for path, values in tables)
