"""Schema-agnostic search over untyped JSON trees.

The upstream browse API has no published schema and reshuffles its
renderer nesting without notice. Rather than navigating fixed paths, the
crawler walks every object and array and reacts to well-known marker keys
wherever they appear.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

# visitor(key, value) -> True to stop descending into value
Visitor = Callable[[str, Any], Optional[bool]]


def walk(node: Any, visit: Visitor) -> None:
    """
    Depth-first, document-order walk calling `visit` for every object key.

    Values for which the visitor returns True are not descended into.
    Scalars are ignored.
    """
    if isinstance(node, dict):
        for key, value in node.items():
            if visit(key, value):
                continue
            if isinstance(value, (dict, list)):
                walk(value, visit)
    elif isinstance(node, list):
        for item in node:
            if isinstance(item, (dict, list)):
                walk(item, visit)


def collect(node: Any, keys: Iterable[str]) -> Dict[str, List[Any]]:
    """
    Collect every value stored under any of `keys`, at any depth.

    Matched values are not searched further, so a marker nested inside
    another match of the same key is not reported twice.
    """
    wanted = set(keys)
    found: Dict[str, List[Any]] = {k: [] for k in wanted}

    def visit(key: str, value: Any) -> bool:
        if key in wanted:
            found[key].append(value)
            return True
        return False

    walk(node, visit)
    return found


def find_first(node: Any, key: str) -> Any:
    """First value under `key` in document order, or None."""
    values = collect(node, [key])[key]
    return values[0] if values else None


def text_of(value: Any) -> str:
    """Flatten a `{runs: [{text}]}` / `{simpleText}` / `{content}` text object."""
    if isinstance(value, str):
        return value
    if not isinstance(value, dict):
        return ""
    runs = value.get("runs")
    if isinstance(runs, list):
        joined = "".join(r.get("text", "") for r in runs if isinstance(r, dict))
        if joined:
            return joined
    for key in ("simpleText", "content"):
        if isinstance(value.get(key), str):
            return value[key]
    return ""
