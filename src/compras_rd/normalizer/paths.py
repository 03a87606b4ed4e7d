"""Generic accessors for loosely typed release trees."""

from collections.abc import Mapping
from typing import Any, Callable, Iterable, Union

Accessor = Union[str, Callable[[Mapping], Any]]

_MISSING = object()


def get_path(record: Any, path: str, default: Any = None) -> Any:
    """
    Follow a dotted path through nested mappings.
    Returns default as soon as a step is missing or not a mapping.
    """
    current = record
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def is_empty(value: Any) -> bool:
    """None, blank strings, empty containers and numeric zero count as absent."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    if isinstance(value, (int, float)):
        return value == 0
    return False


def resolve(record: Mapping, accessors: Iterable[Accessor], default: Any = None) -> Any:
    """Return the first non-empty value produced by the accessors, else default."""
    for accessor in accessors:
        value = accessor(record) if callable(accessor) else get_path(record, accessor)
        if not is_empty(value):
            return value
    return default


def twin(path: str) -> tuple[str, str]:
    """A flat path and its copy nested under ``release``."""
    return (path, f"release.{path}")


def first_with_role(parties_path: str, role: str, field: str) -> Callable[[Mapping], Any]:
    """Accessor scanning a parties list for the first entry holding a role."""

    def accessor(record: Mapping) -> Any:
        parties = get_path(record, parties_path)
        if not isinstance(parties, list):
            return None
        for party in parties:
            if not isinstance(party, Mapping):
                continue
            roles = party.get("roles") or []
            if isinstance(roles, str):
                roles = [roles]
            if role in roles:
                return party.get(field)
        return None

    accessor.__name__ = f"first_{role}_in_{parties_path.replace('.', '_')}"
    return accessor
