"""
Keyed list merging shared by descriptor layering and resource inlining.

Query and schema definitions are identified by name: merging an update list
into an existing one replaces same-named entries where they stand and appends
new ones, so applying the same update twice gives the same result as once.
"""
from typing import Any, Callable, Hashable, List, Optional, TypeVar

T = TypeVar("T")


def entry_name(entry: Any) -> Optional[Hashable]:
    """Name of a definition given either as a mapping or as a model."""
    if isinstance(entry, dict):
        return entry.get("name")
    return getattr(entry, "name", None)


def merge_by_name(
    existing: List[T],
    updates: List[T],
    key: Callable[[T], Optional[Hashable]] = entry_name,
) -> List[T]:
    """
    Merge `updates` into `existing` by name.

    Args:
        existing: Accumulated definitions (left untouched)
        updates: Definitions to apply, in order
        key: Extracts the identifying name of an entry

    Returns:
        New list: same-named entries replaced in place, unknown names appended.
        Entries without a name are always appended.
    """
    merged = list(existing)
    positions = {}
    for i, item in enumerate(merged):
        name = key(item)
        if name is not None:
            positions.setdefault(name, i)

    for item in updates:
        name = key(item)
        if name is not None and name in positions:
            merged[positions[name]] = item
        else:
            if name is not None:
                positions[name] = len(merged)
            merged.append(item)
    return merged
