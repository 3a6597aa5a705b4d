"""
Rewrite raw listing results to reflect pending inconsistency.

Two passes, in this order:
1. Filter: hide summaries and prefixes whose put is still delayed.
2. Restore: re-add recently deleted keys. Recursive listings get the
   deleted object's summary back; delimiter listings also get the
   rolled-up directory prefix leading to any deeper deleted key.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from flakystore.consistency import ConsistencyState
from flakystore.models import ObjectSummary

SEPARATOR = "/"


def _strip(path: str) -> str:
    return path.rstrip(SEPARATOR)


def _parent(key: str) -> str:
    head, sep, _ = _strip(key).rpartition(SEPARATOR)
    return head if sep else ""


def is_descendant(parent: str, child: str, recursive: bool) -> bool:
    """
    Check that `parent` is an ancestor of `child`.

    Args:
        parent: Key that may be the parent (a listing prefix).
        child: Key that may be the child.
        recursive: If False, only direct children count. If True, any
            descendant does.
    """
    if recursive:
        if not parent:
            return True
        if not parent.endswith(SEPARATOR):
            parent = parent + SEPARATOR
        return child.startswith(parent)
    return _parent(child) == _strip(parent)


def rollup_prefix(ancestor: str, child: str) -> Optional[str]:
    """
    Directory one level below `ancestor` on the way to `child`.

    If ancestor is "a/b/c" and child is "a/b/c/d/e/file", returns
    "a/b/c/d". Returns None for direct children, which need no rollup.

    Raises:
        ValueError: if child is not under ancestor.
    """
    base = _strip(ancestor)
    if base and not child.startswith(base + SEPARATOR):
        raise ValueError(f"{child} does not start with {ancestor}")
    rest = child[len(base) + 1 :] if base else child
    parts = [p for p in rest.split(SEPARATOR) if p]
    if len(parts) < 2:
        return None
    return f"{base}{SEPARATOR}{parts[0]}" if base else parts[0]


def _add_summary_if_not_present(
    summaries: List[ObjectSummary], item: ObjectSummary
) -> None:
    if all(member.key != item.key for member in summaries):
        summaries.append(item)


def _add_prefix_if_not_present(prefixes: List[str], prefix: str) -> None:
    target = _strip(prefix)
    if all(_strip(member) != target for member in prefixes):
        prefixes.append(prefix)


class ListingTransformer:
    """Applies a ConsistencyState to raw listing results."""

    def __init__(self, state: ConsistencyState) -> None:
        self._state = state

    def filter(
        self,
        summaries: Sequence[ObjectSummary],
        prefixes: Sequence[str],
    ) -> Tuple[List[ObjectSummary], List[str]]:
        """Drop entries whose put is still inside its delay window."""
        out_summaries = [s for s in summaries if not self._state.is_hidden_by_put(s.key)]
        out_prefixes = [p for p in prefixes if not self._state.is_hidden_by_put(p)]
        return out_summaries, out_prefixes

    def restore(
        self,
        summaries: List[ObjectSummary],
        prefixes: List[str],
        request_prefix: str,
        recursive: bool,
    ) -> None:
        """Add recently deleted entries back into the given lists, in place."""
        for entry in self._state.active_deletes():
            if entry.summary is not None and is_descendant(
                request_prefix, entry.key, recursive
            ):
                _add_summary_if_not_present(summaries, entry.summary)
            # Delimiter listings return rolled-up prefixes for every key
            # that is not a direct child.
            if not recursive and is_descendant(request_prefix, entry.key, True):
                rolled = rollup_prefix(request_prefix, entry.key)
                if rolled is not None:
                    _add_prefix_if_not_present(prefixes, rolled)

    def transform(
        self,
        summaries: Sequence[ObjectSummary],
        prefixes: Sequence[str],
        request_prefix: Optional[str],
        recursive: bool,
    ) -> Tuple[List[ObjectSummary], List[str]]:
        """
        Filter then restore. The inputs are not modified.

        Returns:
            New (summaries, prefixes) lists.
        """
        out_summaries, out_prefixes = self.filter(summaries, prefixes)
        self.restore(out_summaries, out_prefixes, request_prefix or "", recursive)
        return out_summaries, out_prefixes
