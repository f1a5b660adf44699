"""
treemerge.resolver — Find where a selector points inside a tree
================================================================

Resolution is a recursive descent, ONE tree level per path segment:

    Literal(name)      on a map      → that key, if present
    Group(a|b|...)     on a map      → every present alternative, in order
    Wildcard           on a list     → every element, in order
                       on a map      → every value, in insertion order
    anything           on a scalar   → nothing

A segment that finds nothing simply ends its branch.  Missing keys are
never created, and an empty result is not an error: a selector may
name alternatives that only some documents contain.

Branches expand depth-first, so matches come out in DOCUMENT ORDER and
the result is exactly as large as what the tree contains: no
combinatorial duplication.

ELEMENT SCAN
────────────
A keyed update searches the elements of a list itself.  When the
selector ends in '[]' followed by a keyed update, that wildcard names
the list being scanned rather than each element:

    environment.preview.[].(name=url on value from u)

yields ONE location, the `preview` list.  If the wildcard meets a map,
each of its values is a location (and each must be a list).

MATCH LOCATIONS
───────────────
A MatchLocation is a handle, not a value: the parent container plus
the key or index inside it, and the path from the root.  Resolution
and mutation are separate phases; the evaluator fetches the node
through the handle when it needs it.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

from .selector import (
    Group, KeyedUpdate, Literal, PathSegment, Selector, Wildcard,
    parse_selector,
)
from .tree import PathKey, TList, TMap, TNode, TScalar, child, format_path


# ═══════════════════════════════════════════════════════════════════
#  MATCH LOCATIONS
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class MatchLocation:
    """An addressable position inside a tree."""
    path: tuple[PathKey, ...]
    parent: Optional[TNode] = field(default=None, compare=False, repr=False)
    key: Optional[PathKey] = None

    def value(self, root: TNode) -> TNode:
        """The node at this location.  `root` is used for the root location."""
        if self.parent is None:
            return root
        return child(self.parent, self.key)

    def __str__(self) -> str:
        return format_path(self.path)


class Matches:
    """
    The lazily produced locations of a selector in a tree.

    Iterating walks the tree again each time, so a Matches object can
    be consumed several times and never holds more than one branch of
    state.  Mutating the tree between iterations changes the result.
    """

    __slots__ = ("root", "selector")

    def __init__(self, root: TNode, selector: Selector):
        self.root = root
        self.selector = selector

    def __iter__(self) -> Iterator[MatchLocation]:
        segments = self.selector.segments
        scan = (
            isinstance(self.selector.instruction, KeyedUpdate)
            and bool(segments)
            and isinstance(segments[-1], Wildcard)
        )
        return _walk(self.root, None, None, (), segments, 0, scan)

    def __repr__(self) -> str:
        return f"Matches({str(self.selector)!r})"


def resolve(tree: TNode, selector: Union[str, Selector]) -> Matches:
    """
    Resolve `selector` against `tree`.

    Accepts selector text or an already parsed Selector.  Returns a
    restartable, lazily evaluated sequence of MatchLocation in
    document order.
    """
    if isinstance(selector, str):
        selector = parse_selector(selector)
    return Matches(tree, selector)


# ═══════════════════════════════════════════════════════════════════
#  DESCENT
# ═══════════════════════════════════════════════════════════════════

def _walk(
    node: TNode,
    parent: Optional[TNode],
    key: Optional[PathKey],
    path: tuple,
    segments: tuple[PathSegment, ...],
    idx: int,
    scan: bool,
) -> Iterator[MatchLocation]:
    if idx == len(segments):
        yield MatchLocation(path, parent, key)
        return

    seg = segments[idx]
    nxt = idx + 1

    if isinstance(seg, Literal):
        if isinstance(node, TMap) and seg.name in node.entries:
            yield from _walk(node.entries[seg.name], node, seg.name,
                             path + (seg.name,), segments, nxt, scan)
        return

    if isinstance(seg, Group):
        if isinstance(node, TMap):
            for name in seg.alternatives:
                if name in node.entries:
                    yield from _walk(node.entries[name], node, name,
                                     path + (name,), segments, nxt, scan)
        return

    if isinstance(seg, Wildcard):
        if scan and nxt == len(segments):
            yield from _scan(node, parent, key, path)
            return
        if isinstance(node, TList):
            for i, item in enumerate(node.items):
                yield from _walk(item, node, i, path + (i,), segments, nxt, scan)
        elif isinstance(node, TMap):
            for k, item in node.entries.items():
                yield from _walk(item, node, k, path + (k,), segments, nxt, scan)
        elif not isinstance(node, TScalar):
            raise TypeError(f"Unknown TNode type: {type(node)}")
        return

    raise TypeError(f"Unknown path segment: {seg!r}")


def _scan(
    node: TNode,
    parent: Optional[TNode],
    key: Optional[PathKey],
    path: tuple,
) -> Iterator[MatchLocation]:
    """Trailing wildcard before a keyed update: yield the lists to search."""
    if isinstance(node, TList):
        yield MatchLocation(path, parent, key)
    elif isinstance(node, TMap):
        for k in node.entries:
            yield MatchLocation(path + (k,), node, k)
