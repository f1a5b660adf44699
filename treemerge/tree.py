"""
treemerge.tree — The universal document tree
=============================================

Every supported format (JSON, YAML, XML, plain Python objects) maps onto
the same closed set of node types:

    TScalar(value)    string, number, bool or None
    TList(items)      ORDERED sequence of nodes
    TMap(entries)     string key → node, insertion order preserved

This is the only representation the merge engine ever sees.  Format
collaborators build trees before a merge and serialize them afterwards;
the engine itself never looks at format-specific syntax.

Unlike a frozen value model, these nodes are MUTABLE: a merge writes
into the base tree in place.  Values copied out of the input tree go
through clone(), so the input is never aliased by the result.

Equality is structural.  Scalars never conflate bool with int
(TScalar(True) != TScalar(1)), the same trap atom comparison has to
avoid everywhere in Python.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


# ═══════════════════════════════════════════════════════════════════
#  NODE TYPES
# ═══════════════════════════════════════════════════════════════════

class TNode:
    """Base class for tree nodes.  Not instantiated directly."""
    __slots__ = ()

    KIND = "node"

    def clone(self) -> "TNode":
        """Independent deep copy of this node."""
        raise NotImplementedError


@dataclass(eq=False, slots=True)
class TScalar(TNode):
    """
    A leaf value: string, int, float, bool or None.

    Examples:
        TScalar("preview.com")
        TScalar(8080)
        TScalar(True)
        TScalar(None)
    """
    value: Any

    KIND = "scalar"

    def clone(self) -> "TScalar":
        return TScalar(self.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TScalar):
            return NotImplemented
        a, b = self.value, other.value
        # bool is a subclass of int: True == 1 must not hold here
        if (type(a) is bool) != (type(b) is bool):
            return False
        return a == b

    __hash__ = None

    def __repr__(self) -> str:
        return f"TScalar({self.value!r})"


@dataclass(slots=True)
class TList(TNode):
    """
    An ordered sequence of nodes.  Order is significant and is
    preserved through every merge.
    """
    items: list[TNode] = field(default_factory=list)

    KIND = "list"

    def clone(self) -> "TList":
        return TList([item.clone() for item in self.items])

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        if len(self.items) <= 5:
            return f"TList({self.items})"
        return f"TList([{self.items[0]!r}, ..., {self.items[-1]!r}] len={len(self.items)})"


@dataclass(slots=True)
class TMap(TNode):
    """
    A mapping of unique string keys to nodes.

    Insertion order is kept so that serializers write keys back in
    the order they were read.
    """
    entries: dict[str, TNode] = field(default_factory=dict)

    KIND = "map"

    def clone(self) -> "TMap":
        return TMap({k: v.clone() for k, v in self.entries.items()})

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def __repr__(self) -> str:
        if len(self.entries) <= 3:
            return f"TMap({self.entries})"
        return f"TMap({{...}} len={len(self.entries)})"


PathKey = Union[str, int]


# ═══════════════════════════════════════════════════════════════════
#  DOCUMENT
# ═══════════════════════════════════════════════════════════════════

@dataclass(slots=True)
class Document:
    """
    A tree root plus the format it was read from.

    The format tag only matters to serializers; the merge engine
    carries it through untouched.
    """
    root: TNode
    format: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════
#  HELPERS
# ═══════════════════════════════════════════════════════════════════

def normalize_scalar(value: Any) -> str:
    """
    Render a scalar value as text for keyed comparison.

    Selector target values are always text, while the tree may hold
    ints, floats or bools depending on the format it came from:

        True / False  → "true" / "false"
        None          → "null"
        8080.0        → "8080"
        anything else → str(value)
    """
    if type(value) is bool:
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def scalar_matches(value: Any, target: str) -> bool:
    """
    True when a scalar value equals a selector target.

    Numbers compare numerically against a numeric target, so the
    targets `8080`, `8080.0` and `8.08e3` all match a tree value of
    8080.  Everything else compares through normalize_scalar.
    """
    if isinstance(value, (int, float)) and type(value) is not bool:
        number = _parse_number(target)
        if number is not None:
            return value == number
    return normalize_scalar(value) == target


def _parse_number(text: str) -> Optional[Union[int, float]]:
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    return None


def child(node: TNode, key: PathKey) -> TNode:
    """Return the direct child of a container at `key` (map key or list index)."""
    if isinstance(node, TMap):
        return node.entries[key]
    if isinstance(node, TList):
        return node.items[key]
    if isinstance(node, TScalar):
        raise KeyError(key)
    raise TypeError(f"Unknown TNode type: {type(node)}")


def format_path(path: tuple) -> str:
    """Human-readable form of a path tuple, e.g. environment.preview[1]."""
    if not path:
        return "(root)"
    out = []
    for key in path:
        if isinstance(key, int):
            out.append(f"[{key}]")
        else:
            out.append(("." if out else "") + key)
    return "".join(out)
