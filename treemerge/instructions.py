"""
treemerge.instructions — Apply a merge instruction at resolved locations
=========================================================================

Two instruction kinds:

    KeyedUpdate   (name=allowedIps on value from Ips)
                  location must be a LIST of maps.  The first element
                  whose `name` equals "allowedIps" gets its `value`
                  field replaced by a copy of input["Ips"].

    DirectAssign  (keys from api_keys)
                  location must be a MAP.  Its `keys` field is created
                  or overwritten with a copy of input["api_keys"].

ALGORITHM
    1. Materialize the locations once.
    2. Check every location's shape (TypeMismatchError on the first bad
       one) and look up every source value (MissingSourceError).
    3. Plan every write; duplicate keyed targets are handled by the
       configured DuplicatePolicy (DuplicateTargetError under ERROR).
    4. Perform the planned writes.

Nothing is written before step 4, so every error leaves the base tree
exactly as it was.  A keyed update that finds no element is NOT an
error: the location is recorded as an UnmatchedTarget in the report
and the merge carries on.

The input tree is only read.  Each write stores its own clone() of the
source value, so no two locations share a node and nothing in the base
aliases the input.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from .errors import DuplicateTargetError, MissingSourceError, TypeMismatchError
from .options import DEFAULT_OPTIONS, DuplicatePolicy, MergeOptions
from .resolver import MatchLocation
from .selector import DirectAssign, KeyedUpdate, MergeInstruction
from .tree import TList, TMap, TNode, TScalar, format_path, scalar_matches

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  REPORT
# ═══════════════════════════════════════════════════════════════════

@dataclass
class UnmatchedTarget:
    """A keyed update found no element with the requested key value."""
    path: tuple
    key_field: str
    target_value: str

    def __repr__(self) -> str:
        return f"UNMATCHED at {format_path(self.path)}: no {self.key_field}={self.target_value!r}"


@dataclass
class MergeReport:
    """What one instruction evaluation did."""
    locations: int = 0
    applied: int = 0
    writes: int = 0
    ambiguous: int = 0
    unmatched: list[UnmatchedTarget] = field(default_factory=list)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    @property
    def changed(self) -> bool:
        return self.writes > 0

    def __repr__(self) -> str:
        return (f"MergeReport(locations={self.locations}, applied={self.applied}, "
                f"unmatched={self.unmatched_count}, writes={self.writes})")


# ═══════════════════════════════════════════════════════════════════
#  SOURCE LOOKUP
# ═══════════════════════════════════════════════════════════════════

def lookup_source(source: TNode, source_key: str) -> TNode:
    """
    Follow a (possibly dotted) source key through the input tree.

    Raises MissingSourceError if any step is absent or not a map.
    """
    node = source
    walked: list[str] = []
    for part in source_key.split("."):
        if not isinstance(node, TMap):
            where = ".".join(walked) or "the input root"
            raise MissingSourceError(source_key, f"{where} is a {node.KIND}, not a map")
        if part not in node.entries:
            raise MissingSourceError(source_key)
        node = node.entries[part]
        walked.append(part)
    return node


# ═══════════════════════════════════════════════════════════════════
#  EVALUATION
# ═══════════════════════════════════════════════════════════════════

# A planned write: (target map, field name, source value)
_Write = tuple[TMap, str, TNode]


def apply_instruction(
    base: TNode,
    locations: Iterable[MatchLocation],
    instruction: MergeInstruction,
    source: TNode,
    options: Optional[MergeOptions] = None,
) -> MergeReport:
    """
    Evaluate `instruction` at every location of `base`, taking values
    from the `source` (input) tree.

    Returns a MergeReport.  Raises TypeMismatchError, MissingSourceError
    or DuplicateTargetError without having modified `base`.
    """
    opts = options if options is not None else DEFAULT_OPTIONS
    locs = list(locations)
    report = MergeReport(locations=len(locs))

    if isinstance(instruction, KeyedUpdate):
        targets = _check_shapes(base, locs, TList)
        value = lookup_source(source, instruction.source_key)
        plan = _plan_keyed(targets, instruction, value, opts, report)
    elif isinstance(instruction, DirectAssign):
        targets = _check_shapes(base, locs, TMap)
        values = {src: lookup_source(source, src) for _, src in instruction.fields}
        plan = _plan_assign(targets, instruction, values, report)
    else:
        raise TypeError(f"Unknown merge instruction: {instruction!r}")

    for target, name, value in plan:
        target.entries[name] = value.clone()
    report.writes = len(plan)

    logger.debug("Applied %s: %r", instruction, report)
    return report


def _check_shapes(
    base: TNode,
    locs: list[MatchLocation],
    expected: type,
) -> list[tuple[MatchLocation, Union[TList, TMap]]]:
    targets = []
    for loc in locs:
        node = loc.value(base)
        if not isinstance(node, expected):
            raise TypeMismatchError(str(loc), expected.KIND, node.KIND)
        targets.append((loc, node))
    return targets


def _plan_keyed(
    targets: list[tuple[MatchLocation, TList]],
    instr: KeyedUpdate,
    value: TNode,
    opts: MergeOptions,
    report: MergeReport,
) -> list[_Write]:
    plan: list[_Write] = []
    for loc, lst in targets:
        hits = [el for el in lst.items if _key_matches(el, instr.key_field, instr.target_value)]
        if not hits:
            logger.debug("No %s=%r at %s", instr.key_field, instr.target_value, loc)
            report.unmatched.append(UnmatchedTarget(loc.path, instr.key_field, instr.target_value))
            continue

        if len(hits) > 1:
            if opts.duplicate_policy is DuplicatePolicy.ERROR:
                raise DuplicateTargetError(str(loc), instr.key_field, instr.target_value, len(hits))
            if opts.duplicate_policy is DuplicatePolicy.FIRST:
                report.ambiguous += 1
                logger.warning(
                    "%d elements at %s have %s=%r; updating the first",
                    len(hits), loc, instr.key_field, instr.target_value,
                )
                hits = hits[:1]

        plan.extend((el, instr.value_field, value) for el in hits)
        report.applied += 1
    return plan


def _key_matches(element: TNode, key_field: str, target_value: str) -> bool:
    if not isinstance(element, TMap):
        return False
    key = element.entries.get(key_field)
    return isinstance(key, TScalar) and scalar_matches(key.value, target_value)


def _plan_assign(
    targets: list[tuple[MatchLocation, TMap]],
    instr: DirectAssign,
    values: dict[str, TNode],
    report: MergeReport,
) -> list[_Write]:
    plan: list[_Write] = []
    for _, target in targets:
        plan.extend((target, dest, values[src]) for dest, src in instr.fields)
        report.applied += 1
    return plan
