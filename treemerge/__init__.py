"""
treemerge — Selector-driven merging of structured documents
============================================================

Write values from one document into deeply nested places of another,
whatever format each came from:

    merge(base, input, "environment.(preview|prod).[].(name=allowedIps on value from Ips)")
    merge(base, input, "api_config.(keys from api_keys)")

JSON, YAML and XML all map onto one tree model (TScalar / TList / TMap),
so a selector means the same thing regardless of the source format.

Pieces, usable on their own:
  • parse_selector   selector text → Selector
  • resolve          Selector + tree → lazy MatchLocations
  • apply_instruction  MatchLocations + input tree → MergeReport
  • merge            all of the above in one call
"""

from treemerge.tree import (
    # Types
    TNode,
    TScalar,
    TList,
    TMap,
    Document,
    normalize_scalar,
    scalar_matches,
)
from treemerge.selector import (
    Selector, Literal, Group, Wildcard, KeyedUpdate, DirectAssign,
    parse_selector,
)
from treemerge.resolver import MatchLocation, Matches, resolve
from treemerge.options import DuplicatePolicy, MergeOptions
from treemerge.instructions import (
    MergeReport, UnmatchedTarget, apply_instruction, lookup_source,
)
from treemerge.merge import merge, merge_text, MergeResult
from treemerge.formats import (
    from_python, to_python, from_json, to_json, from_yaml, to_yaml,
    from_xml, to_xml, parse_document, serialize_document, guess_format,
)
from treemerge.errors import (
    TreeMergeError, SelectorSyntaxError, MergeInstructionError,
    TypeMismatchError, MissingSourceError, DuplicateTargetError,
    NoMatchError, FormatError, UnsupportedFormatError,
)

__version__ = "0.1.0"
__all__ = [
    "TNode", "TScalar", "TList", "TMap", "Document", "normalize_scalar", "scalar_matches",
    "Selector", "Literal", "Group", "Wildcard", "KeyedUpdate", "DirectAssign",
    "parse_selector",
    "MatchLocation", "Matches", "resolve",
    "DuplicatePolicy", "MergeOptions",
    "MergeReport", "UnmatchedTarget", "apply_instruction", "lookup_source",
    "merge", "merge_text", "MergeResult",
    "from_python", "to_python", "from_json", "to_json", "from_yaml", "to_yaml",
    "from_xml", "to_xml", "parse_document", "serialize_document", "guess_format",
    "TreeMergeError", "SelectorSyntaxError", "MergeInstructionError",
    "TypeMismatchError", "MissingSourceError", "DuplicateTargetError",
    "NoMatchError", "FormatError", "UnsupportedFormatError",
]
