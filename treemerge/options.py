"""
Merge options.

A single plain data container; nothing here touches a tree.
MergeOptions.from_env() reads TREEMERGE_* variables once so callers
running inside a service can configure merges without code changes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

__all__ = ["DuplicatePolicy", "MergeOptions", "DEFAULT_OPTIONS"]

logger = logging.getLogger(__name__)


class DuplicatePolicy(Enum):
    """What a keyed update does when several elements carry the target value."""
    FIRST = "first"   # update the first match, count the rest as ambiguous
    ALL = "all"       # update every match
    ERROR = "error"   # refuse with DuplicateTargetError


@dataclass(frozen=True, slots=True)
class MergeOptions:
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.FIRST
    # raise NoMatchError when nothing was applied
    require_match: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> MergeOptions:
        e = env if env is not None else os.environ

        raw_policy = e.get("TREEMERGE_DUPLICATE_POLICY", "first").strip().lower()
        try:
            policy = DuplicatePolicy(raw_policy)
        except ValueError:
            logger.warning(
                "Unknown TREEMERGE_DUPLICATE_POLICY=%r, using %r",
                raw_policy, DuplicatePolicy.FIRST.value,
            )
            policy = DuplicatePolicy.FIRST

        require = e.get("TREEMERGE_REQUIRE_MATCH", "0").strip().lower() in ("1", "true", "yes", "on")
        return cls(duplicate_policy=policy, require_match=require)


DEFAULT_OPTIONS = MergeOptions()
