"""
treemerge.merge — Selector-driven merge of one document into another
=====================================================================

Given a BASE document (the one being updated), an INPUT document (the
one supplying values) and a selector, write input values into the
matched places of the base:

    base:      environment:
                 preview:
                   - {name: url, value: preview.com}
                   - {name: allowedIps, value: []}
    input:     Ips: [12.12.12.10, 12.12.12.13]
    selector:  environment.preview.[].(name=allowedIps on value from Ips)

    result:    allowedIps.value == [12.12.12.10, 12.12.12.13]

ALGORITHM:
    1. Parse the selector (SelectorSyntaxError aborts before anything else)
    2. Resolve its path against the base tree
    3. Evaluate the trailing instruction at every location
    4. Return the mutated base with a MergeReport

The merge is all-or-nothing with respect to errors: a shape mismatch
anywhere aborts it before the first write.  Keyed targets that are not
found are tolerated and reported.  Zero matches is reported as well;
whether "nothing changed" is a failure is the caller's decision
(MergeOptions.require_match turns it into NoMatchError).

Each call is independent: no state is kept between merges.  Concurrent
merges are safe as long as they do not share a base tree.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .errors import MergeInstructionError, NoMatchError
from .formats import parse_document, serialize_document
from .instructions import MergeReport, apply_instruction
from .options import DEFAULT_OPTIONS, MergeOptions
from .resolver import resolve
from .selector import Selector, parse_selector
from .tree import Document, TNode

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Result of a selector-driven merge."""
    document: Document
    report: MergeReport

    @property
    def root(self) -> TNode:
        return self.document.root

    def __repr__(self) -> str:
        return f"MergeResult({self.report!r})"


def merge(
    base: Union[Document, TNode],
    input_doc: Union[Document, TNode],
    selector: Union[str, Selector],
    options: Optional[MergeOptions] = None,
) -> MergeResult:
    """
    Merge values from `input_doc` into `base` as directed by `selector`.

    Arguments:
        base:      Document or tree to update (mutated in place)
        input_doc: Document or tree supplying values (never mutated)
        selector:  selector text, or an already parsed Selector
        options:   MergeOptions; DEFAULT_OPTIONS when omitted

    Returns a MergeResult whose document is the base, keeping its
    format tag.  Raises SelectorSyntaxError, MergeInstructionError,
    TypeMismatchError, MissingSourceError, DuplicateTargetError, or
    NoMatchError when options.require_match is set.
    """
    opts = options if options is not None else DEFAULT_OPTIONS
    base_doc = base if isinstance(base, Document) else Document(base)
    source = input_doc.root if isinstance(input_doc, Document) else input_doc

    if isinstance(selector, str):
        text = selector
        selector = parse_selector(selector)
    else:
        text = str(selector)
    if selector.instruction is None:
        raise MergeInstructionError("Selector has no merge instruction", text, len(text))
    logger.debug("Parsed selector %r as %r", text, selector)

    matches = resolve(base_doc.root, selector)
    report = apply_instruction(base_doc.root, matches, selector.instruction, source, opts)

    logger.info(
        "Merged %r: %d locations, %d applied, %d unmatched, %d writes",
        text, report.locations, report.applied, report.unmatched_count, report.writes,
    )
    if opts.require_match and report.applied == 0:
        raise NoMatchError(f"Selector {text!r} matched nothing in the base document")

    return MergeResult(document=base_doc, report=report)


def merge_text(
    base_text: str,
    input_text: str,
    selector: Union[str, Selector],
    base_format: str,
    input_format: Optional[str] = None,
    output_format: Optional[str] = None,
    options: Optional[MergeOptions] = None,
    force_list: Iterable[str] = (),
) -> str:
    """
    Parse both documents, merge, and serialize the result.

    `input_format` defaults to `base_format`; `output_format` defaults
    to the base document's format.  `force_list` names XML tags that
    always read as lists (see formats.from_xml).
    """
    tags = frozenset(force_list)
    base_doc = parse_document(base_text, base_format, tags)
    input_doc = parse_document(input_text, input_format or base_format, tags)
    result = merge(base_doc, input_doc, selector, options)
    return serialize_document(result.document, output_format)
