"""
treemerge.selector — Selector grammar and parser
=================================================

A selector says WHERE to merge (a dotted path) and HOW (a trailing
merge instruction):

    environment.(preview|prod).[].(name=allowedIps on value from Ips)
    └── literal └── group      └┘  └── keyed update instruction
                             wildcard

GRAMMAR
───────

    selector    := segment ('.' segment)*
    segment     := literal | group | wildcard | instruction
    literal     := name-without('.', '(', ')', '[', ']') '\\' escapes one char
    group       := '(' name ('|' name)* ')'
    wildcard    := '[' ']'
    instruction := '(' key_field '=' target 'on' value_field 'from' source ')'
                 | '(' assignment (',' assignment)* ')'
    assignment  := field ['from' source]

An instruction may only be the LAST segment.  A parenthesised body is
an instruction when it contains '=', ',' or a standalone 'on' / 'from'
keyword; otherwise it is a group.

In the assignment form a bare field borrows the source of the next
assignment that names one, so

    (keys from api_keys)              one field, one source
    (primary, backup from api_keys)   two fields, same source
    (keys from api_keys, ids from x)  two fields, two sources

Sources may be dotted paths into the input document; dots inside
parentheses never split segments.

The parser is strict: empty segments, unterminated brackets, missing
keywords and misplaced instructions are all errors.  Nothing malformed
is ever coerced into a smaller valid selector.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

from .errors import MergeInstructionError, SelectorSyntaxError


# ═══════════════════════════════════════════════════════════════════
#  SELECTOR AST
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Literal:
    """Matches exactly one map key."""
    name: str

    def __str__(self) -> str:
        return _escape(self.name)


@dataclass(frozen=True, slots=True)
class Group:
    """Matches any of the named map keys; each present key is a branch."""
    alternatives: tuple[str, ...]

    def __str__(self) -> str:
        return "(" + "|".join(self.alternatives) + ")"


@dataclass(frozen=True, slots=True)
class Wildcard:
    """Matches every list element or every map value."""

    def __str__(self) -> str:
        return "[]"


PathSegment = Union[Literal, Group, Wildcard]


@dataclass(frozen=True, slots=True)
class KeyedUpdate:
    """
    In a list of maps, find the element whose `key_field` equals
    `target_value` and set its `value_field` from `source_key`.
    """
    key_field: str
    target_value: str
    value_field: str
    source_key: str

    def __str__(self) -> str:
        target = self.target_value
        if target in ("on", "from") or not _NAME.fullmatch(target):
            quote = "'" if '"' in target else '"'
            target = quote + target + quote
        return f"({self.key_field}={target} on {self.value_field} from {self.source_key})"


@dataclass(frozen=True, slots=True)
class DirectAssign:
    """Set each destination field of a map from its source key."""
    fields: tuple[tuple[str, str], ...]

    def __str__(self) -> str:
        return "(" + ", ".join(f"{dest} from {src}" for dest, src in self.fields) + ")"


MergeInstruction = Union[KeyedUpdate, DirectAssign]


@dataclass(frozen=True, slots=True)
class Selector:
    """A parsed selector: path segments plus an optional trailing instruction."""
    segments: tuple[PathSegment, ...]
    instruction: Optional[MergeInstruction] = None

    def __str__(self) -> str:
        parts = [str(seg) for seg in self.segments]
        if self.instruction is not None:
            parts.append(str(self.instruction))
        return ".".join(parts)


# ═══════════════════════════════════════════════════════════════════
#  PARSER
# ═══════════════════════════════════════════════════════════════════

_SPECIAL = ".()[]\\"
_KEYWORD = re.compile(r"(?:^|\s)(on|from)(?=\s|$)")
_NAME = re.compile(r"[^\s.()\[\]|=,'\"]+")


def _escape(name: str) -> str:
    return "".join("\\" + ch if ch in _SPECIAL else ch for ch in name)


def parse_selector(text: str) -> Selector:
    """
    Parse selector text into a Selector.

    Raises SelectorSyntaxError (or its subclass MergeInstructionError)
    pointing at the offending position.
    """
    if not isinstance(text, str):
        raise TypeError(f"Selector must be a string, got {type(text).__name__}")

    segments: list[PathSegment] = []
    instruction: Optional[MergeInstruction] = None
    instruction_pos = 0
    pos = 0
    n = len(text)

    while True:
        if pos >= n or text[pos] == ".":
            raise SelectorSyntaxError("Empty segment", text, pos)
        if instruction is not None:
            raise SelectorSyntaxError(
                "Merge instruction must be the final segment", text, instruction_pos)

        ch = text[pos]
        if ch == "(":
            close = _find_close(text, pos)
            body = text[pos + 1:close]
            if _is_instruction(body):
                instruction = _parse_instruction(text, body, pos + 1)
                instruction_pos = pos
            else:
                segments.append(_parse_group(text, body, pos + 1))
            pos = close + 1
        elif ch == "[":
            if text.startswith("[]", pos):
                segments.append(Wildcard())
                pos += 2
            else:
                raise SelectorSyntaxError("Unterminated wildcard, expected '[]'", text, pos)
        elif ch in ")]":
            raise SelectorSyntaxError(f"Unexpected {ch!r}", text, pos)
        else:
            name, pos = _read_literal(text, pos)
            segments.append(Literal(name))

        if pos >= n:
            break
        if text[pos] != ".":
            raise SelectorSyntaxError("Expected '.' between segments", text, pos)
        pos += 1

    return Selector(tuple(segments), instruction)


def _find_close(text: str, start: int) -> int:
    """Index of the ')' closing the '(' at `start`.  Nesting is not allowed."""
    quote = None
    for i in range(start + 1, len(text)):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in "'\"":
            quote = ch
        elif ch == ")":
            return i
        elif ch == "(":
            raise SelectorSyntaxError("Nested '(' is not allowed", text, i)
    raise SelectorSyntaxError("Unterminated '('", text, start)


def _read_literal(text: str, pos: int) -> tuple[str, int]:
    out = []
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch == "\\":
            if pos + 1 >= n:
                raise SelectorSyntaxError("Dangling escape character", text, pos)
            out.append(text[pos + 1])
            pos += 2
            continue
        if ch == ".":
            break
        if ch in "()[]":
            raise SelectorSyntaxError(f"Unexpected {ch!r} inside a name", text, pos)
        out.append(ch)
        pos += 1
    return "".join(out), pos


def _is_instruction(body: str) -> bool:
    return "=" in body or "," in body or _KEYWORD.search(body) is not None


def _parse_group(text: str, body: str, offset: int) -> Group:
    names: list[str] = []
    cursor = 0
    for raw in body.split("|"):
        name = raw.strip()
        where = offset + cursor + (len(raw) - len(raw.lstrip()))
        if not name:
            raise SelectorSyntaxError("Empty group alternative", text, where)
        if not _NAME.fullmatch(name):
            raise SelectorSyntaxError(f"Invalid group alternative {name!r}", text, where)
        if name not in names:
            names.append(name)
        cursor += len(raw) + 1
    return Group(tuple(names))


def _parse_instruction(text: str, body: str, offset: int) -> MergeInstruction:
    if "=" in body:
        return _parse_keyed(text, body, offset)
    return _parse_assign(text, body, offset)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _require_name(text: str, value: str, what: str, where: int) -> str:
    value = value.strip()
    if not value:
        raise MergeInstructionError(f"Missing {what}", text, where)
    valid = _is_source_path(value) if what == "source" else _NAME.fullmatch(value)
    if not valid:
        raise MergeInstructionError(f"Invalid {what} {value!r}", text, where)
    return value


def _is_source_path(value: str) -> bool:
    return all(_NAME.fullmatch(part) for part in value.split("."))


def _parse_keyed(text: str, body: str, offset: int) -> KeyedUpdate:
    """(key_field=target on value_field from source)"""
    eq = body.index("=")
    key_field = _require_name(text, body[:eq], "key field", offset)

    rest = body[eq + 1:]
    rest_at = offset + eq + 1
    on = _keyword(rest, "on")
    if on is None:
        raise MergeInstructionError("Missing 'on' in keyed update", text, rest_at)
    raw = rest[:on[0]].strip()
    target = _unquote(raw)
    if not target:
        raise MergeInstructionError("Missing target value", text, rest_at)
    # a quoted target may hold the other quote character, a bare one neither
    stray = "'\"" if target == raw else raw[0]
    if any(ch in stray for ch in target):
        raise MergeInstructionError(f"Invalid target value {raw!r}", text, rest_at)

    tail = rest[on[1]:]
    tail_at = rest_at + on[1]
    frm = _keyword(tail, "from")
    if frm is None:
        raise MergeInstructionError("Missing 'from' in keyed update", text, tail_at)
    value_field = _require_name(text, tail[:frm[0]], "value field", tail_at)
    source = _require_name(text, tail[frm[1]:], "source", tail_at + frm[1])
    return KeyedUpdate(key_field, target, value_field, source)


def _parse_assign(text: str, body: str, offset: int) -> DirectAssign:
    """(field [from source], ...)"""
    pending: list[str] = []
    fields: list[tuple[str, str]] = []
    cursor = 0
    for raw in body.split(","):
        where = offset + cursor
        cursor += len(raw) + 1
        frm = _keyword(raw, "from")
        if frm is None:
            if _keyword(raw, "on") is not None:
                raise MergeInstructionError("'on' requires a key=target match", text, where)
            pending.append(_require_name(text, raw, "field", where))
            continue
        dest = _require_name(text, raw[:frm[0]], "field", where)
        source = _require_name(text, raw[frm[1]:], "source", where + frm[1])
        for bare in pending:
            fields.append((bare, source))
        pending = []
        fields.append((dest, source))

    if pending:
        raise MergeInstructionError("Missing 'from' in assignment", text, offset + len(body))
    return DirectAssign(tuple(fields))


def _keyword(fragment: str, word: str) -> Optional[tuple[int, int]]:
    """Span of the first standalone, unquoted `word` in `fragment`, as (start, end)."""
    for match in _KEYWORD.finditer(fragment):
        if match.group(1) == word and not _in_quotes(fragment, match.start(1)):
            return match.start(1), match.end(1)
    return None


def _in_quotes(fragment: str, index: int) -> bool:
    quote = None
    for ch in fragment[:index]:
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
    return quote is not None
