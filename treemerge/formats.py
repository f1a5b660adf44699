"""
treemerge.formats — Convert between document text and trees.

Supported conversions:
    • Python objects (dict, list, str, int, float, bool, None) ↔ TNode
    • JSON text ↔ TNode
    • YAML text ↔ TNode
    • XML text ↔ TNode

Each format is a parse/serialize pair registered in FORMATS.  The
merge engine only ever sees the resulting trees.
"""

import json
import os
from typing import Any, Callable, Iterable, Optional
from xml.etree import ElementTree as ET

import yaml

from .errors import FormatError, UnsupportedFormatError
from .tree import Document, TList, TMap, TNode, TScalar


# ═══════════════════════════════════════════════════════════════════
#  PYTHON OBJECTS ↔ TREES
# ═══════════════════════════════════════════════════════════════════

def from_python(obj: Any) -> TNode:
    """
    Convert a Python object to a tree.

    Mapping:
        str        → TScalar(str)
        int/float  → TScalar(number)
        bool       → TScalar(bool)
        None       → TScalar(None)
        list/tuple → TList(...)
        dict       → TMap(...)

    Nested structures are converted recursively.
    """
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return TScalar(obj)
    if isinstance(obj, (list, tuple)):
        return TList([from_python(item) for item in obj])
    if isinstance(obj, dict):
        return TMap({str(k): from_python(v) for k, v in obj.items()})

    # Fallback: dates, decimals, ... become their string representation
    return TScalar(str(obj))


def to_python(node: TNode) -> Any:
    """
    Convert a tree back to plain Python objects.

    Inverse of from_python:
        to_python(from_python(obj)) == obj
    for JSON-compatible objects.
    """
    if isinstance(node, TScalar):
        return node.value
    if isinstance(node, TList):
        return [to_python(item) for item in node.items]
    if isinstance(node, TMap):
        return {k: to_python(v) for k, v in node.entries.items()}
    raise TypeError(f"Unknown TNode type: {type(node)}")


# ═══════════════════════════════════════════════════════════════════
#  JSON
# ═══════════════════════════════════════════════════════════════════

def from_json(text: str) -> TNode:
    """Parse JSON text into a tree."""
    try:
        return from_python(json.loads(text))
    except json.JSONDecodeError as exc:
        raise FormatError(f"Invalid JSON: {exc}") from exc


def to_json(node: TNode, **kwargs) -> str:
    """Serialize a tree as JSON text (indented, non-ASCII kept)."""
    kwargs.setdefault("indent", 2)
    kwargs.setdefault("ensure_ascii", False)
    return json.dumps(to_python(node), **kwargs)


# ═══════════════════════════════════════════════════════════════════
#  YAML
# ═══════════════════════════════════════════════════════════════════

def from_yaml(text: str) -> TNode:
    """Parse YAML text into a tree.  An empty document is an empty map."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise FormatError(f"Invalid YAML: {exc}") from exc
    return from_python(data if data is not None else {})


def to_yaml(node: TNode) -> str:
    """Serialize a tree as block-style YAML, keeping key order."""
    return yaml.safe_dump(
        to_python(node),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


# ═══════════════════════════════════════════════════════════════════
#  XML
#
#  <config env="dev">             {"config": {
#    <host>db.local</host>            "@env": "dev",
#    <port>5432</port>                "host": "db.local",
#    <ip>1.1.1.1</ip>                 "port": "5432",
#    <ip>2.2.2.2</ip>                 "ip": ["1.1.1.1", "2.2.2.2"],
#    <empty/>                         "empty": None}}
#  </config>
#
#  Attributes become "@name" keys, repeated tags become a list, the
#  text of an element that also has attributes or children is kept
#  under "#text".  XML has no types: every scalar read is a string.
#
#  A tag that repeats in some documents but occurs once in another
#  would read as a map there.  Tags named in `force_list` are always
#  read as lists, however many times they occur.
# ═══════════════════════════════════════════════════════════════════

ATTR_PREFIX = "@"
TEXT_KEY = "#text"


def from_xml(text: str, force_list: Iterable[str] = ()) -> TNode:
    """
    Parse XML text into a one-key map named after the root element.

    Child elements whose tag is in `force_list` always become a list.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise FormatError(f"Invalid XML: {exc}") from exc
    return TMap({root.tag: _element_to_node(root, frozenset(force_list))})


def _element_to_node(el: ET.Element, force_list: frozenset) -> TNode:
    text = (el.text or "").strip()
    if not el.attrib and len(el) == 0:
        return TScalar(text if text else None)

    entries: dict[str, TNode] = {
        ATTR_PREFIX + name: TScalar(value) for name, value in el.attrib.items()
    }
    for sub in el:
        node = _element_to_node(sub, force_list)
        existing = entries.get(sub.tag)
        if existing is None:
            entries[sub.tag] = TList([node]) if sub.tag in force_list else node
        elif isinstance(existing, TList):
            # elements never convert to lists: this one is repeated or forced
            existing.items.append(node)
        else:
            entries[sub.tag] = TList([existing, node])
    if text:
        entries[TEXT_KEY] = TScalar(text)
    return TMap(entries)


def to_xml(node: TNode) -> str:
    """
    Serialize a tree as XML.

    The root must be a map with exactly one key: the root element.
    """
    if not isinstance(node, TMap) or len(node.entries) != 1:
        raise FormatError("XML needs a map with exactly one root element")
    (tag, value), = node.entries.items()
    if isinstance(value, TList):
        raise FormatError("XML root element cannot be a list")
    root = _node_to_element(tag, value)
    ET.indent(root)
    return ET.tostring(root, encoding="unicode") + "\n"


def _node_to_element(tag: str, node: TNode) -> ET.Element:
    el = ET.Element(tag)
    _fill_element(el, node)
    return el


def _fill_element(el: ET.Element, node: TNode) -> None:
    if isinstance(node, TScalar):
        el.text = _xml_text(node.value)
    elif isinstance(node, TList):
        # A bare list inside an element: one <item> per entry
        for item in node.items:
            el.append(_node_to_element("item", item))
    elif isinstance(node, TMap):
        for key, value in node.entries.items():
            if key.startswith(ATTR_PREFIX):
                if not isinstance(value, TScalar):
                    raise FormatError(f"XML attribute {key!r} must be a scalar, found a {value.KIND}")
                el.set(key[len(ATTR_PREFIX):], _xml_text(value.value) or "")
            elif key == TEXT_KEY:
                if not isinstance(value, TScalar):
                    raise FormatError(f"XML {TEXT_KEY!r} must be a scalar, found a {value.KIND}")
                el.text = _xml_text(value.value)
            elif isinstance(value, TList):
                for item in value.items:
                    el.append(_node_to_element(key, item))
            else:
                el.append(_node_to_element(key, value))
    else:
        raise TypeError(f"Unknown TNode type: {type(node)}")


def _xml_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if type(value) is bool:
        return "true" if value else "false"
    return str(value)


# ═══════════════════════════════════════════════════════════════════
#  FORMAT REGISTRY
# ═══════════════════════════════════════════════════════════════════

FORMATS: dict[str, tuple[Callable[[str], TNode], Callable[[TNode], str]]] = {
    "json": (from_json, to_json),
    "yaml": (from_yaml, to_yaml),
    "xml": (from_xml, to_xml),
}

_ALIASES = {"yml": "yaml"}

_EXTENSIONS = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".xml": "xml",
}


def _canonical(fmt: str) -> str:
    name = fmt.strip().lower()
    name = _ALIASES.get(name, name)
    if name not in FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported format {fmt!r}; expected one of {', '.join(sorted(FORMATS))}"
        )
    return name


def guess_format(filename: str) -> str:
    """Pick a format name from a file name's extension."""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in _EXTENSIONS:
        raise UnsupportedFormatError(f"Cannot tell the format of {filename!r}")
    return _EXTENSIONS[ext]


def parse_document(text: str, fmt: str, force_list: Iterable[str] = ()) -> Document:
    """
    Parse text in the named format into a Document.

    `force_list` is handed to the XML reader; other formats carry
    their own list syntax and ignore it.
    """
    name = _canonical(fmt)
    if name == "xml":
        return Document(from_xml(text, force_list), name)
    parse, _ = FORMATS[name]
    return Document(parse(text), name)


def serialize_document(doc: Document, fmt: Optional[str] = None) -> str:
    """Serialize a Document, in `fmt` or else the document's own format."""
    target = fmt or doc.format
    if target is None:
        raise UnsupportedFormatError("Document has no format and none was given")
    _, serialize = FORMATS[_canonical(target)]
    return serialize(doc.root)
