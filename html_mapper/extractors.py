"""
Type extractors: turn a matched HTML node into one typed field value.

There is one extractor per FieldKind.  Scalar extractors share the same
read-and-coerce rule; the list and object extractors re-enter the mapper to
populate nested models from the nodes they match.

Soft-miss policy: a selector that matches nothing, a missing attribute, a
regex that does not match, or text that does not coerce all resolve to the
field's current (default) value.  Only configuration problems raise.
"""

import math
import re
import struct
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Optional

from bs4 import Comment, NavigableString, Tag

from .config import MapperConfig
from .exceptions import CoercionError, MappingError
from .logger import get_module_logger
from .schemas import Attrs, FieldKind, FieldSpec, Pick

if TYPE_CHECKING:
    from .mapper import HtmlMapper

logger = get_module_logger("extractors")

INTEGER_PATTERN = re.compile(r'[+-]?\d+')
# Plain decimal notation only: no underscores, no inf/nan literals
DECIMAL_PATTERN = re.compile(r'[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?')
BOOLEAN_VALUES = {"true": True, "false": False}

# Value used for a list item whose text does not coerce, so the list always
# has one entry per matched node.  Items declared Optional get None instead.
ZERO_VALUES = {
    FieldKind.INT: 0,
    FieldKind.LONG: 0,
    FieldKind.FLOAT: 0.0,
    FieldKind.DOUBLE: 0.0,
    FieldKind.BOOL: False,
    FieldKind.STRING: "",
}


# --- Node selection ---

def select_first(node: Tag, selector: str) -> Optional[Tag]:
    """First descendant matching selector; an empty selector is the node itself."""
    if not selector.strip():
        return node
    try:
        return node.select_one(selector)
    except Exception as e:
        raise MappingError(f"Invalid CSS selector '{selector}': {e}") from e


def select_all(node: Tag, selector: str) -> list[Tag]:
    """All descendants matching selector, in document order."""
    if not selector.strip():
        return [node]
    try:
        return list(node.select(selector))
    except Exception as e:
        raise MappingError(f"Invalid CSS selector '{selector}': {e}") from e


# --- Reading raw values ---

def _own_text(node: Tag) -> str:
    """Text of the direct children only, skipping comments."""
    return "".join(
        str(child) for child in node.children
        if isinstance(child, NavigableString) and not isinstance(child, Comment)
    )


def _normalize(text: str, config: MapperConfig) -> str:
    if config.collapse_whitespace:
        return " ".join(text.split())
    return text.strip()


def read_raw(node: Tag, pick: Pick, config: MapperConfig) -> Optional[str]:
    """
    Read the string a Pick points at on an already matched node.

    Returns None when the attribute is absent or the regex does not match.
    """
    attr = pick.attr or Attrs.TEXT

    if attr == Attrs.TEXT:
        raw = _normalize(node.get_text(), config)
    elif attr == Attrs.OWN_TEXT:
        raw = _normalize(_own_text(node), config)
    elif attr == Attrs.HTML:
        raw = node.decode_contents()
    elif attr == Attrs.OUTER_HTML:
        raw = node.decode()
    else:
        value = node.get(attr)
        if value is None:
            return None
        # Multi-valued attributes (class, rel) come back as lists
        raw = " ".join(value) if isinstance(value, list) else value

    if pick.pattern is not None:
        m = pick.pattern.search(raw)
        if not m:
            return None
        return m.group(1) if m.groups() else m.group(0)

    return raw


# --- Coercion ---

def _to_integer(raw: str, bits: int, kind: FieldKind) -> int:
    text = raw.strip()
    if not INTEGER_PATTERN.fullmatch(text):
        raise CoercionError(f"'{raw}' is not an integer", raw, kind.name)
    value = int(text)
    limit = 1 << (bits - 1)
    if not -limit <= value < limit:
        raise CoercionError(f"{value} does not fit in {bits} bits", raw, kind.name)
    return value


def _to_double(raw: str) -> float:
    text = raw.strip()
    if not DECIMAL_PATTERN.fullmatch(text):
        raise CoercionError(f"'{raw}' is not a number", raw, FieldKind.DOUBLE.name)
    value = float(text)
    if math.isinf(value):
        raise CoercionError(f"'{raw}' does not fit in a double", raw, FieldKind.DOUBLE.name)
    return value


def _to_float(raw: str) -> float:
    value = _to_double(raw)
    try:
        # Standard-size "<f" raises on overflow; native "f" would give inf
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError as e:
        raise CoercionError(f"'{raw}' does not fit in a single precision float", raw,
                            FieldKind.FLOAT.name) from e


def _to_bool(raw: str) -> bool:
    value = BOOLEAN_VALUES.get(raw.strip().lower())
    if value is None:
        raise CoercionError(f"'{raw}' is not a boolean", raw, FieldKind.BOOL.name)
    return value


COERCERS: dict[FieldKind, Callable[[str], Any]] = {
    FieldKind.INT: lambda raw: _to_integer(raw, 32, FieldKind.INT),
    FieldKind.LONG: lambda raw: _to_integer(raw, 64, FieldKind.LONG),
    FieldKind.FLOAT: _to_float,
    FieldKind.DOUBLE: _to_double,
    FieldKind.BOOL: _to_bool,
    FieldKind.STRING: lambda raw: raw,
}


def coerce_value(raw: str, kind: FieldKind, field: FieldSpec, fallback: Any,
                 config: MapperConfig) -> Any:
    """Coerce raw text to kind; on failure return fallback, or raise under strict coercion."""
    try:
        return COERCERS[kind](raw)
    except CoercionError as e:
        if config.strict_coercion:
            raise MappingError(
                f"Field '{field.name}' on {field.owner}: {e.message}",
                target=field.owner,
                details=e.details
            ) from e
        logger.debug(f"{field.owner}.{field.name}: {e.message}, keeping {fallback!r}")
        return fallback


# --- Extractors ---

class TypeExtractor(ABC):
    """Converts the node(s) a field points at into the field's value."""

    kind: FieldKind

    @abstractmethod
    def extract(self, node: Tag, field: FieldSpec, default: Any, mapper: "HtmlMapper") -> Any:
        """
        Extract the value of field under node.

        Args:
            node: Context node (the model's root node)
            field: Validated field binding
            default: The field's current value, returned on a soft miss
            mapper: Mapper to re-enter for nested models

        Returns:
            The extracted value, or default
        """


class ScalarExtractor(TypeExtractor):
    """Reads text or an attribute of the first match and coerces it."""

    def __init__(self, kind: FieldKind):
        self.kind = kind

    def extract(self, node, field, default, mapper):
        matched = select_first(node, field.pick.selector)
        if matched is None:
            logger.debug(f"{field.owner}.{field.name}: nothing matches '{field.pick.selector}'")
            return default

        raw = read_raw(matched, field.pick, mapper.config)
        if raw is None:
            logger.debug(f"{field.owner}.{field.name}: no value on matched node")
            return default

        return coerce_value(raw, self.kind, field, default, mapper.config)


class ListExtractor(TypeExtractor):
    """Builds one item per match, in document order."""

    kind = FieldKind.LIST

    def extract(self, node, field, default, mapper):
        matches = select_all(node, field.pick.selector)
        if not matches:
            return default

        if field.item_kind is FieldKind.OBJECT:
            return [mapper.populate(match, field.model) for match in matches]

        zero = None if field.item_optional else ZERO_VALUES[field.item_kind]
        items = []
        for match in matches:
            raw = read_raw(match, field.pick, mapper.config)
            if raw is None:
                items.append(zero)
            else:
                items.append(coerce_value(raw, field.item_kind, field, zero, mapper.config))
        return items


class ObjectExtractor(TypeExtractor):
    """Populates a nested model from the first match."""

    kind = FieldKind.OBJECT

    def extract(self, node, field, default, mapper):
        matched = select_first(node, field.pick.selector)
        if matched is None:
            return default
        return mapper.populate(matched, field.model)


EXTRACTORS: dict[FieldKind, TypeExtractor] = {
    FieldKind.INT: ScalarExtractor(FieldKind.INT),
    FieldKind.LONG: ScalarExtractor(FieldKind.LONG),
    FieldKind.FLOAT: ScalarExtractor(FieldKind.FLOAT),
    FieldKind.DOUBLE: ScalarExtractor(FieldKind.DOUBLE),
    FieldKind.BOOL: ScalarExtractor(FieldKind.BOOL),
    FieldKind.STRING: ScalarExtractor(FieldKind.STRING),
    FieldKind.LIST: ListExtractor(),
    FieldKind.OBJECT: ObjectExtractor(),
}


def get_extractor(kind: FieldKind) -> TypeExtractor:
    """Extractor registered for kind."""
    try:
        return EXTRACTORS[kind]
    except KeyError:
        raise MappingError(f"Type {kind} is not supported.") from None
