"""
Declarations that bind pydantic models to HTML.

A model opts in with the @root decorator (where its data lives in the page)
and marks each bound field with Pick metadata (where the value lives inside
that root):

    @root("div.product")
    class Product(BaseModel):
        name: Annotated[str, Pick("h2.title")] = ""
        price: Annotated[float, Pick("span.price", regex=r"([\\d.]+)")] = 0.0
        link: Annotated[Optional[str], Pick("a", attr="href")] = None
        tags: Annotated[list[str], Pick("ul.tags li")] = []

The model's fields are turned into a ModelSpec once per class and cached, so
declaration errors surface on the first decode and never again.
"""

import re
import types
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Optional, Union, get_args, get_origin

from pydantic import BaseModel

from .exceptions import MappingError
from .logger import get_module_logger

logger = get_module_logger("schemas")

ROOT_ATTRIBUTE = "__root_selector__"


class FieldKind(Enum):
    """Closed set of value kinds the mapper knows how to extract."""
    INT = "int"         # 32-bit signed
    LONG = "long"       # 64-bit signed
    FLOAT = "float"     # single precision
    DOUBLE = "double"
    BOOL = "bool"
    STRING = "string"
    LIST = "list"
    OBJECT = "object"   # nested model, populated recursively


class Attrs:
    """
    Special values for Pick.attr.

    Anything else is read as a plain attribute name (e.g. "href", "src").
    """
    TEXT = "text"               # Text of the node and its descendants (the default)
    OWN_TEXT = "ownText"        # Only the node's direct text children
    HTML = "html"               # Inner markup
    OUTER_HTML = "outerHtml"    # Markup including the node itself


# Which python annotations each kind override is allowed on
_NUMERIC_OVERRIDES = {
    FieldKind.INT: int,
    FieldKind.LONG: int,
    FieldKind.FLOAT: float,
    FieldKind.DOUBLE: float,
}


@dataclass(frozen=True)
class Pick:
    """
    Field-level binding: where to find the value relative to the context node.

    Args:
        selector: CSS selector evaluated under the context node.  An empty
                  selector means the context node itself.
        attr: Attribute to read, or one of the Attrs values.  None reads text.
        regex: Optional pattern applied to the raw value; the first group
               (or the whole match when there are no groups) is kept.
        kind: Narrow an int field to FieldKind.INT or a float field to
              FieldKind.FLOAT.  On list fields it applies to the items.
    """
    selector: str
    attr: Optional[str] = None
    regex: Optional[str] = None
    kind: Optional[FieldKind] = None
    pattern: Optional[re.Pattern] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.selector, str):
            raise MappingError(f"Pick selector must be a string, got {self.selector!r}")
        if self.attr is not None and not self.attr.strip():
            raise MappingError("Pick attr must be a non-empty attribute name or None")
        if self.kind is not None and self.kind not in _NUMERIC_OVERRIDES:
            raise MappingError(f"Pick kind override must be one of "
                               f"{[k.name for k in _NUMERIC_OVERRIDES]}, got {self.kind}")
        if self.regex is not None:
            try:
                compiled = re.compile(self.regex)
            except re.error as e:
                raise MappingError(f"Invalid Pick regex '{self.regex}': {e}") from e
            # Frozen dataclass: bypass __setattr__ for the derived field
            object.__setattr__(self, "pattern", compiled)


def root(selector: str):
    """
    Class decorator declaring the CSS selector of a model's root node.

    Only the top-level model of a decode call needs it; nested models and
    list items use the node matched by their field's Pick instead.
    """
    def decorator(cls):
        if not (isinstance(cls, type) and issubclass(cls, BaseModel)):
            raise TypeError(f"@root can only decorate pydantic models, got {cls!r}")
        if not isinstance(selector, str) or not selector.strip():
            raise MappingError(f"Root selector for {cls.__name__} must be a non-empty string",
                               target=cls.__name__)
        setattr(cls, ROOT_ATTRIBUTE, selector)
        return cls
    return decorator


def get_root_selector(cls: type) -> Optional[str]:
    """Return the selector declared with @root, or None."""
    return getattr(cls, ROOT_ATTRIBUTE, None)


@dataclass(frozen=True)
class FieldSpec:
    """One bound field of a model, validated."""
    owner: str                              # Name of the declaring model, for messages
    name: str
    kind: FieldKind
    pick: Pick
    annotation: Any
    item_kind: Optional[FieldKind] = None   # LIST only
    item_optional: bool = False             # LIST of Optional[...] items
    model: Optional[type] = None            # OBJECT, or LIST of OBJECT


@dataclass(frozen=True)
class ModelSpec:
    """All bound fields of a model, in declaration order (inherited first)."""
    model: type
    fields: tuple[FieldSpec, ...]


def _unwrap_optional(annotation: Any) -> Any:
    """Optional[X] / X | None -> X.  Other unions are left alone."""
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _scalar_kind(annotation: Any) -> Optional[FieldKind]:
    """Kind for a non-list annotation, or None if unsupported."""
    if get_origin(annotation) is not None or not isinstance(annotation, type):
        return None
    # bool before int: bool is an int subclass
    if annotation is bool:
        return FieldKind.BOOL
    if annotation is int:
        return FieldKind.LONG
    if annotation is float:
        return FieldKind.DOUBLE
    if annotation is str:
        return FieldKind.STRING
    if issubclass(annotation, BaseModel):
        return FieldKind.OBJECT
    return None


def _apply_override(kind: FieldKind, annotation: Any, pick: Pick,
                    owner: type, name: str) -> FieldKind:
    if pick.kind is None:
        return kind
    if _NUMERIC_OVERRIDES[pick.kind] is not annotation:
        raise MappingError(
            f"Kind {pick.kind.name} does not fit type {annotation!r} of field "
            f"'{name}' on {owner.__name__}",
            target=owner.__name__
        )
    return pick.kind


def _build_field_spec(owner: type, name: str, annotation: Any, pick: Pick) -> FieldSpec:
    declared = _unwrap_optional(annotation)

    if get_origin(declared) is list:
        args = get_args(declared)
        item = _unwrap_optional(args[0]) if args else None
        item_optional = bool(args) and item is not args[0]
        item_kind = _scalar_kind(item)
        if item_kind is None:
            raise MappingError(
                f"Type {annotation!r} of field '{name}' on {owner.__name__} is not supported. "
                f"Lists need an item type of bool, int, float, str or a pydantic model.",
                target=owner.__name__
            )
        item_kind = _apply_override(item_kind, item, pick, owner, name)
        return FieldSpec(
            owner=owner.__name__,
            name=name,
            kind=FieldKind.LIST,
            pick=pick,
            annotation=annotation,
            item_kind=item_kind,
            item_optional=item_optional,
            model=item if item_kind is FieldKind.OBJECT else None
        )

    kind = _scalar_kind(declared)
    if kind is None:
        raise MappingError(
            f"Type {annotation!r} of field '{name}' on {owner.__name__} is not supported.",
            target=owner.__name__
        )
    kind = _apply_override(kind, declared, pick, owner, name)
    return FieldSpec(
        owner=owner.__name__,
        name=name,
        kind=kind,
        pick=pick,
        annotation=annotation,
        model=declared if kind is FieldKind.OBJECT else None
    )


@lru_cache(maxsize=None)
def get_model_spec(cls: type) -> ModelSpec:
    """
    Describe the bound fields of a pydantic model.

    Fields without Pick metadata are not bound and keep their defaults.

    Specs are cached for the life of the process, which keeps every decoded
    model class alive.  Code that creates model classes dynamically can call
    clear_model_specs() to release them.

    Raises:
        MappingError: cls is not a pydantic model, or a bound field has an
                      unsupported type.
    """
    if not (isinstance(cls, type) and issubclass(cls, BaseModel)):
        raise MappingError(f"{cls!r} is not a pydantic model", target=getattr(cls, "__name__", None))

    specs = []
    for name, info in cls.model_fields.items():
        picks = [m for m in info.metadata if isinstance(m, Pick)]
        if not picks:
            logger.debug(f"{cls.__name__}.{name} has no Pick, skipping")
            continue
        if len(picks) > 1:
            raise MappingError(f"Field '{name}' on {cls.__name__} has more than one Pick",
                               target=cls.__name__)
        specs.append(_build_field_spec(cls, name, info.annotation, picks[0]))

    return ModelSpec(model=cls, fields=tuple(specs))


def clear_model_specs() -> None:
    """Drop every cached ModelSpec."""
    get_model_spec.cache_clear()
