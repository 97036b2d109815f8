"""
HTML Mapper

Declarative deserialization of HTML into pydantic models.
- @root: where a model's data lives in the page
- Pick: where each field's value lives inside that root
- HtmlMapper: decodes documents, strings, bytes and files into models

Public API surface:
  Declarations   — root, Pick, Attrs, FieldKind
  Decoding       — HtmlMapper, decode, decode_file
  Configuration  — MapperConfig
  Error types    — HTMLMapperError, MappingError (fatal)
"""

# --- Declarations ---
from .schemas import root, Pick, Attrs, FieldKind

# --- Decoding ---
from .mapper import HtmlMapper, decode, decode_file

# --- Configuration ---
from .config import MapperConfig

# --- Exceptions (callers should catch MappingError) ---
from .exceptions import HTMLMapperError, MappingError

__version__ = "0.1.0"
__all__ = [
    "root",
    "Pick",
    "Attrs",
    "FieldKind",
    "HtmlMapper",
    "decode",
    "decode_file",
    "MapperConfig",
    "HTMLMapperError",
    "MappingError",
]
