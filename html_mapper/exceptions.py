"""
Custom exceptions for the HTML Mapper.

Error philosophy:
  - MappingError  → FAIL HARD: the decode call aborts, nothing partial is returned.
  - CoercionError → SOFT MISS: raised by a coercer, caught by the extractor and
                    turned into the field's default (or into a MappingError when
                    strict coercion is enabled).

Structural problems (bad model declarations, bad selectors, constructors that
cannot run) are always fatal.  Bad leaf data in the document never is, unless
the caller opts into strict coercion.
"""

from typing import Optional


class HTMLMapperError(Exception):
    """Base exception for all HTML Mapper errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- FAIL HARD: aborts the whole decode call ---

class MappingError(HTMLMapperError):
    """
    Raised when a model cannot be mapped from HTML.

    Covers configuration problems (no root selector, no no-arg construction,
    unsupported field type, invalid selector) and, under strict coercion,
    malformed values.  The underlying failure, if any, is chained as __cause__.
    """

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        details: Optional[dict] = None
    ):
        super().__init__(message, details)
        self.target = target  # Name of the model class being decoded

    def to_response(self) -> dict:
        """Convert to a plain dict for reporting."""
        return {
            "error": "MappingError",
            "message": self.message,
            "target": self.target,
            "cause": repr(self.__cause__) if self.__cause__ else None,
            "details": self.details
        }


# --- SOFT MISS: never leaves the extractor ---

class CoercionError(HTMLMapperError):
    """Raised when matched text cannot be converted to the field's type."""

    def __init__(self, message: str, raw: str, kind: str):
        super().__init__(message, {"raw": raw, "kind": kind})
        self.raw = raw
        self.kind = kind
