"""Error types shared across shapekit."""
from __future__ import annotations

from typing import Optional


class ShapekitError(ValueError):
    """Structured error with a stable code for CLI mapping."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


class ShapeRegistryError(ShapekitError):
    """Raised when a factory or fallback shape is not available."""


class ShapeDefinitionError(ShapekitError):
    """Raised when a shape definition cannot be turned into a usable shape."""


class MarkupError(ShapeDefinitionError):
    """Raised when node markup cannot be parsed or drawn."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        super().__init__(code, message)
        self.line = line
        self.column = column


class GraphDataError(ShapekitError):
    """Raised when graph data handed to the renderer is inconsistent."""
