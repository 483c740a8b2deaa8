"""
Diagnostics raised while transforming a module. Every diagnostic is attributed to the source position of the
directive (decorator) that caused it, so that it can be reported the way a compiler reports a syntax error.
"""
import ast
from typing import Optional

__all__ = [
    "MaybeAsyncError",
    "MalformedDirective",
    "UnsupportedDeclarationKind",
    "AmbiguousSelfReference",
    "MissingHarnessSelector",
    "PredicateOverlap",
    "PredicateGap",
]


class MaybeAsyncError(Exception):
    """Base class for all transformation diagnostics"""

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        lineno: Optional[int] = None,
        col_offset: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.lineno = lineno
        self.col_offset = col_offset

    @classmethod
    def at(cls, node: Optional[ast.AST], message: str, filename: Optional[str] = None) -> "MaybeAsyncError":
        """Build a diagnostic located at the given node (usually the directive's decorator expression)"""
        return cls(
            message,
            filename=filename,
            lineno=getattr(node, "lineno", None),
            col_offset=getattr(node, "col_offset", None),
        )

    @property
    def location(self) -> str:
        parts = [self.filename or "<unknown>"]
        if self.lineno is not None:
            parts.append(str(self.lineno))
            if self.col_offset is not None:
                # Columns are reported 1-based, like the interpreter does
                parts.append(str(self.col_offset + 1))
        return ":".join(parts)

    def __str__(self) -> str:
        return f"{self.location}: {self.__class__.__name__}: {self.message}"


class MalformedDirective(MaybeAsyncError):
    """The directive's tag is unknown or its arguments are not well-formed"""


class UnsupportedDeclarationKind(MaybeAsyncError):
    """A directive was attached to a kind of declaration it cannot process (e.g. `test` on a class)"""


class AmbiguousSelfReference(MaybeAsyncError):
    """A class processed in both modes refers to its own undecorated name"""


class MissingHarnessSelector(MaybeAsyncError):
    """A test must run in non-blocking mode but no harness marker could be resolved for it"""


class PredicateOverlap(MaybeAsyncError):
    """More than one variant of a declaration would be included in the same build"""


class PredicateGap(MaybeAsyncError):
    """Some build would include no variant at all of a declaration"""
