"""
In this subpackage, we focus on reading the original source: parsing it into an AST that keeps its comments,
recognizing the `maybe_async` directives attached to declarations, and classifying those declarations.

Nothing here rewrites code. The tree can be inspected using `ast.dump()` or written back as code using `unparse()`.
"""

from .ast_util import parse, unparse
from .declarations import DeclarationKind, DeclarationUnit, Mode, classify
from .directives import Directive, find_directive

__all__ = [
    "parse",
    "unparse",
    "DeclarationKind",
    "DeclarationUnit",
    "Mode",
    "classify",
    "Directive",
    "find_directive",
]
