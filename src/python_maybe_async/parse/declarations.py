import ast
import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Optional
from typing import Union

from python_maybe_async.parse.ast_util import reference_path

if TYPE_CHECKING:
    from python_maybe_async.parse.directives import Directive

__all__ = ["Mode", "DeclarationKind", "DeclarationUnit", "DeclarationNode", "classify"]

DeclarationNode = Union[ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef]

_TRAIT_BASES = frozenset({"Protocol", "ABC"})
_TRAIT_METACLASSES = frozenset({"ABCMeta"})


class Mode(enum.Enum):
    """The processing mode requested by a directive"""

    BLOCKING = "blocking"
    NON_BLOCKING = "non-blocking"
    BOTH = "both"


class DeclarationKind(enum.Enum):
    FUNCTION = "function"
    TRAIT = "trait"
    IMPL = "impl"
    TYPE = "type"

    @property
    def introduces_name(self) -> bool:
        """Classes get a distinct name per variant, functions do not"""
        return self is not DeclarationKind.FUNCTION


def _terminal_name(node: ast.expr) -> Optional[str]:
    # Protocol[T] is still a Protocol
    if isinstance(node, ast.Subscript):
        node = node.value
    path = reference_path(node)
    return path.rpartition(".")[2] if path else None


def classify(node: DeclarationNode) -> DeclarationKind:
    """
    Decide which kind of declaration a node is.

      * functions (sync or async) are FUNCTIONs
      * classes deriving from Protocol or ABC, or using the ABCMeta metaclass, are TRAITs
      * other classes with bases implement something, so they are IMPLs
      * classes without bases define a plain TYPE
    """
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return DeclarationKind.FUNCTION

    if isinstance(node, ast.ClassDef):
        if any(_terminal_name(base) in _TRAIT_BASES for base in node.bases):
            return DeclarationKind.TRAIT
        if any(kw.arg == "metaclass" and _terminal_name(kw.value) in _TRAIT_METACLASSES for kw in node.keywords):
            return DeclarationKind.TRAIT
        return DeclarationKind.IMPL if node.bases else DeclarationKind.TYPE

    raise TypeError(f"Can not classify {type(node).__name__} as a declaration")


@dataclass(frozen=True)
class DeclarationUnit:
    """One decorated declaration, taken out of its module so that it can be transformed on its own"""

    node: DeclarationNode
    """The declaration with its directive decorator already removed"""

    kind: DeclarationKind

    directive: "Directive"

    filename: str = "<unknown>"

    @property
    def name(self) -> str:
        return self.node.name
