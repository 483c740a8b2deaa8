"""
Removing (or keeping) the suspension markers of a declaration.

Markers are the `async` qualifier of a function and every point where execution may be handed back to a
scheduler: `await`, `async for`, `async with` and async comprehensions. A blocking rewrite deletes them and touches
nothing else. Statements keep their order and call targets are not substituted.
"""
import ast
import copy
import enum
from dataclasses import dataclass
from typing import List
from typing import TypeVar

from python_maybe_async.parse.declarations import Mode
from python_maybe_async.transform.gate import VariantGroup

__all__ = ["MarkerKind", "SuspensionMarker", "SuspensionRewriter", "find_suspension_markers"]

_NodeT = TypeVar("_NodeT", bound=ast.AST)


class MarkerKind(enum.Enum):
    QUALIFIER = "async def"
    AWAIT = "await"
    ASYNC_FOR = "async for"
    ASYNC_WITH = "async with"
    ASYNC_COMPREHENSION = "async comprehension"


@dataclass(frozen=True)
class SuspensionMarker:
    kind: MarkerKind
    lineno: int
    col_offset: int


def _convert(node: ast.AST, new_type: type) -> ast.AST:
    """Rebuild a node as another node type sharing the same fields (e.g. AsyncFor -> For)"""
    new_node = new_type(**{name: getattr(node, name) for name in node._fields if hasattr(node, name)})
    return ast.copy_location(new_node, node)


class SuspensionRewriter(ast.NodeTransformer):
    """
    Produce the variant of a declaration for one mode.

    For `Mode.NON_BLOCKING` the declaration is already in its canonical form: the result is an unchanged copy. For
    `Mode.BLOCKING` the qualifier and every marker are removed. The input node is never modified.
    """

    def __init__(self, mode: Mode) -> None:
        if mode is Mode.BOTH:
            raise ValueError("Rewrite one mode at a time")
        self.mode = mode

    def rewrite(self, node: _NodeT) -> _NodeT:
        result = copy.deepcopy(node)
        if self.mode is Mode.NON_BLOCKING:
            return result
        rewritten = self.visit(result)
        assert isinstance(rewritten, ast.AST)
        return rewritten  # type: ignore[return-value]

    def visit_VariantGroup(self, node: VariantGroup) -> ast.AST:
        # Already finalized by an inner directive
        return node

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        return self.generic_visit(_convert(node, ast.FunctionDef))

    def visit_Await(self, node: ast.Await) -> ast.AST:
        return self.visit(node.value)

    def visit_AsyncFor(self, node: ast.AsyncFor) -> ast.AST:
        return self.generic_visit(_convert(node, ast.For))

    def visit_AsyncWith(self, node: ast.AsyncWith) -> ast.AST:
        return self.generic_visit(_convert(node, ast.With))

    def visit_comprehension(self, node: ast.comprehension) -> ast.AST:
        node.is_async = 0
        return self.generic_visit(node)


class _MarkerFinder(ast.NodeVisitor):
    def __init__(self) -> None:
        self.markers: List[SuspensionMarker] = []

    def _add(self, kind: MarkerKind, node: ast.AST) -> None:
        self.markers.append(SuspensionMarker(kind, node.lineno, node.col_offset))

    def visit_VariantGroup(self, node: VariantGroup) -> None:
        pass

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._add(MarkerKind.QUALIFIER, node)
        self.generic_visit(node)

    def visit_Await(self, node: ast.Await) -> None:
        self._add(MarkerKind.AWAIT, node)
        self.generic_visit(node)

    def visit_AsyncFor(self, node: ast.AsyncFor) -> None:
        self._add(MarkerKind.ASYNC_FOR, node)
        self.generic_visit(node)

    def visit_AsyncWith(self, node: ast.AsyncWith) -> None:
        self._add(MarkerKind.ASYNC_WITH, node)
        self.generic_visit(node)

    def visit_comprehension(self, node: ast.comprehension) -> None:
        # comprehension nodes carry no position, use the target's
        if node.is_async:
            self._add(MarkerKind.ASYNC_COMPREHENSION, node.target)
        self.generic_visit(node)


def find_suspension_markers(node: ast.AST) -> List[SuspensionMarker]:
    """All suspension markers in the node, in source order, not counting those inside finalized variant groups"""
    finder = _MarkerFinder()
    finder.visit(node)
    return sorted(finder.markers, key=lambda m: (m.lineno, m.col_offset))
