"""
Giving each variant of a class its own identity.

A class processed in both modes is emitted twice, e.g. `InnerClient` becomes `InnerClientSync` and
`InnerClientAsync`. Inside one variant, references to other dual classes of the module follow the same suffix, so
that `ServiceClientSync` derives from `InnerClientSync` and never from `InnerClientAsync`. Code outside of the
declaration being processed is never renamed.
"""
import ast
import logging
from dataclasses import replace
from typing import Collection
from typing import Dict
from typing import Iterator
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Union

from python_maybe_async.errors import AmbiguousSelfReference
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.transform.gate import VariantGroup
from python_maybe_async.transform.gate import walk

__all__ = ["DualIdentityNamer", "resolve_references"]

logger = logging.getLogger(__name__)


def _annotations(node: ast.AST) -> Collection[ast.expr]:
    """Annotation expressions directly attached to a node"""
    if isinstance(node, ast.arg):
        return [node.annotation] if node.annotation else []
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return [node.returns] if node.returns else []
    if isinstance(node, ast.AnnAssign):
        return [node.annotation]
    return []


def _pick(suffixes: Tuple[str, str], mode: Mode) -> str:
    sync_suffix, async_suffix = suffixes
    return sync_suffix if mode is Mode.BLOCKING else async_suffix


def _forward_references(annotation: ast.expr) -> Iterator[Tuple[ast.Constant, List[ast.Name]]]:
    """
    String constants anywhere inside an annotation (`"Inner"`, `Optional["Inner"]`, `"List[Inner]"`), each with the
    names its text refers to
    """
    for node in ast.walk(annotation):
        if isinstance(node, ast.Constant) and isinstance(node.value, str):
            try:
                expression = ast.parse(node.value.strip(), mode="eval")
            except SyntaxError:
                continue
            yield node, [n for n in ast.walk(expression) if isinstance(n, ast.Name)]


class _IdentityResolver(ast.NodeTransformer):
    def __init__(self, renames: Mapping[str, str]) -> None:
        self.renames = renames

    def visit_Name(self, node: ast.Name) -> ast.Name:
        if node.id in self.renames:
            node.id = self.renames[node.id]
        return node

    def generic_visit(self, node: ast.AST) -> ast.AST:
        for annotation in _annotations(node):
            for constant, names in _forward_references(annotation):
                if any(name.id in self.renames for name in names):
                    constant.value = self._resolve_text(constant.value)
        return super().generic_visit(node)

    def _resolve_text(self, text: str) -> str:
        expression = ast.parse(text.strip(), mode="eval").body
        return ast.unparse(self.visit(expression))

    def visit_VariantGroup(self, node: VariantGroup) -> ast.AST:
        # Identities must stay consistent inside finalized inner output too
        node.variants = [replace(v, node=self.visit(v.node)) for v in node.variants]
        return node


def resolve_references(node: ast.AST, mode: Mode, dual_names: Mapping[str, Tuple[str, str]]) -> ast.AST:
    """
    Point every reference the declaration makes to a dual class (given with its (sync, async) suffixes) at the
    variant of the given mode. Works in place. The declaration keeps its own name, so this is what functions and
    single-mode declarations get instead of `DualIdentityNamer.rename()`.
    """
    renames = {name: name + _pick(suffixes, mode) for name, suffixes in dual_names.items()}
    return _IdentityResolver(renames).visit(node)


class DualIdentityNamer:
    """Derives the two named copies of a class declaration"""

    def __init__(
        self,
        sync_suffix: str,
        async_suffix: str,
        dual_names: Union[Collection[str], Mapping[str, Tuple[str, str]]] = (),
    ) -> None:
        """
        `dual_names` are the other classes of the module processed in both modes. Given as a mapping, each name comes
        with its own (sync, async) suffixes. Otherwise they share this namer's suffixes.
        """
        if sync_suffix == async_suffix:
            raise ValueError("The blocking and non-blocking suffixes must differ")
        self.suffixes = (sync_suffix, async_suffix)
        if isinstance(dual_names, Mapping):
            self.dual_names = dict(dual_names)
        else:
            self.dual_names = {name: self.suffixes for name in dual_names}

    def name_for(self, name: str, mode: Mode) -> str:
        return name + _pick(self.suffixes, mode)

    def rename(self, node: ast.ClassDef, mode: Mode) -> ast.ClassDef:
        """
        Rename the class (in place) and resolve every reference it makes to a dual class to the same mode's variant.
        Call this on a copy of the declaration, as produced by the suspension rewriter.
        """
        renames = {name: name + _pick(suffixes, mode) for name, suffixes in self.dual_names.items()}
        renames[node.name] = self.name_for(node.name, mode)
        resolver = _IdentityResolver(renames)
        node.bases = [resolver.visit(base) for base in node.bases]
        node.keywords = [resolver.visit(keyword) for keyword in node.keywords]
        node.body = [resolver.visit(statement) for statement in node.body]
        logger.debug("Renamed %s to %s", node.name, renames[node.name])
        node.name = renames[node.name]
        return node

    def derive(self, variants: Mapping[Mode, ast.ClassDef]) -> Dict[Mode, ast.ClassDef]:
        """Rename the mode-specific copies of one class, e.g. as given by the rewriter for each mode"""
        return {mode: self.rename(node, mode) for mode, node in variants.items()}

    @staticmethod
    def check_self_references(
        node: ast.ClassDef, anchor: Optional[ast.AST] = None, filename: str = "<unknown>"
    ) -> None:
        """
        A class with two identities can not refer to itself by its undecorated name: that name exists in neither
        variant. Raise AmbiguousSelfReference if it does. References through `self`, `cls`, `type(self)` or `Self`
        are fine.
        """
        for child in (c for statement in node.body for c in walk(statement)):
            name = None
            if isinstance(child, ast.Name) and child.id == node.name:
                name = child
            else:
                for annotation in _annotations(child):
                    for constant, names in _forward_references(annotation):
                        if any(n.id == node.name for n in names):
                            name = constant
            if name is not None:
                raise AmbiguousSelfReference.at(
                    anchor or name,
                    f"'{node.name}' refers to itself by name on line {name.lineno}. Its variants are named "
                    f"differently, refer to the class through self, cls, type(self) or Self instead",
                    filename,
                )
