"""
In this module, every variant produced for a declaration gets an inclusion predicate: a boolean expression over
build flags deciding whether the variant is part of a given build.

Variants of one declaration are held together by a `VariantGroup` statement, which takes the declaration's place in
the tree while the rest of the module is being transformed. Once the whole module has been routed, `lower()`
replaces each group with either the variant(s) selected for one build or with `if` guards keeping them all.
"""
import abc
import ast
import itertools
import logging
from dataclasses import dataclass
from dataclasses import replace
from typing import Any
from typing import FrozenSet
from typing import Iterator
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Union

import more_itertools

from python_maybe_async.errors import PredicateGap
from python_maybe_async.errors import PredicateOverlap
from python_maybe_async.parse.ast_util import holds_code
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.parse.directives import Directive

__all__ = [
    "Predicate",
    "Always",
    "FlagSet",
    "Not",
    "predicate_for",
    "VariantOutput",
    "VariantGroup",
    "InclusionGate",
    "lower",
    "walk",
]

logger = logging.getLogger(__name__)

FlagAssignment = Mapping[str, bool]


class Predicate(abc.ABC):
    @abc.abstractmethod
    def evaluate(self, flags: FlagAssignment) -> bool:
        """Flags missing from the assignment are unset"""

    @abc.abstractmethod
    def flags(self) -> FrozenSet[str]:
        """All flag names this predicate depends on"""

    @abc.abstractmethod
    def to_expr(self) -> ast.expr:
        ...


@dataclass(frozen=True)
class Always(Predicate):
    def evaluate(self, flags: FlagAssignment) -> bool:
        return True

    def flags(self) -> FrozenSet[str]:
        return frozenset()

    def to_expr(self) -> ast.expr:
        return ast.Constant(value=True)

    def __str__(self) -> str:
        return "True"


@dataclass(frozen=True)
class FlagSet(Predicate):
    name: str

    def evaluate(self, flags: FlagAssignment) -> bool:
        return bool(flags.get(self.name, False))

    def flags(self) -> FrozenSet[str]:
        return frozenset({self.name})

    def to_expr(self) -> ast.expr:
        return ast.Name(id=self.name, ctx=ast.Load())

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Not(Predicate):
    operand: Predicate

    def evaluate(self, flags: FlagAssignment) -> bool:
        return not self.operand.evaluate(flags)

    def flags(self) -> FrozenSet[str]:
        return self.operand.flags()

    def to_expr(self) -> ast.expr:
        return ast.UnaryOp(op=ast.Not(), operand=self.operand.to_expr())

    def __str__(self) -> str:
        return f"not {self.operand}"


def predicate_for(mode: Mode, flag: str) -> Predicate:
    """The predicate including a variant of the given mode only in builds of that mode"""
    if mode is Mode.BLOCKING:
        return FlagSet(flag)
    elif mode is Mode.NON_BLOCKING:
        return Not(FlagSet(flag))
    raise ValueError(f"No single predicate selects mode {mode}")


@dataclass(frozen=True)
class VariantOutput:
    """One mode-specific rendering of a declaration and the predicate including it in a build"""

    node: ast.stmt
    predicate: Predicate
    mode: Mode


class VariantGroup(ast.stmt):
    """
    All the variants produced for one declaration, standing in the declaration's place until the tree is lowered.

    The group has no AST fields on purpose: visitors walking the enclosing tree do not descend into it, so that the
    finalized output of an inner declaration is never transformed again by an outer one. Use `walk()` to iterate
    over everything, groups included.
    """

    _fields = ()

    variants: List[VariantOutput]
    directive: Optional[Directive]

    def __init__(
        self, variants: Sequence[VariantOutput] = (), directive: Optional[Directive] = None, **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        self.variants = list(variants)
        self.directive = directive

    @property
    def name(self) -> Optional[str]:
        variant = more_itertools.first(self.variants, None)
        return getattr(variant.node, "name", None) if variant else None


def walk(node: ast.AST) -> Iterator[ast.AST]:
    """Like `ast.walk()`, but also yields the nodes held by variant groups"""
    for child in ast.walk(node):
        yield child
        if isinstance(child, VariantGroup):
            for variant in child.variants:
                yield from walk(variant.node)


class InclusionGate:
    """Wraps the variants of one declaration and checks that their predicates make sense together"""

    def wrap(
        self, variants: Sequence[VariantOutput], directive: Directive, filename: str = "<unknown>"
    ) -> VariantGroup:
        if directive.EXHAUSTIVE:
            self.check(variants, directive, filename)
        group = VariantGroup(variants, directive)
        ast.copy_location(group, variants[0].node)
        return group

    @staticmethod
    def check(variants: Sequence[VariantOutput], directive: Directive, filename: str = "<unknown>") -> None:
        """
        Every assignment of the flags involved must include exactly one variant: raise PredicateOverlap if two
        variants would be compiled together and PredicateGap if none would be
        """
        names = sorted(frozenset().union(*(v.predicate.flags() for v in variants)))
        for values in itertools.product((False, True), repeat=len(names)):
            assignment = dict(zip(names, values))
            included = [v for v in variants if v.predicate.evaluate(assignment)]
            if len(included) > 1:
                raise PredicateOverlap.at(
                    directive.decorator,
                    f"Variants ({', '.join(str(v.predicate) for v in included)}) are all included when "
                    f"{_describe(assignment)}",
                    filename,
                )
            if not included:
                raise PredicateGap.at(
                    directive.decorator, f"No variant is included when {_describe(assignment)}", filename
                )


def _describe(assignment: FlagAssignment) -> str:
    if not assignment:
        return "no flags are set"
    return ", ".join(f"{name}={value}" for name, value in assignment.items())


class _GroupLowering(ast.NodeTransformer):
    def __init__(self, flags: Optional[FlagAssignment]) -> None:
        self.flags = flags

    def visit_VariantGroup(self, node: VariantGroup) -> Union[ast.AST, List[ast.stmt]]:
        # Lower inner groups first
        variants = [replace(v, node=self.visit(v.node)) for v in node.variants]

        if self.flags is not None:
            selected = [v.node for v in variants if v.predicate.evaluate(self.flags)]
            logger.debug("Selected %d of %d variant(s) of %s", len(selected), len(variants), node.name)
            return selected

        return self._guarded(variants)

    @staticmethod
    def _guarded(variants: Sequence[VariantOutput]) -> List[ast.stmt]:
        conditional, unconditional = (
            list(part) for part in more_itertools.partition(lambda v: isinstance(v.predicate, Always), variants)
        )
        if unconditional:
            return [v.node for v in unconditional]
        variants = conditional

        first, *rest = variants
        if len(rest) == 1 and rest[0].predicate == Not(first.predicate):
            guard = ast.If(test=first.predicate.to_expr(), body=[first.node], orelse=[rest[0].node])
            return [guard]

        # General case: an if/elif chain, built from the last variant up
        orelse: List[ast.stmt] = []
        for variant in reversed(variants):
            orelse = [ast.If(test=variant.predicate.to_expr(), body=[variant.node], orelse=orelse)]
        return orelse

    def generic_visit(self, node: ast.AST) -> ast.AST:
        node = super().generic_visit(node)
        if isinstance(node, ast.Module):
            return node
        # A block whose only statements were left out of this build still has to be valid Python
        for field in ("body", "orelse", "finalbody"):
            block = getattr(node, field, None)
            if not isinstance(block, list) or holds_code(block):
                continue
            if block or field == "body":
                block.append(ast.Pass())
        return node


def lower(tree: ast.AST, flags: Optional[FlagAssignment] = None) -> ast.AST:
    """
    Replace every variant group in the tree.

    With a flag assignment, only the variants included in that build remain. Without one (None), all variants
    remain, guarded by `if` statements testing their predicates.
    """
    lowered = _GroupLowering(flags).visit(tree)
    return ast.fix_missing_locations(lowered)
