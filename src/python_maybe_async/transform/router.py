import ast
import copy
import logging
from dataclasses import replace
from typing import Dict
from typing import List
from typing import Optional
from typing import Set
from typing import Tuple

from python_maybe_async.config import Config
from python_maybe_async.errors import MalformedDirective
from python_maybe_async.errors import UnsupportedDeclarationKind
from python_maybe_async.parse.declarations import DeclarationNode
from python_maybe_async.parse.declarations import DeclarationUnit
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.parse.declarations import classify
from python_maybe_async.parse.directives import BothDirective
from python_maybe_async.parse.directives import Directive
from python_maybe_async.parse.directives import TestDirective
from python_maybe_async.parse.directives import find_directive
from python_maybe_async.transform.gate import Always
from python_maybe_async.transform.gate import FlagAssignment
from python_maybe_async.transform.gate import InclusionGate
from python_maybe_async.transform.gate import VariantGroup
from python_maybe_async.transform.gate import VariantOutput
from python_maybe_async.transform.gate import predicate_for
from python_maybe_async.transform.harness import HarnessSpecializer
from python_maybe_async.transform.naming import DualIdentityNamer
from python_maybe_async.transform.naming import resolve_references
from python_maybe_async.transform.suspension import SuspensionRewriter

__all__ = ["AnnotationRouter"]

logger = logging.getLogger(__name__)

_DUAL_MODES = (Mode.BLOCKING, Mode.NON_BLOCKING)


class AnnotationRouter(ast.NodeTransformer):
    """
    Walk a module and send every declaration carrying a directive through the transformations it asks for.

    Nested declarations are routed innermost first. Each routed declaration is replaced, in the tree, by a
    `VariantGroup` holding its gated variants; nothing is selected or rendered here (see `gate.lower()`).
    """

    config: Config
    filename: str

    dual_names: Dict[str, Tuple[str, str]]
    """
    Classes processed in both modes, with their (sync, async) suffixes. References to them are resolved per variant
    """

    flags: Optional[FlagAssignment]
    """
    The build being generated, if only one is. Tests are then specialized for that build alone, so that a harness
    is only needed when a non-blocking build is generated. None keeps every flag state (guarded output)
    """

    def __init__(
        self, config: Optional[Config] = None, filename: str = "<unknown>", flags: Optional[FlagAssignment] = None
    ) -> None:
        self.config = config or Config()
        self.filename = filename
        self.flags = flags
        self.dual_names = {}
        self.gate = InclusionGate()
        self.specializer = HarnessSpecializer(self.config.default_harness)

    def route(self, module: ast.Module) -> ast.Module:
        """Route a whole module. The given tree is left untouched, the routed copy is returned"""
        module = copy.deepcopy(module)
        self.dual_names = self._collect_dual_names(module)
        self._warn_on_collisions(module)
        routed = self.visit(module)
        assert isinstance(routed, ast.Module)
        return routed

    def _directive_of(self, node: DeclarationNode) -> Optional[Directive]:
        directive, _ = find_directive(node, self.config.namespace, self.config.blocking_flag, self.filename)
        return directive

    def _suffixes(self, directive: BothDirective) -> Tuple[str, str]:
        return (
            directive.sync_suffix or self.config.sync_suffix,
            directive.async_suffix or self.config.async_suffix,
        )

    def _collect_dual_names(self, module: ast.Module) -> Dict[str, Tuple[str, str]]:
        dual_names: Dict[str, Tuple[str, str]] = {}
        for node in ast.walk(module):
            if isinstance(node, ast.ClassDef):
                directive = self._directive_of(node)
                if isinstance(directive, BothDirective):
                    sync_suffix, async_suffix = dual_names[node.name] = self._suffixes(directive)
                    if sync_suffix == async_suffix:
                        raise MalformedDirective.at(
                            directive.decorator,
                            f"Both variants of '{node.name}' would be named '{node.name}{sync_suffix}'",
                            self.filename,
                        )
        return dual_names

    def _warn_on_collisions(self, module: ast.Module) -> None:
        """Warn when a derived name is already defined at module level. The derived class would shadow it"""
        defined: Set[str] = set()
        for statement in module.body:
            if isinstance(statement, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                defined.add(statement.name)
            elif isinstance(statement, (ast.Import, ast.ImportFrom)):
                defined.update((alias.asname or alias.name).partition(".")[0] for alias in statement.names)
            elif isinstance(statement, (ast.Assign, ast.AnnAssign)):
                targets = statement.targets if isinstance(statement, ast.Assign) else [statement.target]
                defined.update(t.id for t in targets if isinstance(t, ast.Name))

        for node in ast.walk(module):
            if not isinstance(node, ast.ClassDef):
                continue
            directive = self._directive_of(node)
            if not isinstance(directive, BothDirective):
                continue
            for mode, suffix in zip(_DUAL_MODES, self._suffixes(directive)):
                derived = node.name + suffix
                if derived in defined:
                    logger.warning(
                        "%s:%d: the %s variant of '%s' is named '%s', which the module already defines",
                        self.filename,
                        directive.lineno,
                        mode.value,
                        node.name,
                        derived,
                    )

    def _namer_for(self, directive: BothDirective) -> DualIdentityNamer:
        return DualIdentityNamer(*self._suffixes(directive), self.dual_names)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
        return self._visit_declaration(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        return self._visit_declaration(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        return self._visit_declaration(node)

    def visit_VariantGroup(self, node: VariantGroup) -> ast.AST:
        return node

    def _visit_declaration(self, node: DeclarationNode) -> ast.AST:
        directive, remaining = find_directive(
            node, self.config.namespace, self.config.blocking_flag, self.filename
        )
        if isinstance(directive, BothDirective) and isinstance(node, ast.ClassDef):
            # Before inner declarations resolve the class name in their own variants
            DualIdentityNamer.check_self_references(node, directive.decorator, self.filename)

        # Innermost first
        node = self.generic_visit(node)  # type: ignore[assignment]
        if directive is None:
            return node

        node.decorator_list = remaining
        kind = classify(node)
        unit = DeclarationUnit(node, kind, directive, self.filename)
        if not directive.supports(kind):
            raise UnsupportedDeclarationKind.at(
                directive.decorator,
                f"Directive '{directive.tag}' can not be applied to {kind.value} '{node.name}'",
                self.filename,
            )
        logger.debug("Routing %s '%s' (%s) from line %d", kind.value, unit.name, directive.tag, directive.lineno)
        return self.gate.wrap(self.dispatch(unit), directive, self.filename)

    def _blocking_states(self, directive: Directive) -> Tuple[bool, ...]:
        if self.flags is None:
            return (True, False)
        return (bool(self.flags.get(directive.flag, False)),)

    def dispatch(self, unit: DeclarationUnit) -> List[VariantOutput]:
        directive = unit.directive

        if isinstance(directive, TestDirective):
            states = self._blocking_states(directive)
            variants = [self.specializer.specialize(unit, blocking_active) for blocking_active in states]
            if len(variants) == 1:
                # The one variant of the build being generated
                variants = [replace(variants[0], predicate=Always())]
            return self._resolved(variants)

        if directive.MODE is Mode.BOTH:
            copies = {mode: SuspensionRewriter(mode).rewrite(unit.node) for mode in _DUAL_MODES}
            if unit.kind.introduces_name:
                assert isinstance(directive, BothDirective)
                named = self._namer_for(directive).derive(copies)  # type: ignore[arg-type]
                return [VariantOutput(node, predicate_for(mode, directive.flag), mode) for mode, node in named.items()]
            return self._resolved(
                [VariantOutput(node, predicate_for(mode, directive.flag), mode) for mode, node in copies.items()]
            )

        node = SuspensionRewriter(directive.MODE).rewrite(unit.node)
        predicate = predicate_for(directive.MODE, directive.flag) if directive.GATED else Always()
        return self._resolved([VariantOutput(node, predicate, directive.MODE)])

    def _resolved(self, variants: List[VariantOutput]) -> List[VariantOutput]:
        """References to dual classes follow the mode of the variant they are made from"""
        for variant in variants:
            resolve_references(variant.node, variant.mode, self.dual_names)
        return variants
