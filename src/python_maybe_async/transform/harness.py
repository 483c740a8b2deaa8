"""
Test declarations are never compiled in both forms: each build gets the one form it can run. Blocking builds get a
plain test function. Non-blocking builds keep the coroutine and attach a harness marker (e.g.
`@pytest.mark.anyio`) telling pytest which plugin drives it.
"""
import ast
import logging
from typing import Optional

from python_maybe_async.errors import MissingHarnessSelector
from python_maybe_async.errors import UnsupportedDeclarationKind
from python_maybe_async.parse.declarations import DeclarationUnit
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.parse.directives import TestDirective
from python_maybe_async.transform.gate import VariantOutput
from python_maybe_async.transform.gate import predicate_for
from python_maybe_async.transform.suspension import SuspensionRewriter

__all__ = ["HarnessSpecializer"]

logger = logging.getLogger(__name__)


class HarnessSpecializer:
    """Produces the single test variant matching one state of the blocking-mode flag"""

    default_harness: Optional[str]
    """Used when the directive does not select a harness. None means there is no default"""

    def __init__(self, default_harness: Optional[str] = None) -> None:
        self.default_harness = default_harness

    def specialize(self, unit: DeclarationUnit, blocking_active: bool) -> VariantOutput:
        directive = unit.directive
        if not isinstance(directive, TestDirective) or not isinstance(
            unit.node, (ast.FunctionDef, ast.AsyncFunctionDef)
        ):
            raise UnsupportedDeclarationKind.at(
                directive.decorator, f"'{unit.name}' can not be specialized as a test", unit.filename
            )

        mode = Mode.BLOCKING if blocking_active else Mode.NON_BLOCKING
        node = SuspensionRewriter(mode).rewrite(unit.node)

        if not blocking_active:
            harness = directive.harness_expression(self.default_harness)
            if harness is None:
                raise MissingHarnessSelector.at(
                    directive.decorator,
                    f"Test '{unit.name}' needs a harness marker when flag '{directive.flag}' is not set. Pass "
                    f"harness=... to the directive or configure a default harness",
                    unit.filename,
                )
            ast.copy_location(harness, directive.decorator)
            node.decorator_list.insert(0, harness)
            logger.debug("Attached harness %s to %s", ast.unparse(harness), unit.name)

        return VariantOutput(node, predicate_for(mode, directive.flag), mode)
