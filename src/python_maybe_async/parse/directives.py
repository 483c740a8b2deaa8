import ast
from dataclasses import dataclass
from typing import ClassVar
from typing import Dict
from typing import FrozenSet
from typing import List
from typing import Optional
from typing import Tuple
from typing import Type

from typing_extensions import Self

from python_maybe_async.errors import MalformedDirective
from python_maybe_async.parse.ast_util import expression_from_path
from python_maybe_async.parse.ast_util import is_reference_path
from python_maybe_async.parse.ast_util import reference_path
from python_maybe_async.parse.declarations import DeclarationKind
from python_maybe_async.parse.declarations import DeclarationNode
from python_maybe_async.parse.declarations import Mode

__all__ = [
    "Directive",
    "BothDirective",
    "BlockingDirective",
    "NonBlockingDirective",
    "SyncImplDirective",
    "AsyncImplDirective",
    "TestDirective",
    "find_directive",
]


def _identifier_argument(value: ast.expr) -> Optional[str]:
    if isinstance(value, ast.Constant) and isinstance(value.value, str) and value.value.isidentifier():
        return value.value
    return None


def _reference_path_argument(value: ast.expr) -> Optional[str]:
    # Both harness="pytest.mark.anyio" and harness=pytest.mark.anyio are accepted
    if isinstance(value, ast.Constant):
        return value.value if isinstance(value.value, str) and is_reference_path(value.value) else None
    return reference_path(value)


_ARGUMENT_PARSERS = {
    "flag": (_identifier_argument, "a string holding a valid identifier"),
    "sync_suffix": (_identifier_argument, "a string holding a valid identifier"),
    "async_suffix": (_identifier_argument, "a string holding a valid identifier"),
    "harness": (_reference_path_argument, "a reference path such as pytest.mark.anyio"),
}
"""For each argument name: a function returning the parsed value (or None if invalid) and a description of it"""


@dataclass
class Directive:
    """
    A directive parsed from a decorator. The decorator is spelled `@<namespace>.<tag>`, optionally called with
    keyword arguments, e.g. `@maybe_async.both(flag="is_sync")`.

    Each subclass handles one tag and declares, as class variables, how declarations carrying it are processed.
    """

    TAG: ClassVar[Optional[str]] = None
    MODE: ClassVar[Mode]
    GATED: ClassVar[bool] = True
    """If False, the single variant is included unconditionally"""
    EXHAUSTIVE: ClassVar[bool] = False
    """If True, every build must include exactly one of the variants"""
    ARGUMENTS: ClassVar[Tuple[str, ...]] = ()
    SUPPORTED_KINDS: ClassVar[FrozenSet[DeclarationKind]] = frozenset(DeclarationKind)

    decorator: ast.expr
    """The decorator expression this directive came from. Diagnostics are reported at its position"""
    arguments: Dict[str, str]
    """Parsed keyword arguments, in the order they were written"""
    default_flag: str
    filename: str = "<unknown>"

    @property
    def tag(self) -> str:
        assert self.TAG is not None
        return self.TAG

    @property
    def flag(self) -> str:
        """The blocking-mode flag gating this declaration's variants"""
        return self.arguments.get("flag", self.default_flag)

    @property
    def lineno(self) -> int:
        return self.decorator.lineno

    @property
    def col_offset(self) -> int:
        return self.decorator.col_offset

    def supports(self, kind: DeclarationKind) -> bool:
        return kind in self.SUPPORTED_KINDS

    @classmethod
    def from_decorator(
        cls, node: ast.expr, namespace: str, default_flag: str, filename: str = "<unknown>"
    ) -> Optional["Self"]:
        """
        If the decorator is a directive, find the subclass handling its tag and instantiate it. Otherwise, return None
        """
        target = node.func if isinstance(node, ast.Call) else node
        path = reference_path(target)
        if path is None:
            return None
        prefix, _, tag = path.rpartition(".")
        # Also when spelled through the package, e.g. `@python_maybe_async.maybe_async.both`
        if prefix != namespace and not prefix.endswith("." + namespace):
            return None

        directive_class = cls._for_tag(tag)
        if directive_class is None:
            raise MalformedDirective.at(
                node,
                f"Decorator '@{path}' looks like a directive but is unrecognized. Possible spelling error?",
                filename,
            )
        arguments = directive_class.parse_arguments(node, filename)
        return directive_class(node, arguments, default_flag, filename)  # type: ignore[return-value]

    @classmethod
    def _for_tag(cls, tag: str) -> Optional[Type["Directive"]]:
        """
        Recursive worker
        """
        if cls.TAG == tag:
            return cls
        for sub_cls in cls.__subclasses__():
            result = sub_cls._for_tag(tag)
            if result is not None:
                return result
        return None

    @classmethod
    def parse_arguments(cls, node: ast.expr, filename: str) -> Dict[str, str]:
        if not isinstance(node, ast.Call):
            return {}

        if node.args:
            raise MalformedDirective.at(
                node.args[0], f"Directive '{cls.TAG}' only accepts keyword arguments", filename
            )

        arguments: Dict[str, str] = {}
        for keyword in node.keywords:
            if keyword.arg is None:
                raise MalformedDirective.at(keyword, f"Directive '{cls.TAG}' does not accept **kwargs", filename)
            if keyword.arg not in cls.ARGUMENTS:
                allowed = ", ".join(cls.ARGUMENTS) or "none"
                raise MalformedDirective.at(
                    keyword,
                    f"Unknown argument '{keyword.arg}' for directive '{cls.TAG}' (allowed: {allowed})",
                    filename,
                )
            parser, description = _ARGUMENT_PARSERS[keyword.arg]
            value = parser(keyword.value)
            if value is None:
                raise MalformedDirective.at(
                    keyword.value, f"Argument '{keyword.arg}' of directive '{cls.TAG}' must be {description}", filename
                )
            arguments[keyword.arg] = value

        return arguments


class BothDirective(Directive):
    """Derive a blocking and a non-blocking variant, each included in its own build"""

    TAG = "both"
    MODE = Mode.BOTH
    EXHAUSTIVE = True
    ARGUMENTS = ("flag", "sync_suffix", "async_suffix")

    @property
    def sync_suffix(self) -> Optional[str]:
        return self.arguments.get("sync_suffix")

    @property
    def async_suffix(self) -> Optional[str]:
        return self.arguments.get("async_suffix")


class BlockingDirective(Directive):
    """Always blocking, whatever the build"""

    TAG = "blocking"
    MODE = Mode.BLOCKING
    GATED = False


class NonBlockingDirective(Directive):
    """Always non-blocking, whatever the build. The declaration is kept exactly as written"""

    TAG = "non_blocking"
    MODE = Mode.NON_BLOCKING
    GATED = False


class SyncImplDirective(Directive):
    """Converted to blocking and included only in blocking builds"""

    TAG = "sync_impl"
    MODE = Mode.BLOCKING
    ARGUMENTS = ("flag",)


class AsyncImplDirective(Directive):
    """Kept as written and included only in non-blocking builds"""

    TAG = "async_impl"
    MODE = Mode.NON_BLOCKING
    ARGUMENTS = ("flag",)


class TestDirective(Directive):
    """
    A test entry. Blocking builds get a plain test function, non-blocking builds get the coroutine test decorated
    with a harness marker (`harness=` or the configured default)
    """

    __test__ = False

    TAG = "test"
    MODE = Mode.BOTH
    EXHAUSTIVE = True
    ARGUMENTS = ("flag", "harness")
    SUPPORTED_KINDS = frozenset({DeclarationKind.FUNCTION})

    @property
    def harness(self) -> Optional[str]:
        return self.arguments.get("harness")

    def harness_expression(self, default_harness: Optional[str]) -> Optional[ast.expr]:
        path = self.harness or default_harness
        return expression_from_path(path) if path else None


def find_directive(
    node: DeclarationNode, namespace: str, default_flag: str, filename: str = "<unknown>"
) -> Tuple[Optional[Directive], List[ast.expr]]:
    """
    Look through the decorators of a declaration for a directive. Return the directive (or None) and the list of
    the remaining decorators. A declaration carries at most one directive
    """
    found: Optional[Directive] = None
    remaining: List[ast.expr] = []
    for decorator in node.decorator_list:
        directive = Directive.from_decorator(decorator, namespace, default_flag, filename)
        if directive is None:
            remaining.append(decorator)
        elif found is not None:
            raise MalformedDirective.at(
                decorator,
                f"'{node.name}' already carries the '{found.tag}' directive (line {found.lineno}). Only one "
                f"directive is allowed per declaration",
                filename,
            )
        else:
            found = directive
    return found, remaining
