import ast
import logging
from textwrap import dedent

import pytest

from python_maybe_async.config import Config
from python_maybe_async.errors import AmbiguousSelfReference
from python_maybe_async.errors import MalformedDirective
from python_maybe_async.errors import MissingHarnessSelector
from python_maybe_async.errors import UnsupportedDeclarationKind
from python_maybe_async.parse import parse
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.parse.directives import BothDirective
from python_maybe_async.transform.gate import Always
from python_maybe_async.transform.gate import FlagSet
from python_maybe_async.transform.gate import Not
from python_maybe_async.transform.gate import VariantGroup
from python_maybe_async.transform.router import AnnotationRouter


def route(code: str, config: Config = Config()) -> ast.Module:
    return AnnotationRouter(config, "client.py").route(parse(dedent(code)))


def test_undecorated_code_is_left_alone() -> None:
    source = "async def f():\n    await g()\n\n@property\ndef h(self):\n    pass\n"
    routed = route(source)
    assert ast.dump(routed) == ast.dump(parse(source))


def test_both_function() -> None:
    routed = route(
        """\
        import asyncio

        @maybe_async.both
        @functools.cache
        async def fetch():
            return await get()
        """
    )
    group = routed.body[1]
    assert isinstance(group, VariantGroup)
    assert isinstance(group.directive, BothDirective)
    assert [v.mode for v in group.variants] == [Mode.BLOCKING, Mode.NON_BLOCKING]
    assert [v.predicate for v in group.variants] == [FlagSet("is_sync"), Not(FlagSet("is_sync"))]
    assert [ast.unparse(v.node).splitlines()[:2] for v in group.variants] == [
        ["@functools.cache", "def fetch():"],
        ["@functools.cache", "async def fetch():"],
    ], "Functions keep their name and their other decorators"


def test_input_tree_untouched() -> None:
    tree = parse("@maybe_async.both\nasync def fetch():\n    return await get()\n")
    AnnotationRouter().route(tree)
    node = tree.body[0]
    assert isinstance(node, ast.AsyncFunctionDef)
    assert len(node.decorator_list) == 1


@pytest.mark.parametrize(
    ("tag", "mode", "predicate"),
    [
        ("blocking", Mode.BLOCKING, Always()),
        ("non_blocking", Mode.NON_BLOCKING, Always()),
        ("sync_impl", Mode.BLOCKING, FlagSet("is_sync")),
        ("async_impl", Mode.NON_BLOCKING, Not(FlagSet("is_sync"))),
        ("sync_impl(flag='blocking_io')", Mode.BLOCKING, FlagSet("blocking_io")),
    ],
)
def test_single_variant_tags(tag: str, mode: Mode, predicate: object) -> None:
    routed = route(f"@maybe_async.{tag}\nasync def fetch():\n    return await get()\n")
    group = routed.body[0]
    assert isinstance(group, VariantGroup)
    assert len(group.variants) == 1
    (variant,) = group.variants
    assert (variant.mode, variant.predicate) == (mode, predicate)
    expected_type = ast.FunctionDef if mode is Mode.BLOCKING else ast.AsyncFunctionDef
    assert isinstance(variant.node, expected_type)
    assert variant.node.decorator_list == []


def test_classes_are_renamed() -> None:
    routed = route(
        """\
        @maybe_async.both
        class InnerClient(Protocol):
            async def request(self) -> str: ...

        @maybe_async.both(sync_suffix="Blocking")
        class ServiceClient(InnerClient):
            async def create_bucket(self) -> str:
                return await self.request()

        class Unrelated(InnerClient):
            pass
        """
    )
    inner, service, unrelated = routed.body
    assert isinstance(inner, VariantGroup) and isinstance(service, VariantGroup)
    assert [v.node.name for v in inner.variants] == ["InnerClientSync", "InnerClientAsync"]  # type: ignore
    assert [v.node.name for v in service.variants] == ["ServiceClientBlocking", "ServiceClientAsync"]  # type: ignore
    assert [ast.unparse(v.node.bases[0]) for v in service.variants] == [  # type: ignore[attr-defined]
        "InnerClientSync",
        "InnerClientAsync",
    ], "References resolve to the variants the referenced class actually has"
    assert isinstance(unrelated, ast.ClassDef)
    assert ast.unparse(unrelated.bases[0]) == "InnerClient", "Code outside of directives is never renamed"


def test_configured_suffixes() -> None:
    routed = route("@maybe_async.both\nclass Pool:\n    pass\n", Config(sync_suffix="Blocking", async_suffix="Aio"))
    group = routed.body[0]
    assert isinstance(group, VariantGroup)
    assert [v.node.name for v in group.variants] == ["PoolBlocking", "PoolAio"]  # type: ignore[attr-defined]


def test_suffixes_must_differ() -> None:
    with pytest.raises(MalformedDirective, match="Both variants of 'Pool' would be named 'PoolAsync'"):
        route("@maybe_async.both(sync_suffix='Async')\nclass Pool:\n    pass\n")


def test_innermost_first() -> None:
    """Inner declarations are finalized before the enclosing one and are carried inside each of its variants"""
    routed = route(
        """\
        @maybe_async.both
        class ServiceClient:
            @maybe_async.sync_impl
            def request(self):
                return "blocking"

            @maybe_async.async_impl
            async def request(self):
                return await transport()
        """
    )
    outer = routed.body[0]
    assert isinstance(outer, VariantGroup)
    for variant in outer.variants:
        sync_impl, async_impl = variant.node.body  # type: ignore[attr-defined]
        assert isinstance(sync_impl, VariantGroup) and isinstance(async_impl, VariantGroup)
        assert sync_impl.variants[0].predicate == FlagSet("is_sync")
        assert isinstance(async_impl.variants[0].node, ast.AsyncFunctionDef), "Not rewritten by the outer class"


def test_test_entries() -> None:
    routed = route("@maybe_async.test(harness='pytest.mark.anyio')\nasync def test_it():\n    await go()\n")
    group = routed.body[0]
    assert isinstance(group, VariantGroup)
    blocking, non_blocking = group.variants
    assert isinstance(blocking.node, ast.FunctionDef) and blocking.node.decorator_list == []
    assert isinstance(non_blocking.node, ast.AsyncFunctionDef)
    assert ast.unparse(non_blocking.node.decorator_list[0]) == "pytest.mark.anyio"


def test_test_entries_for_one_build() -> None:
    """When one build is generated, only its test variant is produced: blocking builds need no harness"""
    tree = parse("@maybe_async.test\nasync def test_it():\n    await go()\n")
    router = AnnotationRouter(Config(default_harness=None), "client.py", {"is_sync": True})
    group = router.route(tree).body[0]
    assert isinstance(group, VariantGroup)
    (variant,) = group.variants
    assert isinstance(variant.node, ast.FunctionDef)
    assert variant.predicate == Always()

    with pytest.raises(MissingHarnessSelector):
        AnnotationRouter(Config(default_harness=None), "client.py", {"is_sync": False}).route(tree)


def test_functions_use_dual_classes_of_their_mode() -> None:
    routed = route(
        """\
        @maybe_async.both(sync_suffix="Blocking")
        class Pool:
            pass

        @maybe_async.both
        async def connect(size: "Optional[Pool]") -> Pool:
            return Pool()

        @maybe_async.sync_impl
        def make() -> Pool:
            return Pool()
        """
    )
    _, connect, make = routed.body
    assert isinstance(connect, VariantGroup) and isinstance(make, VariantGroup)
    assert [ast.unparse(v.node) for v in connect.variants] == [
        "def connect(size: 'Optional[PoolBlocking]') -> PoolBlocking:\n    return PoolBlocking()",
        "async def connect(size: 'Optional[PoolAsync]') -> PoolAsync:\n    return PoolAsync()",
    ]
    assert ast.unparse(make.variants[0].node) == "def make() -> PoolBlocking:\n    return PoolBlocking()"


def test_test_on_a_class() -> None:
    with pytest.raises(UnsupportedDeclarationKind) as exc_info:
        route("x = 1\n\n@maybe_async.test\nclass TestThings:\n    pass\n")
    assert str(exc_info.value) == (
        "client.py:3:2: UnsupportedDeclarationKind: Directive 'test' can not be applied to type 'TestThings'"
    )


def test_self_reference_is_checked_before_anything_else() -> None:
    with pytest.raises(AmbiguousSelfReference):
        route("@maybe_async.both\nclass Node:\n    def copy(self):\n        return Node()\n")


def test_self_reference_allowed_for_single_mode_classes() -> None:
    route("@maybe_async.blocking\nclass Node:\n    def copy(self):\n        return Node()\n")


def test_malformed_nested_directive() -> None:
    with pytest.raises(MalformedDirective) as exc_info:
        route("class Outer:\n    @maybe_async.bothh\n    async def f(self):\n        pass\n")
    assert (exc_info.value.lineno, exc_info.value.col_offset) == (2, 5)


def test_custom_namespace() -> None:
    routed = route("@compat.maybe_async.both\nasync def f():\n    pass\n", Config(namespace="compat.maybe_async"))
    assert isinstance(routed.body[0], VariantGroup)


def test_namespace_spelled_through_the_package() -> None:
    routed = route("@python_maybe_async.maybe_async.both\nasync def f():\n    await g()\n")
    group = routed.body[0]
    assert isinstance(group, VariantGroup)
    assert ast.unparse(group.variants[0].node) == "def f():\n    g()"


def test_collision_warning(caplog: pytest.LogCaptureFixture) -> None:
    source = """\
        from clients import InnerClientSync

        @maybe_async.both
        class InnerClient:
            pass
        """
    with caplog.at_level(logging.WARNING, logger="python_maybe_async"):
        route(source)
    assert [r.getMessage() for r in caplog.records] == [
        "client.py:3: the blocking variant of 'InnerClient' is named 'InnerClientSync', "
        "which the module already defines"
    ]
