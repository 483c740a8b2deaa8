import ast
from textwrap import dedent
from typing import Optional

import pytest

from python_maybe_async.errors import MissingHarnessSelector
from python_maybe_async.errors import UnsupportedDeclarationKind
from python_maybe_async.parse.declarations import DeclarationUnit
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.parse.declarations import classify
from python_maybe_async.parse.directives import find_directive
from python_maybe_async.transform.gate import FlagSet
from python_maybe_async.transform.gate import Not
from python_maybe_async.transform.harness import HarnessSpecializer


def unit_of(code: str) -> DeclarationUnit:
    node = ast.parse(dedent(code)).body[0]
    assert isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef))
    directive, node.decorator_list = find_directive(node, "maybe_async", "is_sync", "test_util.py")
    assert directive is not None
    return DeclarationUnit(node, classify(node), directive, "test_util.py")


TEST_ASYNC_FN = """\
@maybe_async.test(flag="is_sync", harness="pytest.mark.anyio")
@pytest.mark.parametrize("x", [1])
async def test_async_fn(x):
    res = await some_function()
    assert res == True
"""


def test_blocking_active() -> None:
    variant = HarnessSpecializer("pytest.mark.asyncio").specialize(unit_of(TEST_ASYNC_FN), blocking_active=True)
    assert variant.mode is Mode.BLOCKING
    assert variant.predicate == FlagSet("is_sync")
    assert ast.unparse(variant.node) == dedent(
        """\
        @pytest.mark.parametrize('x', [1])
        def test_async_fn(x):
            res = some_function()
            assert res == True"""
    )


def test_non_blocking() -> None:
    unit = unit_of(TEST_ASYNC_FN)
    variant = HarnessSpecializer("pytest.mark.asyncio").specialize(unit, blocking_active=False)
    assert variant.mode is Mode.NON_BLOCKING
    assert variant.predicate == Not(FlagSet("is_sync"))
    assert ast.unparse(variant.node) == dedent(
        """\
        @pytest.mark.anyio
        @pytest.mark.parametrize('x', [1])
        async def test_async_fn(x):
            res = await some_function()
            assert res == True"""
    )
    assert len(unit.node.decorator_list) == 1, "The unit is not modified"


@pytest.mark.parametrize(
    ("default_harness", "expected_decorator"),
    [("pytest.mark.asyncio", "pytest.mark.asyncio"), ("pytest.mark.trio", "pytest.mark.trio")],
)
def test_default_harness(default_harness: str, expected_decorator: str) -> None:
    unit = unit_of("@maybe_async.test\nasync def test_fn():\n    await x()\n")
    variant = HarnessSpecializer(default_harness).specialize(unit, blocking_active=False)
    assert isinstance(variant.node, ast.AsyncFunctionDef)
    assert [ast.unparse(d) for d in variant.node.decorator_list] == [expected_decorator]


def test_exactly_one_form_per_state() -> None:
    """Whatever the state of the flag, exactly one of the two variants is included"""
    unit = unit_of(TEST_ASYNC_FN)
    specializer = HarnessSpecializer()
    variants = [specializer.specialize(unit, state) for state in (True, False)]
    for state in (True, False):
        included = [v for v in variants if v.predicate.evaluate({"is_sync": state})]
        assert len(included) == 1
        assert isinstance(included[0].node, ast.FunctionDef if state else ast.AsyncFunctionDef)


def test_missing_harness() -> None:
    unit = unit_of("@maybe_async.test(flag='blocking_io')\nasync def test_fn():\n    pass\n")
    specializer = HarnessSpecializer(default_harness=None)

    assert isinstance(specializer.specialize(unit, blocking_active=True).node, ast.FunctionDef)
    with pytest.raises(MissingHarnessSelector) as exc_info:
        specializer.specialize(unit, blocking_active=False)
    assert str(exc_info.value).startswith("test_util.py:1:2: MissingHarnessSelector: Test 'test_fn' needs a harness")
    assert "flag 'blocking_io'" in str(exc_info.value)


@pytest.mark.parametrize("harness", [None, "pytest.mark.anyio"])
def test_harness_from_directive_wins(harness: Optional[str]) -> None:
    unit = unit_of("@maybe_async.test(harness='pytest.mark.anyio')\nasync def test_fn():\n    pass\n")
    variant = HarnessSpecializer(harness).specialize(unit, blocking_active=False)
    assert isinstance(variant.node, ast.AsyncFunctionDef)
    assert ast.unparse(variant.node.decorator_list[0]) == "pytest.mark.anyio"


def test_not_a_test() -> None:
    unit = unit_of("@maybe_async.both\nasync def helper():\n    pass\n")
    with pytest.raises(UnsupportedDeclarationKind):
        HarnessSpecializer().specialize(unit, blocking_active=True)
