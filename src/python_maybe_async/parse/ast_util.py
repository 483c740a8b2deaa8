import ast
from typing import Iterable
from typing import Optional
from typing import Union

import ast_comments  # type: ignore
from typing_extensions import cast


def parse(source: Union[str, bytes], filename: str = "<unknown>") -> ast.Module:
    """
    Replace the ast.parse method with one which picks up comments. Comments become `ast_comments.Comment` statements
    so that they travel with the declarations they sit in and come back out of `unparse()`.
    """
    return cast(ast.Module, ast_comments.parse(source, filename, "exec"))


def unparse(ast_obj: ast.AST) -> str:
    return cast(str, ast_comments.unparse(ast_obj))


def is_comment(node: ast.AST) -> bool:
    return isinstance(node, ast_comments.Comment)


def holds_code(statements: Iterable[ast.stmt]) -> bool:
    """
    True if some statement is not a comment. A block made only of `ast_comments.Comment` statements unparses to
    source which does not compile
    """
    return not all(is_comment(statement) for statement in statements)


def reference_path(node: ast.AST) -> Optional[str]:
    """
    If the expression is a plain reference path (`name`, `package.module.name`, ...) return it as a dotted string.
    Otherwise, return None
    """
    if isinstance(node, ast.Name):
        return node.id
    elif isinstance(node, ast.Attribute):
        parent = reference_path(node.value)
        if parent is not None:
            return f"{parent}.{node.attr}"
    return None


def is_reference_path(path: str) -> bool:
    """True if the given string is a dotted name, e.g. `pytest.mark.anyio`"""
    return bool(path) and all(part.isidentifier() for part in path.split("."))


def expression_from_path(path: str) -> ast.expr:
    """Build the load expression for a dotted name"""
    if not is_reference_path(path):
        raise ValueError(f"'{path}' is not a dotted name")
    head, *tail = path.split(".")
    expr: ast.expr = ast.Name(id=head, ctx=ast.Load())
    for attr in tail:
        expr = ast.Attribute(value=expr, attr=attr, ctx=ast.Load())
    return expr
