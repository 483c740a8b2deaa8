import ast
import logging
from typing import Dict
from typing import Mapping
from typing import Optional
from typing import Union

from python_maybe_async.config import Config
from python_maybe_async.parse import parse
from python_maybe_async.parse import unparse
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.transform.gate import lower
from python_maybe_async.transform.router import AnnotationRouter

__all__ = ["MaybeAsyncTransformer", "transform_source", "Build"]

logger = logging.getLogger(__name__)

Build = Union[Mode, Mapping[str, bool], None]
"""
What to generate: a blocking or non-blocking build (a `Mode`), a build given by an explicit flag assignment, or None
for guarded source keeping every variant behind `if` statements testing the flags.
"""


class MaybeAsyncTransformer:
    """
    Turns a module written in its non-blocking form, with `maybe_async` directives attached to some of its
    declarations, into the source of a build.

    >>> transformer = MaybeAsyncTransformer()
    >>> print(transformer.generate(source, Mode.BLOCKING))

    Every diagnostic (see `python_maybe_async.errors`) aborts the whole module: no partial output is produced.
    """

    config: Config

    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config or Config()

    def flags_for(self, build: Build) -> Optional[Dict[str, bool]]:
        if build is None:
            return None
        if isinstance(build, Mode):
            return self.config.build_flags(build)
        return dict(build)

    def route(
        self,
        source: Union[str, bytes, ast.Module],
        filename: str = "<unknown>",
        flags: Optional[Dict[str, bool]] = None,
    ) -> ast.Module:
        """
        Parse (if needed) and route the module. The result still holds one variant group per routed declaration.
        With `flags`, test declarations are only specialized for that build
        """
        tree = source if isinstance(source, ast.Module) else parse(source, filename)
        return AnnotationRouter(self.config, filename, flags).route(tree)

    def generate_tree(
        self, source: Union[str, bytes, ast.Module], build: Build = None, filename: str = "<unknown>"
    ) -> ast.Module:
        flags = self.flags_for(build)
        routed = self.route(source, filename, flags)
        lowered = lower(routed, flags)
        assert isinstance(lowered, ast.Module)
        logger.debug("Generated %s for %s", "guarded source" if flags is None else f"build {flags}", filename)
        return lowered

    def generate(self, source: Union[str, bytes, ast.Module], build: Build = None, filename: str = "<unknown>") -> str:
        return unparse(self.generate_tree(source, build, filename)) + "\n"


def transform_source(
    source: Union[str, bytes], build: Build = None, config: Optional[Config] = None, filename: str = "<unknown>"
) -> str:
    """Shortcut for `MaybeAsyncTransformer(config).generate(...)`"""
    return MaybeAsyncTransformer(config).generate(source, build, filename)
