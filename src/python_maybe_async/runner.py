import ast
import inspect
import logging
import sys
from pathlib import Path
from textwrap import dedent
from types import ModuleType
from typing import Any
from typing import Dict
from typing import Iterable
from typing import Optional
from typing import Union

from python_maybe_async.config import Config
from python_maybe_async.main import Build
from python_maybe_async.main import MaybeAsyncTransformer
from python_maybe_async.parse import parse

__all__ = ["SourceStream", "load_module"]

logger = logging.getLogger(__name__)


class SourceStream:
    """
    Take a stream of Python code which may have `maybe_async` directives in it, parse it and keep track of the file
    and module the code came from, so that generated builds can be executed in the same namespace.
    """

    name: str

    filename: str
    """The filename, if applicable. '<unknown>' if source was a raw string"""

    module: Optional[ModuleType]
    """The module that the original source code came from. Or, None if source was a raw string (e.g. in a test case)"""

    source_ast: ast.Module
    """The parsed source (comments included)"""

    source_code: str

    def __init__(self, name: str, code: Union[str, Iterable[str], Any], filename: Optional[str] = None) -> None:
        self.name = name
        self.filename = filename or "<unknown>"
        self.module = None

        if isinstance(code, str):
            self.source_code = code
        elif isinstance(code, Iterable):
            self.source_code = "\n".join(code)
        else:
            # A live function or class: only its own source is taken
            self.filename = inspect.getsourcefile(code) or "<unknown>"
            self.module = inspect.getmodule(code)
            lines, line_no = inspect.getsourcelines(code)
            self.source_code = dedent("".join(lines))
            try:
                self.source_ast = parse(self.source_code, self.filename)
            except SyntaxError as e:
                if e.lineno is not None:
                    e.lineno += line_no - 1
                raise
            ast.increment_lineno(self.source_ast, line_no - 1)
            return

        self.source_ast = parse(self.source_code, self.filename)

    def generate(self, build: Build = None, config: Optional[Config] = None) -> str:
        return MaybeAsyncTransformer(config).generate(self.source_ast, build, self.filename)

    def execute(self, build: Build, config: Optional[Config] = None) -> Dict[str, Any]:
        """
        Generate the given build and execute it in the namespace of the module the code came from (or in a fresh
        namespace if there is none). Return the namespace.
        """
        namespace: Dict[str, Any] = self.module.__dict__ if self.module else {"__name__": self.name}
        code = compile(self.generate(build, config), self.filename, mode="exec")
        exec(code, namespace)
        return namespace


def load_module(
    module_name: str, module_file: Path, build: Build, config: Optional[Config] = None
) -> ModuleType:
    """
    Generate one build of a source file and import the result as a module named `module_name`. The module is
    registered in `sys.modules`.
    """
    stream = SourceStream(module_name, module_file.read_text(), str(module_file))
    generated = stream.generate(build, config)

    module = ModuleType(module_name)
    module.__file__ = str(module_file)
    sys.modules[module_name] = module
    try:
        exec(compile(generated, str(module_file), mode="exec"), module.__dict__)
    except BaseException:
        del sys.modules[module_name]
        raise
    logger.debug("Loaded %s from %s", module_name, module_file)
    return module
