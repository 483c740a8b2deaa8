"""
The runtime side of the directives.

Sources are written in their non-blocking form and should import and run as-is, before any build is generated. The
`maybe_async` namespace found here provides every directive as a decorator that returns the declaration unchanged:

>>> from python_maybe_async import maybe_async
>>>
>>> @maybe_async.both
>>> class InnerClient(Protocol):
>>>     async def request(self, url: str) -> str: ...
"""
from types import SimpleNamespace
from typing import Any
from typing import Callable
from typing import List
from typing import TypeVar
from typing import overload

from python_maybe_async.parse.directives import Directive

__all__ = ["maybe_async"]

_T = TypeVar("_T")


def _passthrough(tag: str) -> Callable[..., Any]:
    @overload
    def directive(declaration: _T) -> _T:
        ...

    @overload
    def directive(**arguments: Any) -> Callable[[_T], _T]:
        ...

    def directive(declaration: Any = None, **arguments: Any) -> Any:
        if declaration is not None:
            return declaration
        return lambda d: d

    directive.__name__ = directive.__qualname__ = tag
    return directive


def _tags(cls: type) -> List[str]:
    tags: List[str] = [cls.TAG] if getattr(cls, "TAG", None) else []
    for sub_cls in cls.__subclasses__():
        tags.extend(_tags(sub_cls))
    return tags


maybe_async = SimpleNamespace(**{tag: _passthrough(tag) for tag in _tags(Directive)})
"""`maybe_async.both`, `maybe_async.test(...)`, etc. Each one is a no-op at runtime"""
