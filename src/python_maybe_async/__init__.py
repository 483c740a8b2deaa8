from ._version import version as __version__

__all__ = [
    "__version__",
    "maybe_async",
    "Config",
    "Mode",
    "MaybeAsyncTransformer",
    "transform_source",
    "load_module",
    "MaybeAsyncError",
]

from .config import Config
from .errors import MaybeAsyncError
from .main import MaybeAsyncTransformer, transform_source
from .markers import maybe_async
from .parse.declarations import Mode
from .runner import load_module
