"""
Configuration for the transformer.

Values are read from the `[tool.python-maybe-async]` table of a project's pyproject.toml. Anything that is not
configured falls back to the defaults declared on `Config`.
"""
import tomllib
from dataclasses import dataclass
from dataclasses import fields
from dataclasses import replace
from pathlib import Path
from typing import Any
from typing import Dict
from typing import Mapping
from typing import Optional

from python_maybe_async.parse.ast_util import is_reference_path
from python_maybe_async.parse.declarations import Mode

__all__ = ["Config", "load_config", "merge_configs"]

TOOL_TABLE = "python-maybe-async"


@dataclass(frozen=True)
class Config:
    """Settings shared by every directive in a module"""

    namespace: str = "maybe_async"
    """Decorators spelled `@<namespace>.<tag>` are directives"""

    blocking_flag: str = "is_sync"
    """Name of the blocking-mode flag, used when a directive does not name its own flag"""

    sync_suffix: str = "Sync"
    """Appended to the name of a class for its blocking variant"""

    async_suffix: str = "Async"
    """Appended to the name of a class for its non-blocking variant"""

    default_harness: Optional[str] = "pytest.mark.asyncio"
    """Marker attached to non-blocking tests that do not select their own harness. None disables the default"""

    def __post_init__(self) -> None:
        if not is_reference_path(self.namespace):
            raise ValueError(f"Configured namespace '{self.namespace}' is not a dotted name")
        for name in ("blocking_flag", "sync_suffix", "async_suffix"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.isidentifier():
                raise ValueError(f"Configured {name} '{value}' must be a valid identifier")
        if self.sync_suffix == self.async_suffix:
            raise ValueError("sync_suffix and async_suffix must differ")
        if self.default_harness is not None and not is_reference_path(self.default_harness):
            raise ValueError(f"Configured default_harness '{self.default_harness}' is not a dotted name")

    def build_flags(self, mode: Mode) -> Dict[str, bool]:
        """The flag assignment for a build of the given mode"""
        if mode is Mode.BOTH:
            raise ValueError("A build is either blocking or non-blocking")
        return {self.blocking_flag: mode is Mode.BLOCKING}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        # pyproject tables are usually written in kebab-case
        values = {k.replace("-", "_"): v for k, v in data.items()}
        unknown = set(values) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        if values.get("default_harness") == "":
            values["default_harness"] = None
        return cls(**values)


def load_config(rootdir: Path) -> Config:
    """
    Load configuration from the pyproject.toml found in `rootdir`. A missing file or a missing table yields the
    default configuration.
    """
    pyproject_path = rootdir / "pyproject.toml" if rootdir.is_dir() else rootdir

    if not pyproject_path.exists():
        return Config()

    with pyproject_path.open("rb") as f:
        data = tomllib.load(f)

    return Config.from_mapping(data.get("tool", {}).get(TOOL_TABLE, {}))


def merge_configs(
    file_config: Config,
    namespace: Optional[str] = None,
    blocking_flag: Optional[str] = None,
    default_harness: Optional[str] = None,
) -> Config:
    """Command line values take precedence over file values. Empty strings count as not provided"""
    overrides = {
        name: value
        for name, value in (
            ("namespace", namespace),
            ("blocking_flag", blocking_flag),
            ("default_harness", default_harness),
        )
        if value
    }
    return replace(file_config, **overrides)
