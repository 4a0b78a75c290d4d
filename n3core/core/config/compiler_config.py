from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

_LOG_LEVELS = ("trace", "debug", "info", "success", "warning", "error", "critical")


@dataclass
class CompilerOptions:
    """
    CompilerOptions holds the settings that change how a model is compiled and reported.

    Args:
        trust_declared_shapes (bool): Downgrade declared/inferred shape mismatches to warning W003 and
            continue with the declared shape. Default is False: declared shapes are verified.
        warn_unused_imports (bool): Emit W001 for `use` statements no node needs. Default is True.
        log_level (str): loguru level name for the compiler's console sink. Default is "warning".
        log_file (Optional[Path]): Also write logs to this file. Default is None.
        json_logging (bool): Emit flat JSON log lines instead of formatted text. Default is False.
    """
    trust_declared_shapes: bool = False
    warn_unused_imports: bool = True
    log_level: str = "warning"
    log_file: Optional[Path] = None
    json_logging: bool = False

    def __post_init__(self):
        self.log_level = str(self.log_level).lower()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got '{self.log_level}'")
        if self.log_file is not None:
            self.log_file = Path(self.log_file)
        for name in ("trust_declared_shapes", "warn_unused_imports", "json_logging"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, _parse_bool(name, value))
            elif not isinstance(value, bool):
                raise ValueError(f"{name} must be a boolean, got {value!r}")

    @classmethod
    def from_dict(cls, cfg: Optional[Mapping[str, Any]]) -> "CompilerOptions":
        cfg = dict(cfg or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(cfg) - known)
        if unknown:
            raise ValueError(f"Unknown compiler option(s): {', '.join(unknown)}")
        return cls(**cfg)

    def to_dict(self) -> dict[str, Any]:
        return {
            f.name: str(getattr(self, f.name)) if isinstance(getattr(self, f.name), Path) else getattr(self, f.name)
            for f in fields(self)
        }


def _parse_bool(name: str, value: str) -> bool:
    # `${ENV}` expansion always yields strings
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got '{value}'")
