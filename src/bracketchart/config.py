"""Configuration for the editor surface and chart import.

Settings come from, in increasing priority: built-in defaults, an optional
JSON file, and ``BRACKETCHART_*`` environment variables::

    {
      "editor": {"char_width": 9.6, "drag_threshold": 5},
      "importer": {"endpoint": "https://example.com/api/import-chart"},
      "default_preference": "auto"
    }
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "BRACKETCHART_"


@dataclass
class EditorConfig:
    """Font metrics and gesture tuning for the placement editor."""

    char_width: float = 8.0  # px per monospace column
    line_origin_x: float = 0.0
    drag_threshold: float = 5.0  # px of pointer travel before a press becomes a drag
    nudge_step: int = 1
    large_nudge_step: int = 5


@dataclass
class ImportConfig:
    """Where scanned charts are sent for extraction."""

    endpoint: str | None = None
    timeout: float = 60.0


@dataclass
class Config:
    editor: EditorConfig = field(default_factory=EditorConfig)
    importer: ImportConfig = field(default_factory=ImportConfig)
    default_preference: str = "auto"  # "sharp", "flat", "auto" or a key name

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        config = cls()
        if "editor" in data:
            config.editor = EditorConfig(**data["editor"])
        if "importer" in data:
            config.importer = ImportConfig(**data["importer"])
        config.default_preference = data.get("default_preference", config.default_preference)
        return config

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path | None = None, environ: dict | None = None) -> "Config":
        """Load defaults, then *path* if it exists, then environment overrides.

        A malformed file is logged and ignored rather than aborting the run.
        """
        config = cls()
        if path is not None and path.exists():
            try:
                config = cls.from_dict(json.loads(path.read_text(encoding="utf-8")))
            except (json.JSONDecodeError, TypeError, AttributeError) as exc:
                logger.warning("Could not load config file %s: %s", path, exc)
        config.apply_environ(os.environ if environ is None else environ)
        return config

    def apply_environ(self, environ) -> None:
        if f"{ENV_PREFIX}ENDPOINT" in environ:
            self.importer.endpoint = environ[f"{ENV_PREFIX}ENDPOINT"] or None
        self.importer.timeout = _env_float(environ, "TIMEOUT", self.importer.timeout)
        self.editor.char_width = _env_float(environ, "CHAR_WIDTH", self.editor.char_width)
        if f"{ENV_PREFIX}PREFERENCE" in environ:
            self.default_preference = environ[f"{ENV_PREFIX}PREFERENCE"]


def _env_float(environ, name: str, current: float) -> float:
    """Read a positive number from the environment, keeping *current* if unset or bad."""
    raw = environ.get(f"{ENV_PREFIX}{name}")
    if raw is None:
        return current
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s%s=%r: not a number", ENV_PREFIX, name, raw)
        return current
    if not value > 0:
        logger.warning("Ignoring %s%s=%r: must be positive", ENV_PREFIX, name, raw)
        return current
    return value
