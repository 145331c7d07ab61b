"""Configuration settings for grammar-sync."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

# Fixed pool size for refresh mode
DEFAULT_WORKERS = 8

# Transport timeouts (seconds)
ARCHIVE_TIMEOUT = 30.0
GRAMMAR_TIMEOUT = 10.0


@dataclass
class Settings:
    """Runtime settings.

    Environment overrides (see from_env):
        GRAMMARSYNC_ROOT: project root holding the manifest and grammars/
        GRAMMARSYNC_MANIFEST: manifest file name relative to root
        GRAMMARSYNC_WORKERS: worker pool size for refresh mode
        GRAMMARSYNC_CSONC: CSON converter command
        GRAMMARSYNC_PREPARE: environment preparation command ("" disables)
    """

    root: Path = field(default_factory=Path.cwd)
    manifest_name: str = "grammars.yml"
    grammars_dirname: str = "grammars"
    workers: int = DEFAULT_WORKERS
    archive_timeout: float = ARCHIVE_TIMEOUT
    grammar_timeout: float = GRAMMAR_TIMEOUT

    # None means <root>/node_modules/.bin/csonc
    cson_command: list[str] | None = None
    prepare_command: list[str] = field(
        default_factory=lambda: ["npm", "install", "--silent"]
    )

    @property
    def manifest_path(self) -> Path:
        """Path to the origin -> scopes manifest."""
        return self.root / self.manifest_name

    @property
    def grammars_path(self) -> Path:
        """Directory receiving one <scope>.json per installed grammar."""
        return self.root / self.grammars_dirname

    @property
    def converter_command(self) -> list[str]:
        """Command that prints a CSON file as JSON (path appended)."""
        if self.cson_command:
            return list(self.cson_command)
        return [str(self.root / "node_modules" / ".bin" / "csonc")]

    @classmethod
    def from_env(cls, root: Path | str | None = None) -> "Settings":
        """Build settings from defaults plus GRAMMARSYNC_* variables."""
        settings = cls()

        env_root = root or os.environ.get("GRAMMARSYNC_ROOT")
        if env_root:
            settings.root = Path(env_root)

        manifest_name = os.environ.get("GRAMMARSYNC_MANIFEST")
        if manifest_name:
            settings.manifest_name = manifest_name

        workers = os.environ.get("GRAMMARSYNC_WORKERS")
        if workers:
            try:
                settings.workers = max(1, int(workers))
            except ValueError:
                raise ValueError(
                    f"GRAMMARSYNC_WORKERS must be an integer, got {workers!r}"
                ) from None

        csonc = os.environ.get("GRAMMARSYNC_CSONC")
        if csonc:
            settings.cson_command = shlex.split(csonc)

        prepare = os.environ.get("GRAMMARSYNC_PREPARE")
        if prepare is not None:
            settings.prepare_command = shlex.split(prepare)

        return settings
