"""Manifest of grammar origins.

The manifest (grammars.yml) maps each origin identifier to the sorted list
of scopes it produced:

    https://github.com/textmate/ruby.tmbundle:
    - source.ruby
    vendor/grammars/sublime-foo:
    - source.foo

It is read at startup, rebuilt from the scope registry and replaced as a
whole at the end of a run.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Mapping

import yaml

from grammarsync.errors import ManifestError

Manifest = dict[str, list[str]]


def load_manifest(path: Path) -> Manifest:
    """Load the manifest, returning {} if the file does not exist.

    Raises:
        ManifestError: Content is not a mapping of strings to string lists
    """
    if not path.exists():
        return {}

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid manifest {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest must be a YAML mapping: {path}")

    manifest: Manifest = {}
    for origin, scopes in data.items():
        if not isinstance(origin, str):
            raise ManifestError(f"Manifest keys must be strings, got {origin!r}")
        if scopes is None:
            scopes = []
        if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
            raise ManifestError(f"[{origin}] scopes must be a list of strings")
        manifest[origin] = list(scopes)
    return manifest


def build_manifest(
    registry: Mapping[str, str],
    base: Mapping[str, list[str]] | None = None,
) -> Manifest:
    """Invert a scope -> origin registry into a sorted origin -> scopes manifest.

    Scopes are appended to any list ``base`` already holds for the origin;
    origins only present in ``base`` are kept as they are. Neither argument
    is modified.
    """
    merged: dict[str, list[str]] = {origin: list(scopes) for origin, scopes in (base or {}).items()}
    for scope, origin in registry.items():
        merged.setdefault(origin, []).append(scope)

    return {origin: sorted(set(merged[origin])) for origin in sorted(merged)}


def dump_manifest(manifest: Mapping[str, list[str]]) -> str:
    """Serialize a manifest to block-style YAML, preserving key order."""
    return yaml.safe_dump(
        dict(manifest),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def save_manifest(manifest: Mapping[str, list[str]], path: Path) -> None:
    """Replace the manifest file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(dump_manifest(manifest))
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise
