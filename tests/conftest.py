"""Shared fixtures for grammar-sync tests.

No test touches the network: remote packages go through FakeTransport,
which serves local files and tarballs prepared by the test.
"""

from __future__ import annotations

import io
import json
import plistlib
import shutil
import tarfile
from pathlib import Path

import pytest

from grammarsync.config import Settings
from grammarsync.errors import FetchError
from grammarsync.sources.transport import Transport


def write_json_grammar(path: Path, scope: str, **extra) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"scopeName": scope, **extra}), encoding="utf-8")
    return path


def write_plist_grammar(path: Path, scope: str, **extra) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        plistlib.dump({"scopeName": scope, **extra}, f)
    return path


def make_tarball(archive: Path, files: dict[str, bytes]) -> Path:
    """Build a .tar.gz whose members are the given relative paths."""
    archive.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "w:gz") as tf:
        for name, payload in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            tf.addfile(info, io.BytesIO(payload))
    return archive


def grammar_bytes(scope: str, **extra) -> bytes:
    return json.dumps({"scopeName": scope, **extra}).encode("utf-8")


class FakeTransport(Transport):
    """Transport serving prepared local files instead of URLs.

    Downloads copy ``files[url]`` to the requested path; unknown URLs fail
    like an HTTP 404. SVN exports copy ``svn_trees[url]`` directories.
    Tarball extraction is the real implementation.
    """

    def __init__(self, files: dict[str, Path] | None = None, svn_trees: dict[str, Path] | None = None):
        super().__init__()
        self.files = files or {}
        self.svn_trees = svn_trees or {}
        self.downloads: list[tuple[str, float]] = []

    def download(self, url: str, out_path: Path, timeout: float) -> Path:
        self.downloads.append((url, timeout))
        if url not in self.files:
            raise FetchError(url, "HTTP 404")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.files[url], out_path)
        return out_path

    def svn_export(self, url: str, target_dir: Path) -> Path:
        if url not in self.svn_trees:
            raise FetchError(url, "Failed to export SVN repository: exit status 1")
        shutil.copytree(self.svn_trees[url], target_dir)
        return target_dir


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary project with preparation disabled."""
    root = tmp_path / "project"
    root.mkdir()
    return Settings(root=root, prepare_command=[], workers=8)
