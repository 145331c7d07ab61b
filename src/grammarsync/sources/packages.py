"""Package sources: where grammar collections come from.

A source descriptor is a plain string. Its shape picks exactly one
PackageKind (see classify_source):

    path ending in a grammar suffix        LOCAL_FILE
    any other path                         LOCAL_DIRECTORY
    http(s) URL ending in a grammar suffix REMOTE_GRAMMAR
    https://github.com/user/repo[@ref]     GITHUB
    http://svn.textmate.org/...            SVN
    http(s) URL ending in .tar.gz          TARBALL

Every PackageSource exposes ``url`` (the origin identifier used as the
manifest key) and ``fetch(workdir)`` returning candidate grammar files
that exist on disk.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse

from grammarsync.errors import FetchError, UnsupportedSourceError
from grammarsync.sources.transport import Transport

logger = logging.getLogger(__name__)

GITHUB_PREFIX = "https://github.com"
SVN_PREFIX = "http://svn.textmate.org"
ARCHIVE_SUFFIX = ".tar.gz"
DEFAULT_REF = "master"

# Suffixes naming a single grammar file (compared lower-cased)
SINGLE_FILE_SUFFIXES = (".tmlanguage", ".plist", ".yaml-tmlanguage", ".cson", ".json")

# Grammar files an SVN Syntaxes/ export may contain
SVN_GRAMMAR_SUFFIXES = (".plist", ".tmlanguage", ".yaml-tmlanguage")


class PackageKind(Enum):
    """Retrieval mechanisms, one per PackageSource variant."""

    LOCAL_FILE = "local_file"
    LOCAL_DIRECTORY = "local_directory"
    REMOTE_GRAMMAR = "remote_grammar"
    TARBALL = "tarball"
    SVN = "svn"
    GITHUB = "github"


def is_remote(descriptor: str) -> bool:
    return descriptor.startswith(("http:", "https:"))


def has_grammar_suffix(descriptor: str) -> bool:
    return descriptor.lower().endswith(SINGLE_FILE_SUFFIXES)


def classify_source(descriptor: str) -> PackageKind:
    """Pick the package kind for a descriptor from its prefix and suffix.

    Pure function of the string; never touches the filesystem.

    Raises:
        UnsupportedSourceError: Remote descriptor matching no rule
    """
    if not is_remote(descriptor):
        if has_grammar_suffix(descriptor):
            return PackageKind.LOCAL_FILE
        return PackageKind.LOCAL_DIRECTORY

    if has_grammar_suffix(descriptor):
        return PackageKind.REMOTE_GRAMMAR
    if descriptor.startswith(GITHUB_PREFIX):
        return PackageKind.GITHUB
    if descriptor.startswith(SVN_PREFIX):
        return PackageKind.SVN
    if descriptor.endswith(ARCHIVE_SUFFIX):
        return PackageKind.TARBALL
    raise UnsupportedSourceError(descriptor)


def is_candidate(path: Path) -> bool:
    """Location rule for grammar files inside a package tree.

    - .plist files must sit directly under a ``Syntaxes`` directory
    - .tmLanguage / .YAML-tmLanguage files are accepted anywhere
    - .cson / .json files must sit directly under a ``grammars`` directory
    """
    ext = path.suffix.lower()
    parent = path.parent.name
    if ext == ".plist":
        return parent == "Syntaxes"
    if ext in (".tmlanguage", ".yaml-tmlanguage"):
        return True
    if ext in (".cson", ".json"):
        return parent == "grammars"
    return False


def filter_candidates(root: Path) -> list[Path]:
    """Walk root and return candidate grammar files in sorted order."""
    return [p for p in sorted(root.rglob("*")) if p.is_file() and is_candidate(p)]


class PackageSource(ABC):
    """One origin of grammar files."""

    kind: PackageKind

    @property
    @abstractmethod
    def url(self) -> str:
        """Origin identifier (manifest key and diagnostics label)."""

    @abstractmethod
    def fetch(self, workdir: Path) -> list[Path]:
        """Retrieve the package and return candidate grammar files.

        Args:
            workdir: Private scratch directory for this unit of work
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"


class LocalFile(PackageSource):
    """A grammar file already on disk."""

    kind = PackageKind.LOCAL_FILE

    def __init__(self, descriptor: str, base_dir: Path | None = None):
        self.descriptor = descriptor
        self.path = (base_dir or Path.cwd()) / descriptor

    @property
    def url(self) -> str:
        return self.descriptor

    def fetch(self, workdir: Path) -> list[Path]:
        if not self.path.is_file():
            raise FetchError(self.url, f"Grammar file not found: {self.path}")
        return [self.path]


class LocalDirectory(PackageSource):
    """A directory tree filtered by the candidate location rule."""

    kind = PackageKind.LOCAL_DIRECTORY

    def __init__(self, descriptor: str, base_dir: Path | None = None):
        self.descriptor = descriptor
        self.path = (base_dir or Path.cwd()) / descriptor

    @property
    def url(self) -> str:
        return self.descriptor

    def fetch(self, workdir: Path) -> list[Path]:
        if not self.path.is_dir():
            raise FetchError(self.url, f"Directory not found: {self.path}")
        return filter_candidates(self.path)


class RemoteGrammar(PackageSource):
    """A direct URL to one grammar file."""

    kind = PackageKind.REMOTE_GRAMMAR

    def __init__(self, url: str, transport: Transport):
        self._url = url
        self.transport = transport

    @property
    def url(self) -> str:
        return self._url

    def fetch(self, workdir: Path) -> list[Path]:
        filename = Path(urlparse(self._url).path).name
        target = workdir / filename
        self.transport.download(self._url, target, self.transport.grammar_timeout)
        return [target]


class TarballPackage(PackageSource):
    """A compressed archive, filtered like a local directory once extracted."""

    kind = PackageKind.TARBALL

    def __init__(self, url: str, transport: Transport):
        self._url = url
        self.transport = transport

    @property
    def url(self) -> str:
        return self._url

    def fetch(self, workdir: Path) -> list[Path]:
        return self.fetch_archive(self._url, workdir, origin=self.url)

    def fetch_archive(self, archive_url: str, workdir: Path, origin: str) -> list[Path]:
        archive = workdir / "archive"
        self.transport.download(archive_url, archive, self.transport.archive_timeout)
        extracted = workdir / "extracted"
        self.transport.extract_tarball(archive, extracted, origin=origin)
        return filter_candidates(extracted)


class SVNPackage(PackageSource):
    """A Subversion repository whose Syntaxes/ directory holds grammars."""

    kind = PackageKind.SVN

    def __init__(self, url: str, transport: Transport):
        self._url = url
        self.transport = transport

    @property
    def url(self) -> str:
        return self._url

    def fetch(self, workdir: Path) -> list[Path]:
        target = workdir / "Syntaxes"
        self.transport.svn_export(f"{self._url.rstrip('/')}/Syntaxes", target)
        return sorted(
            p
            for p in target.iterdir()
            if p.is_file() and p.suffix.lower() in SVN_GRAMMAR_SUFFIXES
        )


class GitHubPackage(PackageSource):
    """A GitHub repository fetched as the tarball of one ref.

    Descriptor form: ``https://github.com/<user>/<repo>[@<ref>]`` with ref
    defaulting to master.
    """

    kind = PackageKind.GITHUB

    def __init__(self, user: str, repo: str, ref: str, transport: Transport):
        self.user = user
        self.repo = repo
        self.ref = ref
        self.transport = transport

    @staticmethod
    def parse_url(descriptor: str) -> tuple[str, str, str]:
        """Split a descriptor into (user, repo, ref).

        Raises:
            UnsupportedSourceError: No user/repo path segments
        """
        url, _, ref = descriptor.partition("@")
        parts = [p for p in urlparse(url).path.split("/") if p]
        if len(parts) < 2:
            raise UnsupportedSourceError(descriptor, "expected github.com/<user>/<repo>")
        user, repo = parts[0], parts[1]
        if repo.endswith(".git"):
            repo = repo[: -len(".git")]
        return user, repo, ref or DEFAULT_REF

    @classmethod
    def from_url(cls, descriptor: str, transport: Transport) -> "GitHubPackage":
        user, repo, ref = cls.parse_url(descriptor)
        return cls(user, repo, ref, transport)

    @property
    def url(self) -> str:
        suffix = "" if self.ref == DEFAULT_REF else f"@{self.ref}"
        return f"{GITHUB_PREFIX}/{self.user}/{self.repo}{suffix}"

    @property
    def archive_url(self) -> str:
        return f"{GITHUB_PREFIX}/{self.user}/{self.repo}/archive/{self.ref}{ARCHIVE_SUFFIX}"

    def fetch(self, workdir: Path) -> list[Path]:
        tarball = TarballPackage(self.archive_url, self.transport)
        return tarball.fetch_archive(self.archive_url, workdir, origin=self.url)


def resolve_package(
    descriptor: str,
    transport: Transport | None = None,
    base_dir: Path | None = None,
) -> PackageSource:
    """Build the PackageSource handling a descriptor.

    Args:
        descriptor: Source descriptor from the manifest or command line
        transport: Retrieval primitives for remote kinds
        base_dir: Directory relative local descriptors resolve against

    Raises:
        UnsupportedSourceError: Descriptor matches no package kind
    """
    kind = classify_source(descriptor)
    logger.debug("Resolved %s as %s", descriptor, kind.value)
    transport = transport or Transport()

    if kind is PackageKind.LOCAL_FILE:
        return LocalFile(descriptor, base_dir)
    if kind is PackageKind.LOCAL_DIRECTORY:
        return LocalDirectory(descriptor, base_dir)
    if kind is PackageKind.REMOTE_GRAMMAR:
        return RemoteGrammar(descriptor, transport)
    if kind is PackageKind.GITHUB:
        return GitHubPackage.from_url(descriptor, transport)
    if kind is PackageKind.SVN:
        return SVNPackage(descriptor, transport)
    return TarballPackage(descriptor, transport)
