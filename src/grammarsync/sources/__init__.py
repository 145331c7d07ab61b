"""Package sources for grammar collections.

- packages.py: descriptor classification and the PackageSource variants
- transport.py: download / tarball extraction / SVN export primitives
"""

from grammarsync.sources.packages import (
    PackageKind,
    PackageSource,
    LocalFile,
    LocalDirectory,
    RemoteGrammar,
    TarballPackage,
    SVNPackage,
    GitHubPackage,
    classify_source,
    filter_candidates,
    resolve_package,
)
from grammarsync.sources.transport import Transport

__all__ = [
    "PackageKind",
    "PackageSource",
    "LocalFile",
    "LocalDirectory",
    "RemoteGrammar",
    "TarballPackage",
    "SVNPackage",
    "GitHubPackage",
    "classify_source",
    "filter_candidates",
    "resolve_package",
    "Transport",
]
