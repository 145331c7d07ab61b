"""grammar-sync: fetch syntax-highlighting grammars and normalize them to JSON.

Public API:
    synchronize(settings, add=None) -> SyncReport
    GrammarInstaller, ScopeRegistry: per-source installation
    dispatch(descriptors, installer) -> DispatchReport
    build_manifest(registry, base) -> origin -> scopes mapping
    resolve_package(descriptor) -> PackageSource
"""

from grammarsync.config import Settings
from grammarsync.dispatcher import DispatchReport, UnitFailure, dispatch
from grammarsync.errors import (
    FetchError,
    GrammarDecodeError,
    GrammarSyncError,
    InvalidDocumentTypeError,
    ManifestError,
    PrepareError,
    UnsupportedSourceError,
)
from grammarsync.formats import FormatLoader, scope_name
from grammarsync.installer import (
    DuplicateScope,
    GrammarInstaller,
    InstallResult,
    ScopeRegistry,
)
from grammarsync.manifest import build_manifest, load_manifest, save_manifest
from grammarsync.sources import PackageKind, PackageSource, classify_source, resolve_package
from grammarsync.sync import SyncReport, synchronize

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "DispatchReport",
    "UnitFailure",
    "dispatch",
    "FetchError",
    "GrammarDecodeError",
    "GrammarSyncError",
    "InvalidDocumentTypeError",
    "ManifestError",
    "PrepareError",
    "UnsupportedSourceError",
    "FormatLoader",
    "scope_name",
    "DuplicateScope",
    "GrammarInstaller",
    "InstallResult",
    "ScopeRegistry",
    "build_manifest",
    "load_manifest",
    "save_manifest",
    "PackageKind",
    "PackageSource",
    "classify_source",
    "resolve_package",
    "SyncReport",
    "synchronize",
]
