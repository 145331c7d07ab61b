"""Synchronization driver.

Two modes:
- Add: install one descriptor, then merge its scopes into the existing
  manifest.
- Refresh: re-install every origin listed in the manifest in parallel and
  rebuild the manifest from scratch. Origins that fail or produce nothing
  drop out of the new manifest.

Both modes run the environment preparation command first (it installs the
CSON converter) and write the rebuilt manifest at the end.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from grammarsync.config import Settings
from grammarsync.dispatcher import UnitFailure, dispatch
from grammarsync.errors import PrepareError
from grammarsync.formats import FormatLoader
from grammarsync.installer import GrammarInstaller, InstallResult, ScopeRegistry
from grammarsync.manifest import Manifest, build_manifest, load_manifest, save_manifest
from grammarsync.sources.transport import Transport

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of a synchronization run."""

    mode: Literal["add", "refresh"]
    manifest: Manifest
    manifest_path: Path | None
    results: list[InstallResult] = field(default_factory=list)
    failures: list[UnitFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def scope_count(self) -> int:
        return sum(len(r.installed) for r in self.results)


def prepare_environment(settings: Settings) -> None:
    """Create the output directory and run the preparation command.

    Raises:
        PrepareError: Preparation command missing or exited nonzero
    """
    settings.grammars_path.mkdir(parents=True, exist_ok=True)

    if not settings.prepare_command:
        return

    logger.debug("Preparing environment: %s", " ".join(settings.prepare_command))
    try:
        subprocess.run(
            settings.prepare_command,
            cwd=settings.root,
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
        raise PrepareError(
            f"Environment preparation failed ({' '.join(e.cmd)}): {detail}"
        ) from e
    except OSError as e:
        raise PrepareError(
            f"Environment preparation command not runnable "
            f"({settings.prepare_command[0]}): {e}"
        ) from e


def make_installer(
    settings: Settings,
    registry: ScopeRegistry,
    write: bool = True,
    transport: Transport | None = None,
    loader: FormatLoader | None = None,
) -> GrammarInstaller:
    """Build an installer wired to the settings' paths and timeouts."""
    return GrammarInstaller(
        grammars_dir=settings.grammars_path,
        registry=registry,
        loader=loader or FormatLoader(cson_command=settings.converter_command),
        transport=transport
        or Transport(
            archive_timeout=settings.archive_timeout,
            grammar_timeout=settings.grammar_timeout,
        ),
        base_dir=settings.root,
        write=write,
    )


def run_add(
    descriptor: str,
    base: Manifest,
    installer: GrammarInstaller,
) -> tuple[Manifest, InstallResult]:
    """Install a single descriptor and merge it into ``base``.

    Errors propagate; nothing is merged when the install fails.
    """
    with tempfile.TemporaryDirectory(prefix="grammarsync-") as tmp:
        result = installer.install(Path(tmp), descriptor)
    return build_manifest(installer.registry.snapshot(), base), result


def run_refresh(
    descriptors: list[str],
    installer: GrammarInstaller,
    workers: int,
) -> tuple[Manifest, list[InstallResult], list[UnitFailure]]:
    """Re-install every descriptor concurrently and rebuild from scratch."""
    report = dispatch(descriptors, installer, workers=workers)
    manifest = build_manifest(installer.registry.snapshot(), {})
    return manifest, report.results, report.failures


def synchronize(
    settings: Settings,
    add: str | None = None,
    install: bool = True,
    output: Path | None = None,
    transport: Transport | None = None,
    loader: FormatLoader | None = None,
) -> SyncReport:
    """Run one add or refresh pass and persist the new manifest.

    Args:
        settings: Runtime settings
        add: Descriptor to add; refresh mode when None
        install: Write grammar files (False only rebuilds the manifest)
        output: Manifest destination (settings.manifest_path if None)
        transport: Override retrieval primitives
        loader: Override format loader

    Raises:
        ManifestError: Existing manifest is malformed
        PrepareError: Environment preparation failed
        GrammarSyncError: Add-mode install failed
    """
    existing = load_manifest(settings.manifest_path)
    prepare_environment(settings)

    registry = ScopeRegistry()
    installer = make_installer(
        settings, registry, write=install, transport=transport, loader=loader
    )
    destination = output or settings.manifest_path

    if add is not None:
        manifest, result = run_add(add, existing, installer)
        report = SyncReport(
            mode="add",
            manifest=manifest,
            manifest_path=destination,
            results=[result],
        )
    else:
        manifest, results, failures = run_refresh(
            list(existing), installer, settings.workers
        )
        report = SyncReport(
            mode="refresh",
            manifest=manifest,
            manifest_path=destination,
            results=results,
            failures=failures,
        )

    save_manifest(report.manifest, destination)
    logger.debug("Wrote manifest %s (%d origins)", destination, len(report.manifest))
    return report
