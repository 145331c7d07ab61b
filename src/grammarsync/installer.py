"""Grammar installer.

Handles one source descriptor end to end:
- Resolve the descriptor to a PackageSource and fetch candidate files
- Decode each candidate and read its scope name
- Register the scope in the shared ScopeRegistry (first registrant wins)
- Write newly registered grammars to <grammars_dir>/<scope>.json

Duplicate scopes are not errors: the later attempt is skipped and a
warning names both origins.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from grammarsync.errors import GrammarDecodeError
from grammarsync.formats import FormatLoader, scope_name
from grammarsync.sources.packages import resolve_package
from grammarsync.sources.transport import Transport

logger = logging.getLogger(__name__)


class ScopeRegistry:
    """Thread-safe scope -> origin mapping.

    A scope is registered at most once; check-and-insert happens under a
    single lock so two workers can never both claim the same scope.
    """

    def __init__(self) -> None:
        self._scopes: dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, scope: str, origin: str) -> str | None:
        """Claim a scope for an origin.

        Returns:
            None if the claim succeeded, otherwise the origin that already
            holds the scope
        """
        with self._lock:
            existing = self._scopes.get(scope)
            if existing is not None:
                return existing
            self._scopes[scope] = origin
            return None

    def release(self, scope: str, origin: str) -> bool:
        """Drop a claim, but only if ``origin`` still holds it."""
        with self._lock:
            if self._scopes.get(scope) != origin:
                return False
            del self._scopes[scope]
            return True

    def snapshot(self) -> dict[str, str]:
        """Copy of the current scope -> origin mapping."""
        with self._lock:
            return dict(self._scopes)

    def __contains__(self, scope: object) -> bool:
        with self._lock:
            return scope in self._scopes

    def __len__(self) -> int:
        with self._lock:
            return len(self._scopes)


@dataclass
class DuplicateScope:
    """A scope skipped because another origin registered it first."""

    scope: str
    origin: str
    existing_origin: str


@dataclass
class InstallResult:
    """Outcome of installing one source."""

    descriptor: str
    origin: str
    installed: list[str] = field(default_factory=list)
    duplicates: list[DuplicateScope] = field(default_factory=list)

    def summary(self) -> str:
        return f"OK {self.origin} ({', '.join(self.installed)})"


class GrammarInstaller:
    """Installs grammars from source descriptors into a shared registry.

    Usage:
        registry = ScopeRegistry()
        installer = GrammarInstaller(Path("grammars"), registry)
        result = installer.install(workdir, "https://github.com/user/repo")

    Args:
        grammars_dir: Output directory for <scope>.json files
        registry: Shared scope registry
        loader: Format loader (JSON/plist/YAML only if not provided)
        transport: Retrieval primitives for remote packages
        base_dir: Directory relative local descriptors resolve against
        write: If False, register scopes but skip writing grammar files
    """

    def __init__(
        self,
        grammars_dir: Path,
        registry: ScopeRegistry,
        loader: FormatLoader | None = None,
        transport: Transport | None = None,
        base_dir: Path | None = None,
        write: bool = True,
    ):
        self.grammars_dir = Path(grammars_dir)
        self.registry = registry
        self.loader = loader or FormatLoader()
        self.transport = transport or Transport()
        self.base_dir = base_dir
        self.write = write

    def install(self, workdir: Path, descriptor: str) -> InstallResult:
        """Fetch, decode, register and write every grammar of one source.

        Every candidate is decoded before any scope is claimed. If writing
        fails part way, the scopes claimed so far are released and their
        files removed, so a failed source leaves nothing behind.

        Args:
            workdir: Scratch directory private to this source
            descriptor: Source descriptor

        Returns:
            InstallResult listing installed and skipped scopes

        Raises:
            UnsupportedSourceError: Descriptor matches no package kind
            FetchError: Retrieval failed
            InvalidDocumentTypeError, GrammarDecodeError: A candidate failed
                to decode or has no JSON form
            OSError: A grammar file could not be written
        """
        package = resolve_package(descriptor, self.transport, self.base_dir)
        result = InstallResult(descriptor=descriptor, origin=package.url)

        decoded = []
        for path in package.fetch(workdir):
            document = self.loader.load(path)
            scope = scope_name(document, path)
            text = render_grammar(document, path) if self.write else None
            decoded.append((scope, text))

        claimed: list[str] = []
        try:
            for scope, text in decoded:
                existing = self.registry.register(scope, package.url)
                if existing is not None:
                    if existing != package.url:
                        logger.warning(
                            "Duplicated scope %s\n  Current package: %s\n  Previous package: %s",
                            scope,
                            package.url,
                            existing,
                        )
                        result.duplicates.append(
                            DuplicateScope(scope, package.url, existing)
                        )
                    continue

                claimed.append(scope)
                if text is not None:
                    self._write_grammar(scope, text)
                result.installed.append(scope)
        except Exception:
            self._rollback(claimed, package.url)
            raise

        logger.info(result.summary())
        return result

    def grammar_path(self, scope: str) -> Path:
        return self.grammars_dir / f"{scope}.json"

    def _write_grammar(self, scope: str, text: str) -> None:
        path = self.grammar_path(scope)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    def _rollback(self, scopes: list[str], origin: str) -> None:
        for scope in scopes:
            self.registry.release(scope, origin)
            if self.write:
                self.grammar_path(scope).unlink(missing_ok=True)
        if scopes:
            logger.debug("Released %d scope(s) of %s", len(scopes), origin)


def render_grammar(document: dict, path: Path | None = None) -> str:
    """Serialize a decoded grammar as pretty-printed JSON text.

    Raises:
        GrammarDecodeError: The document has no JSON form (e.g. non-string
            mapping keys or nesting too deep)
    """
    try:
        # plist <data>/<date> values have no JSON form
        text = json.dumps(document, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError) as e:
        raise GrammarDecodeError(path or "<grammar>", f"Cannot serialize grammar: {e}") from e
    return text + "\n"
