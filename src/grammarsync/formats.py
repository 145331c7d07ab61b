"""Grammar file decoding.

Each supported extension maps to a Decoder that turns a file into a plain
document (nested dicts, lists and scalars):

    .plist, .tmlanguage     property-list XML (plistlib)
    .yaml-tmlanguage        YAML (PyYAML)
    .json                   JSON
    .cson                   external converter printing JSON on stdout

Extension matching is case-insensitive. Anything else is rejected with
InvalidDocumentTypeError.
"""

from __future__ import annotations

import json
import plistlib
import subprocess
from pathlib import Path
from typing import Any, Protocol
from xml.parsers.expat import ExpatError

import yaml

from grammarsync.errors import GrammarDecodeError, InvalidDocumentTypeError

PLIST_EXTENSIONS = (".plist", ".tmlanguage")
YAML_EXTENSIONS = (".yaml-tmlanguage",)
JSON_EXTENSIONS = (".json",)
CSON_EXTENSIONS = (".cson",)


class Decoder(Protocol):
    """Turns one grammar file into a document."""

    def decode(self, path: Path) -> Any: ...


def grammar_extension(path: Path | str) -> str:
    """Return the lower-cased extension of a grammar path.

    Path.suffix already handles the compound-looking YAML-tmLanguage
    suffix since it contains no extra dot.
    """
    return Path(path).suffix.lower()


class PlistDecoder:
    def decode(self, path: Path) -> Any:
        try:
            with open(path, "rb") as f:
                return plistlib.load(f)
        except (
            plistlib.InvalidFileException,
            ExpatError,
            ValueError,
            # malformed <date> and similar element content
            AttributeError,
            TypeError,
            RecursionError,
        ) as e:
            raise GrammarDecodeError(path, f"Malformed property list: {e}") from e


class JSONDecoder:
    def decode(self, path: Path) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as e:
            raise GrammarDecodeError(path, f"Malformed JSON: {e}") from e


class YAMLDecoder:
    def decode(self, path: Path) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f)
        except (yaml.YAMLError, UnicodeDecodeError, RecursionError) as e:
            raise GrammarDecodeError(path, f"Malformed YAML: {e}") from e


class CSONDecoder:
    """Runs an external CSON-to-JSON converter.

    The converter is invoked as ``command + [path]`` and must print JSON on
    stdout; a nonzero exit status is a decode failure.
    """

    def __init__(self, command: list[str]):
        self.command = list(command)

    def decode(self, path: Path) -> Any:
        cmd = [*self.command, str(path)]
        try:
            result = subprocess.run(cmd, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
            raise GrammarDecodeError(
                path, f"Failed to convert CSON grammar: {detail}"
            ) from e
        except OSError as e:
            raise GrammarDecodeError(
                path, f"CSON converter not runnable ({cmd[0]}): {e}"
            ) from e

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise GrammarDecodeError(path, f"Converter emitted invalid JSON: {e}") from e


class FormatLoader:
    """Dispatches grammar files to decoders by extension.

    Usage:
        loader = FormatLoader(cson_command=["csonc"])
        document = loader.load(Path("grammars/ruby.cson"))

    Args:
        cson_command: Converter command for .cson files
        decoders: Extra or replacement decoders keyed by lower-cased
            extension (including the leading dot)
    """

    def __init__(
        self,
        cson_command: list[str] | None = None,
        decoders: dict[str, Decoder] | None = None,
    ):
        self.decoders: dict[str, Decoder] = {}
        plist = PlistDecoder()
        for ext in PLIST_EXTENSIONS:
            self.decoders[ext] = plist
        for ext in YAML_EXTENSIONS:
            self.decoders[ext] = YAMLDecoder()
        for ext in JSON_EXTENSIONS:
            self.decoders[ext] = JSONDecoder()
        if cson_command:
            for ext in CSON_EXTENSIONS:
                self.decoders[ext] = CSONDecoder(cson_command)
        if decoders:
            self.decoders.update(decoders)

    def supports(self, path: Path | str) -> bool:
        return grammar_extension(path) in self.decoders

    def load(self, path: Path | str) -> dict:
        """Decode a grammar file into a mapping.

        Raises:
            InvalidDocumentTypeError: No decoder for the extension
            GrammarDecodeError: Decoder failed or produced a non-mapping
        """
        path = Path(path)
        decoder = self.decoders.get(grammar_extension(path))
        if decoder is None:
            raise InvalidDocumentTypeError(path)

        document = decoder.decode(path)
        if not isinstance(document, dict):
            raise GrammarDecodeError(
                path, f"Expected a mapping, got {type(document).__name__}"
            )
        return document


def scope_name(document: dict, path: Path | str | None = None) -> str:
    """Extract the declared scope of a grammar document.

    Prefers ``scopeName`` and falls back to ``scope``. The scope doubles as
    the output file name, so it may not contain path separators.
    """
    scope = document.get("scopeName") or document.get("scope")
    if not isinstance(scope, str) or not scope:
        raise GrammarDecodeError(path or "<document>", "Grammar declares no scopeName")
    if "/" in scope or "\\" in scope or scope.startswith("."):
        raise GrammarDecodeError(path or "<document>", f"Unsafe scopeName {scope!r}")
    return scope
