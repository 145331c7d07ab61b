"""Tests for the grammar installer and scope registry."""

from __future__ import annotations

import datetime
import json
import logging
import threading

import pytest

from conftest import FakeTransport, write_json_grammar, write_plist_grammar
from grammarsync.errors import (
    FetchError,
    GrammarDecodeError,
    InvalidDocumentTypeError,
    UnsupportedSourceError,
)
from grammarsync.installer import GrammarInstaller, ScopeRegistry


@pytest.fixture
def registry():
    return ScopeRegistry()


@pytest.fixture
def installer(tmp_path, registry):
    return GrammarInstaller(
        grammars_dir=tmp_path / "grammars",
        registry=registry,
        transport=FakeTransport(),
        base_dir=tmp_path,
    )


class TestScopeRegistry:
    """First registrant wins; later claims report the holder."""

    def test_register_once(self, registry):
        assert registry.register("source.foo", "a") is None
        assert registry.register("source.foo", "b") == "a"
        assert registry.snapshot() == {"source.foo": "a"}
        assert "source.foo" in registry
        assert len(registry) == 1

    def test_release_only_by_holder(self, registry):
        registry.register("source.foo", "a")
        assert registry.release("source.foo", "b") is False
        assert registry.snapshot() == {"source.foo": "a"}
        assert registry.release("source.foo", "a") is True
        assert "source.foo" not in registry
        assert registry.register("source.foo", "b") is None

    def test_concurrent_claims_single_winner(self, registry):
        barrier = threading.Barrier(16)
        outcomes = []
        lock = threading.Lock()

        def claim(origin):
            barrier.wait()
            existing = registry.register("source.contested", origin)
            with lock:
                outcomes.append(existing)

        threads = [threading.Thread(target=claim, args=(f"origin-{i}",)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count(None) == 1
        winner = registry.snapshot()["source.contested"]
        assert all(o == winner for o in outcomes if o is not None)


class TestInstall:
    """End-to-end installation of local sources."""

    def test_round_trip(self, tmp_path, installer):
        document = {
            "scopeName": "source.foo",
            "name": "Foo",
            "patterns": [{"include": "#main"}],
            "repository": {"main": {"match": "\\bfoo\\b", "name": "keyword.foo"}},
        }
        (tmp_path / "foo.json").write_text(json.dumps(document), encoding="utf-8")

        result = installer.install(tmp_path / "work", "foo.json")

        written = tmp_path / "grammars" / "source.foo.json"
        assert result.installed == ["source.foo"]
        assert result.origin == "foo.json"
        assert json.loads(written.read_text(encoding="utf-8")) == document
        assert list((tmp_path / "grammars").iterdir()) == [written]

    def test_output_is_pretty_printed(self, tmp_path, installer):
        write_plist_grammar(tmp_path / "bundle" / "Syntaxes" / "Foo.plist", "source.foo")
        installer.install(tmp_path / "work", "bundle")
        text = (tmp_path / "grammars" / "source.foo.json").read_text(encoding="utf-8")
        assert text.startswith('{\n  "scopeName": "source.foo"')

    def test_registers_origin(self, tmp_path, installer, registry):
        write_json_grammar(tmp_path / "bundle" / "grammars" / "a.json", "source.a")
        write_json_grammar(tmp_path / "bundle" / "grammars" / "b.json", "source.b")

        result = installer.install(tmp_path / "work", "bundle")

        assert result.installed == ["source.a", "source.b"]
        assert registry.snapshot() == {"source.a": "bundle", "source.b": "bundle"}

    def test_summary_logged(self, tmp_path, installer, caplog):
        write_json_grammar(tmp_path / "bundle" / "grammars" / "a.json", "source.a")
        with caplog.at_level(logging.INFO, logger="grammarsync.installer"):
            installer.install(tmp_path / "work", "bundle")
        assert "OK bundle (source.a)" in caplog.text

    def test_no_write_mode_registers_only(self, tmp_path, registry):
        write_json_grammar(tmp_path / "foo.json", "source.foo")
        installer = GrammarInstaller(tmp_path / "grammars", registry, base_dir=tmp_path, write=False)

        result = installer.install(tmp_path / "work", "foo.json")

        assert result.installed == ["source.foo"]
        assert "source.foo" in registry
        assert not (tmp_path / "grammars").exists()


class TestDuplicateScopes:
    """Duplicate scopes are skipped with a warning naming both origins."""

    def test_first_registrant_wins(self, tmp_path, installer, caplog):
        write_json_grammar(tmp_path / "one" / "grammars" / "foo.json", "source.foo", name="One")
        write_json_grammar(tmp_path / "two" / "grammars" / "foo.json", "source.foo", name="Two")

        installer.install(tmp_path / "w1", "one")
        with caplog.at_level(logging.WARNING, logger="grammarsync.installer"):
            result = installer.install(tmp_path / "w2", "two")

        assert result.installed == []
        assert len(result.duplicates) == 1
        assert result.duplicates[0].existing_origin == "one"

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        message = warnings[0].getMessage()
        assert "Duplicated scope source.foo" in message
        assert "Current package: two" in message
        assert "Previous package: one" in message

        written = json.loads((tmp_path / "grammars" / "source.foo.json").read_text())
        assert written["name"] == "One"

    def test_same_origin_repeat_is_silent(self, tmp_path, installer, caplog):
        write_json_grammar(tmp_path / "bundle" / "grammars" / "a.json", "source.a")
        write_plist_grammar(tmp_path / "bundle" / "Syntaxes" / "a.plist", "source.a")

        with caplog.at_level(logging.WARNING, logger="grammarsync.installer"):
            result = installer.install(tmp_path / "work", "bundle")

        assert result.installed == ["source.a"]
        assert result.duplicates == []
        assert not [r for r in caplog.records if r.levelno == logging.WARNING]


class TestInstallErrors:
    """Unit-level failures propagate to the caller."""

    def test_unsupported_source(self, tmp_path, installer):
        with pytest.raises(UnsupportedSourceError):
            installer.install(tmp_path, "https://example.com/not-a-package")

    def test_fetch_failure(self, tmp_path, installer):
        with pytest.raises(FetchError, match="https://github.com/u/r"):
            installer.install(tmp_path, "https://github.com/u/r")

    def test_invalid_document_type(self, tmp_path, installer):
        # Local file with a grammar suffix the loader has no decoder for
        (tmp_path / "foo.cson").write_text("scopeName: 'source.foo'")
        with pytest.raises(InvalidDocumentTypeError):
            installer.install(tmp_path / "work", "foo.cson")

    def test_decode_failure(self, tmp_path, installer):
        (tmp_path / "bad.json").write_text("{", encoding="utf-8")
        with pytest.raises(GrammarDecodeError):
            installer.install(tmp_path / "work", "bad.json")


class FailingWriteInstaller(GrammarInstaller):
    """Installer whose disk fills up after the first grammar file."""

    def _write_grammar(self, scope, text):
        if any(self.grammars_dir.glob("*.json")):
            raise OSError(28, "No space left on device")
        super()._write_grammar(scope, text)


class TestFailedSourceLeavesNothing:
    """A source that fails part way holds no scopes and no files."""

    def test_decode_failure_after_valid_candidate(self, tmp_path, installer, registry):
        write_json_grammar(tmp_path / "pkg" / "grammars" / "a.json", "source.a")
        (tmp_path / "pkg" / "grammars" / "b.json").write_text("{", encoding="utf-8")

        with pytest.raises(GrammarDecodeError, match="b.json"):
            installer.install(tmp_path / "work", "pkg")

        assert len(registry) == 0
        assert not (tmp_path / "grammars" / "source.a.json").exists()

    def test_write_failure_releases_claims(self, tmp_path, registry):
        write_json_grammar(tmp_path / "pkg" / "grammars" / "a.json", "source.a")
        write_json_grammar(tmp_path / "pkg" / "grammars" / "b.json", "source.b")
        installer = FailingWriteInstaller(
            tmp_path / "grammars", registry, base_dir=tmp_path
        )

        with pytest.raises(OSError, match="No space left"):
            installer.install(tmp_path / "work", "pkg")

        assert len(registry) == 0
        assert list((tmp_path / "grammars").iterdir()) == []

    def test_rollback_keeps_other_origins(self, tmp_path, registry):
        registry.register("source.b", "other")
        write_json_grammar(tmp_path / "pkg" / "grammars" / "a.json", "source.a")
        write_json_grammar(tmp_path / "pkg" / "grammars" / "b.json", "source.b")
        (tmp_path / "pkg" / "grammars" / "c.json").write_text("{", encoding="utf-8")
        installer = GrammarInstaller(tmp_path / "grammars", registry, base_dir=tmp_path)

        with pytest.raises(GrammarDecodeError):
            installer.install(tmp_path / "work", "pkg")

        assert registry.snapshot() == {"source.b": "other"}

    def test_unserializable_keys_write_no_file(self, tmp_path, installer, registry):
        # YAML turns the unquoted date key into a datetime.date
        (tmp_path / "dated.YAML-tmLanguage").write_text(
            "scopeName: source.dated\nrepository:\n  2024-01-01: first release\n",
            encoding="utf-8",
        )

        with pytest.raises(GrammarDecodeError, match="Cannot serialize grammar"):
            installer.install(tmp_path / "work", "dated.YAML-tmLanguage")

        assert "source.dated" not in registry
        assert not (tmp_path / "grammars" / "source.dated.json").exists()

    def test_plist_dates_written_as_text(self, tmp_path, installer):
        write_plist_grammar(
            tmp_path / "dated.plist", "source.dated", updated=datetime.datetime(2024, 1, 2, 3, 4, 5)
        )

        installer.install(tmp_path / "work", "dated.plist")

        document = json.loads((tmp_path / "grammars" / "source.dated.json").read_text())
        assert document["updated"] == "2024-01-02 03:04:05"
