"""
Tests for manifest loading and passphrase prompting.
"""

import pytest

from secretpurge.config import DEFAULT_ITERATIONS, DEFAULT_PATTERNS, load_passphrase_from_env
from secretpurge.errors import ManifestError, PassphraseError, PassphraseMismatchError
from secretpurge.manifest import Manifest
from secretpurge.prompts import InteractivePrompter, ScriptedPrompter, read_new_passphrase


class TestManifest:
    def test_defaults(self):
        manifest = Manifest()
        assert manifest.patterns == list(DEFAULT_PATTERNS)
        assert manifest.ignore_file == ".gitignore"
        assert manifest.remote == "origin"
        assert manifest.backup.iterations == DEFAULT_ITERATIONS
        assert manifest.purge.branches == []

    def test_load(self, tmp_path):
        path = tmp_path / "cfg.yml"
        path.write_text(
            "version: 1\n"
            "patterns: ['*.pem', 'secret*', '*.pem']\n"
            "remote: upstream\n"
            "backup:\n"
            "  directory: /srv/backups\n"
            "  iterations: 200000\n"
            "purge:\n"
            "  branches: [main, dev]\n"
            "  push_tags: false\n"
        )
        manifest = Manifest.load(path)
        assert manifest.patterns == ["*.pem", "secret*"]
        assert manifest.remote == "upstream"
        assert manifest.backup.directory == "/srv/backups"
        assert manifest.backup.iterations == 200000
        assert manifest.purge.branches == ["main", "dev"]
        assert manifest.purge.push_tags is False

    @pytest.mark.parametrize(
        "body",
        [
            "version: 2\n",
            "patterns: []\n",
            "patterns: '*.pem'\n",
            "patterns: ['']\n",
            "backup: {iterations: 0}\n",
            "backup: {iterations: many}\n",
            "purge: {branches: main}\n",
            "- just\n- a list\n",
            "patterns: [unclosed\n",
        ],
    )
    def test_invalid(self, tmp_path, body):
        path = tmp_path / "cfg.yml"
        path.write_text(body)
        with pytest.raises(ManifestError):
            Manifest.load(path)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ManifestError):
            Manifest.load(tmp_path / "absent.yml")

    def test_discover(self, tmp_path):
        assert Manifest.discover(tmp_path) == Manifest()
        (tmp_path / ".secretpurge.yml").write_text("patterns: ['*.key']\n")
        assert Manifest.discover(tmp_path).patterns == ["*.key"]

    def test_overrides(self):
        manifest = Manifest().with_overrides(
            patterns=["*.pem", "*.pem"], branches=["dev"], remote="backup"
        )
        assert manifest.patterns == ["*.pem"]
        assert manifest.purge.branches == ["dev"]
        assert manifest.remote == "backup"
        assert Manifest().patterns == list(DEFAULT_PATTERNS)

    def test_resolve_dir(self, tmp_path):
        assert Manifest().resolve_dir(tmp_path / "repo", "..") == tmp_path.resolve()
        assert Manifest().resolve_dir(tmp_path, "/abs") == (tmp_path / "/abs").resolve()


class TestPassphrase:
    def test_matching_entries(self):
        prompter = ScriptedPrompter(answers=["pw", "pw"])
        assert read_new_passphrase(prompter) == "pw"

    def test_mismatch(self):
        with pytest.raises(PassphraseMismatchError):
            read_new_passphrase(ScriptedPrompter(answers=["pw", "wp"]))

    def test_empty(self):
        with pytest.raises(PassphraseError):
            read_new_passphrase(ScriptedPrompter(answers=[""]))

    def test_non_interactive_without_passphrase(self):
        with pytest.raises(PassphraseError):
            read_new_passphrase(ScriptedPrompter.yes())

    def test_interactive_uses_getpass(self):
        entered = iter(["pw", "pw"])
        prompter = InteractivePrompter(getpass_func=lambda prompt: next(entered))
        assert read_new_passphrase(prompter) == "pw"

    def test_env_passphrase(self, monkeypatch):
        assert load_passphrase_from_env() is None
        monkeypatch.setenv("SECRETPURGE_PASSPHRASE", "")
        assert load_passphrase_from_env() is None
        monkeypatch.setenv("SECRETPURGE_PASSPHRASE", "from-env")
        assert load_passphrase_from_env() == "from-env"


class TestInteractivePrompter:
    @pytest.mark.parametrize(
        "reply,default,expected",
        [("y", False, True), ("YES", False, True), ("n", True, False), ("", True, True), ("", False, False)],
    )
    def test_confirm(self, reply, default, expected):
        prompter = InteractivePrompter(input_func=lambda prompt: reply)
        assert prompter.confirm("Go?", default=default) is expected

    def test_choose_branches(self):
        assert InteractivePrompter(input_func=lambda p: "").choose_branches(["main"]) == ["main"]
        assert InteractivePrompter(input_func=lambda p: "a, b c").choose_branches(["main"]) == [
            "a",
            "b",
            "c",
        ]
