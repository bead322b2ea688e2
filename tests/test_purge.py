"""
Tests for the history purge orchestrator and the rewrite tool contract.
"""

import re

import pytest

from secretpurge.errors import GitCommandError, SecretPurgeError, ToolUnavailableError
from secretpurge.file_scanner import scan
from secretpurge.git import GitRepository
from secretpurge.purge import FilterRepoTool, HistoryPurger, PurgeState, default_branches

from conftest import TEST_PATTERNS, FakeRewriteTool, git, requires_git


class TestFilterRepoTool:
    def test_build_args_is_explicit_list(self):
        args = FilterRepoTool.build_args(["*.pem", "secret*.txt", "*.pem"])
        assert args == [
            "filter-repo",
            "--force",
            "--invert-paths",
            "--path-regex", r"(?:^|/)[^/]*\.pem\Z",
            "--path-regex", r"(?:^|/)secret[^/]*\.txt\Z",
        ]

    def test_rewrite_regex_agrees_with_scanner(self):
        paths = ["secrets/README.md", "secret_db.txt", "conf/secret.txt", "a/b.pem.bak"]
        regexes = [re.compile(a) for a in FilterRepoTool.build_args(TEST_PATTERNS)[4::2]]
        dropped = {p for p in paths if any(r.search(p) for r in regexes)}
        assert dropped == scan(paths, TEST_PATTERNS) == {"secret_db.txt", "conf/secret.txt"}

    def test_pattern_with_shell_metacharacters_stays_one_argument(self):
        args = FilterRepoTool.build_args(["a; rm -rf ~.key"])
        assert len(args) == 5
        assert re.compile(args[-1]).search("a; rm -rf ~.key")

    def test_missing_git_is_not_available(self, tmp_path):
        assert not FilterRepoTool(git=str(tmp_path / "no-git")).is_available()

    def test_install_failure_escalates_with_manual_hint(self, tmp_path):
        tool = FilterRepoTool(git=str(tmp_path / "no-git"), python=str(tmp_path / "no-python"))
        with pytest.raises(ToolUnavailableError) as excinfo:
            tool.ensure_available()
        assert "pip install git-filter-repo" in str(excinfo.value)

    def test_install_attempted_once_then_succeeds(self):
        class Tool(FilterRepoTool):
            def __init__(self):
                super().__init__()
                self.probes = [False, True]
                self.installs = 0

            def is_available(self):
                return self.probes.pop(0)

            def install(self):
                self.installs += 1
                return True

        tool = Tool()
        tool.ensure_available()
        assert tool.installs == 1

    def test_install_not_attempted_when_present(self):
        class Tool(FilterRepoTool):
            def is_available(self):
                return True

            def install(self):
                raise AssertionError("should not install")

        Tool().ensure_available()


@pytest.fixture
def branched_remote(work_repo, remote_repo):
    """Remote with main plus b1, b2, b3."""
    for name in ("b1", "b2", "b3"):
        git(work_repo, "branch", name)
        git(work_repo, "push", "--quiet", "origin", name)
    return remote_repo


def reject_branch_hook(remote_repo, branch):
    hook = remote_repo / "hooks" / "pre-receive"
    hook.write_text(
        "#!/bin/sh\n"
        "while read old new ref; do\n"
        f'  if [ "$ref" = "refs/heads/{branch}" ]; then\n'
        "    echo \"protected branch $ref\" >&2\n"
        "    exit 1\n"
        "  fi\n"
        "done\n"
        "exit 0\n"
    )
    hook.chmod(0o755)


@requires_git
class TestHistoryPurger:
    def test_happy_path(self, tmp_path, work_repo, remote_repo, fake_tool):
        before = git(remote_repo, "rev-parse", "refs/heads/main").strip()
        purger = HistoryPurger(tmp_path / "mirrors", tool=fake_tool, name="work")

        result = purger.purge(str(remote_repo), TEST_PATTERNS, ["main"])

        assert result.state is PurgeState.PUBLISHED
        assert result.ok
        assert result.pushed == ["main"]
        assert result.failed == {}
        assert fake_tool.calls == [TEST_PATTERNS]
        after = git(remote_repo, "rev-parse", "refs/heads/main").strip()
        assert after != before

        purger.discard(result)
        assert result.workspace is None
        assert list((tmp_path / "mirrors").glob("work-purge-*")) == []

    def test_partial_push_failure_is_isolated(self, tmp_path, branched_remote, fake_tool):
        reject_branch_hook(branched_remote, "b2")
        purger = HistoryPurger(tmp_path / "mirrors", tool=fake_tool)

        result = purger.purge(str(branched_remote), TEST_PATTERNS, ["b1", "b2", "b3"])

        assert result.state is PurgeState.PUBLISHED
        assert result.pushed == ["b1", "b3"]
        assert list(result.failed) == ["b2"]
        assert "protected" in result.failed["b2"]
        assert not result.ok

    def test_partial_failure_with_patched_push(self, tmp_path, branched_remote, fake_tool, monkeypatch):
        attempted = []
        original = GitRepository.force_push_ref

        def flaky_push(self, remote, ref):
            attempted.append(ref)
            if ref == "refs/heads/b2":
                raise GitCommandError(["git", "push"], 1, "remote rejected")
            return original(self, remote, ref)

        monkeypatch.setattr(GitRepository, "force_push_ref", flaky_push)
        result = HistoryPurger(tmp_path / "m", tool=fake_tool).purge(
            str(branched_remote), TEST_PATTERNS, ["b1", "b2", "b3"]
        )

        assert attempted == ["refs/heads/b1", "refs/heads/b2", "refs/heads/b3"]
        assert result.failed == {"b2": "remote rejected"}

    def test_backup_mirror_is_separate_and_untouched(self, tmp_path, work_repo, remote_repo, fake_tool):
        original = git(remote_repo, "rev-parse", "refs/heads/main").strip()
        purger = HistoryPurger(tmp_path / "mirrors", tool=fake_tool, name="work")

        backup = purger.backup_mirror(str(remote_repo))
        result = purger.purge(str(remote_repo), TEST_PATTERNS, ["main"])

        assert backup != result.workspace
        assert git(backup, "rev-parse", "refs/heads/main").strip() == original

    def test_mirrors_within_the_same_second_get_distinct_names(
        self, tmp_path, work_repo, remote_repo, fake_tool, monkeypatch
    ):
        monkeypatch.setattr("secretpurge.purge.timestamp_slug", lambda: "20260101-000000")
        purger = HistoryPurger(tmp_path / "mirrors", tool=fake_tool, name="work", keep_workspace=True)

        first = purger.backup_mirror(str(remote_repo))
        second = purger.backup_mirror(str(remote_repo))
        result = purger.purge(str(remote_repo), TEST_PATTERNS, ["main"])
        again = purger.purge(str(remote_repo), TEST_PATTERNS, ["main"])

        assert first.name == "work-backup-20260101-000000.git"
        assert second.name == "work-backup-20260101-000000-2.git"
        assert result.workspace != again.workspace
        assert again.pushed == ["main"]

    def test_empty_branch_set_rejected_before_cloning(self, tmp_path, remote_repo, fake_tool):
        with pytest.raises(SecretPurgeError):
            HistoryPurger(tmp_path / "m", tool=fake_tool).purge(str(remote_repo), TEST_PATTERNS, [])
        assert not (tmp_path / "m").exists()

    def test_unknown_branch_rejected_before_rewrite(self, tmp_path, work_repo, remote_repo, fake_tool):
        with pytest.raises(SecretPurgeError, match="nope") as excinfo:
            HistoryPurger(tmp_path / "m", tool=fake_tool).purge(
                str(remote_repo), TEST_PATTERNS, ["main", "nope"]
            )
        assert "available: main" in str(excinfo.value)
        assert fake_tool.calls == []
        assert list((tmp_path / "m").glob("*-purge-*")) == []

    def test_unavailable_tool_stops_before_cloning(self, tmp_path, remote_repo):
        class Missing(FakeRewriteTool):
            def ensure_available(self):
                raise ToolUnavailableError("no filter-repo")

        with pytest.raises(ToolUnavailableError):
            HistoryPurger(tmp_path / "m", tool=Missing()).purge(
                str(remote_repo), TEST_PATTERNS, ["main"]
            )
        assert not (tmp_path / "m").exists()

    def test_rewrite_failure_state(self, tmp_path, work_repo, remote_repo):
        class Broken(FakeRewriteTool):
            def rewrite(self, mirror, patterns):
                raise GitCommandError(["git", "filter-repo"], 2, "boom")

        before = git(remote_repo, "rev-parse", "refs/heads/main").strip()
        with pytest.raises(GitCommandError):
            HistoryPurger(tmp_path / "m", tool=Broken()).purge(
                str(remote_repo), TEST_PATTERNS, ["main"]
            )
        assert git(remote_repo, "rev-parse", "refs/heads/main").strip() == before

    def test_tag_push_failure_is_recorded(self, tmp_path, work_repo, remote_repo, fake_tool):
        git(work_repo, "tag", "v1")
        git(work_repo, "push", "--quiet", "origin", "v1")
        purger = HistoryPurger(tmp_path / "m", tool=fake_tool)
        result = purger.purge(str(remote_repo), TEST_PATTERNS, ["main"])

        hook = remote_repo / "hooks" / "pre-receive"
        hook.write_text("#!/bin/sh\necho 'tags are protected' >&2\nexit 1\n")
        hook.chmod(0o755)
        # A tag that differs from the remote, so the push is not a no-op
        GitRepository(result.workspace).run("tag", "-f", "v1", "refs/heads/main")

        purger.push_tags(result, str(remote_repo))

        assert result.tags_pushed is False
        assert "protected" in result.tags_error
        assert result.pushed == ["main"]

    def test_reports_paths_left_in_history(self, tmp_path, work_repo, remote_repo, fake_tool):
        result = HistoryPurger(tmp_path / "m", tool=fake_tool).purge(
            str(remote_repo), TEST_PATTERNS, ["main"]
        )
        # The fake tool drops nothing, so every secret is still reachable
        assert result.remaining_paths == ["id_rsa.pem", "secret_db.txt"]


@requires_git
class TestDefaultBranches:
    def test_main_only(self, work_repo):
        assert default_branches(GitRepository(work_repo)) == ["main"]

    def test_main_and_current(self, work_repo):
        git(work_repo, "checkout", "--quiet", "-b", "feature")
        assert default_branches(GitRepository(work_repo)) == ["main", "feature"]

    def test_current_without_main(self, work_repo):
        git(work_repo, "branch", "-m", "main", "trunk")
        assert default_branches(GitRepository(work_repo)) == ["trunk"]
