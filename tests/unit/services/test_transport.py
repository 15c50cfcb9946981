"""Tests for fetch and push."""

import pytest

from mergebot.core.errors import ExternalServiceFailure
from mergebot.services.transport import NULL_SHA, diff_refs, fetch, push

HEADS = ["+refs/heads/*:refs/remotes/origin/*"]


class FakeAncestry:
    def __init__(self, pairs):
        self.pairs = pairs

    def is_ancestor(self, ancestor, descendant):
        return (ancestor, descendant) in self.pairs


def test_diff_refs_classifies_updates():
    before = {
        "refs/remotes/origin/ff": "1" * 40,
        "refs/remotes/origin/forced": "2" * 40,
        "refs/remotes/origin/gone": "3" * 40,
        "refs/remotes/origin/same": "4" * 40,
    }
    after = {
        "refs/remotes/origin/ff": "5" * 40,
        "refs/remotes/origin/forced": "6" * 40,
        "refs/remotes/origin/new": "7" * 40,
        "refs/remotes/origin/same": "4" * 40,
    }
    repo = FakeAncestry({("1" * 40, "5" * 40)})

    updates = diff_refs(before, after, repo)

    assert [(u.flag, u.ref) for u in updates] == [
        ("fast-forward", "refs/remotes/origin/ff"),
        ("forced update", "refs/remotes/origin/forced"),
        ("pruned", "refs/remotes/origin/gone"),
        ("new", "refs/remotes/origin/new"),
    ]
    assert updates[2].new == NULL_SHA
    assert updates[3].old == NULL_SHA


def test_diff_refs_without_repository_assumes_fast_forward():
    (update,) = diff_refs({"r": "1" * 40}, {"r": "2" * 40})

    assert update.flag == "fast-forward"


def _clone(sandbox, tmp_path):
    other = tmp_path / "other"
    sandbox.git("clone", "--quiet", "--branch", "main", str(sandbox.origin), str(other))
    for key, value in (("user.name", "Other"), ("user.email", "o@example.com")):
        sandbox.git("-C", str(other), "config", key, value)
    return other


def test_fetch_reports_remote_changes(sandbox, repository, tmp_path):
    other = _clone(sandbox, tmp_path)
    (other / "n.txt").write_text("n\n")
    sandbox.git("-C", str(other), "add", "n.txt")
    sandbox.git("-C", str(other), "commit", "--quiet", "-m", "upstream")
    sandbox.git("-C", str(other), "push", "--quiet", "origin", "main", "main:topic")
    old_main = sandbox.head("refs/remotes/origin/main")

    updates = fetch(repository, "origin", HEADS)

    assert [(u.flag, u.ref) for u in updates] == [
        ("fast-forward", "refs/remotes/origin/main"),
        ("new", "refs/remotes/origin/topic"),
    ]
    assert updates[0].old == old_main
    assert updates[0].new == sandbox.remote_head("main")
    assert sandbox.head("refs/remotes/origin/main") == sandbox.remote_head("main")


def test_fetch_up_to_date(repository):
    assert fetch(repository, "origin", HEADS) == []


def test_fetch_unknown_remote(repository):
    with pytest.raises(ExternalServiceFailure, match="nowhere"):
        fetch(repository, "nowhere", HEADS)


def test_push_updates_remote(sandbox, repository):
    head = sandbox.commit({"p.txt": "p\n"}, "to push")

    assert push(repository, "main", "origin") == 0
    assert sandbox.remote_head("main") == head


def test_push_rejected_returns_exit_code(sandbox, repository, tmp_path):
    other = _clone(sandbox, tmp_path)
    (other / "n.txt").write_text("n\n")
    sandbox.git("-C", str(other), "add", "n.txt")
    sandbox.git("-C", str(other), "commit", "--quiet", "-m", "upstream")
    sandbox.git("-C", str(other), "push", "--quiet", "origin", "main")
    remote = sandbox.remote_head("main")
    sandbox.commit({"l.txt": "l\n"}, "local")

    assert push(repository, "main", "origin") != 0
    assert sandbox.remote_head("main") == remote
