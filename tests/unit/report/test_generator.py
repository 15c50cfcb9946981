"""Tests for the conflict report generator."""

import zipfile

import pytest

from mergebot.core.models import ConflictRecord, StageState
from mergebot.report.generator import ReportGenerator

SHA = "c" * 40


class FakeRepository:
    """Answers blame requests with one line per file naming the path."""

    def __init__(self):
        self.blamed = []

    def blame(self, path, rev="HEAD"):
        self.blamed.append((path, rev))
        return (
            f"{SHA} 1 1 1\n"
            "author Carol\n"
            "author-time 0\n"
            "author-tz +0000\n"
            f"filename {path}\n"
            f"\tcontent of {path}\n"
        )


@pytest.fixture
def conflicts():
    return ConflictRecord({
        "a.txt": StageState.BOTH_MODIFIED,
        "dir/b.c": StageState.BOTH_ADDED,
        "logo.PNG": StageState.BOTH_MODIFIED,
        "img.png": StageState.BOTH_MODIFIED,
        ".gitignore": StageState.BOTH_MODIFIED,
        "gone.c": StageState.DELETED_BY_US,
        "new.c": StageState.ADDED_BY_THEM,
    })


def _generator(tmp_path, repo, **kwargs):
    return ReportGenerator(
        repo, tmp_path / "scratch", excludes=["png", "jar"], **kwargs
    )


def test_report_blames_eligible_files_only(tmp_path, conflicts):
    repo = FakeRepository()

    archive = _generator(tmp_path, repo).report(conflicts)

    assert archive == tmp_path / "scratch" / "blame.zip"
    assert [path for path, _ in repo.blamed] == ["a.txt", "dir/b.c"]
    assert all(rev == "HEAD" for _, rev in repo.blamed)

    with zipfile.ZipFile(archive) as zf:
        assert zf.namelist() == ["a.txt", "dir/", "dir/b.c"]
        assert zf.read("dir/b.c").decode().endswith(")  content of dir/b.c\n")


def test_report_writes_blame_files(tmp_path, conflicts):
    _generator(tmp_path, FakeRepository()).report(conflicts)

    text = (tmp_path / "scratch" / "blame" / "a.txt").read_text()
    assert text.startswith("ccccccc  Carol  1970-01-01 00:00:00 +0000  ")


def test_report_disabled(tmp_path, conflicts):
    repo = FakeRepository()

    assert _generator(tmp_path, repo, enabled=False).report(conflicts) is None
    assert repo.blamed == []
    assert not (tmp_path / "scratch").exists()


def test_report_without_conflicts(tmp_path):
    repo = FakeRepository()

    assert _generator(tmp_path, repo).report(ConflictRecord()) is None
    assert repo.blamed == []


def test_report_nothing_eligible(tmp_path):
    conflicts = ConflictRecord({
        "img.png": StageState.BOTH_MODIFIED,
        ".gitattributes": StageState.BOTH_MODIFIED,
        "gone.c": StageState.BOTH_DELETED,
    })

    generator = _generator(tmp_path, FakeRepository())

    assert generator.report(conflicts) is None
    assert not generator.archive_path.exists()


def test_report_is_idempotent(tmp_path, conflicts):
    generator = _generator(tmp_path, FakeRepository())

    first = generator.report(conflicts)
    with zipfile.ZipFile(first) as zf:
        first_entries = {name: zf.read(name) for name in zf.namelist()}

    second = generator.report(conflicts)
    with zipfile.ZipFile(second) as zf:
        second_entries = {name: zf.read(name) for name in zf.namelist()}

    assert first == second
    assert first_entries == second_entries


def test_custom_archive_name(tmp_path, conflicts):
    archive = _generator(
        tmp_path, FakeRepository(), archive_name="conflicts.zip"
    ).report(conflicts)

    assert archive.name == "conflicts.zip"


def test_excludes_accept_leading_dots(tmp_path):
    generator = ReportGenerator(FakeRepository(), tmp_path, excludes=[".png", " ", "jar"])

    assert generator.excludes == ["png", "jar"]
    assert generator.is_excluded("a/b.png")
    assert not generator.is_excluded("png")


def test_excluded_extensions_ignore_case(tmp_path):
    repo = FakeRepository()
    generator = ReportGenerator(repo, tmp_path, excludes=["PNG", ".Jar"])

    conflicts = ConflictRecord({
        "logo.PNG": StageState.BOTH_MODIFIED,
        "lib/tool.jar": StageState.BOTH_MODIFIED,
        "icon.png": StageState.BOTH_ADDED,
    })

    assert generator.report(conflicts) is None
    assert repo.blamed == []
    assert generator.is_excluded("Docs/Shot.Png")
