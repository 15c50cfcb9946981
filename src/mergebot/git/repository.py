"""git working tree operations used by the merge workflow."""

from __future__ import annotations

import os
import shlex
import tempfile
from collections.abc import Iterator
from pathlib import Path

from invoke import Result

from mergebot.core.errors import GitCommandError
from mergebot.core.log import logger
from mergebot.core.models import ConflictRecord, StageState
from mergebot.core.runner import Runner

# Command templates. Placeholders are shell-quoted before substitution;
# {options} carries pre-quoted "-c key=value" pairs. Any entry can be
# overridden through config.git.commands.
GIT_COMMANDS = {
    "status": "git status --porcelain",
    "status_z": "git status --porcelain -z",
    "checkout": "git checkout {branch}",
    "rev_parse": "git rev-parse --verify --quiet {rev}",
    "notes_list": "git notes list",
    "notes_show": "git notes show {rev}",
    "cat_file": "git cat-file -p {object}",
    "show": "git log -1 --format='%H%n%an <%ae>%n%ad%n%n%B' {rev}",
    "ff_merge": "git merge --ff-only {upstream}",
    "merge": (
        "git -c merge.verbosity=0 merge -s recursive -Xignore-all-space "
        "--no-ff --no-commit {target}"
    ),
    "merge_abort": "git merge --abort",
    "add_all": "git add --all",
    "commit": "git {options} commit --allow-empty --file {message_file}",
    "blame": "git blame --porcelain {rev} -- {path}",
    "fetch": "git {options} fetch {remote} {refspecs}",
    "for_each_ref": "git for-each-ref --format='%(objectname) %(refname)'",
    "is_ancestor": "git merge-base --is-ancestor {ancestor} {descendant}",
    "push": "git {options} push -v {remote} {refspec}",
}

METADATA_FILES = (".gitattributes", ".gitignore")


class Repository:
    """A git working tree driven through the git command line.

    Queries run through Runner.execute() and are parsed; the merge
    and push themselves run through Runner.stream().
    """

    def __init__(
        self,
        workdir: Path,
        commands: dict[str, str] | None = None,
        user_name: str | None = None,
        user_email: str | None = None,
        credential_helper: str | None = None,
        runner: Runner | None = None,
    ):
        """Initialize repository wrapper.

        Args:
            workdir: Path to the working tree
            commands: Command template overrides by name
            user_name: Identity for merge commits (with user_email)
            user_email: Identity for merge commits (with user_name)
            credential_helper: credential.helper for fetch and push
            runner: Runner to execute commands with
        """
        self.workdir = Path(workdir)
        self.commands = {**GIT_COMMANDS, **(commands or {})}
        self.user_name = user_name
        self.user_email = user_email
        self.credential_helper = credential_helper
        self.runner = runner or Runner()

    @classmethod
    def from_config(cls, git_config) -> Repository:
        return cls(
            workdir=git_config.workdir,
            commands=git_config.commands,
            user_name=git_config.user_name,
            user_email=git_config.user_email,
            credential_helper=git_config.credential_helper,
        )

    def command(self, name: str, **args) -> str:
        """Render a command template with shell-quoted arguments.

        List values expand to several quoted words.
        """
        quoted = {}
        for key, value in args.items():
            if key == "options":
                quoted[key] = value
            elif isinstance(value, (list, tuple)):
                quoted[key] = " ".join(shlex.quote(str(v)) for v in value)
            else:
                quoted[key] = shlex.quote(str(value))
        return self.commands[name].format(**quoted)

    def run(self, name: str, check: bool = True, **args) -> Result:
        """Run a named command in the working tree.

        Raises:
            GitCommandError: If check is set and the command fails
        """
        cmd = self.command(name, **args)
        result = self.runner.execute(cmd, cwd=self.workdir, check=False)
        if check and result.exited != 0:
            raise GitCommandError(cmd, result.exited, result.stderr)
        return result

    def stream(self, name: str, echo_stderr: bool = False, **args) -> int:
        """Run a named long-running command under supervision."""
        cmd = self.command(name, **args)
        return self.runner.stream(
            cmd, cwd=self.workdir, echo_stderr=echo_stderr
        )

    # ------------------------------------------------------------
    # Working tree state
    # ------------------------------------------------------------

    def is_clean(self) -> bool:
        """No staged, unstaged or untracked changes."""
        return not self.run("status").stdout.strip()

    def checkout(self, branch: str) -> bool:
        result = self.run("checkout", check=False, branch=branch)
        if result.exited != 0:
            logger.warning(
                "Checkout failed",
                branch=branch,
                stderr=result.stderr.strip(),
            )
        return result.exited == 0

    def conflicts(self) -> ConflictRecord:
        """Unmerged paths of the working tree with their stage state.

        .gitattributes and .gitignore are left out; they carry no
        mergeable content.
        """
        entries = iter(self.run("status_z").stdout.split("\0"))
        found = {}
        for entry in entries:
            if len(entry) < 4:
                continue
            code, path = entry[:2], entry[3:]
            if code[0] in "RC":
                # Renames and copies carry their source as an extra entry
                next(entries, None)
                continue
            state = StageState.from_porcelain(code)
            if state is None or is_metadata_file(path):
                continue
            found[path] = state
        return ConflictRecord(found)

    # ------------------------------------------------------------
    # Revisions and notes
    # ------------------------------------------------------------

    def resolve(self, rev: str) -> str | None:
        """Full commit id for a revision, or None."""
        result = self.run("rev_parse", check=False, rev=f"{rev}^{{commit}}")
        if result.exited != 0:
            return None
        return result.stdout.strip() or None

    def head(self) -> str:
        sha = self.resolve("HEAD")
        if sha is None:
            raise GitCommandError(self.command("rev_parse", rev="HEAD"), 1)
        return sha

    def note(self, rev: str) -> str:
        """Note text attached to a commit, empty when there is none."""
        result = self.run("notes_show", check=False, rev=rev)
        return result.stdout if result.exited == 0 else ""

    def notes(self) -> Iterator[tuple[str, str]]:
        """Yield (annotated commit, note text) in listing order.

        Note blobs are read lazily so a caller that stops at the
        first match does not read the rest.
        """
        listing = self.run("notes_list").stdout
        for line in listing.splitlines():
            parts = line.split()
            if len(parts) != 2:
                continue
            blob, commit = parts
            yield commit, self.run("cat_file", object=blob).stdout

    def describe(self, rev: str) -> str:
        """Commit header, message and note, for logs and summaries."""
        text = self.run("show", rev=rev).stdout.rstrip()
        note = self.note(rev).strip()
        if note:
            text += f"\n\nNotes:\n{note}"
        return text

    def refs(self) -> dict[str, str]:
        """Every ref of the repository mapped to the object it names."""
        refs = {}
        for line in self.run("for_each_ref").stdout.splitlines():
            sha, _, name = line.partition(" ")
            if name:
                refs[name] = sha
        return refs

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self.run(
            "is_ancestor",
            check=False,
            ancestor=ancestor,
            descendant=descendant,
        )
        return result.exited == 0

    # ------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------

    def fast_forward(self, upstream: str) -> bool:
        return self.run("ff_merge", check=False, upstream=upstream).exited == 0

    def abort_merge(self) -> None:
        self.run("merge_abort", check=False)

    def add_all(self) -> None:
        self.run("add_all")

    def commit(self, message: str) -> str:
        """Commit the index with message and return the new head."""
        fd, message_file = tempfile.mkstemp(prefix="mergebot-", suffix=".msg")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(message)
            self.run(
                "commit",
                options=self.identity_options(),
                message_file=message_file,
            )
        finally:
            os.unlink(message_file)
        return self.head()

    def blame(self, path: str, rev: str = "HEAD") -> str:
        """Porcelain blame output of path at rev."""
        return self.run("blame", rev=rev, path=path).stdout

    # ------------------------------------------------------------
    # Options
    # ------------------------------------------------------------

    def identity_options(self) -> str:
        if self.user_name and self.user_email:
            return _config_options(
                {"user.name": self.user_name, "user.email": self.user_email}
            )
        return ""

    def transport_options(self) -> str:
        if self.credential_helper:
            return _config_options(
                {"credential.helper": self.credential_helper}
            )
        return ""


def is_metadata_file(path: str) -> bool:
    return path.lower() in METADATA_FILES


def _config_options(values: dict[str, str]) -> str:
    return " ".join(
        f"-c {shlex.quote(f'{key}={value}')}"
        for key, value in values.items()
    )
