"""Parse `git blame --porcelain` output and render it as fixed-width text."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from mergebot.core.models import BlameLine

DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def _author_timezone(tz: str) -> timezone:
    """timezone for a porcelain author-tz value such as +0200."""
    sign = -1 if tz.startswith("-") else 1
    digits = tz.lstrip("+-").rjust(4, "0")
    offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:4]))
    return timezone(sign * offset)


def parse_porcelain(text: str) -> list[BlameLine]:
    """Parse porcelain blame output into one BlameLine per line.

    Commit headers (author, author-time, author-tz) are only emitted
    the first time a commit appears, so they are remembered by sha.
    Line numbers are converted to 0-based.
    """
    commits: dict[str, dict[str, str]] = {}
    lines: list[BlameLine] = []
    current: tuple[str, int, int] | None = None

    # Content lines may hold \r or form feeds, so only \n separates
    for raw in text.split("\n"):
        if raw.startswith("\t"):
            if current is None:
                continue
            sha, source_line, final_line = current
            info = commits[sha]
            when = datetime.fromtimestamp(
                int(info.get("author-time", "0")),
                tz=_author_timezone(info.get("author-tz", "+0000")),
            )
            lines.append(BlameLine(
                source_commit=sha,
                source_author_name=info.get("author", ""),
                source_author_timestamp=when,
                source_line_number=source_line - 1,
                current_line_index=final_line - 1,
                content=raw[1:],
            ))
            current = None
            continue

        parts = raw.split(" ")
        if current is None and len(parts) >= 3 and len(parts[0]) >= 40:
            sha = parts[0]
            current = (sha, int(parts[1]), int(parts[2]))
            commits.setdefault(sha, {})
            continue

        if current is not None:
            key, _, value = raw.partition(" ")
            commits[current[0]].setdefault(key, value)

    return lines


def render(lines: list[BlameLine], date_format: str = DEFAULT_DATE_FORMAT) -> str:
    """Render blame lines as fixed-width rows.

    Each row reads: abbreviated commit, author padded to the longest
    author name, author timestamp, "source:index)" right-aligned in a
    column sized for the line count, then the line content.
    """
    if not lines:
        return ""

    author_width = max(len(line.source_author_name) for line in lines)
    pair_width = len(str(len(lines))) * 2 + 2

    rows = []
    for line in lines:
        pair = f"{line.source_line_number}:{line.current_line_index}"
        rows.append(
            f"{line.source_commit[:7]}  "
            f"{line.source_author_name:<{author_width}}  "
            f"{line.source_author_timestamp.strftime(date_format)}  "
            f"{pair:>{pair_width}})  "
            f"{line.content}"
        )
    return "\n".join(rows) + "\n"
