"""Pack a report directory into a zip archive."""

from __future__ import annotations

import zipfile
from pathlib import Path

from mergebot.core.log import logger


def pack(source_dir: Path, dest_file: Path) -> bool:
    """Zip every file below source_dir into dest_file.

    Entry names are relative to source_dir with forward slashes;
    each subdirectory gets its own "dir/" entry. Entries are written
    in sorted order so the same tree always packs the same way.

    Returns:
        True if an archive was written; False if source_dir is
        missing or empty, in which case nothing is written
    """
    source_dir = Path(source_dir)
    dest_file = Path(dest_file)

    if not source_dir.is_dir():
        return False
    paths = sorted(source_dir.rglob("*"))
    if not paths:
        logger.debug("Nothing to pack", source=str(source_dir))
        return False

    dest_file.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(dest_file, "w", zipfile.ZIP_DEFLATED) as archive:
        for path in paths:
            name = path.relative_to(source_dir).as_posix()
            if path.is_dir():
                archive.writestr(f"{name}/", b"")
            else:
                archive.write(path, name)

    logger.debug(
        "Packed report archive",
        source=str(source_dir),
        archive=str(dest_file),
        entries=len(paths),
    )
    return True
