"""
Archive codec for workload engine state.

The engine's state directory is packed into a single zip file on the
source host and unpacked entry by entry on the destination. Extraction is
sequential and not atomic: a failure part way leaves the entries written
so far in place.
"""

import logging
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import List, Union

from hydra_migration.core.exceptions import ArchiveError

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 64 * 1024


def build_archive(source_dir: Union[str, Path], archive_path: Union[str, Path]) -> Path:
    """
    Pack a directory tree into a zip archive.

    Entry names are relative POSIX paths. Empty directories get their own
    entries so the tree shape survives a round trip.

    Returns:
        Path of the written archive
    """
    source = Path(source_dir)
    archive = Path(archive_path)

    if not source.is_dir():
        raise ArchiveError(f"Source directory not found: {source}", details={'source': str(source)})

    try:
        archive.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
            file_count = 0
            for path in sorted(source.rglob('*')):
                arcname = path.relative_to(source).as_posix()
                if path.is_dir():
                    if not any(path.iterdir()):
                        zf.writestr(f"{arcname}/", b"")
                elif path.is_file():
                    zf.write(path, arcname)
                    file_count += 1
    except (OSError, zipfile.LargeZipFile) as e:
        raise ArchiveError(f"Failed to archive {source}: {e}", details={'source': str(source)}) from e

    logger.info(f"Archived {file_count} files from {source} into {archive}")
    return archive


def open_archive(archive_path: Union[str, Path]) -> zipfile.ZipFile:
    """Open an archive for reading; the caller closes it."""
    try:
        return zipfile.ZipFile(archive_path, 'r')
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(
            f"Cannot open archive {archive_path}: {e}",
            details={'archive': str(archive_path)}
        ) from e


def _entry_target(entry_name: str, destination: Path) -> Path:
    relative = PurePosixPath(entry_name)
    if relative.is_absolute() or '..' in relative.parts:
        raise ArchiveError(
            f"Unsafe archive entry outside destination: {entry_name}",
            details={'entry': entry_name}
        )

    target = destination.joinpath(*relative.parts)
    root = destination.resolve()
    if target.resolve() != root and root not in target.resolve().parents:
        raise ArchiveError(
            f"Unsafe archive entry outside destination: {entry_name}",
            details={'entry': entry_name}
        )
    return target


def extract_entry(archive: zipfile.ZipFile, entry: zipfile.ZipInfo, destination: Union[str, Path]) -> Path:
    """
    Extract one entry to destination/entry_relative_path.

    Existing files are overwritten and missing parent directories are
    created.
    """
    target = _entry_target(entry.filename, Path(destination))

    try:
        if entry.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            return target

        target.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(entry) as src, open(target, 'wb') as dst:
            shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)
    except (OSError, zipfile.BadZipFile, zlib.error) as e:
        raise ArchiveError(
            f"Failed to extract {entry.filename}: {e}",
            details={'entry': entry.filename, 'target': str(target)}
        ) from e

    return target


def restore_containers(archive_path: Union[str, Path], destination: Union[str, Path]) -> List[Path]:
    """
    Materialize an archive on disk.

    Every entry is extracted in archive order. Returns the paths written.
    """
    dest = Path(destination)
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ArchiveError(f"Cannot create destination {dest}: {e}") from e

    written: List[Path] = []
    with open_archive(archive_path) as archive:
        for entry in archive.infolist():
            logger.debug(f"Extracting: {dest / entry.filename}")
            written.append(extract_entry(archive, entry, dest))

    logger.info(f"Restored {len(written)} entries from {archive_path} into {dest}")
    return written
