"""
Log-file archival.

Old log files are grouped by modification month into ZIP archives. Sources
are only removed after every archive of the run passes verification.
"""

import json
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from winops.exceptions import ArchiveError
from winops.util.files import ensure_dir, is_within, write_text
from winops.util.hashing import sha256_file

logger = logging.getLogger(__name__)

MANIFEST_NAME = "archive-manifest.json"


@dataclass
class ArchiveGroup:
    path: Path
    month: str
    files: list[str] = field(default_factory=list)
    bytes: int = 0
    sha256: str | None = None


@dataclass
class ArchiveResult:
    source: Path
    destination: Path
    archives: list[ArchiveGroup] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def file_count(self) -> int:
        return sum(len(group.files) for group in self.archives)


def find_old_files(
    source: Path,
    pattern: str,
    older_than_days: int,
    destination: Path,
    recurse: bool = False,
    now: datetime | None = None,
) -> list[Path]:
    """Files matching pattern last modified before now - older_than_days."""
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(days=older_than_days)).timestamp()
    candidates = source.rglob(pattern) if recurse else source.glob(pattern)

    selected = []
    for path in candidates:
        if not path.is_file() or path.is_symlink():
            continue
        if is_within(path, destination):
            continue
        if path.stat().st_mtime < cutoff:
            selected.append(path)
    return sorted(selected)


def month_key(path: Path) -> str:
    """YYYY-MM of the file's modification time (UTC)."""
    mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return mtime.strftime("%Y-%m")


def group_by_month(files: list[Path]) -> dict[str, list[Path]]:
    groups: dict[str, list[Path]] = {}
    for path in files:
        groups.setdefault(month_key(path), []).append(path)
    return dict(sorted(groups.items()))


def _write_group(
    archive_path: Path, source: Path, files: list[Path], result: ArchiveResult
) -> tuple[ArchiveGroup, list[Path]]:
    """Append files to archive_path; returns the group and the files written."""
    group = ArchiveGroup(path=archive_path, month="")
    written: list[Path] = []
    created = not archive_path.exists()

    # strict_timestamps=False stores pre-1980 modification times as 1980-01-01
    with zipfile.ZipFile(
        archive_path,
        "w" if created else "a",
        compression=zipfile.ZIP_DEFLATED,
        strict_timestamps=False,
    ) as zf:
        existing = set(zf.namelist())
        for path in files:
            arcname = path.relative_to(source).as_posix()
            if arcname in existing:
                logger.warning("%s already contains %s; keeping source", archive_path.name, arcname)
                result.skipped.append(str(path))
                continue
            try:
                size = path.stat().st_size
                zf.write(path, arcname)
            except OSError as e:
                logger.warning("Skipping %s: %s", path, e)
                result.skipped.append(str(path))
                continue
            existing.add(arcname)
            group.files.append(arcname)
            group.bytes += size
            written.append(path)

    if created and not written:
        archive_path.unlink()
        return group, written

    with zipfile.ZipFile(archive_path) as zf:
        bad_member = zf.testzip()
    if bad_member is not None:
        raise ArchiveError(
            f"Verification of {archive_path} failed at member {bad_member}; "
            "no source files were deleted.",
            f"Inspect or remove the damaged archive:\n  {archive_path}",
        )

    group.sha256 = sha256_file(archive_path)
    return group, written


def _append_manifest(destination: Path, result: ArchiveResult, now: datetime) -> None:
    manifest_path = destination / MANIFEST_NAME
    entries = []
    if manifest_path.exists():
        try:
            entries = json.loads(manifest_path.read_text())
        except json.JSONDecodeError as e:
            logger.warning("Starting a new manifest; %s is unreadable: %s", manifest_path, e)
            entries = []

    entries.append(
        {
            "timestamp": now.isoformat(),
            "source": str(result.source.resolve()),
            "archives": [
                {
                    "path": str(group.path),
                    "month": group.month,
                    "sha256": group.sha256,
                    "files": group.files,
                    "bytes": group.bytes,
                }
                for group in result.archives
            ],
            "deleted": len(result.deleted),
        }
    )
    write_text(manifest_path, json.dumps(entries, indent=2))


def archive_logs(
    source: Path,
    pattern: str = "*.log",
    older_than_days: int = 30,
    destination: Path | None = None,
    recurse: bool = False,
    delete_source: bool = False,
    dry_run: bool = False,
    now: datetime | None = None,
) -> ArchiveResult:
    """
    Archive log files older than older_than_days into monthly ZIP files.

    Archives are named ``<source dir name>-<YYYY-MM>.zip`` and written to
    destination (default ``<source>/archive``). With delete_source, nothing
    is deleted until every archive of the run has been verified. A manifest
    entry is written for whatever was archived, even when a later month fails.

    Raises:
        ArchiveError: If source is not a directory or an archive fails verification
    """
    source = Path(source)
    if not source.is_dir():
        raise ArchiveError(
            f"Log directory not found: {source}",
            f"Check the path and permissions:\n  ls -ld {source}",
        )

    now = now or datetime.now(timezone.utc)
    destination = Path(destination) if destination else source / "archive"
    result = ArchiveResult(source=source, destination=destination, dry_run=dry_run)
    archive_name = source.resolve().name

    files = find_old_files(source, pattern, older_than_days, destination, recurse, now)
    groups = group_by_month(files)
    logger.info("Selected %d file(s) in %d month group(s)", len(files), len(groups))

    if dry_run:
        for month, members in groups.items():
            result.archives.append(
                ArchiveGroup(
                    path=destination / f"{archive_name}-{month}.zip",
                    month=month,
                    files=[p.relative_to(source).as_posix() for p in members],
                    bytes=sum(p.stat().st_size for p in members),
                )
            )
        return result

    if not groups:
        return result

    ensure_dir(destination)
    archived: list[Path] = []
    try:
        for month, members in groups.items():
            archive_path = destination / f"{archive_name}-{month}.zip"
            group, written = _write_group(archive_path, source, members, result)
            if not written:
                continue
            group.month = month
            result.archives.append(group)
            archived.extend(written)

        if delete_source:
            for path in archived:
                try:
                    path.unlink()
                except OSError as e:
                    logger.warning("Could not delete %s: %s", path, e)
                    continue
                result.deleted.append(str(path))
    finally:
        if result.archives:
            _append_manifest(destination, result, now)
    return result
