from __future__ import annotations

import os
import stat
import zipfile
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Iterable, Tuple

from ionhost.utils.diagnostics import ArchiveExtractionError


def _zipinfo_mode(info: zipfile.ZipInfo) -> int:
    """Unix mode stored in the high 16 bits of external_attr (0 when absent)."""
    return (int(info.external_attr) >> 16) & 0xFFFF


def _safe_relative_path(name: str) -> PurePosixPath:
    """
    Normalize a zip entry name, rejecting names that would land outside the
    extraction root (absolute paths, `..` segments, empty names).
    """
    raw = str(name or "").replace("\\", "/")
    if raw.startswith("/") or PurePosixPath(raw).drive:
        raise ArchiveExtractionError(f"Archive entry uses an absolute path: {name!r}")

    parts = [part for part in PurePosixPath(raw).parts if part not in {"", "."}]
    if not parts:
        raise ArchiveExtractionError(f"Archive entry has an empty name: {name!r}")
    if any(part == ".." for part in parts):
        raise ArchiveExtractionError(f"Archive entry escapes the extraction root: {name!r}")
    return PurePosixPath(*parts)


def _iter_members(zf: zipfile.ZipFile) -> Iterable[Tuple[zipfile.ZipInfo, PurePosixPath]]:
    for info in zf.infolist():
        yield info, _safe_relative_path(info.filename)


def extract_archive(data: bytes, dest_dir: Path) -> int:
    """
    Unpack zip bytes into `dest_dir`, keeping relative paths, permission bits
    and symlink entries. Returns the number of entries written.
    """
    dest_dir = Path(dest_dir)
    try:
        zf = zipfile.ZipFile(BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, TypeError) as exc:
        raise ArchiveExtractionError(f"Not a valid zip archive: {exc}") from exc

    written = 0
    try:
        with zf:
            for info, relative in _iter_members(zf):
                target = dest_dir.joinpath(*relative.parts)
                mode = _zipinfo_mode(info)

                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    if mode:
                        target.chmod(stat.S_IMODE(mode) | stat.S_IRWXU)
                elif stat.S_ISLNK(mode):
                    target.parent.mkdir(parents=True, exist_ok=True)
                    link_target = zf.read(info).decode("utf-8")
                    if target.is_symlink() or target.exists():
                        target.unlink()
                    os.symlink(link_target, target)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info, "r") as src, target.open("wb") as dst:
                        for chunk in iter(lambda: src.read(64 * 1024), b""):
                            dst.write(chunk)
                    if mode:
                        target.chmod(stat.S_IMODE(mode) | stat.S_IWUSR)
                written += 1
    except ArchiveExtractionError:
        raise
    except (zipfile.BadZipFile, OSError, UnicodeDecodeError, RuntimeError) as exc:
        raise ArchiveExtractionError(f"Failed to extract archive into '{dest_dir}': {exc}") from exc

    return written
