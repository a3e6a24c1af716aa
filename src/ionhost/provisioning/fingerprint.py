from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, Tuple

import crcmod

from ionhost.provisioning.status import STATUS_FILE_NAME
from ionhost.utils.diagnostics import FingerprintError

JUNK_NAMES = {".DS_Store"}

# CRC-64/XZ: the ECMA-182 polynomial, reflected, all-ones init and final xor.
CRC64_POLY = 0x142F0E1EBA9EA3693
CRC64_MASK = 0xFFFFFFFFFFFFFFFF

_CHUNK_SIZE = 64 * 1024

_DIRECTORY = b"D"
_FILE = b"F"
_LINK = b"L"


def _length(value: int) -> bytes:
    return value.to_bytes(8, "big")


def fingerprint_tree(root_dir: Path, seed: str = "") -> int:
    """
    Compute a rolling CRC-64 over a deployed tree.

    Entries are visited depth first in name order. Each one contributes its
    relative path, a NUL, and a type tag; link targets and file bytes follow
    their length. The status side-car and platform junk files are skipped.
    """
    root_dir = Path(root_dir)
    crc = crcmod.Crc(CRC64_POLY, initCrc=0, rev=True, xorOut=CRC64_MASK)
    if seed:
        crc.update(seed.encode("utf-8") + b"\x00")

    try:
        for relative, path in _walk(root_dir, root_dir):
            crc.update(relative.encode("utf-8") + b"\x00")
            if path.is_symlink():
                target = os.readlink(path).encode("utf-8")
                crc.update(_LINK + _length(len(target)) + target)
            elif path.is_file():
                with path.open("rb") as handle:
                    crc.update(_FILE + _length(os.fstat(handle.fileno()).st_size))
                    for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                        crc.update(chunk)
            else:
                crc.update(_DIRECTORY)
    except OSError as exc:
        raise FingerprintError(f"Unable to fingerprint '{root_dir}': {exc}") from exc

    return crc.crcValue


def _walk(root_dir: Path, current: Path) -> Iterator[Tuple[str, Path]]:
    for path in sorted(current.iterdir(), key=lambda p: p.name):
        if path.name in JUNK_NAMES:
            continue
        if current == root_dir and path.name == STATUS_FILE_NAME:
            continue

        yield path.relative_to(root_dir).as_posix(), path

        if path.is_dir() and not path.is_symlink():
            yield from _walk(root_dir, path)
