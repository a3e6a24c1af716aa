from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from ionhost.provisioning.archive import extract_archive
from ionhost.provisioning.fingerprint import fingerprint_tree
from ionhost.provisioning.retriever import ArchiveRetriever
from ionhost.provisioning.status import DeploymentStatus, load_status, save_status
from ionhost.utils.diagnostics import (
    ArchiveExtractionError,
    FingerprintError,
    ProvisioningError,
)

_logger = logging.getLogger(__name__)

Finalizer = Callable[[Path], None]
TreeSource = Union[Path, Traversable]


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of one provisioning attempt."""

    target: Path
    version: str
    fingerprint: int
    reused: bool


def provision(
    expected_version: str,
    target_path: Path,
    retriever: ArchiveRetriever,
    finalizer: Optional[Finalizer] = None,
    *,
    seed: str = "",
    logger: Optional[logging.Logger] = None,
) -> ProvisionResult:
    """
    Make sure `target_path` holds `expected_version` of an archive.

    A tree whose status file records the expected version and whose current
    fingerprint still matches is reused as-is; nothing is retrieved. Otherwise
    the target is wiped, the archive is retrieved and extracted, the finalizer
    runs, and the new fingerprint is recorded.
    """
    log = logger or _logger

    def populate(target: Path) -> None:
        try:
            data = retriever()
        except Exception as exc:
            raise ProvisioningError(f"unable to retrieve archive: {exc}", target=str(target)) from exc
        try:
            count = extract_archive(data, target)
        except ArchiveExtractionError as exc:
            raise ProvisioningError(str(exc), target=str(target)) from exc
        log.debug("Extracted %d archive entries into %s", count, target)

    return _deploy(expected_version, Path(target_path), populate, finalizer, seed, log)


def deploy_tree(
    expected_version: str,
    source: TreeSource,
    target_path: Path,
    finalizer: Optional[Finalizer] = None,
    *,
    seed: str = "",
    logger: Optional[logging.Logger] = None,
) -> ProvisionResult:
    """
    Same contract as `provision`, but copies a directory tree (a local path or
    an `importlib.resources` traversable) instead of extracting an archive.
    """
    log = logger or _logger

    def populate(target: Path) -> None:
        try:
            _copy_tree(source, target)
        except OSError as exc:
            raise ProvisioningError(f"unable to copy '{source}': {exc}", target=str(target)) from exc

    return _deploy(expected_version, Path(target_path), populate, finalizer, seed, log)


def _deploy(
    expected_version: str,
    target: Path,
    populate: Callable[[Path], None],
    finalizer: Optional[Finalizer],
    seed: str,
    log: logging.Logger,
) -> ProvisionResult:
    status = load_status(target)
    if status.version == expected_version:
        try:
            current = fingerprint_tree(target, seed=seed)
        except FingerprintError as exc:
            log.debug("Cannot verify %s, re-provisioning: %s", target, exc)
        else:
            if current == status.fingerprint:
                log.debug("%s already holds version %s", target, expected_version)
                return ProvisionResult(target, expected_version, current, reused=True)
            log.info("Deployment at %s was modified, re-provisioning", target)

    log.info("Provisioning version %s into %s", expected_version, target)
    try:
        shutil.rmtree(target)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise ProvisioningError(f"unable to clear target: {exc}", target=str(target)) from exc
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ProvisioningError(f"unable to create target: {exc}", target=str(target)) from exc

    populate(target)

    if finalizer is not None:
        try:
            finalizer(target)
        except Exception as exc:
            raise ProvisioningError(f"finalizer failed: {exc}", target=str(target)) from exc

    try:
        fingerprint = fingerprint_tree(target, seed=seed)
        save_status(target, DeploymentStatus(version=expected_version, fingerprint=fingerprint))
    except (FingerprintError, OSError) as exc:
        raise ProvisioningError(f"unable to record status: {exc}", target=str(target)) from exc

    return ProvisionResult(target, expected_version, fingerprint, reused=False)


def _copy_tree(source: TreeSource, target: Path) -> None:
    for entry in source.iterdir():
        destination = target / entry.name
        if entry.is_dir():
            destination.mkdir(parents=True, exist_ok=True)
            _copy_tree(entry, destination)
        elif isinstance(entry, Path):
            shutil.copy2(entry, destination, follow_symlinks=False)
        else:
            destination.write_bytes(entry.read_bytes())


@dataclass(frozen=True)
class RuntimeBundle:
    """
    A versioned runtime archive plus what is needed to launch it.

    `directory` is relative to the provisioning root. `executable` is relative
    to the bundle directory (an absolute path is used as-is). `arguments` may
    reference `{root}` (provisioning root) and `{bundle}` (bundle directory).
    """

    name: str
    version: str
    directory: str
    retriever: ArchiveRetriever
    executable: str
    finalizer: Optional[Finalizer] = None
    arguments: Tuple[str, ...] = ()

    def bundle_path(self, root: Path) -> Path:
        return Path(root) / self.directory

    def executable_path(self, root: Path) -> Path:
        return self.bundle_path(root) / self.executable

    def launch_arguments(self, root: Path) -> List[str]:
        values = {"root": str(Path(root)), "bundle": str(self.bundle_path(root))}
        return [argument.format(**values) for argument in self.arguments]

    def provision(self, root: Path, seed: str = "", logger: Optional[logging.Logger] = None) -> ProvisionResult:
        return provision(
            self.version,
            self.bundle_path(root),
            self.retriever,
            self.finalizer,
            seed=seed,
            logger=logger,
        )


@dataclass(frozen=True)
class SupportTree:
    """A versioned directory tree deployed next to the runtime bundle."""

    version: str
    source: TreeSource
    directory: str
    finalizer: Optional[Finalizer] = None

    def deploy(self, root: Path, seed: str = "", logger: Optional[logging.Logger] = None) -> ProvisionResult:
        return deploy_tree(
            self.version,
            self.source,
            Path(root) / self.directory,
            self.finalizer,
            seed=seed,
            logger=logger,
        )
