"""
Electron as the companion runtime: download location, executable layout and
the post-extraction finalizer that rebrands the stock Electron build.
"""

from __future__ import annotations

import logging
import platform as platform_module
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import httpx

from ionhost.core.models import IonSettings
from ionhost.provisioning.provisioner import RuntimeBundle
from ionhost.provisioning.retriever import (
    ArchiveRetriever,
    fallback_archive_retriever,
    file_archive_retriever,
    url_archive_retriever,
)
from ionhost.utils.diagnostics import FinalizerError

logger = logging.getLogger(__name__)

ELECTRON_VERSION = "3.0.2"
ELECTRON_NAME = "Electron"
ELECTRON_BUNDLE_ID = "com.github.electron"
ELECTRON_DIRECTORY = "electron"

_LOWER_NAME = "electron"
_APP_SUFFIX = ".app"
_CONTENTS = "Contents"
_FRAMEWORKS = "Frameworks"
_MACOS = "MacOS"
_PLIST = "Info.plist"
_STRING_MARKER = "<string>"
_HELPER = " Helper"
_HELPER_SUFFIXES = (" EH", " NP", "")


def electron_os(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    if platform == "win32":
        return "win32"
    if platform.startswith("linux"):
        return "linux"
    return platform


def electron_arch(machine: Optional[str] = None) -> str:
    machine = (machine or platform_module.machine()).lower()
    if machine in {"x86_64", "amd64"}:
        return "x64"
    if machine in {"arm64", "aarch64"}:
        return "arm64"
    return "ia32"


def electron_archive_name(
    version: str = ELECTRON_VERSION,
    platform: Optional[str] = None,
    machine: Optional[str] = None,
) -> str:
    return f"{_LOWER_NAME}-v{version}-{electron_os(platform)}-{electron_arch(machine)}.zip"


def electron_download_url(
    version: str = ELECTRON_VERSION,
    platform: Optional[str] = None,
    machine: Optional[str] = None,
) -> str:
    archive = electron_archive_name(version, platform, machine)
    return f"https://github.com/{_LOWER_NAME}/{_LOWER_NAME}/releases/download/v{version}/{archive}"


def electron_executable(app_name: str, platform: Optional[str] = None) -> str:
    """Executable path relative to the Electron directory, after finalization."""
    platform = platform or sys.platform
    if platform == "darwin":
        return f"{app_name}{_APP_SUFFIX}/{_CONTENTS}/{_MACOS}/{app_name}"
    if platform == "win32":
        return f"{app_name}.exe"
    return app_name


class ElectronFinalizer:
    """
    Rebrands an extracted Electron build under the host application's name.

    On macOS the icon is replaced, the Info.plist files get the application
    name and bundle id, and the app plus its helper apps are renamed. On Linux
    and Windows only the executable is renamed.
    """

    def __init__(
        self,
        app_name: str,
        bundle_id: Optional[str] = None,
        icon_source: Optional[Path] = None,
        platform: Optional[str] = None,
    ) -> None:
        self.app_name = app_name
        self.bundle_id = bundle_id or ELECTRON_BUNDLE_ID
        self.icon_source = Path(icon_source) if icon_source else None
        self.platform = platform or sys.platform

    def __call__(self, root: Path) -> None:
        root = Path(root)
        if self.platform == "darwin":
            self.update_icon(root)
            self.update_plists(root)
        self.rename_files(root)

    def update_icon(self, root: Path) -> None:
        if self.icon_source is None or not self.icon_source.is_file():
            return
        logger.debug("Installing icon %s", self.icon_source)
        destination = root / f"{ELECTRON_NAME}{_APP_SUFFIX}" / _CONTENTS / "Resources" / f"{_LOWER_NAME}.icns"
        try:
            destination.write_bytes(self.icon_source.read_bytes())
        except OSError as exc:
            raise FinalizerError(f"Unable to install icon: {exc}") from exc

    def update_plists(self, root: Path) -> None:
        contents = root / f"{ELECTRON_NAME}{_APP_SUFFIX}" / _CONTENTS
        plists = [contents / _PLIST]
        for suffix in _HELPER_SUFFIXES:
            helper_app = f"{ELECTRON_NAME}{_HELPER}{suffix}{_APP_SUFFIX}"
            plists.append(contents / _FRAMEWORKS / helper_app / _CONTENTS / _PLIST)

        replacements = [
            (f"{_STRING_MARKER}{ELECTRON_NAME}".encode(), f"{_STRING_MARKER}{self.app_name}".encode()),
            (f"{_STRING_MARKER}{ELECTRON_BUNDLE_ID}".encode(), f"{_STRING_MARKER}{self.bundle_id}".encode()),
        ]
        for plist in plists:
            try:
                buffer = plist.read_bytes()
                for old, new in replacements:
                    buffer = buffer.replace(old, new)
                plist.write_bytes(buffer)
            except OSError as exc:
                raise FinalizerError(f"Unable to patch {plist}: {exc}") from exc

    def renames(self, root: Path) -> List[Tuple[Path, Path]]:
        """Ordered (source, destination) pairs for the current platform."""
        app = self.app_name
        if self.platform == "darwin":
            app_dir = root / f"{app}{_APP_SUFFIX}"
            frameworks = app_dir / _CONTENTS / _FRAMEWORKS
            pairs = [
                (root / f"{ELECTRON_NAME}{_APP_SUFFIX}", app_dir),
                (app_dir / _CONTENTS / _MACOS / ELECTRON_NAME, app_dir / _CONTENTS / _MACOS / app),
            ]
            for suffix in _HELPER_SUFFIXES:
                stock = f"{ELECTRON_NAME}{_HELPER}{suffix}"
                branded = f"{app}{_HELPER}{suffix}"
                helper_dir = frameworks / f"{branded}{_APP_SUFFIX}"
                pairs.append((frameworks / f"{stock}{_APP_SUFFIX}", helper_dir))
                pairs.append((helper_dir / _CONTENTS / _MACOS / stock, helper_dir / _CONTENTS / _MACOS / branded))
            return pairs
        if self.platform == "win32":
            return [(root / f"{_LOWER_NAME}.exe", root / f"{app}.exe")]
        return [(root / _LOWER_NAME, root / app)]

    def rename_files(self, root: Path) -> None:
        for source, destination in self.renames(root):
            if source == destination:
                continue
            try:
                source.rename(destination)
            except OSError as exc:
                raise FinalizerError(f"Unable to rename {source} to {destination}: {exc}") from exc


def electron_bundle(
    settings: IonSettings,
    retriever: Optional[ArchiveRetriever] = None,
    client: Optional[httpx.Client] = None,
    platform: Optional[str] = None,
) -> RuntimeBundle:
    """
    Describe the Electron runtime for the given settings.

    Archive sources are tried in order: the caller's retriever, the configured
    archive path, the configured archive URL, then the GitHub release.
    """
    provisioning = settings.provisioning
    version = provisioning.electron_version or ELECTRON_VERSION
    app_name = settings.ion.app_name

    chain = fallback_archive_retriever(
        retriever,
        file_archive_retriever(provisioning.archive_path) if provisioning.archive_path else None,
        url_archive_retriever(provisioning.archive_url, client=client) if provisioning.archive_url else None,
        url_archive_retriever(electron_download_url(version, platform), client=client),
    )
    finalizer = ElectronFinalizer(
        app_name=app_name,
        bundle_id=provisioning.bundle_id,
        icon_source=Path(provisioning.icon_path) if provisioning.icon_path else None,
        platform=platform,
    )
    arguments: Tuple[str, ...] = ()
    if settings.runtime.script:
        arguments = (f"{{root}}/{settings.runtime.script}",)

    return RuntimeBundle(
        name=ELECTRON_NAME,
        version=version,
        directory=ELECTRON_DIRECTORY,
        retriever=chain,
        executable=electron_executable(app_name, platform),
        finalizer=finalizer,
        arguments=arguments,
    )
