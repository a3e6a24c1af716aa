from pathlib import Path

import httpx
import pytest

from ionhost.core.models import IonSettings
from ionhost.provisioning.electron import (
    ELECTRON_BUNDLE_ID,
    ELECTRON_DIRECTORY,
    ELECTRON_VERSION,
    ElectronFinalizer,
    electron_archive_name,
    electron_bundle,
    electron_download_url,
    electron_executable,
)
from ionhost.utils.diagnostics import FinalizerError, ProvisioningError, RetrieverChainError

HELPERS = ("Electron Helper EH", "Electron Helper NP", "Electron Helper")

PLIST = b"<dict><key>CFBundleName</key><string>Electron</string>" \
        b"<key>CFBundleIdentifier</key><string>com.github.electron.helper</string></dict>"


def _darwin_tree(root: Path) -> Path:
    contents = root / "Electron.app" / "Contents"
    (contents / "MacOS").mkdir(parents=True)
    (contents / "Resources").mkdir()
    (contents / "MacOS" / "Electron").write_text("binary")
    (contents / "Info.plist").write_bytes(PLIST)
    for helper in HELPERS:
        helper_contents = contents / "Frameworks" / f"{helper}.app" / "Contents"
        (helper_contents / "MacOS").mkdir(parents=True)
        (helper_contents / "MacOS" / helper).write_text("helper")
        (helper_contents / "Info.plist").write_bytes(PLIST)
    return root


def test_archive_name_and_download_url():
    assert electron_archive_name("3.0.2", "linux", "x86_64") == "electron-v3.0.2-linux-x64.zip"
    assert electron_archive_name("3.0.2", "darwin", "arm64") == "electron-v3.0.2-darwin-arm64.zip"
    assert electron_archive_name("3.0.2", "win32", "i686") == "electron-v3.0.2-win32-ia32.zip"
    assert electron_download_url("3.0.2", "linux", "amd64") == (
        "https://github.com/electron/electron/releases/download/v3.0.2/electron-v3.0.2-linux-x64.zip"
    )


def test_executable_layout_per_platform():
    assert electron_executable("Demo", "darwin") == "Demo.app/Contents/MacOS/Demo"
    assert electron_executable("Demo", "win32") == "Demo.exe"
    assert electron_executable("Demo", "linux") == "Demo"


def test_linux_finalizer_renames_executable(tmp_path: Path):
    (tmp_path / "electron").write_text("binary")

    ElectronFinalizer("Demo", platform="linux")(tmp_path)

    assert (tmp_path / "Demo").read_text() == "binary"
    assert not (tmp_path / "electron").exists()


def test_windows_finalizer_renames_executable(tmp_path: Path):
    (tmp_path / "electron.exe").write_text("binary")

    ElectronFinalizer("Demo", platform="win32")(tmp_path)

    assert (tmp_path / "Demo.exe").exists()


def test_finalizer_keeps_stock_name(tmp_path: Path):
    (tmp_path / "electron.exe").write_text("binary")

    ElectronFinalizer("electron", platform="win32")(tmp_path)

    assert (tmp_path / "electron.exe").exists()


def test_finalizer_fails_when_executable_is_missing(tmp_path: Path):
    with pytest.raises(FinalizerError):
        ElectronFinalizer("Demo", platform="linux")(tmp_path)


def test_darwin_finalizer_rebrands_bundle(tmp_path: Path):
    root = _darwin_tree(tmp_path / "electron")
    icon = tmp_path / "demo.icns"
    icon.write_bytes(b"icon-bytes")

    ElectronFinalizer("Demo", bundle_id="com.example.demo", icon_source=icon, platform="darwin")(root)

    contents = root / "Demo.app" / "Contents"
    assert not (root / "Electron.app").exists()
    assert (contents / "MacOS" / "Demo").read_text() == "binary"
    assert (contents / "Resources" / "electron.icns").read_bytes() == b"icon-bytes"

    plist = (contents / "Info.plist").read_bytes()
    assert b"<string>Demo</string>" in plist
    assert b"<string>com.example.demo.helper</string>" in plist

    for suffix in (" EH", " NP", ""):
        helper = contents / "Frameworks" / f"Demo Helper{suffix}.app" / "Contents"
        assert (helper / "MacOS" / f"Demo Helper{suffix}").read_text() == "helper"
        assert b"<string>Demo</string>" in (helper / "Info.plist").read_bytes()


def test_darwin_finalizer_default_bundle_id_is_unchanged(tmp_path: Path):
    root = _darwin_tree(tmp_path)

    ElectronFinalizer("Demo", platform="darwin")(root)

    plist = (root / "Demo.app" / "Contents" / "Info.plist").read_bytes()
    assert f"<string>{ELECTRON_BUNDLE_ID}.helper</string>".encode() in plist


def test_electron_bundle_defaults():
    bundle = electron_bundle(IonSettings(), platform="linux")

    assert bundle.version == ELECTRON_VERSION
    assert bundle.directory == ELECTRON_DIRECTORY
    assert bundle.executable == "Electron"
    assert bundle.arguments == ()


def test_electron_bundle_passes_script_argument(tmp_path: Path):
    settings = IonSettings.from_config_dict({"runtime": {"script": "app/main.js"}})

    bundle = electron_bundle(settings, platform="linux")

    assert bundle.launch_arguments(tmp_path) == [f"{tmp_path}/app/main.js"]


def test_electron_bundle_prefers_configured_archive(tmp_path: Path, zip_bytes):
    archive = tmp_path / "electron.zip"
    archive.write_bytes(zip_bytes({"electron": "binary"}))
    settings = IonSettings.from_config_dict(
        {"ion": {"app_name": "Demo"}, "provisioning": {"archive_path": str(archive)}}
    )

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise AssertionError("network should not be used")

    client = httpx.Client(transport=httpx.MockTransport(unreachable))
    bundle = electron_bundle(settings, client=client, platform="linux")
    result = bundle.provision(tmp_path / "support", seed="Demo")

    assert result.reused is False
    assert (tmp_path / "support" / "electron" / "Demo").read_text() == "binary"
    assert bundle.executable_path(tmp_path / "support").exists()


def test_electron_bundle_falls_back_to_download(tmp_path: Path, zip_bytes):
    settings = IonSettings.from_config_dict(
        {"provisioning": {"archive_path": str(tmp_path / "missing.zip"), "electron_version": "9.9.9"}}
    )
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, content=zip_bytes({"electron": "downloaded"}))

    client = httpx.Client(transport=httpx.MockTransport(handler))
    bundle = electron_bundle(settings, client=client, platform="linux")
    bundle.provision(tmp_path / "support")

    assert len(requested) == 1
    assert "/v9.9.9/electron-v9.9.9-linux-" in requested[0]
    assert (tmp_path / "support" / "electron" / "Electron").read_text() == "downloaded"


def test_electron_bundle_reports_every_failed_source(tmp_path: Path):
    settings = IonSettings.from_config_dict(
        {"provisioning": {"archive_url": "https://mirror.example.test/electron.zip"}}
    )
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))

    def caller_retriever() -> bytes:
        raise OSError("embedded archive missing")

    bundle = electron_bundle(settings, retriever=caller_retriever, client=client, platform="linux")

    with pytest.raises(ProvisioningError) as exc_info:
        bundle.provision(tmp_path)

    chain_error = exc_info.value.__cause__
    assert isinstance(chain_error, RetrieverChainError)
    assert len(chain_error.causes) == 3
