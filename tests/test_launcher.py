import sys
import threading
from pathlib import Path

import pytest

from ionhost.runtime.launcher import ProcessLauncher
from ionhost.utils.diagnostics import LaunchError


def _script(tmp_path: Path, body: str) -> Path:
    script = tmp_path / "child.py"
    script.write_text(body)
    return script


def test_command_appends_address(tmp_path: Path):
    launcher = ProcessLauncher("/opt/app/electron", ["main.js"])

    assert launcher.command("127.0.0.1:4000") == ["/opt/app/electron", "main.js", "127.0.0.1:4000"]
    assert launcher.name == "electron"


def test_launch_forwards_output_and_reports_exit(tmp_path: Path, caplog):
    script = _script(
        tmp_path,
        "import sys\n"
        "print('address=' + sys.argv[-1], flush=True)\n"
        "print('problem', file=sys.stderr, flush=True)\n"
        "sys.exit(3)\n",
    )
    exited = threading.Event()
    codes = []

    def on_exit(code):
        codes.append(code)
        exited.set()

    launcher = ProcessLauncher(sys.executable, [str(script)], name="child")
    with caplog.at_level("INFO"):
        launcher.launch("127.0.0.1:1234", on_exit)
        assert exited.wait(10)

    assert codes == [3]
    assert "child stdout: address=127.0.0.1:1234" in caplog.text
    errors = [r.getMessage() for r in caplog.records if r.levelname == "ERROR"]
    assert "child stderr: problem" in errors
    assert "child exited with code 3" in errors
    assert launcher.running is False


def test_launch_passes_cwd_and_env(tmp_path: Path, caplog):
    script = _script(
        tmp_path,
        "import os\n"
        "print(os.getcwd(), os.environ['ION_CHILD_FLAG'], flush=True)\n",
    )
    workdir = tmp_path / "work"
    workdir.mkdir()
    exited = threading.Event()

    launcher = ProcessLauncher(
        sys.executable, [str(script)], name="child", cwd=workdir, env={"ION_CHILD_FLAG": "on"}
    )
    with caplog.at_level("INFO"):
        launcher.launch("127.0.0.1:1", lambda code: exited.set())
        assert exited.wait(10)

    assert f"child stdout: {workdir.resolve()} on" in caplog.text


def test_terminate_stops_running_child(tmp_path: Path):
    script = _script(tmp_path, "import time\ntime.sleep(60)\n")
    exited = threading.Event()
    launcher = ProcessLauncher(sys.executable, [str(script)])
    launcher.launch("127.0.0.1:1", lambda code: exited.set())
    assert launcher.running is True

    launcher.terminate()

    assert exited.wait(10)
    assert launcher.running is False


def test_launch_missing_executable_raises(tmp_path: Path):
    launcher = ProcessLauncher(tmp_path / "does-not-exist")

    with pytest.raises(LaunchError):
        launcher.launch("127.0.0.1:1", lambda code: None)
