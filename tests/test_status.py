from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from ionhost.provisioning.status import (
    STATUS_FILE_NAME,
    DeploymentStatus,
    load_status,
    save_status,
    status_path,
)


def test_missing_status_reads_as_empty(tmp_path: Path):
    status = load_status(tmp_path / "nowhere")

    assert status.version == ""
    assert status.fingerprint == 0


def test_corrupt_status_reads_as_empty(tmp_path: Path):
    (tmp_path / STATUS_FILE_NAME).write_text("version: [unclosed\n")

    assert load_status(tmp_path) == DeploymentStatus()


def test_status_with_invalid_fingerprint_reads_as_empty(tmp_path: Path):
    (tmp_path / STATUS_FILE_NAME).write_text("version: '1'\nfingerprint: -4\n")

    assert load_status(tmp_path) == DeploymentStatus()


def test_save_status_writes_yaml_side_car(tmp_path: Path):
    path = save_status(tmp_path / "electron", DeploymentStatus(version="3.0.2", fingerprint=2**64 - 1))

    assert path == status_path(tmp_path / "electron")
    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert payload == {"version": "3.0.2", "fingerprint": 2**64 - 1}
    assert load_status(tmp_path / "electron") == DeploymentStatus(version="3.0.2", fingerprint=2**64 - 1)


def test_fingerprint_must_fit_in_64_bits():
    with pytest.raises(ValidationError):
        DeploymentStatus(version="1", fingerprint=2**64)
