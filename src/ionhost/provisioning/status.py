from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

STATUS_FILE_NAME = "ion_provisioning.yaml"


class DeploymentStatus(BaseModel):
    """Version and fingerprint recorded beside a deployed tree."""

    version: str = ""
    fingerprint: int = Field(default=0, ge=0, lt=2**64)


def status_path(root_dir: Path) -> Path:
    """Return the status side-car path for a deployment target."""
    return Path(root_dir) / STATUS_FILE_NAME


def load_status(root_dir: Path) -> DeploymentStatus:
    """Load the status side-car; a missing or corrupt file reads as empty."""
    status_file = status_path(root_dir)
    try:
        payload = yaml.safe_load(status_file.read_text(encoding="utf-8"))
        return DeploymentStatus.model_validate(payload or {})
    except (OSError, UnicodeDecodeError, yaml.YAMLError, ValidationError):
        return DeploymentStatus()


def save_status(root_dir: Path, status: DeploymentStatus) -> Path:
    """Persist the status side-car for a deployment target."""
    status_file = status_path(root_dir)
    status_file.parent.mkdir(parents=True, exist_ok=True)
    status_file.write_text(
        yaml.safe_dump(status.model_dump(), sort_keys=True),
        encoding="utf-8",
    )
    return status_file
