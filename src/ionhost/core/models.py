from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FrameworkSettings(BaseSettings):
    """
    Host-level settings (the 'ion' section in ionhost.yaml).
    """
    model_config = SettingsConfigDict(env_prefix='ION_', extra='ignore')

    env: str = "development"
    app_name: str = "Electron"
    log_level: str = "INFO"


class ProvisioningSettings(BaseModel):
    """
    Where and how the runtime bundle is deployed (the 'provisioning' section).
    """
    model_config = ConfigDict(extra='ignore')

    path: str = "support"
    bundle_id: Optional[str] = None
    archive_url: Optional[str] = None
    archive_path: Optional[str] = None
    icon_path: Optional[str] = None
    electron_version: Optional[str] = None


class RuntimeSettings(BaseModel):
    """
    Companion process settings (the 'runtime' section).
    """
    model_config = ConfigDict(extra='ignore')

    connect_timeout_seconds: float = Field(default=30.0, gt=0)
    script: Optional[str] = None


class IonSettings(BaseModel):
    """
    Complete host configuration, one attribute per ionhost.yaml section.
    """
    model_config = ConfigDict(extra='ignore')

    ion: FrameworkSettings = Field(default_factory=FrameworkSettings)
    provisioning: ProvisioningSettings = Field(default_factory=ProvisioningSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    @classmethod
    def from_config_dict(cls, config_dict: Optional[Dict[str, Any]] = None) -> "IonSettings":
        config_dict = config_dict or {}
        return cls(
            ion=FrameworkSettings(**(config_dict.get('ion') or {})),
            provisioning=ProvisioningSettings(**(config_dict.get('provisioning') or {})),
            runtime=RuntimeSettings(**(config_dict.get('runtime') or {})),
        )
