import logging
import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

ALLOWED_SECTIONS = {"ion", "provisioning", "runtime"}

logger = logging.getLogger(__name__)

def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)

def load_config(path: Path) -> Dict[str, Any]:
    """
    Load ionhost.yaml with environment variable interpolation.

    Keeps only the known sections: ion, provisioning, runtime.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text(encoding="utf-8")
        full_config = yaml.safe_load(interpolate_env_vars(content)) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Ignoring unreadable config %s: %s", path, exc)
        return {}

    if not isinstance(full_config, dict):
        logger.error("Ignoring config %s: top level must be a mapping", path)
        return {}

    return {k: v for k, v in full_config.items() if k in ALLOWED_SECTIONS}
