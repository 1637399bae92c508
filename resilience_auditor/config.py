import os
import sys
import logging
import dataclasses
from dataclasses import dataclass
from typing import Dict, Any, Optional, Mapping

import yaml

logger = logging.getLogger("resilience_auditor.config")

ENV_PREFIX = "MCX_AUDITOR_"

def get_app_data_dir(create: bool = False) -> str:
    """Returns platform-specific AppData path."""
    if sys.platform == 'win32':
        base = os.environ.get('LOCALAPPDATA', os.path.expanduser('~\\AppData\\Local'))
        path = os.path.join(base, 'MCX-Auditor')
    else:
        path = os.path.expanduser('~/.config/mcx-auditor')

    if create:
        os.makedirs(path, exist_ok=True)
    return path

def get_documents_dir() -> str:
    """Returns platform-specific Documents/Reports path."""
    if sys.platform == 'win32':
        base = os.path.join(os.environ.get('USERPROFILE', os.path.expanduser('~')), 'Documents')
        return os.path.join(base, 'MCX-Auditor', 'Reports')
    return os.path.expanduser('~/Documents/MCX-Auditor/Reports')

def default_config_path() -> str:
    return os.path.join(get_app_data_dir(), "config.yaml")

@dataclass
class Settings:
    sites_path: Optional[str] = None # None -> bundled catalog
    tests_path: Optional[str] = None
    demos_path: Optional[str] = None
    data_url: Optional[str] = None # remote sites catalog, wins over sites_path
    tick_interval: float = 1.0
    host: str = "127.0.0.1"
    port: int = 5000
    reports_dir: str = dataclasses.field(default_factory=get_documents_dir)
    seed: int = 0
    log_level: str = "INFO"
    request_timeout: float = 10.0

    @property
    def sites_source(self) -> Optional[str]:
        return self.data_url or self.sites_path

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

def _coerce(name: str, value: Any) -> Any:
    target = Settings.__dataclass_fields__[name].type
    if value is None:
        return None
    if target in (int, "int"):
        return int(value)
    if target in (float, "float"):
        return float(value)
    return str(value)

def load_settings(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Defaults, then the YAML file, then MCX_AUDITOR_* environment variables.
    An explicit `path` must exist; the default app-data config is optional.
    """
    values: Dict[str, Any] = {}
    fields = Settings.__dataclass_fields__

    cfg_path = path or default_config_path()
    if path or os.path.exists(cfg_path):
        try:
            with open(cfg_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to load config {cfg_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config {cfg_path} must be a mapping")
        for key, value in data.items():
            if key not in fields:
                logger.warning("Ignoring unknown config key '%s' in %s", key, cfg_path)
                continue
            values[key] = value
        logger.debug("Loaded config from %s", cfg_path)

    env = os.environ if env is None else env
    for name in fields:
        key = ENV_PREFIX + name.upper()
        if key in env:
            values[name] = env[key]

    try:
        coerced = {k: _coerce(k, v) for k, v in values.items()}
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration value: {e}") from e
    return Settings(**coerced)
