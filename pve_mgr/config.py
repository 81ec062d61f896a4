#!/usr/bin/env python3
"""Configuration management for PVE Resource Manager."""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any


# Environment variable -> (section, key, converter)
ENV_OVERRIDES = {
    'PVE_HOST': ('pve', 'host', str),
    'PVE_USERNAME': ('pve', 'username', str),
    'PVE_PASSWORD': ('pve', 'password', str),
    'PVE_API_TOKEN_ID': ('pve', 'api_token_id', str),
    'PVE_API_TOKEN_SECRET': ('pve', 'api_token_secret', str),
    'PVE_VERIFY_SSL': ('pve', 'verify_ssl', lambda v: v.lower() in ('true', '1', 'yes')),
    'PVE_TIMEOUT': ('pve', 'timeout', float),
}


class Config:
    """Configuration handler for PVE Resource Manager."""

    DEFAULT_CONFIG = {
        'pve': {
            'host': '',
            'username': '',
            'password': '',
            'api_token_id': '',
            'api_token_secret': '',
            'verify_ssl': False,
            'timeout': 30.0
        },
        'output_format': 'pretty',
        'log_level': 'WARNING'
    }

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """Initialize configuration.

        Args:
            config_path: Path to config file. If None, searches default locations.
            environ: Environment mapping used for overrides. Defaults to os.environ.
        """
        self._config: Dict[str, Any] = self._deep_merge(self.DEFAULT_CONFIG, {})
        self._config_path = config_path
        self._loaded_config_file: Optional[Path] = None
        self._load_config()
        self._apply_env(os.environ if environ is None else environ)

    @staticmethod
    def _deep_merge(base: dict, override: dict) -> dict:
        result = {}
        for key, value in base.items():
            result[key] = Config._deep_merge(value, {}) if isinstance(value, dict) else value
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = Config._deep_merge(result[key], value)
            elif key in result and isinstance(result[key], dict) and value is None:
                # Empty section in YAML (e.g. all keys commented out)
                continue
            else:
                result[key] = value
        return result

    def _find_config_file(self) -> Optional[Path]:
        """Find config file in default locations."""
        search_paths = [
            Path.cwd() / 'config.yaml',
            Path.cwd() / 'config.yml',
            Path.home() / '.pve_mgr.yaml',
            Path('/etc/pve_mgr/config.yaml'),
        ]

        for path in search_paths:
            if path.exists():
                return path
        return None

    def _load_config(self) -> None:
        """Load configuration from file."""
        if self._config_path:
            config_file = Path(self._config_path)
            if not config_file.exists():
                raise FileNotFoundError(f"Config file not found: {self._config_path}")
        else:
            config_file = self._find_config_file()

        self._loaded_config_file = config_file

        if config_file:
            with open(config_file, 'r', encoding='utf-8') as f:
                file_config = yaml.safe_load(f) or {}
                self._config = self._deep_merge(self._config, file_config)

    def _apply_env(self, environ: Dict[str, str]) -> None:
        """Apply PVE_* environment variables on top of the file config."""
        for var, (section, key, convert) in ENV_OVERRIDES.items():
            value = environ.get(var)
            if value is None or value == '':
                continue
            try:
                converted = convert(value)
            except ValueError:
                raise ValueError(f"Invalid value for {var}: {value!r}")
            if not isinstance(self._config.get(section), dict):
                self._config[section] = {}
            self._config[section][key] = converted

    @property
    def _pve(self) -> Dict[str, Any]:
        section = self._config.get('pve')
        return section if isinstance(section, dict) else {}

    @property
    def config_file_path(self) -> str:
        """Get the path of the loaded config file."""
        if self._loaded_config_file:
            return str(self._loaded_config_file.absolute())
        return ''

    @property
    def host(self) -> str:
        """Get PVE API host, including protocol and port."""
        return (self._pve.get('host') or '').rstrip('/')

    @property
    def username(self) -> str:
        return self._pve.get('username') or ''

    @property
    def password(self) -> str:
        return self._pve.get('password') or ''

    @property
    def api_token_id(self) -> str:
        """Get API token id (user@realm!tokenname)."""
        return self._pve.get('api_token_id') or ''

    @property
    def api_token_secret(self) -> str:
        return self._pve.get('api_token_secret') or ''

    @property
    def verify_ssl(self) -> bool:
        return bool(self._pve.get('verify_ssl', False))

    @property
    def timeout(self) -> float:
        """Get per-request timeout in seconds."""
        return float(self._pve.get('timeout', 30.0))

    @property
    def output_format(self) -> str:
        """Get default output format (pretty or json)."""
        return self._config.get('output_format', 'pretty')

    @property
    def log_level(self) -> str:
        return str(self._config.get('log_level', 'WARNING')).upper()

    def validate(self) -> None:
        """Check that enough settings exist to talk to the API.

        Raises:
            ValueError: If the host or credentials are missing
        """
        if not self.host:
            raise ValueError("PVE host is required (pve.host or PVE_HOST)")
        if not self.host.startswith(('http://', 'https://')):
            raise ValueError("PVE host must include protocol (http:// or https://)")
        has_token = self.api_token_id and self.api_token_secret
        has_password = self.username and self.password
        if not has_token and not has_password:
            raise ValueError("Authentication required (username/password or API token)")

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value by key."""
        return self._config.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Return config as dictionary."""
        return self._deep_merge(self._config, {})


# Global config instance
_config: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None or config_path is not None:
        _config = Config(config_path)
    return _config
