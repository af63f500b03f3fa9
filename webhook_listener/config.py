"""
Configuration - JSON settings stored under ~/.webhook-listener
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional

from .api import DEFAULT_API_URL
from .relay import DEFAULT_FORWARD_TIMEOUT, DEFAULT_MAX_BODY_SIZE

CONFIG_DIR = Path.home() / '.webhook-listener'

DEFAULT_CONFIG: Dict[str, Any] = {
    'api_url': DEFAULT_API_URL,
    'token': None,
    'team_id': None,
    'forward_timeout': DEFAULT_FORWARD_TIMEOUT,
    'max_body_size': DEFAULT_MAX_BODY_SIZE,
}


class Settings:
    """Settings file plus the directories derived from it."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir or CONFIG_DIR).expanduser()
        self.config_file = self.config_dir / 'config.json'
        self.log_dir = self.config_dir / 'logs'
        self.ensure_config_dir()
        self.config = self.load_config()

    def ensure_config_dir(self):
        """Ensure configuration directories exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(exist_ok=True)

        if not self.config_file.exists():
            self.save_json(self.config_file, DEFAULT_CONFIG)

    def load_config(self) -> Dict[str, Any]:
        """Load configuration, filling in defaults for missing keys."""
        config = dict(DEFAULT_CONFIG)
        config.update(self.load_json(self.config_file))
        return config

    def save_config(self):
        """Persist configuration."""
        self.save_json(self.config_file, self.config)

    def get(self, key: str, default: Any = None) -> Any:
        value = self.config.get(key)
        return default if value is None else value

    @property
    def tunnel_log_file(self) -> Path:
        return self.log_dir / 'localtunnel.log'

    @staticmethod
    def load_json(filepath: Path) -> Dict:
        """Load a JSON file."""
        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, FileNotFoundError):
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def save_json(filepath: Path, data: Dict):
        """Write a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)
