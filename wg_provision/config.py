"""Provisioning settings (config.yaml) and logging setup"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .exceptions import MissingPrerequisite
from .models import NetworkPool


DEFAULT_CONFIG_PATH = Path('/etc/wg-provision/config.yaml')


@dataclass
class Settings:
    """Provisioning settings with the defaults of a stock server install"""
    interface: str = "wg0"
    config_dir: Path = Path('/etc/wireguard')
    clients_dir: Path = Path('/etc/wireguard/clients')
    pool: NetworkPool = field(default_factory=NetworkPool)
    server_address: str = "10.0.0.1/24"
    listen_port: int = 51820
    endpoint_host: Optional[str] = None
    dns: List[str] = field(default_factory=lambda: ['1.1.1.1', '8.8.8.8'])
    allowed_ips: List[str] = field(default_factory=lambda: ['0.0.0.0/0'])
    persistent_keepalive: int = 25
    reload_timeout: float = 30.0
    key_backend: str = "nacl"
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @property
    def registry_path(self) -> Path:
        return self.config_dir / f"{self.interface}.conf"

    @property
    def server_private_key_path(self) -> Path:
        return self.config_dir / "server_private.key"

    @property
    def server_public_key_path(self) -> Path:
        return self.config_dir / "server_public.key"

    @classmethod
    def from_dict(cls, data: Dict) -> 'Settings':
        """
        Build settings from a loaded config.yaml

        Args:
            data: Parsed YAML mapping (missing keys keep their defaults)

        Returns:
            Settings instance
        """
        data = data or {}
        settings = cls()

        if 'interface' in data:
            settings.interface = str(data['interface'])
        if 'config_dir' in data:
            settings.config_dir = Path(data['config_dir']).expanduser()
            settings.clients_dir = settings.config_dir / 'clients'
        if 'clients_dir' in data:
            settings.clients_dir = Path(data['clients_dir']).expanduser()

        pool = data.get('pool') or {}
        if pool:
            settings.pool = NetworkPool(
                base_address=str(pool.get('base_address', settings.pool.base_address)),
                range_start=int(pool.get('range_start', settings.pool.range_start)),
                range_end=int(pool.get('range_end', settings.pool.range_end)),
            )

        server = data.get('server') or {}
        settings.server_address = server.get('address', settings.server_address)
        settings.listen_port = int(server.get('listen_port', settings.listen_port))
        settings.endpoint_host = server.get('endpoint_host', settings.endpoint_host)

        client = data.get('client') or {}
        if 'dns' in client:
            settings.dns = list(client['dns'] or [])
        if 'allowed_ips' in client:
            settings.allowed_ips = list(client['allowed_ips'] or [])
        settings.persistent_keepalive = int(
            client.get('persistent_keepalive', settings.persistent_keepalive)
        )

        settings.reload_timeout = float(
            (data.get('reload') or {}).get('timeout', settings.reload_timeout)
        )
        settings.key_backend = data.get('key_backend', settings.key_backend)

        log_config = data.get('logging') or {}
        settings.log_level = log_config.get('level', settings.log_level)
        if log_config.get('file'):
            settings.log_file = Path(log_config['file']).expanduser()

        return settings


def load_config(config_path: Optional[Path] = None) -> Settings:
    """
    Load settings from a YAML file

    A missing default config means built-in defaults; a missing file that was
    asked for explicitly is an error.
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return Settings()
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise MissingPrerequisite(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    return Settings.from_dict(data)


def setup_logging(settings: Settings, verbose: bool = False):
    """Setup logging"""
    log_level = 'DEBUG' if verbose else settings.log_level.upper()
    log_file = settings.log_file

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file) if log_file else logging.StreamHandler(),
        ]
    )
