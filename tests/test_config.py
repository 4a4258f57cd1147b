"""
Settings Tests

Run with: python -m pytest tests/test_config.py -v
"""

from pathlib import Path

import pytest
import yaml

from wg_provision import config as config_module
from wg_provision.config import Settings, load_config
from wg_provision.exceptions import MissingPrerequisite
from wg_provision.models import NetworkPool


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.interface == 'wg0'
        assert settings.registry_path == Path('/etc/wireguard/wg0.conf')
        assert settings.pool == NetworkPool('10.0.0', 2, 254)
        assert settings.allowed_ips == ['0.0.0.0/0']
        assert settings.endpoint_host is None

    def test_from_dict(self):
        settings = Settings.from_dict({
            'interface': 'wg1',
            'config_dir': '/srv/wg',
            'pool': {'base_address': '10.9.0', 'range_start': 10},
            'server': {'endpoint_host': 'vpn.example.com', 'listen_port': 443},
            'client': {'dns': ['9.9.9.9'], 'allowed_ips': ['10.9.0.0/24'], 'persistent_keepalive': 0},
            'reload': {'timeout': 5},
            'key_backend': 'wg',
            'logging': {'level': 'DEBUG', 'file': '/tmp/wg-provision.log'},
        })

        assert settings.registry_path == Path('/srv/wg/wg1.conf')
        assert settings.clients_dir == Path('/srv/wg/clients')
        assert settings.pool == NetworkPool('10.9.0', 10, 254)
        assert settings.listen_port == 443
        assert settings.endpoint_host == 'vpn.example.com'
        assert settings.dns == ['9.9.9.9']
        assert settings.allowed_ips == ['10.9.0.0/24']
        assert settings.persistent_keepalive == 0
        assert settings.reload_timeout == 5.0
        assert settings.key_backend == 'wg'
        assert settings.log_file == Path('/tmp/wg-provision.log')

    def test_null_sections(self):
        settings = Settings.from_dict({'server': None, 'client': None, 'pool': None})
        assert settings.listen_port == 51820

    def test_empty_dns_list(self):
        assert Settings.from_dict({'client': {'dns': None}}).dns == []

    def test_invalid_pool(self):
        with pytest.raises(ValueError):
            Settings.from_dict({'pool': {'range_start': 300}})


class TestLoadConfig:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump({
            'config_dir': str(tmp_path / 'wireguard'),
            'server': {'endpoint_host': 'vpn.example.com'},
        }))

        settings = load_config(path)

        assert settings.config_dir == tmp_path / 'wireguard'
        assert settings.endpoint_host == 'vpn.example.com'

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('')
        assert load_config(path) == Settings()

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('- one\n- two\n')

        with pytest.raises(ValueError):
            load_config(path)

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(MissingPrerequisite):
            load_config(tmp_path / 'nope.yaml')

    def test_missing_default_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, 'DEFAULT_CONFIG_PATH', tmp_path / 'nope.yaml')
        assert load_config() == Settings()

    def test_example_config_loads(self):
        example = Path(__file__).parent.parent / 'config.example.yaml'
        settings = load_config(example)

        assert settings.interface == 'wg0'
        assert settings.endpoint_host
