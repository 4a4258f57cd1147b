"""Shared fixtures: temp config dirs, deterministic keys, fake reloaders"""

import base64
from datetime import datetime
from typing import List

import pytest

from wg_provision.config import Settings
from wg_provision.exceptions import ServiceReloadFailure, SystemCommandError
from wg_provision.keygen import KeyProvider, NaClKeyProvider
from wg_provision.models import KeyPair, ServerInterface
from wg_provision.prompts import ScriptedInputSource
from wg_provision.registry import PeerRegistry
from wg_provision.system import Firewall, ServiceManager, ServiceReloader
from wg_provision.templates import render_server_config
from wg_provision.workflow import ProvisioningWorkflow


SERVER_PRIVATE_KEY = base64.b64encode(bytes([200]) * 32).decode('ascii')

CLIENT_CONFIG = """# office
[Interface]
PrivateKey = cHJpdmF0ZQ==
Address = 10.8.0.2/32

[Peer]
PublicKey = c2VydmVy
Endpoint = office.example.com:51820
AllowedIPs = 10.8.0.0/24
"""


class FakeKeyProvider(KeyProvider):
    """Real Curve25519 derivation over predictable private keys"""

    def __init__(self):
        self.counter = 0
        self.nacl = NaClKeyProvider()

    def generate(self) -> KeyPair:
        self.counter += 1
        private_key = base64.b64encode(bytes([self.counter]) * 32).decode('ascii')
        return KeyPair(private_key=private_key, public_key=self.derive_public(private_key))

    def derive_public(self, private_key: str) -> str:
        return self.nacl.derive_public(private_key)


class FakeReloader(ServiceReloader):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.reloaded: List[str] = []
        self.brought_up: List[str] = []

    def reload(self, interface: str):
        if self.fail:
            raise ServiceReloadFailure(interface, "Job for wg-quick@wg0.service failed")
        self.reloaded.append(interface)

    def bring_up(self, interface: str):
        if self.fail:
            raise ServiceReloadFailure(interface, "wg-quick: interface already exists")
        self.brought_up.append(interface)


class FakeFirewall(Firewall):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.opened: List[int] = []

    def allow_udp(self, port: int):
        if self.fail:
            raise SystemCommandError("Command not found: ufw")
        self.opened.append(port)


class FakeServiceManager(ServiceManager):
    def __init__(self):
        self.enabled: List[str] = []

    def enable(self, interface: str):
        self.enabled.append(interface)


def make_workflow(settings, registry=None, reloader=None, input_source=None,
                  firewall=None, service_manager=None):
    return ProvisioningWorkflow(
        settings,
        key_provider=FakeKeyProvider(),
        reloader=reloader or FakeReloader(),
        input_source=input_source or ScriptedInputSource(),
        registry=registry or PeerRegistry(settings.registry_path),
        firewall=firewall or FakeFirewall(),
        service_manager=service_manager or FakeServiceManager(),
        clock=lambda: datetime(2024, 5, 1, 12, 30, 0),
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        config_dir=tmp_path / 'wireguard',
        clients_dir=tmp_path / 'wireguard' / 'clients',
        endpoint_host='vpn.example.com',
    )


@pytest.fixture
def server_text():
    server = ServerInterface(
        address='10.0.0.1/24',
        listen_port=51820,
        private_key=SERVER_PRIVATE_KEY,
    )
    return render_server_config(server)


@pytest.fixture
def registry(settings, server_text):
    registry = PeerRegistry(settings.registry_path)
    registry.commit(server_text)
    return registry


@pytest.fixture
def reloader():
    return FakeReloader()


@pytest.fixture
def workflow(settings, registry, reloader):
    return make_workflow(settings, registry, reloader=reloader)
