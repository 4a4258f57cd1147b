"""
System Command Tests

Run with: python -m pytest tests/test_system.py -v
"""

import subprocess

import pytest

from wg_provision.exceptions import ServiceReloadFailure, SystemCommandError
from wg_provision.system import (
    SystemdReloader,
    SystemdServiceManager,
    UfwFirewall,
    detect_wan_interface,
    run_command,
)


@pytest.fixture
def commands(monkeypatch):
    """Record subprocess.run calls and answer from a table of canned results"""
    calls = []
    results = {}

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        returncode, stdout, stderr = results.get(tuple(cmd), (0, '', ''))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    monkeypatch.setattr(subprocess, 'run', fake_run)
    return calls, results


class TestRunCommand:
    def test_success(self, commands):
        calls, results = commands
        results[('wg', 'show')] = (0, 'interface: wg0\n', '')

        assert run_command(['wg', 'show']).stdout == 'interface: wg0\n'

    def test_non_zero_exit(self, commands):
        calls, results = commands
        results[('false',)] = (1, '', 'boom')

        with pytest.raises(SystemCommandError, match='boom'):
            run_command(['false'])

    def test_missing_binary(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(subprocess, 'run', fake_run)
        with pytest.raises(SystemCommandError, match='not found'):
            run_command(['ufw', 'status'])

    def test_timeout(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs['timeout'])

        monkeypatch.setattr(subprocess, 'run', fake_run)
        with pytest.raises(SystemCommandError, match='timed out'):
            run_command(['systemctl', 'restart', 'wg-quick@wg0'], timeout=2)


    def test_permission_denied(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise PermissionError(13, 'Permission denied', cmd[0])

        monkeypatch.setattr(subprocess, 'run', fake_run)
        with pytest.raises(SystemCommandError, match='Permission denied'):
            run_command(['systemctl', 'restart', 'wg-quick@wg0'])

    def test_reloader_reports_permission_denied(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise PermissionError(13, 'Permission denied', cmd[0])

        monkeypatch.setattr(subprocess, 'run', fake_run)
        with pytest.raises(ServiceReloadFailure):
            SystemdReloader().reload('wg0')


class TestSystemdReloader:
    def test_reload_restarts_unit(self, commands):
        calls, _ = commands
        SystemdReloader().reload('wg0')
        assert calls == [['systemctl', 'restart', 'wg-quick@wg0']]

    def test_bring_up(self, commands):
        calls, _ = commands
        SystemdReloader().bring_up('office')
        assert calls == [['wg-quick', 'up', 'office']]

    def test_failure_becomes_reload_failure(self, commands):
        _, results = commands
        results[('systemctl', 'restart', 'wg-quick@wg0')] = (1, '', 'Job for wg-quick@wg0.service failed')

        with pytest.raises(ServiceReloadFailure) as excinfo:
            SystemdReloader().reload('wg0')

        assert excinfo.value.interface == 'wg0'
        assert 'wg-quick@wg0.service failed' in excinfo.value.detail
        assert any('journalctl' in step for step in excinfo.value.remediation)


class TestFirewallAndServices:
    def test_opens_port(self, commands):
        calls, results = commands
        results[('ufw', 'status')] = (0, 'Status: active\n', '')

        UfwFirewall().allow_udp(51820)

        assert calls[-1] == ['ufw', 'allow', '51820/udp', 'comment', 'WireGuard']

    def test_port_already_open(self, commands):
        calls, results = commands
        results[('ufw', 'status')] = (0, 'Status: active\n51820/udp ALLOW Anywhere\n', '')

        UfwFirewall().allow_udp(51820)

        assert calls == [['ufw', 'status']]

    def test_enable_service(self, commands):
        calls, _ = commands
        SystemdServiceManager().enable('wg0')
        assert calls == [['systemctl', 'enable', '--now', 'wg-quick@wg0']]


class TestDetectWanInterface:
    def test_default_route(self, commands):
        _, results = commands
        results[('ip', 'route', 'show', 'default')] = (
            0, 'default via 192.168.1.1 dev eth0 proto dhcp metric 100\n', '')

        assert detect_wan_interface() == 'eth0'

    def test_no_default_route(self, commands):
        with pytest.raises(SystemCommandError):
            detect_wan_interface()
