"""
System collaborators: service reload, firewall and service manager

Thin wrappers around systemctl, wg-quick, ufw and ip. The workflow only sees
the small interfaces below, so tests swap in fakes.
"""

import logging
import subprocess
from typing import List

from .exceptions import ServiceReloadFailure, SystemCommandError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def run_command(cmd: List[str], timeout: float = DEFAULT_TIMEOUT) -> subprocess.CompletedProcess:
    """
    Run a command and raise SystemCommandError on any failure

    Args:
        cmd: Command and arguments
        timeout: Seconds before the command is abandoned

    Returns:
        CompletedProcess with captured text output
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise SystemCommandError(f"Command not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        raise SystemCommandError(f"'{' '.join(cmd)}' timed out after {timeout:g}s")
    except OSError as e:
        raise SystemCommandError(f"Cannot run '{' '.join(cmd)}': {e}")

    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
        raise SystemCommandError(f"'{' '.join(cmd)}' failed: {detail}")

    return result


class ServiceReloader:
    """Applies a changed config to a running WireGuard interface"""

    def reload(self, interface: str):
        raise NotImplementedError

    def bring_up(self, interface: str):
        raise NotImplementedError


class SystemdReloader(ServiceReloader):
    """Reload through the wg-quick@<interface> systemd unit"""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def _run(self, interface: str, cmd: List[str]):
        try:
            run_command(cmd, timeout=self.timeout)
        except SystemCommandError as e:
            logger.error(f"Failed to apply WireGuard config for {interface}: {e}")
            raise ServiceReloadFailure(interface, e.message)

    def reload(self, interface: str):
        """Restart wg-quick@<interface> so the new peer is active"""
        self._run(interface, ['systemctl', 'restart', f'wg-quick@{interface}'])
        logger.info(f"Restarted WireGuard interface {interface}")

    def bring_up(self, interface: str):
        """Bring a client interface up with wg-quick"""
        self._run(interface, ['wg-quick', 'up', interface])
        logger.info(f"Brought up WireGuard interface {interface}")


class Firewall:
    def allow_udp(self, port: int):
        raise NotImplementedError


class UfwFirewall(Firewall):
    """Open the WireGuard port with ufw"""

    def allow_udp(self, port: int):
        status = run_command(['ufw', 'status']).stdout
        if f"{port}/udp" in status:
            logger.warning(f"Port {port}/udp already open in ufw")
            return

        run_command(['ufw', 'allow', f'{port}/udp', 'comment', 'WireGuard'])
        logger.info(f"Opened {port}/udp in ufw")

        if 'Status: active' not in status:
            logger.warning("ufw is not active; enable it with: ufw --force enable")


class ServiceManager:
    def enable(self, interface: str):
        raise NotImplementedError


class SystemdServiceManager(ServiceManager):
    """Enable and start wg-quick@<interface> at boot"""

    def enable(self, interface: str):
        run_command(['systemctl', 'enable', '--now', f'wg-quick@{interface}'])
        logger.info(f"Enabled and started wg-quick@{interface}")


def detect_wan_interface() -> str:
    """Interface of the default route, as reported by 'ip route show default'"""
    output = run_command(['ip', 'route', 'show', 'default'], timeout=10).stdout
    for line in output.splitlines():
        parts = line.split()
        if 'dev' in parts and parts.index('dev') + 1 < len(parts):
            return parts[parts.index('dev') + 1]

    raise SystemCommandError("Cannot detect the default route interface")
