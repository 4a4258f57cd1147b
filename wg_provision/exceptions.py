"""Error taxonomy for peer provisioning"""

from typing import List, Optional


class ProvisioningError(Exception):
    """Base class for every provisioning failure.

    ``stage`` is the workflow stage the failure happened in (set by the
    workflow when it propagates the error), ``remediation`` lists the steps an
    operator can take to recover.
    """

    def __init__(self, message: str, stage=None, remediation: Optional[List[str]] = None):
        self.message = message
        self.stage = stage
        self.remediation = remediation or []
        super().__init__(message)


class PoolExhausted(ProvisioningError):
    """No free address left in the configured pool"""

    def __init__(self, base_address: str, range_start: int, range_end: int):
        self.base_address = base_address
        self.range_start = range_start
        self.range_end = range_end
        super().__init__(
            f"No free address in {base_address}.{range_start}-{range_end}",
            remediation=[
                "Remove unused [Peer] sections from the server config",
                "Or widen the pool range in the provisioning config",
            ],
        )


class InvalidConfig(ProvisioningError):
    """Foreign configuration text failed validation"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid configuration: {reason}")


class InvalidPeerName(ProvisioningError):
    """Peer name is empty once sanitized"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid peer name {name!r}: use letters, digits, '-' or '_'"
        )


class DuplicatePeerName(ProvisioningError):
    """A peer (or client config) with this name already exists"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Peer '{name}' already exists",
            remediation=["Re-run with --yes to replace the existing entry"],
        )


class MissingPrerequisite(ProvisioningError):
    """The server side is not configured yet"""
    pass


class KeyGenerationError(ProvisioningError):
    """Key generation or derivation failed"""
    pass


class SystemCommandError(ProvisioningError):
    """An external system command (firewall, service manager) failed"""
    pass


class ServiceReloadFailure(ProvisioningError):
    """The tunnel service could not be reloaded or brought up"""

    def __init__(self, interface: str, detail: str):
        self.interface = interface
        self.detail = detail
        super().__init__(
            f"Failed to reload WireGuard interface {interface}: {detail}",
            remediation=[
                f"Check the config: sudo wg-quick strip {interface}",
                f"Retry the reload: sudo systemctl restart wg-quick@{interface}",
                f"Inspect the logs: sudo journalctl -u wg-quick@{interface}",
            ],
        )
