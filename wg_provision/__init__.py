"""wg-provision - WireGuard peer provisioning"""

__version__ = "0.1.0"

from .exceptions import (
    ProvisioningError,
    PoolExhausted,
    InvalidConfig,
    InvalidPeerName,
    DuplicatePeerName,
    MissingPrerequisite,
    ServiceReloadFailure,
)
from .models import NetworkPool, KeyPair, PeerRecord, Stage
from .ipam import AddressAllocator, allocate
from .keygen import KeyProvider, NaClKeyProvider, WgToolKeyProvider
from .parser import ConfigIngester, parse_config, sanitize_identifier
from .templates import render_client_config
from .registry import PeerRegistry, upsert
from .workflow import ProvisioningWorkflow

__all__ = [
    'ProvisioningError',
    'PoolExhausted',
    'InvalidConfig',
    'InvalidPeerName',
    'DuplicatePeerName',
    'MissingPrerequisite',
    'ServiceReloadFailure',
    'NetworkPool',
    'KeyPair',
    'PeerRecord',
    'Stage',
    'AddressAllocator',
    'allocate',
    'KeyProvider',
    'NaClKeyProvider',
    'WgToolKeyProvider',
    'ConfigIngester',
    'parse_config',
    'sanitize_identifier',
    'render_client_config',
    'PeerRegistry',
    'upsert',
    'ProvisioningWorkflow',
]
