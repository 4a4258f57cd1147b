"""Data model for peers, pools and parsed WireGuard configs"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple


IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')


class Stage(Enum):
    """Add-peer workflow stages, in order"""
    NEW = "new"
    ADDRESS_ASSIGNED = "address_assigned"
    KEYS_GENERATED = "keys_generated"
    DOCUMENT_RENDERED = "document_rendered"
    REGISTERED = "registered"
    RELOAD_REQUESTED = "reload_requested"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class NetworkPool:
    """Assignable host addresses base_address.{range_start..range_end}"""
    base_address: str = "10.0.0"  # 3-octet IPv4 prefix
    range_start: int = 2
    range_end: int = 254

    def __post_init__(self):
        octets = self.base_address.split('.')
        if len(octets) != 3 or not all(o.isdigit() and int(o) <= 255 for o in octets):
            raise ValueError(f"Pool prefix must be three IPv4 octets, got {self.base_address!r}")
        if not 2 <= self.range_start <= self.range_end <= 254:
            raise ValueError(
                f"Invalid pool range {self.range_start}-{self.range_end} "
                "(need 2 <= start <= end <= 254)"
            )

    def address(self, host: int) -> str:
        return f"{self.base_address}.{host}"

    def contains(self, address: str) -> bool:
        prefix, _, host = address.split('/')[0].rpartition('.')
        return (
            prefix == self.base_address
            and host.isdigit()
            and self.range_start <= int(host) <= self.range_end
        )

    def __len__(self) -> int:
        return self.range_end - self.range_start + 1


@dataclass(frozen=True)
class KeyPair:
    """Private key and the public key derived from it (base64)"""
    private_key: str
    public_key: str

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key!r}, private_key=<redacted>)"


@dataclass(frozen=True)
class PeerRecord:
    """A peer as registered in the server config"""
    name: str
    public_key: str
    address: str  # e.g. "10.0.0.2", no prefix length
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not IDENTIFIER_PATTERN.match(self.name):
            raise ValueError(f"Peer name must be a sanitized identifier, got {self.name!r}")


@dataclass
class ServerInterface:
    """The server's own [Interface] parameters"""
    address: str  # e.g. "10.0.0.1/24"
    listen_port: int
    private_key: str
    post_up: List[str] = field(default_factory=list)
    post_down: List[str] = field(default_factory=list)


@dataclass
class ConfigSection:
    """One [Section] of a WireGuard config with its ordered entries"""
    name: str
    entries: List[Tuple[str, str]] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)  # comment lines directly above the header

    def get(self, key: str) -> Optional[str]:
        for entry_key, value in self.entries:
            if entry_key == key:
                return value
        return None

    def get_all(self, key: str) -> List[str]:
        return [value for entry_key, value in self.entries if entry_key == key]


@dataclass
class ConfigDocument:
    """Parsed WireGuard config: sections in file order"""
    sections: List[ConfigSection] = field(default_factory=list)
    preamble: List[str] = field(default_factory=list)

    @property
    def interface(self) -> Optional[ConfigSection]:
        for section in self.sections:
            if section.name == 'Interface':
                return section
        return None

    @property
    def peers(self) -> List[ConfigSection]:
        return [s for s in self.sections if s.name == 'Peer']


@dataclass
class IngestedConfig:
    """A validated foreign client config and the identifier it resolves to"""
    name: str
    document: ConfigDocument
    text: str


@dataclass
class ProvisionResult:
    """Outcome of an add-peer run"""
    record: PeerRecord
    client_config: str
    stage: Stage
    client_config_path: Optional[Path] = None
    reload_error: Optional[Exception] = None

    @property
    def reloaded(self) -> bool:
        return self.reload_error is None
