"""Server-side peer registry: the server's wg0.conf with appended [Peer] blocks"""

import fcntl
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .exceptions import MissingPrerequisite
from .models import ConfigDocument, PeerRecord, ServerInterface
from .parser import parse_config
from .templates import PEER_COMMENT_DATE_FORMAT, render_peer_section


logger = logging.getLogger(__name__)

PEER_COMMENT = re.compile(r'^(?P<name>[A-Za-z0-9_-]+)(?=\s|$)(?:\s+\(added (?P<added>[^)]*)\))?')


def atomic_write(path: Path, text: str, mode: int = 0o600):
    """
    Replace a file in a single rename

    The text goes to a temporary file in the same directory, is synced, and
    is then renamed over the target, so readers see either the old or the new
    file and never a partial one.

    Args:
        path: File to replace
        text: New contents
        mode: Permissions of the new file
    """
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=str(directory), prefix=f".{path.name}.", suffix='.tmp')
    try:
        with os.fdopen(fd, 'w') as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    dir_fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def upsert(registry_text: str, record: PeerRecord) -> str:
    """
    Append a peer block to the registry text

    The existing text is kept byte for byte and is always a strict prefix of
    the result. Nothing is removed, so replacing a peer means calling
    remove_peer() first.

    Args:
        registry_text: Current server config
        record: Peer to register

    Returns:
        New server config text
    """
    registry_text = registry_text or ''

    if not registry_text or registry_text.endswith('\n\n'):
        separator = ''
    elif registry_text.endswith('\n'):
        separator = '\n'
    else:
        separator = '\n\n'

    return registry_text + separator + render_peer_section(record)


def _comment_name(comment: str) -> Optional[str]:
    match = PEER_COMMENT.match(comment)
    return match.group('name') if match else None


def remove_peer(registry_text: str, name: str) -> str:
    """Remove every [Peer] block whose identifying comment names this peer"""
    lines = registry_text.splitlines(keepends=True)

    # (block start incl. comments above the header, header index)
    starts = []
    for index, line in enumerate(lines):
        if line.strip().startswith('['):
            start = index
            while start > 0 and lines[start - 1].strip().startswith('#'):
                start -= 1
            starts.append((start, index))

    drop = set()
    for position, (start, header) in enumerate(starts):
        if lines[header].strip().split('#', 1)[0].strip() != '[Peer]':
            continue
        comments = [lines[i].strip().lstrip('#').strip() for i in range(start, header)]
        if not comments or _comment_name(comments[0]) != name:
            continue
        end = starts[position + 1][0] if position + 1 < len(starts) else len(lines)
        drop.update(range(start, end))

    if drop:
        logger.info(f"Removed existing [Peer] block(s) for '{name}'")

    return ''.join(line for index, line in enumerate(lines) if index not in drop)


def parse_peers(registry_text: str) -> List[PeerRecord]:
    """Peers that carry an identifying comment, in file order"""
    records = []

    for section in parse_config(registry_text).peers:
        name = _comment_name(section.comments[0]) if section.comments else None
        if not name:
            logger.debug("Skipping [Peer] without an identifying comment")
            continue

        match = PEER_COMMENT.match(section.comments[0])
        created_at = None
        if match.group('added'):
            try:
                created_at = datetime.strptime(match.group('added'), PEER_COMMENT_DATE_FORMAT)
            except ValueError:
                created_at = None

        allowed_ips = section.get('AllowedIPs') or ''
        address = allowed_ips.split(',')[0].strip().split('/')[0]

        records.append(PeerRecord(
            name=name,
            public_key=section.get('PublicKey') or '',
            address=address,
            created_at=created_at or datetime.fromtimestamp(0),
        ))

    return records


def peer_names(registry_text: str) -> List[str]:
    return [record.name for record in parse_peers(registry_text)]


class RegistryTransaction:
    """Registry text read under the lock, to be replaced and committed"""

    def __init__(self, registry: 'PeerRegistry', text: str):
        self.registry = registry
        self.original = text
        self.text = text

    @property
    def changed(self) -> bool:
        return self.text != self.original

    def commit(self):
        if self.changed:
            self.registry.commit(self.text)
            self.original = self.text


class PeerRegistry:
    """The server config file, read and replaced as a whole"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + '.lock')

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> str:
        if not self.path.exists():
            raise MissingPrerequisite(
                f"Server config not found: {self.path}",
                remediation=["Initialize the server first: wg-provision init-server"],
            )
        return self.path.read_text()

    def load(self) -> ConfigDocument:
        return parse_config(self.read())

    def server_interface(self, text: Optional[str] = None) -> ServerInterface:
        """
        The server's own [Interface] parameters

        Raises:
            MissingPrerequisite: no config, no [Interface], or no PrivateKey
        """
        document = parse_config(text if text is not None else self.read())
        interface = document.interface

        if interface is None or not interface.get('PrivateKey'):
            raise MissingPrerequisite(
                f"Server config {self.path} has no [Interface] PrivateKey",
                remediation=["Initialize the server first: wg-provision init-server"],
            )

        listen_port = interface.get('ListenPort')
        return ServerInterface(
            address=interface.get('Address') or '',
            listen_port=int(listen_port) if listen_port and listen_port.isdigit() else 0,
            private_key=interface.get('PrivateKey'),
            post_up=interface.get_all('PostUp'),
            post_down=interface.get_all('PostDown'),
        )

    def peers(self) -> List[PeerRecord]:
        return parse_peers(self.read())

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Exclusive lock across a read-modify-write of the registry"""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, 'a') as lock_file:
            logger.debug(f"Waiting for registry lock {self.lock_path}")
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def commit(self, text: str):
        """Atomically replace the registry file (owner-only, 600)"""
        atomic_write(self.path, text, mode=0o600)
        logger.info(f"Saved server config to {self.path}")

    @contextmanager
    def transaction(self) -> Iterator[RegistryTransaction]:
        """Lock, read, and commit the new text on a clean exit"""
        with self.lock():
            txn = RegistryTransaction(self, self.read())
            yield txn
            txn.commit()
