"""
WireGuard Key Operations

Public keys are DERIVED from private keys, so a keypair is always produced
as a whole and never patched one half at a time.
"""

import base64
import binascii
import logging
import os
import re
import subprocess
from pathlib import Path

from nacl.public import PrivateKey

from .exceptions import KeyGenerationError
from .models import KeyPair


logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r'^[A-Za-z0-9+/]{42}[AEIMQUYcgkosw048]=$')


class KeyProvider:
    """Produces WireGuard keypairs and derives public keys"""

    def generate(self) -> KeyPair:
        raise NotImplementedError

    def derive_public(self, private_key: str) -> str:
        raise NotImplementedError


class NaClKeyProvider(KeyProvider):
    """Curve25519 keys via PyNaCl (same curve as WireGuard)"""

    def generate(self) -> KeyPair:
        private = PrivateKey.generate()
        private_key = base64.b64encode(bytes(private)).decode('ascii')
        public_key = base64.b64encode(bytes(private.public_key)).decode('ascii')

        logger.info("Generated WireGuard keypair")
        return KeyPair(private_key=private_key, public_key=public_key)

    def derive_public(self, private_key: str) -> str:
        """
        Derive WireGuard public key from private key.

        Args:
            private_key: Base64-encoded private key

        Returns:
            Base64-encoded public key
        """
        try:
            private_bytes = base64.b64decode(private_key.strip(), validate=True)
            private = PrivateKey(private_bytes)
        except (binascii.Error, ValueError, TypeError) as e:
            raise KeyGenerationError(f"Invalid WireGuard private key: {e}")

        return base64.b64encode(bytes(private.public_key)).decode('ascii')


class WgToolKeyProvider(KeyProvider):
    """Keys from the wg(8) binary ('wg genkey' / 'wg pubkey')"""

    def __init__(self, wg_binary: str = 'wg'):
        self.wg_binary = wg_binary

    def _run(self, args, stdin: str = None) -> str:
        try:
            result = subprocess.run(
                [self.wg_binary, *args],
                input=stdin,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"'wg {' '.join(args)}' failed: {e.stderr.strip()}")
            raise KeyGenerationError(f"WireGuard key operation failed: wg {' '.join(args)}")
        except FileNotFoundError:
            logger.error("WireGuard tools not found (wg command)")
            raise KeyGenerationError(
                "WireGuard tools not installed. Install with: sudo apt install wireguard-tools"
            )
        return result.stdout.strip()

    def generate(self) -> KeyPair:
        private_key = self._run(['genkey'])
        public_key = self.derive_public(private_key)

        logger.info("Generated WireGuard keypair with wg genkey")
        return KeyPair(private_key=private_key, public_key=public_key)

    def derive_public(self, private_key: str) -> str:
        return self._run(['pubkey'], stdin=private_key.strip() + '\n')


def get_key_provider(backend: str) -> KeyProvider:
    """Key provider for a config.yaml 'key_backend' value"""
    if backend == 'nacl':
        return NaClKeyProvider()
    if backend == 'wg':
        return WgToolKeyProvider()
    raise ValueError(f"Unknown key backend '{backend}' (expected 'nacl' or 'wg')")


def validate_key(key: str) -> bool:
    """
    Validate a WireGuard key format

    WireGuard keys are base64-encoded 32-byte values (44 characters including padding)
    """
    return bool(KEY_PATTERN.match(key or ''))


def _write_key(path: Path, key: str, mode: int):
    path.parent.mkdir(parents=True, exist_ok=True)
    # O_CREAT applies the mode at creation, so the file is never readable by others
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    try:
        os.write(fd, (key.strip() + '\n').encode('ascii'))
    finally:
        os.close(fd)
    # Existing files keep their old mode through os.open
    os.chmod(path, mode)


def write_private_key(path: Path, private_key: str):
    """Store a private key readable and writable by the owner only (600)"""
    _write_key(path, private_key, 0o600)
    logger.debug(f"Wrote private key to {path}")


def write_public_key(path: Path, public_key: str):
    """Store a public key (644)"""
    _write_key(path, public_key, 0o644)


def read_key(path: Path) -> str:
    return path.read_text().strip()
