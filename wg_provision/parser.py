"""Section parser for WireGuard configs and ingestion of pasted client configs"""

import logging
import re
from typing import List, Optional

from .exceptions import InvalidConfig
from .keygen import validate_key
from .models import ConfigDocument, ConfigSection, IngestedConfig


logger = logging.getLogger(__name__)

DEFAULT_IDENTIFIER = "wg0"

SECTION_HEADER = re.compile(r'^\[(?P<name>[^\]]+)\]\s*(?:#.*)?$')
DISALLOWED_IDENTIFIER_CHARS = re.compile(r'[^A-Za-z0-9_-]')


def parse_config(text: str) -> ConfigDocument:
    """
    Parse WireGuard config text into ordered sections

    Every line is a section header, a 'Key = Value' entry, a '#' comment or
    blank. Entries outside any section and lines that fit none of these are
    skipped rather than rejected.

    Args:
        text: Config file contents

    Returns:
        ConfigDocument with sections in file order
    """
    document = ConfigDocument()
    current: Optional[ConfigSection] = None
    pending_comments: List[str] = []

    for line in (text or '').splitlines():
        stripped = line.strip()

        if not stripped:
            # A blank line detaches the comments above it from the next header
            if current is None and pending_comments:
                document.preamble.extend(pending_comments)
            pending_comments = []
            continue

        if stripped.startswith('#'):
            pending_comments.append(stripped.lstrip('#').strip())
            continue

        header = SECTION_HEADER.match(stripped)
        if header:
            if current is None:
                document.preamble.extend(pending_comments)
            current = ConfigSection(
                name=header.group('name').strip(),
                comments=pending_comments,
            )
            document.sections.append(current)
            pending_comments = []
            continue

        if current is None:
            logger.debug(f"Skipping line outside any section: {stripped[:40]}")
            continue

        if '=' not in stripped:
            logger.debug(f"Skipping malformed line in [{current.name}]: {stripped[:40]}")
            continue

        key, value = stripped.split('=', 1)
        current.entries.append((key.strip(), value.strip()))

    if current is None:
        document.preamble.extend(pending_comments)

    return document


def sanitize_identifier(candidate: Optional[str], default: str = DEFAULT_IDENTIFIER) -> str:
    """Strip everything outside [A-Za-z0-9_-]; fall back to the default if nothing is left"""
    cleaned = DISALLOWED_IDENTIFIER_CHARS.sub('', candidate or '')
    return cleaned or default


class ConfigIngester:
    """Validates pasted client configs and works out their interface name"""

    def __init__(self, default_identifier: str = DEFAULT_IDENTIFIER):
        self.default_identifier = default_identifier

    def parse(self, raw_text: str, name: Optional[str] = None) -> IngestedConfig:
        """
        Validate a foreign client config

        Args:
            raw_text: Config as pasted by the user
            name: Explicit interface name; takes precedence over the comment

        Returns:
            IngestedConfig with the sanitized name and parsed document

        Raises:
            InvalidConfig: empty text, no [Interface], or no PrivateKey
        """
        text = (raw_text or '').strip('\r\n')
        if not any(line.strip() for line in text.splitlines()):
            raise InvalidConfig("empty")

        document = parse_config(text)
        interface = document.interface

        if interface is None:
            raise InvalidConfig("missing interface section")

        if not interface.get('PrivateKey'):
            raise InvalidConfig("missing private key")

        if not validate_key(interface.get('PrivateKey')):
            logger.warning("PrivateKey does not look like a WireGuard key (44-character base64)")

        candidate = name if name else self.extract_name(interface)
        identifier = sanitize_identifier(candidate, self.default_identifier)

        logger.info(f"Ingested client config as '{identifier}' ({len(document.peers)} peer(s))")
        return IngestedConfig(name=identifier, document=document, text=text + '\n')

    def extract_name(self, interface: ConfigSection) -> Optional[str]:
        """First word of the comment block right above [Interface]"""
        for comment in interface.comments:
            words = comment.split()
            if words:
                return words[0]
        return None
