"""Address allocation from the VPN pool"""

import logging
import re
from typing import Pattern, Set

from .exceptions import PoolExhausted
from .models import NetworkPool


logger = logging.getLogger(__name__)


def _address_pattern(pool: NetworkPool) -> Pattern:
    # "10.0.0.2" but not "110.0.0.2", "10.0.0.25" read as .2, or "10.0.0.2.1"
    return re.compile(
        r'(?<![\d.])' + re.escape(pool.base_address) + r'\.(\d{1,3})(?![\d]|\.\d)'
    )


def used_hosts(pool: NetworkPool, registry_text: str) -> Set[int]:
    """
    Host numbers of every pool address mentioned in the registry text

    Anything that is not an address in the pool prefix is ignored, so partial
    or malformed text never breaks the scan.
    """
    used = set()
    for match in _address_pattern(pool).finditer(registry_text or ''):
        host = int(match.group(1))
        if host <= 255:
            used.add(host)
    return used


def allocate(pool: NetworkPool, registry_text: str) -> str:
    """
    Lowest free address in the pool

    Args:
        pool: Address pool to allocate from
        registry_text: Current server config text

    Returns:
        Address such as "10.0.0.2" (no prefix length)

    Raises:
        PoolExhausted: every host in range is already used
    """
    used = used_hosts(pool, registry_text)

    for host in range(pool.range_start, pool.range_end + 1):
        if host not in used:
            address = pool.address(host)
            logger.debug(f"Allocated {address} ({len(used)} addresses in use)")
            return address

    raise PoolExhausted(pool.base_address, pool.range_start, pool.range_end)


class AddressAllocator:
    """Allocator bound to one pool"""

    def __init__(self, pool: NetworkPool):
        self.pool = pool

    def allocate(self, registry_text: str) -> str:
        return allocate(self.pool, registry_text)

    def free_count(self, registry_text: str) -> int:
        used = used_hosts(self.pool, registry_text)
        return sum(
            1 for host in range(self.pool.range_start, self.pool.range_end + 1)
            if host not in used
        )
