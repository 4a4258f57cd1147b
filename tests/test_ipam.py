"""
Address Allocation Tests

Run with: python -m pytest tests/test_ipam.py -v
"""

import pytest

from wg_provision.exceptions import PoolExhausted
from wg_provision.ipam import AddressAllocator, allocate, used_hosts
from wg_provision.models import NetworkPool


@pytest.fixture
def pool():
    return NetworkPool(base_address='10.0.0', range_start=2, range_end=254)


class TestAllocate:
    """Lowest-free-address allocation"""

    def test_empty_registry_gets_range_start(self, pool):
        assert allocate(pool, '') == '10.0.0.2'

    def test_skips_used_addresses(self, pool):
        text = "[Peer]\nAllowedIPs = 10.0.0.2/32\n\n[Peer]\nAllowedIPs = 10.0.0.3/32\n"
        assert allocate(pool, text) == '10.0.0.4'

    def test_fills_gaps_first(self, pool):
        text = "AllowedIPs = 10.0.0.2/32\nAllowedIPs = 10.0.0.4/32\n"
        assert allocate(pool, text) == '10.0.0.3'

    def test_server_address_outside_range_is_ignored(self, pool):
        text = "[Interface]\nAddress = 10.0.0.1/24\n"
        assert allocate(pool, text) == '10.0.0.2'

    def test_exhausted_pool(self):
        small = NetworkPool(base_address='10.0.0', range_start=2, range_end=4)
        text = "10.0.0.2/32 10.0.0.3/32 10.0.0.4/32"

        with pytest.raises(PoolExhausted) as excinfo:
            allocate(small, text)

        assert excinfo.value.remediation

    def test_every_address_used(self, pool):
        text = "\n".join(f"AllowedIPs = 10.0.0.{n}/32" for n in range(2, 255))
        with pytest.raises(PoolExhausted):
            allocate(pool, text)

    def test_repeatable_against_same_snapshot(self, pool):
        text = "AllowedIPs = 10.0.0.2/32\n"
        assert allocate(pool, text) == allocate(pool, text) == '10.0.0.3'

    def test_custom_range_start(self):
        pool = NetworkPool(base_address='192.168.50', range_start=100, range_end=110)
        assert allocate(pool, "AllowedIPs = 192.168.50.100/32") == '192.168.50.101'


class TestUsedHosts:
    """Scanning the registry text for pool addresses"""

    def test_longer_numbers_are_not_prefixes(self, pool):
        text = "AllowedIPs = 10.0.0.25/32"
        assert used_hosts(pool, text) == {25}

    def test_other_networks_ignored(self, pool):
        text = "AllowedIPs = 110.0.0.5/32, 10.0.0.7.9, 192.168.1.0/24"
        assert used_hosts(pool, text) == set()

    def test_malformed_text_does_not_crash(self, pool):
        text = "[Peer\nPublicKey = \nAllowedIPs = 10.0.0.\n10.0.0.9/3\x00garbage 10.0.0.999"
        assert used_hosts(pool, text) == {9}

    def test_none_text(self, pool):
        assert used_hosts(pool, None) == set()


class TestAddressAllocator:
    def test_allocate_and_free_count(self):
        allocator = AddressAllocator(NetworkPool(range_start=2, range_end=5))
        text = "AllowedIPs = 10.0.0.2/32"

        assert allocator.allocate(text) == '10.0.0.3'
        assert allocator.free_count(text) == 3


class TestNetworkPool:
    """Pool invariants"""

    @pytest.mark.parametrize('start,end', [(1, 10), (10, 5), (2, 255)])
    def test_invalid_range(self, start, end):
        with pytest.raises(ValueError):
            NetworkPool(range_start=start, range_end=end)

    @pytest.mark.parametrize('prefix', ['10.0', '10.0.0.0', '10.0.300', 'a.b.c'])
    def test_invalid_prefix(self, prefix):
        with pytest.raises(ValueError):
            NetworkPool(base_address=prefix)

    def test_contains(self):
        pool = NetworkPool(range_start=2, range_end=10)
        assert pool.contains('10.0.0.5/32')
        assert not pool.contains('10.0.0.1')
        assert not pool.contains('10.0.1.5')
        assert len(pool) == 9
