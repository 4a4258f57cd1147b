"""WireGuard configuration templates"""

from typing import List, Optional, Sequence

from .models import PeerRecord, ServerInterface


PEER_COMMENT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def render_client_config(
    peer_name: str,
    address: str,
    private_key: str,
    server_public_key: str,
    server_endpoint: str,
    dns: Sequence[str],
    allowed_ips: Sequence[str],
    persistent_keepalive: Optional[int] = 25,
) -> str:
    """
    Generate WireGuard client configuration

    Output depends only on the arguments, so identical input renders the
    same bytes every time.

    Args:
        peer_name: Client name, written as the identity comment
        address: Client address without prefix length (e.g., "10.0.0.2")
        private_key: Client private key
        server_public_key: Server public key
        server_endpoint: Server endpoint as host:port (e.g., "vpn.example.com:51820")
        dns: DNS servers; the DNS line is left out when empty
        allowed_ips: AllowedIPs, used verbatim (full or split tunnel)
        persistent_keepalive: Keepalive interval in seconds; 0/None leaves it out

    Returns:
        Complete WireGuard client config text
    """
    lines = [
        f"# {peer_name}",
        "[Interface]",
        f"PrivateKey = {private_key}",
        f"Address = {address}/32",
    ]

    if dns:
        lines.append(f"DNS = {', '.join(dns)}")

    lines += [
        "",
        "[Peer]",
        f"PublicKey = {server_public_key}",
        f"Endpoint = {server_endpoint}",
        f"AllowedIPs = {', '.join(allowed_ips)}",
    ]

    if persistent_keepalive:
        lines.append(f"PersistentKeepalive = {persistent_keepalive}")

    return '\n'.join(lines) + '\n'


def peer_comment(record: PeerRecord) -> str:
    return f"# {record.name} (added {record.created_at.strftime(PEER_COMMENT_DATE_FORMAT)})"


def render_peer_section(record: PeerRecord) -> str:
    """
    Generate the peer block appended to the server config

    The leading comment names the peer so the block can be found again.
    """
    peer_block = f"""{peer_comment(record)}
[Peer]
PublicKey = {record.public_key}
AllowedIPs = {record.address}/32
"""
    return peer_block


def nat_rules(interface: str, wan_interface: str) -> tuple:
    """PostUp/PostDown commands that forward VPN traffic and masquerade it on the WAN side"""
    post_up = (
        f"iptables -A FORWARD -i {interface} -j ACCEPT; "
        f"iptables -A FORWARD -o {interface} -j ACCEPT; "
        f"iptables -t nat -A POSTROUTING -o {wan_interface} -j MASQUERADE"
    )
    post_down = (
        f"iptables -D FORWARD -i {interface} -j ACCEPT; "
        f"iptables -D FORWARD -o {interface} -j ACCEPT; "
        f"iptables -t nat -D POSTROUTING -o {wan_interface} -j MASQUERADE"
    )
    return post_up, post_down


def render_server_config(server: ServerInterface) -> str:
    """
    Generate the initial server config (no peers yet)

    Args:
        server: Server interface parameters

    Returns:
        Server config text; peer blocks get appended after it
    """
    lines: List[str] = [
        "[Interface]",
        f"Address = {server.address}",
        f"ListenPort = {server.listen_port}",
        f"PrivateKey = {server.private_key}",
    ]

    for rule in server.post_up:
        lines.append(f"PostUp = {rule}")
    for rule in server.post_down:
        lines.append(f"PostDown = {rule}")

    lines += [
        "",
        "# Peers are appended below as [Peer] sections",
        "",
    ]

    return '\n'.join(lines)
