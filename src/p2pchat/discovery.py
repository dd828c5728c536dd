"""
P2P Chat - Local IPv6 address discovery.

Created by orpheus497

Finds the IPv6 addresses a remote peer could use to reach this host, so the
host side can turn one of them into a join code.
"""

import ipaddress
import logging
import socket
from typing import List

import psutil

logger = logging.getLogger(__name__)


def get_local_ipv6_addresses() -> List[str]:
    """
    List IPv6 addresses assigned to interfaces that are up.

    Link-local, loopback, multicast and unspecified addresses are skipped.
    Zone ids are stripped. Global addresses come
    before unique-local and other private ones; the order of the OS is kept
    within each group.

    Returns:
        Candidate addresses, possibly empty
    """
    try:
        interfaces = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except (OSError, RuntimeError) as e:
        logger.warning(f"Error getting local addresses: {e}")
        return []

    global_addresses: List[str] = []
    other_addresses: List[str] = []

    for name, addresses in interfaces.items():
        if_stats = stats.get(name)
        if if_stats is not None and not if_stats.isup:
            continue

        for entry in addresses:
            if entry.family != socket.AF_INET6:
                continue

            text = entry.address.split("%", 1)[0]
            try:
                ip = ipaddress.IPv6Address(text)
            except ValueError:
                logger.debug(f"Skipping unparsable address on {name}: {entry.address}")
                continue

            if ip.is_loopback or ip.is_link_local or ip.is_multicast or ip.is_unspecified:
                continue

            bucket = global_addresses if ip.is_global else other_addresses
            if text not in global_addresses and text not in other_addresses:
                bucket.append(text)

    addresses = global_addresses + other_addresses
    logger.debug(f"Discovered {len(addresses)} local IPv6 address(es)")
    return addresses
