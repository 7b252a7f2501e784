"""Turn a host-name map into DNS zones."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass
class Record:
    name: str
    ip: Optional[IPAddress] = None


@dataclass
class Zone:
    name: str
    default_ip: Optional[IPAddress] = None
    records: list[Record] = field(default_factory=list)


def host_ip(hosts: Mapping[str, str], host: str) -> Optional[IPAddress]:
    """Resolve a host through the map, following aliases to an IP address."""
    seen: set[str] = set()
    while host not in seen:
        seen.add(host)
        value = hosts.get(host)
        if not value:
            return None
        try:
            return ipaddress.ip_address(value)
        except ValueError:
            host = value
    return None


def zone_name(host: str) -> str:
    """The zone a host belongs to: the part after the last dot, dot-terminated."""
    head, dot, tail = host.rpartition(".")
    return tail + "." if dot else host


def record_name(host: str) -> str:
    """The record name within the zone: everything before the last dot."""
    head, dot, _ = host.rpartition(".")
    return head if dot else ""


def extract_zones(hosts: Mapping[str, str]) -> list[Zone]:
    """Group the hosts into zones, one per top-level suffix."""
    zones: dict[str, Zone] = {}
    for host in hosts:
        name = zone_name(host)
        zone = zones.setdefault(name, Zone(name=name))
        record = record_name(host)
        if record:
            zone.records.append(Record(name=record, ip=host_ip(hosts, host)))
        elif zone.default_ip is None:
            zone.default_ip = host_ip(hosts, host)
    return list(zones.values())