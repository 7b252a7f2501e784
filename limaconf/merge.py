"""Combination rules for lists whose entries override each other by key."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Sequence
from typing import TypeVar

from limaconf.model import Mount, Network

_log = logging.getLogger(__name__)

T = TypeVar("T")


def merge_networks(
    d: Sequence[Network], y: Sequence[Network], o: Sequence[Network]
) -> list[Network]:
    """Append networks in d, y, o order, combining entries with the same interface name."""
    merged: list[Network] = []
    by_interface: dict[str, Network] = {}
    for nw in [*d, *y, *o]:
        target = by_interface.get(nw.interface)
        if target is None:
            entry = copy.deepcopy(nw)
            if nw.interface:
                by_interface[nw.interface] = entry
            merged.append(entry)
            continue
        if nw.vnl_deprecated:
            target.vnl_deprecated = nw.vnl_deprecated
            target.switch_port_deprecated = nw.switch_port_deprecated
            target.socket = ""
            target.lima = ""
        if nw.socket:
            if nw.vnl_deprecated:
                _log.error(
                    "Network %r has both vnl=%r and socket=%r fields; ignoring vnl",
                    nw.interface, nw.vnl_deprecated, nw.socket,
                )
            target.socket = nw.socket
            target.vnl_deprecated = ""
            target.switch_port_deprecated = 0
            target.lima = ""
        if nw.lima:
            if nw.vnl_deprecated:
                _log.error(
                    "Network %r has both vnl=%r and lima=%r fields; ignoring vnl",
                    nw.interface, nw.vnl_deprecated, nw.lima,
                )
            if nw.socket:
                _log.error(
                    "Network %r has both socket=%r and lima=%r fields; ignoring socket",
                    nw.interface, nw.socket, nw.lima,
                )
            target.lima = nw.lima
            target.socket = ""
            target.vnl_deprecated = ""
            target.switch_port_deprecated = 0
        if nw.mac_address:
            target.mac_address = nw.mac_address
    return merged


def merge_mounts(d: Sequence[Mount], y: Sequence[Mount], o: Sequence[Mount]) -> list[Mount]:
    """Append mounts in d, y, o order; later entries with the same location override set fields."""
    merged: list[Mount] = []
    by_location: dict[str, Mount] = {}
    for mount in [*d, *y, *o]:
        target = by_location.get(mount.location)
        if target is None:
            entry = copy.deepcopy(mount)
            by_location[mount.location] = entry
            merged.append(entry)
            continue
        for attr in ("cache", "follow_symlinks", "sftp_driver"):
            value = getattr(mount.sshfs, attr)
            if value is not None:
                setattr(target.sshfs, attr, value)
        for attr in ("security_model", "protocol_version", "msize", "cache"):
            value = getattr(mount.ninep, attr)
            if value is not None:
                setattr(target.ninep, attr, value)
        if mount.virtiofs.queue_size is not None:
            target.virtiofs.queue_size = mount.virtiofs.queue_size
        if mount.writable is not None:
            target.writable = mount.writable
        if mount.mount_point:
            target.mount_point = mount.mount_point
    return merged


def unique(items: Iterable[T]) -> list[T]:
    """Drop repeated entries, keeping the first occurrence of each."""
    return list(dict.fromkeys(items))