"""Filling unset configuration fields from defaults, overrides and built-in values."""

from __future__ import annotations

import copy
import os
import sys
from typing import Optional, TypeVar

from limaconf.merge import merge_mounts, merge_networks, unique
from limaconf.model import (
    AARCH64,
    ARMV7L,
    PROBE_MODE_READINESS,
    PROVISION_MODE_DEPENDENCY,
    PROVISION_MODE_SYSTEM,
    QEMU,
    REVSSHFS,
    RISCV64,
    VIRTIOFS,
    VZ,
    X8664,
    LimaYAML,
)
from limaconf.platform import (
    default_containerd_archives,
    default_cpus,
    default_disk_size_as_string,
    default_firmware_images,
    default_guest_install_prefix,
    default_memory_as_string,
    has_host_cpu,
    has_max_cpu,
    is_accel_os,
    is_native_arch,
    mac_address,
    resolve_arch,
    resolve_os,
    resolve_vm_type,
)
from limaconf.templating import (
    HostContext,
    fill_copy_to_host_defaults,
    fill_port_forward_defaults,
)

DEFAULT_9P_SECURITY_MODEL = "none"
DEFAULT_9P_PROTOCOL_VERSION = "9p2000.L"
DEFAULT_9P_MSIZE = "128KiB"
DEFAULT_9P_CACHE_FOR_RO = "fscache"
DEFAULT_9P_CACHE_FOR_RW = "mmap"
DEFAULT_VIRTIOFS_QUEUE_SIZE = 1024

T = TypeVar("T")


def _pick(current: Optional[T], default: Optional[T], override: Optional[T]) -> Optional[T]:
    """Take ``current``, falling back to ``default``; ``override`` always wins when set."""
    if current is None:
        current = default
    if override is not None:
        current = override
    return current


def _cpu_types(d: LimaYAML, y: LimaYAML, o: LimaYAML) -> tuple[dict[str, str], bool]:
    cpu_type = {
        AARCH64: "cortex-a72",
        ARMV7L: "cortex-a7",
        X8664: "qemu64",
        RISCV64: "rv64",
    }
    for arch in cpu_type:
        if is_native_arch(arch) and is_accel_os():
            if has_host_cpu():
                cpu_type[arch] = "host"
            elif has_max_cpu():
                cpu_type[arch] = "max"
        if arch == X8664 and sys.platform == "darwin" and cpu_type[arch] in ("host", "max"):
            # pdpe1gb breaks guests on Intel Macs
            cpu_type[arch] += ",-pdpe1gb"
    overridden = False
    for source in (d.cpu_type, y.cpu_type, o.cpu_type):
        for arch, value in source.items():
            if value:
                overridden = True
                cpu_type[arch] = value
    return cpu_type, overridden


def _fill_mounts(y: LimaYAML) -> None:
    for mount in y.mounts:
        if mount.sshfs.cache is None:
            mount.sshfs.cache = True
        if mount.sshfs.follow_symlinks is None:
            mount.sshfs.follow_symlinks = False
        if mount.sshfs.sftp_driver is None:
            mount.sshfs.sftp_driver = ""
        if mount.ninep.security_model is None:
            mount.ninep.security_model = DEFAULT_9P_SECURITY_MODEL
        if mount.ninep.protocol_version is None:
            mount.ninep.protocol_version = DEFAULT_9P_PROTOCOL_VERSION
        if mount.ninep.msize is None:
            mount.ninep.msize = DEFAULT_9P_MSIZE
        if mount.virtiofs.queue_size is None and y.vm_type == QEMU and y.mount_type == VIRTIOFS:
            mount.virtiofs.queue_size = DEFAULT_VIRTIOFS_QUEUE_SIZE
        if mount.writable is None:
            mount.writable = False
        if mount.ninep.cache is None:
            mount.ninep.cache = DEFAULT_9P_CACHE_FOR_RW if mount.writable else DEFAULT_9P_CACHE_FOR_RO
        if not mount.mount_point:
            mount.mount_point = mount.location


def _fix_up_for_plain_mode(y: LimaYAML) -> None:
    if not y.plain:
        return
    y.mounts = []
    y.port_forwards = []
    y.containerd.system = False
    y.containerd.user = False
    y.rosetta.binfmt = False
    y.rosetta.enabled = False


def fill_default(
    y: LimaYAML,
    d: LimaYAML,
    o: LimaYAML,
    file_path: str,
    ctx: Optional[HostContext] = None,
) -> LimaYAML:
    """Fill unset fields of ``y`` from ``d`` or built-in defaults, then apply ``o``.

    ``y`` is updated in place and returned; ``d`` and ``o`` are left untouched.
    Maps are merged d, y, o; most lists are concatenated o, y, d so that higher
    priority entries come first. Mounts and networks are combined d, y, o by
    location or interface; DNS comes from the highest priority that sets it;
    CA files and certificates are appended d, y, o without repeats.
    """
    if ctx is None:
        ctx = HostContext.current()
    d = copy.deepcopy(d)
    o = copy.deepcopy(o)

    y.vm_type = resolve_vm_type(_pick(y.vm_type, d.vm_type, o.vm_type))
    y.os = resolve_os(_pick(y.os, d.os, o.os))
    y.arch = resolve_arch(_pick(y.arch, d.arch, o.arch))

    y.images = [*o.images, *y.images, *d.images]
    for img in y.images:
        if not img.arch:
            img.arch = y.arch
        if img.kernel is not None and not img.kernel.arch:
            img.kernel.arch = img.arch
        if img.initrd is not None and not img.initrd.arch:
            img.initrd.arch = img.arch

    cpu_type, overridden = _cpu_types(d, y, o)
    if y.vm_type == QEMU or overridden:
        y.cpu_type = cpu_type

    y.cpus = _pick(y.cpus, d.cpus, o.cpus)
    if not y.cpus:
        y.cpus = default_cpus()

    y.memory = _pick(y.memory, d.memory, o.memory)
    if not y.memory:
        y.memory = default_memory_as_string()

    y.disk = _pick(y.disk, d.disk, o.disk)
    if not y.disk:
        y.disk = default_disk_size_as_string()

    y.additional_disks = [*o.additional_disks, *y.additional_disks, *d.additional_disks]

    y.audio.device = _pick(y.audio.device, d.audio.device, o.audio.device)
    if y.audio.device is None:
        y.audio.device = ""

    y.video.display = _pick(y.video.display, d.video.display, o.video.display)
    if not y.video.display:
        y.video.display = "none"

    y.video.vnc.display = _pick(y.video.vnc.display, d.video.vnc.display, o.video.vnc.display)
    if not y.video.vnc.display and y.vm_type == QEMU:
        y.video.vnc.display = "127.0.0.1:0,to=9"

    y.firmware.legacy_bios = _pick(y.firmware.legacy_bios, d.firmware.legacy_bios, o.firmware.legacy_bios)
    if y.firmware.legacy_bios is None:
        y.firmware.legacy_bios = False

    y.firmware.images = [*o.firmware.images, *y.firmware.images, *d.firmware.images]
    if not y.firmware.images:
        y.firmware.images = default_firmware_images()
    for image in y.firmware.images:
        if not image.arch:
            image.arch = y.arch

    ssh = y.ssh
    ssh.local_port = _pick(ssh.local_port, d.ssh.local_port, o.ssh.local_port)
    if ssh.local_port is None:
        # the real port is chosen when the instance starts
        ssh.local_port = 0
    ssh.load_dot_ssh_pub_keys = _pick(
        ssh.load_dot_ssh_pub_keys, d.ssh.load_dot_ssh_pub_keys, o.ssh.load_dot_ssh_pub_keys
    )
    if ssh.load_dot_ssh_pub_keys is None:
        ssh.load_dot_ssh_pub_keys = True
    ssh.forward_agent = _pick(ssh.forward_agent, d.ssh.forward_agent, o.ssh.forward_agent)
    if ssh.forward_agent is None:
        ssh.forward_agent = False
    ssh.forward_x11 = _pick(ssh.forward_x11, d.ssh.forward_x11, o.ssh.forward_x11)
    if ssh.forward_x11 is None:
        ssh.forward_x11 = False
    ssh.forward_x11_trusted = _pick(
        ssh.forward_x11_trusted, d.ssh.forward_x11_trusted, o.ssh.forward_x11_trusted
    )
    if ssh.forward_x11_trusted is None:
        ssh.forward_x11_trusted = False

    y.host_resolver.hosts = {
        **d.host_resolver.hosts,
        **y.host_resolver.hosts,
        **o.host_resolver.hosts,
    }

    y.provision = [*o.provision, *y.provision, *d.provision]
    for provision in y.provision:
        if not provision.mode:
            provision.mode = PROVISION_MODE_SYSTEM
        if (
            provision.mode == PROVISION_MODE_DEPENDENCY
            and provision.skip_default_dependency_resolution is None
        ):
            provision.skip_default_dependency_resolution = False

    y.guest_install_prefix = _pick(y.guest_install_prefix, d.guest_install_prefix, o.guest_install_prefix)
    if y.guest_install_prefix is None:
        y.guest_install_prefix = default_guest_install_prefix()

    y.containerd.system = _pick(y.containerd.system, d.containerd.system, o.containerd.system)
    if y.containerd.system is None:
        y.containerd.system = False
    y.containerd.user = _pick(y.containerd.user, d.containerd.user, o.containerd.user)
    if y.containerd.user is None:
        y.containerd.user = True

    y.containerd.archives = [*o.containerd.archives, *y.containerd.archives, *d.containerd.archives]
    if not y.containerd.archives:
        y.containerd.archives = default_containerd_archives()
    for archive in y.containerd.archives:
        if not archive.arch:
            archive.arch = y.arch

    y.probes = [*o.probes, *y.probes, *d.probes]
    for number, probe in enumerate(y.probes, start=1):
        if not probe.mode:
            probe.mode = PROBE_MODE_READINESS
        if not probe.description:
            probe.description = f"user probe {number}/{len(y.probes)}"

    inst_dir = os.path.dirname(file_path)
    y.port_forwards = [*o.port_forwards, *y.port_forwards, *d.port_forwards]
    for rule in y.port_forwards:
        fill_port_forward_defaults(rule, inst_dir, ctx)

    y.copy_to_host = [*o.copy_to_host, *y.copy_to_host, *d.copy_to_host]
    for rule in y.copy_to_host:
        fill_copy_to_host_defaults(rule, inst_dir, ctx)

    y.host_resolver.enabled = _pick(y.host_resolver.enabled, d.host_resolver.enabled, o.host_resolver.enabled)
    if y.host_resolver.enabled is None:
        y.host_resolver.enabled = True
    y.host_resolver.ipv6 = _pick(y.host_resolver.ipv6, d.host_resolver.ipv6, o.host_resolver.ipv6)
    if y.host_resolver.ipv6 is None:
        y.host_resolver.ipv6 = False

    y.propagate_proxy_env = _pick(y.propagate_proxy_env, d.propagate_proxy_env, o.propagate_proxy_env)
    if y.propagate_proxy_env is None:
        y.propagate_proxy_env = True

    y.networks = merge_networks(d.networks, y.networks, o.networks)
    for index, nw in enumerate(y.networks):
        if not nw.mac_address:
            # every interface of every instance gets its own address
            nw.mac_address = mac_address(f"{file_path}#{index}", ctx.machine_id)
        if not nw.interface:
            nw.interface = f"lima{index}"

    y.mount_type = _pick(y.mount_type, d.mount_type, o.mount_type)
    if not y.mount_type:
        y.mount_type = VIRTIOFS if y.vm_type == VZ else REVSSHFS

    y.mounts = merge_mounts(d.mounts, y.mounts, o.mounts)
    _fill_mounts(y)

    if not y.dns:
        y.dns = list(d.dns)
    if o.dns:
        y.dns = list(o.dns)

    y.env = {**d.env, **y.env, **o.env}

    ca = y.ca_certificates
    ca.remove_defaults = _pick(
        ca.remove_defaults, d.ca_certificates.remove_defaults, o.ca_certificates.remove_defaults
    )
    if ca.remove_defaults is None:
        ca.remove_defaults = False
    ca.files = unique([*d.ca_certificates.files, *ca.files, *o.ca_certificates.files])
    ca.certs = unique([*d.ca_certificates.certs, *ca.certs, *o.ca_certificates.certs])

    if sys.platform == "darwin" and is_native_arch(AARCH64):
        y.rosetta.enabled = _pick(y.rosetta.enabled, d.rosetta.enabled, o.rosetta.enabled)
        if y.rosetta.enabled is None:
            y.rosetta.enabled = False
    else:
        y.rosetta.enabled = False

    y.rosetta.binfmt = _pick(y.rosetta.binfmt, d.rosetta.binfmt, o.rosetta.binfmt)
    if y.rosetta.binfmt is None:
        y.rosetta.binfmt = False

    y.plain = _pick(y.plain, d.plain, o.plain)
    if y.plain is None:
        y.plain = False

    _fix_up_for_plain_mode(y)
    return y