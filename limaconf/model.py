"""Data model of an instance configuration file."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

LINUX = "Linux"

X8664 = "x86_64"
AARCH64 = "aarch64"
ARMV7L = "armv7l"
RISCV64 = "riscv64"
ARCHES = (X8664, AARCH64, ARMV7L, RISCV64)

REVSSHFS = "reverse-sshfs"
NINEP = "9p"
VIRTIOFS = "virtiofs"
WSL_MOUNT = "wsl2"

QEMU = "qemu"
VZ = "vz"
WSL2 = "wsl2"

SFTP_DRIVER_BUILTIN = "builtin"
SFTP_DRIVER_OPENSSH_SFTP_SERVER = "openssh-sftp-server"

PROVISION_MODE_SYSTEM = "system"
PROVISION_MODE_USER = "user"
PROVISION_MODE_BOOT = "boot"
PROVISION_MODE_DEPENDENCY = "dependency"

PROBE_MODE_READINESS = "readiness"

TCP = "tcp"


@dataclass
class File:
    """A remote or local file, optionally pinned to an architecture and digest."""

    location: str = ""
    arch: str = ""
    digest: str = ""


@dataclass
class FileWithVMType(File):
    """A file that applies to one VM type only."""

    vm_type: str = ""


@dataclass
class Kernel(File):
    """A kernel image with its command line."""

    cmdline: str = ""


@dataclass
class Image(File):
    """A disk image, with an optional kernel and initrd."""

    kernel: Optional[Kernel] = None
    initrd: Optional[File] = None


@dataclass
class Disk:
    """An additional disk attached to the instance."""

    name: str = ""
    format: Optional[bool] = None
    fs_type: Optional[str] = None
    fs_args: Optional[list[str]] = None


@dataclass
class SSHFS:
    cache: Optional[bool] = None
    follow_symlinks: Optional[bool] = None
    sftp_driver: Optional[str] = None


@dataclass
class NineP:
    security_model: Optional[str] = None
    protocol_version: Optional[str] = None
    msize: Optional[str] = None
    cache: Optional[str] = None


@dataclass
class Virtiofs:
    queue_size: Optional[int] = None


@dataclass
class Mount:
    """A host directory shared with the guest."""

    location: str = ""
    mount_point: str = ""
    writable: Optional[bool] = None
    sshfs: SSHFS = field(default_factory=SSHFS)
    ninep: NineP = field(default_factory=NineP)
    virtiofs: Virtiofs = field(default_factory=Virtiofs)


@dataclass
class SSH:
    local_port: Optional[int] = None
    load_dot_ssh_pub_keys: Optional[bool] = None
    forward_agent: Optional[bool] = None
    forward_x11: Optional[bool] = None
    forward_x11_trusted: Optional[bool] = None


@dataclass
class Firmware:
    legacy_bios: Optional[bool] = None
    images: list[FileWithVMType] = field(default_factory=list)


@dataclass
class Audio:
    device: Optional[str] = None


@dataclass
class VNCOptions:
    display: Optional[str] = None


@dataclass
class Video:
    display: Optional[str] = None
    vnc: VNCOptions = field(default_factory=VNCOptions)


@dataclass
class Provision:
    mode: str = ""
    skip_default_dependency_resolution: Optional[bool] = None
    script: str = ""


@dataclass
class Containerd:
    system: Optional[bool] = None
    user: Optional[bool] = None
    archives: list[File] = field(default_factory=list)


@dataclass
class Probe:
    mode: str = ""
    description: str = ""
    script: str = ""
    hint: str = ""


@dataclass
class PortForward:
    guest_ip_must_be_zero: bool = False
    guest_ip: Optional[IPAddress] = None
    guest_port: int = 0
    guest_port_range: tuple[int, int] = (0, 0)
    guest_socket: str = ""
    host_ip: Optional[IPAddress] = None
    host_port: int = 0
    host_port_range: tuple[int, int] = (0, 0)
    host_socket: str = ""
    proto: str = ""
    reverse: bool = False
    ignore: bool = False


@dataclass
class CopyToHost:
    guest_file: str = ""
    host_file: str = ""
    delete_on_stop: bool = False


@dataclass
class Network:
    """A network interface; lima, socket and vnl are mutually exclusive."""

    lima: str = ""
    socket: str = ""
    vz_nat: Optional[bool] = None
    vnl_deprecated: str = ""
    switch_port_deprecated: int = 0
    mac_address: str = ""
    interface: str = ""


@dataclass
class HostResolver:
    enabled: Optional[bool] = None
    ipv6: Optional[bool] = None
    hosts: dict[str, str] = field(default_factory=dict)


@dataclass
class CACertificates:
    remove_defaults: Optional[bool] = None
    files: list[str] = field(default_factory=list)
    certs: list[str] = field(default_factory=list)


@dataclass
class Rosetta:
    enabled: Optional[bool] = None
    binfmt: Optional[bool] = None


@dataclass
class LimaYAML:
    """The whole instance configuration."""

    vm_type: Optional[str] = None
    os: Optional[str] = None
    arch: Optional[str] = None
    images: list[Image] = field(default_factory=list)
    cpu_type: dict[str, str] = field(default_factory=dict)
    cpus: Optional[int] = None
    memory: Optional[str] = None
    disk: Optional[str] = None
    additional_disks: list[Disk] = field(default_factory=list)
    mounts: list[Mount] = field(default_factory=list)
    mount_type: Optional[str] = None
    ssh: SSH = field(default_factory=SSH)
    firmware: Firmware = field(default_factory=Firmware)
    audio: Audio = field(default_factory=Audio)
    video: Video = field(default_factory=Video)
    provision: list[Provision] = field(default_factory=list)
    containerd: Containerd = field(default_factory=Containerd)
    guest_install_prefix: Optional[str] = None
    probes: list[Probe] = field(default_factory=list)
    port_forwards: list[PortForward] = field(default_factory=list)
    copy_to_host: list[CopyToHost] = field(default_factory=list)
    message: str = ""
    networks: list[Network] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    dns: list[IPAddress] = field(default_factory=list)
    host_resolver: HostResolver = field(default_factory=HostResolver)
    propagate_proxy_env: Optional[bool] = None
    ca_certificates: CACertificates = field(default_factory=CACertificates)
    rosetta: Rosetta = field(default_factory=Rosetta)
    plain: Optional[bool] = None
    kernel: Optional[str] = None
    initrd: Optional[str] = None
    cmdline: Optional[str] = None


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _mapping(value: Any, path: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"field `{path}` must be a mapping, got {type(value).__name__}")
    return value


def _sequence(value: Any, path: str) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, (list, tuple)):
        raise ValueError(f"field `{path}` must be a sequence, got {type(value).__name__}")
    return list(value)


def _as_str(value: Any, path: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"field `{path}` must be a string, got {type(value).__name__}")


def _opt_str(m: Mapping[str, Any], key: str, path: str) -> Optional[str]:
    value = m.get(key)
    return None if value is None else _as_str(value, _join(path, key))


def _str(m: Mapping[str, Any], key: str, path: str) -> str:
    return _opt_str(m, key, path) or ""


def _opt_bool(m: Mapping[str, Any], key: str, path: str) -> Optional[bool]:
    value = m.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValueError(f"field `{_join(path, key)}` must be a boolean, got {type(value).__name__}")
    return value


def _bool(m: Mapping[str, Any], key: str, path: str) -> bool:
    return bool(_opt_bool(m, key, path))


def _as_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field `{path}` must be an integer, got {type(value).__name__}")
    return value


def _opt_int(m: Mapping[str, Any], key: str, path: str) -> Optional[int]:
    value = m.get(key)
    return None if value is None else _as_int(value, _join(path, key))


def _int(m: Mapping[str, Any], key: str, path: str) -> int:
    return _opt_int(m, key, path) or 0


def _str_list(m: Mapping[str, Any], key: str, path: str) -> list[str]:
    p = _join(path, key)
    return [_as_str(v, f"{p}[{i}]") for i, v in enumerate(_sequence(m.get(key), p))]


def _str_map(m: Mapping[str, Any], key: str, path: str) -> dict[str, str]:
    p = _join(path, key)
    return {
        str(k): ("" if v is None else _as_str(v, _join(p, str(k))))
        for k, v in _mapping(m.get(key), p).items()
    }


def _parse_ip(value: Any, path: str) -> IPAddress:
    try:
        return ipaddress.ip_address(_as_str(value, path))
    except ValueError as exc:
        raise ValueError(f"field `{path}` is not a valid IP address: {value!r}") from exc


def _opt_ip(m: Mapping[str, Any], key: str, path: str) -> Optional[IPAddress]:
    value = m.get(key)
    return None if value is None else _parse_ip(value, _join(path, key))


def _port_range(m: Mapping[str, Any], key: str, path: str) -> tuple[int, int]:
    p = _join(path, key)
    items = _sequence(m.get(key), p)
    if not items:
        return (0, 0)
    if len(items) != 2:
        raise ValueError(f"field `{p}` must hold exactly 2 ports, got {len(items)}")
    return (_as_int(items[0], f"{p}[0]"), _as_int(items[1], f"{p}[1]"))


def _file_fields(m: Mapping[str, Any], path: str) -> dict[str, str]:
    return {
        "location": _str(m, "location", path),
        "arch": _str(m, "arch", path),
        "digest": _str(m, "digest", path),
    }


def _file(value: Any, path: str) -> File:
    return File(**_file_fields(_mapping(value, path), path))


def _image(value: Any, path: str) -> Image:
    m = _mapping(value, path)
    kernel = None
    if m.get("kernel") is not None:
        kp = _join(path, "kernel")
        km = _mapping(m["kernel"], kp)
        kernel = Kernel(**_file_fields(km, kp), cmdline=_str(km, "cmdline", kp))
    initrd = None
    if m.get("initrd") is not None:
        initrd = _file(m["initrd"], _join(path, "initrd"))
    return Image(**_file_fields(m, path), kernel=kernel, initrd=initrd)


def _mount(value: Any, path: str) -> Mount:
    m = _mapping(value, path)
    sp = _join(path, "sshfs")
    sm = _mapping(m.get("sshfs"), sp)
    np = _join(path, "9p")
    nm = _mapping(m.get("9p"), np)
    vp = _join(path, "virtiofs")
    vm = _mapping(m.get("virtiofs"), vp)
    return Mount(
        location=_str(m, "location", path),
        mount_point=_str(m, "mountPoint", path),
        writable=_opt_bool(m, "writable", path),
        sshfs=SSHFS(
            cache=_opt_bool(sm, "cache", sp),
            follow_symlinks=_opt_bool(sm, "followSymlinks", sp),
            sftp_driver=_opt_str(sm, "sftpDriver", sp),
        ),
        ninep=NineP(
            security_model=_opt_str(nm, "securityModel", np),
            protocol_version=_opt_str(nm, "protocolVersion", np),
            msize=_opt_str(nm, "msize", np),
            cache=_opt_str(nm, "cache", np),
        ),
        virtiofs=Virtiofs(queue_size=_opt_int(vm, "queueSize", vp)),
    )


def _port_forward(value: Any, path: str) -> PortForward:
    m = _mapping(value, path)
    return PortForward(
        guest_ip_must_be_zero=_bool(m, "guestIPMustBeZero", path),
        guest_ip=_opt_ip(m, "guestIP", path),
        guest_port=_int(m, "guestPort", path),
        guest_port_range=_port_range(m, "guestPortRange", path),
        guest_socket=_str(m, "guestSocket", path),
        host_ip=_opt_ip(m, "hostIP", path),
        host_port=_int(m, "hostPort", path),
        host_port_range=_port_range(m, "hostPortRange", path),
        host_socket=_str(m, "hostSocket", path),
        proto=_str(m, "proto", path),
        reverse=_bool(m, "reverse", path),
        ignore=_bool(m, "ignore", path),
    )


def _network(value: Any, path: str) -> Network:
    m = _mapping(value, path)
    switch_port = _int(m, "switchPort", path)
    if not 0 <= switch_port <= 0xFFFF:
        raise ValueError(f"field `{_join(path, 'switchPort')}` must be between 0 and 65535")
    return Network(
        lima=_str(m, "lima", path),
        socket=_str(m, "socket", path),
        vz_nat=_opt_bool(m, "vzNAT", path),
        vnl_deprecated=_str(m, "vnl", path),
        switch_port_deprecated=switch_port,
        mac_address=_str(m, "macAddress", path),
        interface=_str(m, "interface", path),
    )


def _items(m: Mapping[str, Any], key: str, path: str, parse) -> list[Any]:
    p = _join(path, key)
    return [parse(v, f"{p}[{i}]") for i, v in enumerate(_sequence(m.get(key), p))]


def disk_from_value(value: Any) -> Disk:
    """Build a Disk from either a bare name or a mapping."""
    if isinstance(value, str):
        return Disk(name=value)
    if not isinstance(value, Mapping):
        raise ValueError(f"disk must be a string or a mapping, got {type(value).__name__}")
    fs_args = _str_list(value, "fsArgs", "") if value.get("fsArgs") is not None else None
    return Disk(
        name=_str(value, "name", ""),
        format=_opt_bool(value, "format", ""),
        fs_type=_opt_str(value, "fsType", ""),
        fs_args=fs_args,
    )


def from_mapping(data: Any) -> LimaYAML:
    """Build a LimaYAML from a parsed YAML document; unknown keys are ignored."""
    m = _mapping(data, "")
    cpu_type = _str_map(m, "cpuType", "")

    ssh = _mapping(m.get("ssh"), "ssh")
    fw = _mapping(m.get("firmware"), "firmware")
    audio = _mapping(m.get("audio"), "audio")
    video = _mapping(m.get("video"), "video")
    vnc = _mapping(video.get("vnc"), "video.vnc")
    containerd = _mapping(m.get("containerd"), "containerd")
    resolver = _mapping(m.get("hostResolver"), "hostResolver")
    ca = _mapping(m.get("caCerts"), "caCerts")
    rosetta = _mapping(m.get("rosetta"), "rosetta")

    def disk(value: Any, path: str) -> Disk:
        try:
            return disk_from_value(value)
        except ValueError as exc:
            raise ValueError(f"field `{path}`: {exc}") from exc

    def provision(value: Any, path: str) -> Provision:
        pm = _mapping(value, path)
        return Provision(
            mode=_str(pm, "mode", path),
            skip_default_dependency_resolution=_opt_bool(
                pm, "skipDefaultDependencyResolution", path
            ),
            script=_str(pm, "script", path),
        )

    def probe(value: Any, path: str) -> Probe:
        pm = _mapping(value, path)
        return Probe(
            mode=_str(pm, "mode", path),
            description=_str(pm, "description", path),
            script=_str(pm, "script", path),
            hint=_str(pm, "hint", path),
        )

    def copy_to_host(value: Any, path: str) -> CopyToHost:
        cm = _mapping(value, path)
        return CopyToHost(
            guest_file=_str(cm, "guest", path),
            host_file=_str(cm, "host", path),
            delete_on_stop=_bool(cm, "deleteOnStop", path),
        )

    def firmware_image(value: Any, path: str) -> FileWithVMType:
        im = _mapping(value, path)
        return FileWithVMType(**_file_fields(im, path), vm_type=_str(im, "vmType", path))

    return LimaYAML(
        vm_type=_opt_str(m, "vmType", ""),
        os=_opt_str(m, "os", ""),
        arch=_opt_str(m, "arch", ""),
        images=_items(m, "images", "", _image),
        cpu_type=cpu_type,
        cpus=_opt_int(m, "cpus", ""),
        memory=_opt_str(m, "memory", ""),
        disk=_opt_str(m, "disk", ""),
        additional_disks=_items(m, "additionalDisks", "", disk),
        mounts=_items(m, "mounts", "", _mount),
        mount_type=_opt_str(m, "mountType", ""),
        ssh=SSH(
            local_port=_opt_int(ssh, "localPort", "ssh"),
            load_dot_ssh_pub_keys=_opt_bool(ssh, "loadDotSSHPubKeys", "ssh"),
            forward_agent=_opt_bool(ssh, "forwardAgent", "ssh"),
            forward_x11=_opt_bool(ssh, "forwardX11", "ssh"),
            forward_x11_trusted=_opt_bool(ssh, "forwardX11Trusted", "ssh"),
        ),
        firmware=Firmware(
            legacy_bios=_opt_bool(fw, "legacyBIOS", "firmware"),
            images=_items(fw, "images", "firmware", firmware_image),
        ),
        audio=Audio(device=_opt_str(audio, "device", "audio")),
        video=Video(
            display=_opt_str(video, "display", "video"),
            vnc=VNCOptions(display=_opt_str(vnc, "display", "video.vnc")),
        ),
        provision=_items(m, "provision", "", provision),
        containerd=Containerd(
            system=_opt_bool(containerd, "system", "containerd"),
            user=_opt_bool(containerd, "user", "containerd"),
            archives=_items(containerd, "archives", "containerd", _file),
        ),
        guest_install_prefix=_opt_str(m, "guestInstallPrefix", ""),
        probes=_items(m, "probes", "", probe),
        port_forwards=_items(m, "portForwards", "", _port_forward),
        copy_to_host=_items(m, "copyToHost", "", copy_to_host),
        message=_str(m, "message", ""),
        networks=_items(m, "networks", "", _network),
        env=_str_map(m, "env", ""),
        dns=_items(m, "dns", "", _parse_ip),
        host_resolver=HostResolver(
            enabled=_opt_bool(resolver, "enabled", "hostResolver"),
            ipv6=_opt_bool(resolver, "ipv6", "hostResolver"),
            hosts=_str_map(resolver, "hosts", "hostResolver"),
        ),
        propagate_proxy_env=_opt_bool(m, "propagateProxyEnv", ""),
        ca_certificates=CACertificates(
            remove_defaults=_opt_bool(ca, "removeDefaults", "caCerts"),
            files=_str_list(ca, "files", "caCerts"),
            certs=_str_list(ca, "certs", "caCerts"),
        ),
        rosetta=Rosetta(
            enabled=_opt_bool(rosetta, "enabled", "rosetta"),
            binfmt=_opt_bool(rosetta, "binfmt", "rosetta"),
        ),
        plain=_opt_bool(m, "plain", ""),
        kernel=_opt_str(m, "kernel", ""),
        initrd=_opt_str(m, "initrd", ""),
        cmdline=_opt_str(m, "cmdline", ""),
    )