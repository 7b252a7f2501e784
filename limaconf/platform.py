"""Host platform detection and built-in default values."""

from __future__ import annotations

import hashlib
import logging
import os
import platform as _platform
import sys
from typing import Optional

from limaconf.model import (
    AARCH64,
    ARMV7L,
    LINUX,
    QEMU,
    RISCV64,
    VZ,
    WSL2,
    X8664,
    File,
    FileWithVMType,
)
from limaconf.units import bytes_size

_log = logging.getLogger(__name__)

_NERDCTL_VERSION = "1.7.2"


def _goos() -> str:
    name = sys.platform
    if name.startswith("linux"):
        return "linux"
    if name == "darwin":
        return "darwin"
    if name in ("win32", "cygwin", "msys"):
        return "windows"
    return name.rstrip("0123456789")


def _machine() -> str:
    return _platform.machine().lower()


def _goarch() -> str:
    machine = _machine()
    if machine in ("x86_64", "amd64", "x64"):
        return "amd64"
    if machine in ("aarch64", "arm64"):
        return "arm64"
    if machine.startswith("arm"):
        return "arm"
    if machine == "riscv64":
        return "riscv64"
    if machine in ("i386", "i486", "i586", "i686", "x86"):
        return "386"
    return machine


def _goarm() -> int:
    if _goos() != "linux" or _goarch() != "arm":
        return 0
    machine = _machine()
    if machine.startswith(("armv7", "armv8")):
        return 7
    if machine.startswith("armv6"):
        return 6
    return 5


def new_os(name: str) -> str:
    """Map an operating system name to its configuration value."""
    if name == "linux":
        return LINUX
    _log.warning("Unknown os: %s", name)
    return name


def new_arch(arch: str) -> str:
    """Map a toolchain architecture name (amd64, arm64, ...) to its configuration value."""
    if arch == "amd64":
        return X8664
    if arch == "arm64":
        return AARCH64
    if arch == "arm":
        arm = _goarm()
        if arm == 7:
            return ARMV7L
        _log.warning("Unknown arm: %d", arm)
        return arch
    if arch == "riscv64":
        return RISCV64
    _log.warning("Unknown arch: %s", arch)
    return arch


def new_vm_type(driver: str) -> str:
    """Map a driver name to its VM type."""
    if driver == "vz":
        return VZ
    if driver == "qemu":
        return QEMU
    if driver == "wsl2":
        return WSL2
    _log.warning("Unknown driver: %s", driver)
    return driver


def _is_default(value: Optional[str]) -> bool:
    return value is None or value == "" or value == "default"


def resolve_vm_type(value: Optional[str]) -> str:
    return QEMU if _is_default(value) else new_vm_type(value)


def resolve_os(value: Optional[str]) -> str:
    return new_os("linux") if _is_default(value) else value


def resolve_arch(value: Optional[str]) -> str:
    return host_arch() if _is_default(value) else value


def host_arch() -> str:
    """The architecture of the host, as a configuration value."""
    return new_arch(_goarch())


def is_accel_os() -> bool:
    """Whether the host OS offers hardware acceleration."""
    return _goos() in ("darwin", "linux", "netbsd", "windows")


def has_host_cpu() -> bool:
    return _goos() in ("darwin", "linux")


def has_max_cpu() -> bool:
    return _goos() != "windows"


def is_native_arch(arch: str) -> bool:
    """Whether the given architecture matches the host."""
    goarch = _goarch()
    return (
        (arch == X8664 and goarch == "amd64")
        or (arch == AARCH64 and goarch == "arm64")
        or (arch == ARMV7L and goarch == "arm" and _goarm() == 7)
        or (arch == RISCV64 and goarch == "riscv64")
    )


def default_cpus() -> int:
    return min(os.cpu_count() or 1, 4)


def _total_memory() -> int:
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return 0


def default_memory() -> int:
    """Half of the host memory, capped at 4 GiB."""
    return min(_total_memory() // 2, 4 * 1024 * 1024 * 1024)


def default_memory_as_string() -> str:
    return bytes_size(default_memory())


def default_disk_size_as_string() -> str:
    return "100GiB"


def default_guest_install_prefix() -> str:
    return "/usr/local"


def default_containerd_archives() -> list[File]:
    def location(goos: str, goarch: str) -> str:
        return (
            f"https://github.com/containerd/nerdctl/releases/download/v{_NERDCTL_VERSION}"
            f"/nerdctl-full-{_NERDCTL_VERSION}-{goos}-{goarch}.tar.gz"
        )

    return [
        File(
            location=location("linux", "amd64"),
            arch=X8664,
            digest="sha256:5ea4524ff346000bb32ef1d9fb8c4b8e809fbff69260d179218d7c308cc2aa99",
        ),
        File(
            location=location("linux", "arm64"),
            arch=AARCH64,
            digest="sha256:3d6f256181005a1b612cd340c8eb84c2b9218a0df040e59e300d6168b0701de2",
        ),
    ]


def default_firmware_images() -> list[FileWithVMType]:
    digest = "sha256:a5fc228623891297f2d82e22ea56ec57cde93fea5ec01abf543e4ed5cacaf277"
    return [
        FileWithVMType(
            location="https://gitlab.com/kraxel/qemu/-/raw/704f7cad5105246822686f65765ab92045f71a3b/pc-bios/edk2-aarch64-code.fd.bz2",
            arch=AARCH64,
            digest=digest,
            vm_type=QEMU,
        ),
        FileWithVMType(
            location="https://github.com/AkihiroSuda/qemu/raw/704f7cad5105246822686f65765ab92045f71a3b/pc-bios/edk2-aarch64-code.fd.bz2",
            arch=AARCH64,
            digest=digest,
            vm_type=QEMU,
        ),
    ]


def mac_address(unique_id: str, machine_id: str) -> str:
    """A stable, locally administered MAC address derived from the machine and an id."""
    digest = hashlib.sha256((machine_id + unique_id).encode()).digest()
    return ":".join(f"{b:02x}" for b in bytes((0x52, 0x55, 0x55)) + digest[:3])