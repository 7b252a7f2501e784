import copy
import ipaddress

import pytest

from limaconf.defaults import (
    DEFAULT_9P_CACHE_FOR_RO,
    DEFAULT_9P_MSIZE,
    DEFAULT_9P_PROTOCOL_VERSION,
    DEFAULT_9P_SECURITY_MODEL,
    fill_default,
)
from limaconf.model import (
    AARCH64,
    ARMV7L,
    NINEP,
    RISCV64,
    TCP,
    VIRTIOFS,
    X8664,
    CACertificates,
    Containerd,
    CopyToHost,
    Disk,
    File,
    Firmware,
    FileWithVMType,
    HostResolver,
    Image,
    Kernel,
    LimaYAML,
    Mount,
    NineP,
    Network,
    PortForward,
    Probe,
    Provision,
    Rosetta,
    SSH,
    SSHFS,
    Audio,
    Video,
    VNCOptions,
    Virtiofs,
)
from limaconf.platform import (
    default_containerd_archives,
    default_cpus,
    default_firmware_images,
    default_memory_as_string,
    host_arch,
    is_native_arch,
    mac_address,
)
from limaconf.templating import HostContext

CERT = "-----BEGIN CERTIFICATE-----\nYOUR-ORGS-TRUSTED-CA-CERT\n-----END CERTIFICATE-----\n"
LOOPBACK = ipaddress.ip_address("127.0.0.1")
INST_DIR = "/tmp/lima-home/instance"
FILE_PATH = INST_DIR + "/lima.yaml"


@pytest.fixture
def ctx():
    return HostContext(
        user="alice", uid="501", home="/Users/alice", lima_home="/tmp/lima-home", machine_id="machine"
    )


def _user_config():
    return LimaYAML(
        host_resolver=HostResolver(hosts={"MY.Host": "host.lima.internal"}),
        mounts=[Mount(location="/tmp")],
        mount_type=NINEP,
        provision=[Provision(script="#!/bin/true")],
        probes=[Probe(script="#!/bin/false")],
        networks=[Network(lima="shared")],
        dns=[ipaddress.ip_address("1.0.1.0")],
        port_forwards=[
            PortForward(),
            PortForward(guest_port=80),
            PortForward(guest_port=8080, host_port=8888),
            PortForward(
                guest_socket="{{.Home}} | {{.UID}} | {{.User}}",
                host_socket="{{.Home}} | {{.Dir}} | {{.Name}} | {{.UID}} | {{.User}}",
            ),
        ],
        copy_to_host=[
            CopyToHost(
                guest_file="{{.Home}} | {{.UID}} | {{.User}}",
                host_file="{{.Home}} | {{.Dir}} | {{.Name}} | {{.UID}} | {{.User}}",
            )
        ],
        env={"ONE": "Eins"},
        ca_certificates=CACertificates(files=["ca.crt"], certs=[CERT]),
        firmware=Firmware(legacy_bios=False, images=default_firmware_images()),
    )


def _defaults_config():
    return LimaYAML(
        vm_type="vz",
        os="unknown",
        arch="unknown",
        cpu_type={AARCH64: "arm64", ARMV7L: "armhf", X8664: "amd64", RISCV64: "riscv64"},
        cpus=7,
        memory="5GiB",
        disk="105GiB",
        additional_disks=[Disk(name="data")],
        guest_install_prefix="/opt",
        containerd=Containerd(system=True, user=False, archives=[File(location="/tmp/nerdctl.tgz")]),
        ssh=SSH(local_port=888, load_dot_ssh_pub_keys=False, forward_agent=True,
                forward_x11=False, forward_x11_trusted=False),
        firmware=Firmware(legacy_bios=True, images=[FileWithVMType(location="/dummy", arch=X8664)]),
        audio=Audio(device="coreaudio"),
        video=Video(display="cocoa", vnc=VNCOptions(display="none")),
        host_resolver=HostResolver(enabled=False, ipv6=True, hosts={"default": "localhost"}),
        propagate_proxy_env=False,
        mounts=[Mount(location="/var/log", writable=False)],
        provision=[Provision(script="#!/bin/true", mode="user")],
        probes=[Probe(script="#!/bin/false", mode="readiness", description="User Probe")],
        networks=[Network(vnl_deprecated="/tmp/vde.ctl", switch_port_deprecated=65535,
                          mac_address="11:22:33:44:55:66", interface="def0")],
        dns=[ipaddress.ip_address("1.1.1.1")],
        port_forwards=[PortForward(guest_ip=LOOPBACK, guest_port=80, guest_port_range=(80, 80),
                                   host_ip=LOOPBACK, host_port=80, host_port_range=(80, 80), proto=TCP)],
        copy_to_host=[CopyToHost()],
        env={"ONE": "one", "TWO": "two"},
        ca_certificates=CACertificates(remove_defaults=True, certs=[CERT]),
        rosetta=Rosetta(enabled=True, binfmt=True),
    )


def _override_config():
    return LimaYAML(
        vm_type="qemu",
        os="Linux",
        arch=host_arch(),
        cpu_type={AARCH64: "uber-arm", ARMV7L: "armv8", X8664: "pentium", RISCV64: "sifive-u54"},
        cpus=12,
        memory="7GiB",
        disk="117GiB",
        additional_disks=[Disk(name="test")],
        guest_install_prefix="/usr",
        containerd=Containerd(system=True, user=False, archives=[
            File(arch=host_arch(), location="/tmp/nerdctl.tgz", digest="$DIGEST")]),
        ssh=SSH(local_port=4433, load_dot_ssh_pub_keys=True, forward_agent=True,
                forward_x11=False, forward_x11_trusted=False),
        firmware=Firmware(legacy_bios=True),
        audio=Audio(device="coreaudio"),
        video=Video(display="cocoa", vnc=VNCOptions(display="none")),
        host_resolver=HostResolver(enabled=False, ipv6=False, hosts={"override.": "underflow"}),
        propagate_proxy_env=False,
        mounts=[Mount(
            location="/var/log",
            writable=True,
            sshfs=SSHFS(cache=False, follow_symlinks=True),
            ninep=NineP(security_model="mapped-file", protocol_version="9p2000", msize="8KiB", cache="none"),
            virtiofs=Virtiofs(queue_size=2048),
        )],
        provision=[Provision(script="#!/bin/true", mode="system")],
        probes=[Probe(script="#!/bin/false", mode="readiness", description="Another Probe")],
        networks=[
            Network(lima="shared", mac_address="10:20:30:40:50:60", interface="def1"),
            Network(lima="bridged", interface="def0"),
        ],
        dns=[ipaddress.ip_address("2.2.2.2")],
        port_forwards=[PortForward(guest_ip=LOOPBACK, guest_port=88, guest_port_range=(88, 88),
                                   host_ip=LOOPBACK, host_port=8080, host_port_range=(8080, 8080), proto=TCP)],
        copy_to_host=[CopyToHost()],
        env={"TWO": "deux", "THREE": "trois"},
        ca_certificates=CACertificates(remove_defaults=True),
        rosetta=Rosetta(enabled=False, binfmt=False),
    )


def _filled(ctx):
    return fill_default(_user_config(), LimaYAML(), LimaYAML(), FILE_PATH, ctx)


def test_builtin_defaults_scalars(ctx):
    y = _filled(ctx)
    assert y.vm_type == "qemu"
    assert y.os == "Linux"
    assert y.arch == host_arch()
    assert y.cpus == default_cpus()
    assert y.memory == default_memory_as_string()
    assert y.disk == "100GiB"
    assert y.guest_install_prefix == "/usr/local"
    assert y.containerd == Containerd(system=False, user=True, archives=default_containerd_archives())
    assert y.ssh == SSH(local_port=0, load_dot_ssh_pub_keys=True, forward_agent=False,
                        forward_x11=False, forward_x11_trusted=False)
    assert y.firmware == Firmware(legacy_bios=False, images=default_firmware_images())
    assert y.audio.device == ""
    assert y.video == Video(display="none", vnc=VNCOptions(display="127.0.0.1:0,to=9"))
    assert y.host_resolver == HostResolver(enabled=True, ipv6=False, hosts={"MY.Host": "host.lima.internal"})
    assert y.propagate_proxy_env is True
    assert y.plain is False
    assert y.rosetta == Rosetta(enabled=False, binfmt=False)
    assert y.env == {"ONE": "Eins"}
    assert y.ca_certificates == CACertificates(remove_defaults=False, files=["ca.crt"], certs=[CERT])
    assert y.dns == [ipaddress.ip_address("1.0.1.0")]


def test_builtin_cpu_types_for_foreign_arches(ctx):
    y = _filled(ctx)
    builtin = {AARCH64: "cortex-a72", ARMV7L: "cortex-a7", X8664: "qemu64", RISCV64: "rv64"}
    assert set(y.cpu_type) == set(builtin)
    for arch, value in builtin.items():
        if not is_native_arch(arch):
            assert y.cpu_type[arch] == value


def test_builtin_defaults_lists(ctx):
    y = _filled(ctx)
    assert y.mount_type == NINEP
    assert y.mounts == [Mount(
        location="/tmp",
        mount_point="/tmp",
        writable=False,
        sshfs=SSHFS(cache=True, follow_symlinks=False, sftp_driver=""),
        ninep=NineP(security_model=DEFAULT_9P_SECURITY_MODEL, protocol_version=DEFAULT_9P_PROTOCOL_VERSION,
                    msize=DEFAULT_9P_MSIZE, cache=DEFAULT_9P_CACHE_FOR_RO),
        virtiofs=Virtiofs(queue_size=None),
    )]
    assert y.provision == [Provision(mode="system", script="#!/bin/true")]
    assert y.probes == [Probe(mode="readiness", description="user probe 1/1", script="#!/bin/false")]
    assert y.networks == [Network(
        lima="shared", mac_address=mac_address(FILE_PATH + "#0", "machine"), interface="lima0")]
    assert y.networks[0].mac_address.startswith("52:55:55:")


def test_builtin_port_forwards_and_templates(ctx):
    y = _filled(ctx)
    default = PortForward(guest_ip=LOOPBACK, guest_port_range=(1, 65535), host_ip=LOOPBACK,
                          host_port_range=(1, 65535), proto=TCP)
    assert y.port_forwards[0] == default
    assert y.port_forwards[1] == PortForward(guest_ip=LOOPBACK, guest_port=80, guest_port_range=(80, 80),
                                             host_ip=LOOPBACK, host_port_range=(80, 80), proto=TCP)
    assert y.port_forwards[2] == PortForward(guest_ip=LOOPBACK, guest_port=8080, guest_port_range=(8080, 8080),
                                             host_ip=LOOPBACK, host_port=8888, host_port_range=(8888, 8888),
                                             proto=TCP)
    assert y.port_forwards[3].guest_socket == "/home/alice.linux | 501 | alice"
    assert y.port_forwards[3].host_socket == "/Users/alice | /tmp/lima-home/instance | instance | 501 | alice"
    assert y.port_forwards[3].guest_port_range == (1, 65535)
    assert y.copy_to_host == [CopyToHost(
        guest_file="/home/alice.linux | 501 | alice",
        host_file="/Users/alice | /tmp/lima-home/instance | instance | 501 | alice",
    )]


def test_defaults_override_builtin(ctx):
    d = _defaults_config()
    y = fill_default(LimaYAML(), d, LimaYAML(), FILE_PATH, ctx)
    assert y.vm_type == "vz"
    assert y.os == "unknown"
    assert y.arch == "unknown"
    assert y.cpu_type == {AARCH64: "arm64", ARMV7L: "armhf", X8664: "amd64", RISCV64: "riscv64"}
    assert y.cpus == 7
    assert y.memory == "5GiB"
    assert y.disk == "105GiB"
    assert y.additional_disks == [Disk(name="data")]
    assert y.guest_install_prefix == "/opt"
    assert y.containerd == Containerd(system=True, user=False,
                                      archives=[File(location="/tmp/nerdctl.tgz", arch="unknown")])
    assert y.ssh == SSH(local_port=888, load_dot_ssh_pub_keys=False, forward_agent=True,
                        forward_x11=False, forward_x11_trusted=False)
    assert y.firmware == Firmware(legacy_bios=True, images=[FileWithVMType(location="/dummy", arch=X8664)])
    assert y.audio.device == "coreaudio"
    assert y.video == Video(display="cocoa", vnc=VNCOptions(display="none"))
    assert y.host_resolver == HostResolver(enabled=False, ipv6=True, hosts={"default": "localhost"})
    assert y.propagate_proxy_env is False
    assert y.mount_type == VIRTIOFS
    assert y.mounts[0].mount_point == "/var/log"
    assert y.mounts[0].ninep.cache == DEFAULT_9P_CACHE_FOR_RO
    assert y.mounts[0].virtiofs.queue_size is None
    assert y.provision == [Provision(script="#!/bin/true", mode="user")]
    assert y.probes[0].description == "User Probe"
    assert y.networks == d.networks
    assert y.dns == [ipaddress.ip_address("1.1.1.1")]
    assert y.port_forwards == d.port_forwards
    assert y.copy_to_host == [CopyToHost()]
    assert y.env == {"ONE": "one", "TWO": "two"}
    assert y.ca_certificates == CACertificates(remove_defaults=True, files=[], certs=[CERT])
    assert y.rosetta.binfmt is True
    assert y.plain is False


def test_defaults_do_not_override_config(ctx):
    y = _filled(ctx)
    cpu_before = dict(y.cpu_type)
    memory_before = y.memory
    y.dns = [ipaddress.ip_address("8.8.8.8")]
    y.additional_disks = [Disk(name="overridden")]
    fill_default(y, _defaults_config(), LimaYAML(), FILE_PATH, ctx)
    assert y.vm_type == "qemu"
    assert y.arch == host_arch()
    assert y.cpu_type == cpu_before
    assert y.memory == memory_before
    assert y.ssh.local_port == 0
    assert y.mount_type == NINEP
    assert y.dns == [ipaddress.ip_address("8.8.8.8")]
    assert [disk.name for disk in y.additional_disks] == ["overridden", "data"]
    assert [p.mode for p in y.provision] == ["system", "user"]
    assert [p.description for p in y.probes] == ["user probe 1/1", "User Probe"]
    assert len(y.port_forwards) == 5
    assert y.port_forwards[-1].guest_port_range == (80, 80)
    assert len(y.copy_to_host) == 2
    assert [m.location for m in y.mounts] == ["/var/log", "/tmp"]
    assert [n.interface for n in y.networks] == ["def0", "lima0"]
    assert y.host_resolver.hosts == {"MY.Host": "host.lima.internal", "default": "localhost"}
    assert y.host_resolver.enabled is True
    assert y.env == {"ONE": "Eins", "TWO": "two"}
    assert len(y.containerd.archives) == 3
    assert y.containerd.archives[-1].location == "/tmp/nerdctl.tgz"
    assert len(y.firmware.images) == 3
    assert y.firmware.images[-1].location == "/dummy"


def test_overrides_win(ctx):
    y = _filled(ctx)
    fill_default(y, _defaults_config(), _override_config(), FILE_PATH, ctx)
    assert y.vm_type == "qemu"
    assert y.cpu_type == {AARCH64: "uber-arm", ARMV7L: "armv8", X8664: "pentium", RISCV64: "sifive-u54"}
    assert y.cpus == 12
    assert y.memory == "7GiB"
    assert y.disk == "117GiB"
    assert [disk.name for disk in y.additional_disks] == ["test", "data"]
    assert y.guest_install_prefix == "/usr"
    assert y.containerd.system is True
    assert y.containerd.user is False
    assert y.containerd.archives[0].digest == "$DIGEST"
    assert y.ssh.local_port == 4433
    assert y.firmware.legacy_bios is True
    assert y.audio.device == "coreaudio"
    assert y.video == Video(display="cocoa", vnc=VNCOptions(display="none"))
    assert y.host_resolver.hosts == {
        "MY.Host": "host.lima.internal", "default": "localhost", "override.": "underflow"}
    assert y.host_resolver.enabled is False
    assert y.propagate_proxy_env is False
    assert y.mount_type == NINEP
    assert y.mounts[0] == Mount(
        location="/var/log",
        mount_point="/var/log",
        writable=True,
        sshfs=SSHFS(cache=False, follow_symlinks=True, sftp_driver=""),
        ninep=NineP(security_model="mapped-file", protocol_version="9p2000", msize="8KiB", cache="none"),
        virtiofs=Virtiofs(queue_size=2048),
    )
    assert y.mounts[1].location == "/tmp"
    assert y.networks[0] == Network(lima="bridged", mac_address="11:22:33:44:55:66", interface="def0")
    assert y.networks[1].interface == "lima0"
    assert y.networks[2] == Network(lima="shared", mac_address="10:20:30:40:50:60", interface="def1")
    assert y.dns == [ipaddress.ip_address("2.2.2.2")]
    assert y.env == {"ONE": "Eins", "TWO": "deux", "THREE": "trois"}
    assert y.ca_certificates == CACertificates(remove_defaults=True, files=["ca.crt"], certs=[CERT])
    assert y.rosetta == Rosetta(enabled=False, binfmt=False)
    assert y.plain is False
    assert len(y.provision) == 3
    assert [p.description for p in y.probes] == ["Another Probe", "user probe 1/1", "User Probe"]
    assert len(y.port_forwards) == 6
    assert y.port_forwards[0].host_port_range == (8080, 8080)


def test_defaults_and_overrides_are_not_mutated(ctx):
    d = _defaults_config()
    o = _override_config()
    d_before = copy.deepcopy(d)
    o_before = copy.deepcopy(o)
    fill_default(LimaYAML(), d, o, FILE_PATH, ctx)
    assert d == d_before
    assert o == o_before


def test_plain_mode_disables_extras(ctx):
    y = _user_config()
    y.plain = True
    fill_default(y, LimaYAML(), LimaYAML(rosetta=Rosetta(binfmt=True)), FILE_PATH, ctx)
    assert y.mounts == []
    assert y.port_forwards == []
    assert y.containerd.system is False
    assert y.containerd.user is False
    assert y.rosetta == Rosetta(enabled=False, binfmt=False)
    assert len(y.copy_to_host) == 1


def test_image_arches_are_filled(ctx):
    y = LimaYAML(arch=X8664, images=[
        Image(location="/img", kernel=Kernel(location="/k"), initrd=File(location="/i")),
        Image(location="/img2", arch=AARCH64, kernel=Kernel(location="/k2")),
    ])
    fill_default(y, LimaYAML(), LimaYAML(), FILE_PATH, ctx)
    assert y.images[0].arch == X8664
    assert y.images[0].kernel.arch == X8664
    assert y.images[0].initrd.arch == X8664
    assert y.images[1].kernel.arch == AARCH64


def test_dependency_provision_gets_skip_flag(ctx):
    y = LimaYAML(provision=[Provision(mode="dependency", script="x")])
    fill_default(y, LimaYAML(), LimaYAML(), FILE_PATH, ctx)
    assert y.provision[0].skip_default_dependency_resolution is False


def test_virtiofs_queue_size_for_qemu(ctx):
    y = LimaYAML(mount_type=VIRTIOFS, mounts=[Mount(location="/data", writable=True)])
    fill_default(y, LimaYAML(), LimaYAML(), FILE_PATH, ctx)
    assert y.mounts[0].virtiofs.queue_size == 1024
    assert y.mounts[0].ninep.cache == "mmap"


def test_zero_cpus_and_empty_memory_use_builtin(ctx):
    y = LimaYAML(cpus=0, memory="", disk="")
    fill_default(y, LimaYAML(), LimaYAML(), FILE_PATH, ctx)
    assert y.cpus == default_cpus()
    assert y.memory == default_memory_as_string()
    assert y.disk == "100GiB"
    assert y.mount_type == "reverse-sshfs"