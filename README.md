# limaconf

`limaconf` reads the YAML file that describes a virtual machine instance,
mixes in an optional site-wide *default* file and an optional site-wide
*override* file, and fills every field that was left out with a built-in
default. The result is a tree of plain dataclasses that the rest of a tool can
work with.

## Modules

- **`limaconf.model`** — dataclasses for every part of an instance file:
  `LimaYAML`, `Image`, `Kernel`, `File`, `FileWithVMType`, `Disk`, `Mount`
  (with `SSHFS`, `NineP`, `Virtiofs`), `SSH`, `Firmware`, `Audio`, `Video`,
  `VNCOptions`, `Provision`, `Containerd`, `Probe`, `PortForward`,
  `CopyToHost`, `Network`, `HostResolver`, `CACertificates` and `Rosetta`,
  plus string constants such as `QEMU`, `VZ`, `X8664`, `AARCH64`, `NINEP` and
  `VIRTIOFS`. `from_mapping` builds a `LimaYAML` from a parsed YAML mapping,
  ignoring keys it does not know and raising `ValueError` for values of the
  wrong type; `disk_from_value` accepts an additional disk written either as a
  bare name or as a mapping.
- **`limaconf.loader`** — `parse_yaml` parses one document, rejecting
  malformed YAML and repeated keys with `YAMLLoadError` (a `ValueError`) and
  logging a warning for unknown top-level keys. `load` parses the main
  document, mixes in the default and override files when they exist, and
  fills in defaults.
- **`limaconf.defaults`** — `fill_default(y, d, o, file_path, ctx)` fills `y`
  in place (and returns it). An override (`o`) beats the instance file (`y`),
  which beats the default file (`d`), which beats the built-in values.
  Images, provisioning scripts, probes, port forwards, copy-to-host rules,
  additional disks, firmware images and containerd archives are concatenated
  `o`, `y`, `d`; mounts and networks are combined `d`, `y`, `o` by location
  and interface name; `env` and host-resolver entries are merged key by key;
  DNS servers come from the highest-priority file that sets any; CA files and
  certificates are appended without repeats. Plain mode clears mounts, port
  forwards, containerd and Rosetta.
- **`limaconf.merge`** — the combination rules used above: `merge_mounts`,
  `merge_networks` and `unique`.
- **`limaconf.templating`** — `HostContext` holds the user name, uid, home
  directory, Lima home and machine id that templates and MAC addresses depend
  on; `HostContext.current()` describes the running user. Guest paths may use
  `{{.Home}}`, `{{.UID}}` and `{{.User}}`; host paths may also use
  `{{.Dir}}`, `{{.Name}}`, `{{.Instance}}` and `{{.LimaHome}}`. Unknown keys
  expand to `<no value>`; anything else inside `{{ }}` raises
  `TemplateError`. `fill_port_forward_defaults` and
  `fill_copy_to_host_defaults` fill one rule in place; a relative host socket
  is placed under `<instance dir>/sock/`.
- **`limaconf.platform`** — host facts and built-in defaults: `host_arch`,
  `is_native_arch`, `is_accel_os`, `has_host_cpu`, `has_max_cpu`,
  `resolve_vm_type`, `resolve_os`, `resolve_arch`, `default_cpus` (at most 4),
  `default_memory` (half the host memory, at most 4 GiB),
  `default_disk_size_as_string` (`"100GiB"`), the default containerd archives
  and firmware images, and `mac_address(unique_id, machine_id)`, which gives a
  stable, locally administered address starting `52:55:55`.
- **`limaconf.units`** — `ram_in_bytes("4GiB")` parses a size with binary
  units; `bytes_size(4 * 1024**3)` gives `"4GiB"`.
- **`limaconf.localpath`** — `expand` turns `~`, `~/` and `~/foo` into
  absolute paths and raises `PathExpansionError` for empty paths and paths
  such as `~foo/bar`.
- **`limaconf.dnshosts`** — `extract_zones` turns a mapping of host names to
  addresses (or to other host names) into `Zone` objects with `Record`
  entries; `host_ip`, `zone_name` and `record_name` are the pieces it uses.
- **`limaconf.logprop`** — `propagate_json(logger, line, header, begin)`
  re-emits a JSON log line from a child process on a `logging.Logger` at its
  own level. Panic and fatal lines become errors carrying the original level
  in the record attribute `propagated_level`; lines that cannot be decoded
  are logged verbatim at info level; lines older than `begin` (by more than a
  second) are dropped.

## Loading an instance file

```python
from pathlib import Path

from limaconf.loader import load
from limaconf.templating import HostContext

instance_file = Path("instances/dev/lima.yaml")
config_dir = Path("config")

ctx = HostContext(
    user="alice",
    uid="1000",
    home="/home/alice",
    lima_home="/home/alice/.lima",
    machine_id="example-machine-id",
)

y = load(
    instance_file.read_bytes(),
    str(instance_file),
    config_dir / "default.yaml",
    config_dir / "override.yaml",
    ctx,
)

print(y.vm_type, y.arch, y.cpus, y.memory, y.disk)
for rule in y.port_forwards:
    print(rule.guest_port_range, "->", rule.host_port_range)
```

Default and override paths may be `None` or point to files that do not
exist; either way they are skipped. Pass `HostContext.current()` to use the
running user's details.

## DNS zones from a host table

```python
from limaconf.dnshosts import extract_zones

zones = extract_zones({
    "localhost": "127.0.0.1",
    "host.lima.internal": "192.168.5.2",
    "host.docker.internal": "host.lima.internal",
})
for zone in zones:
    print(zone.name, zone.default_ip, [(r.name, r.ip) for r in zone.records])
```

A name with no dot becomes a zone with a default address; every other name
becomes a record in the zone named after its last label (`"internal."`).
Names that point at other names are followed until an address is found.

## What it does not do

- It does not check a loaded configuration for impossible values (unknown
  architectures, bad port ranges, clashing network settings and so on);
  `load` returns whatever the files say, with defaults filled in.
- It does not read or manage the host's networks file, start or stop network
  daemons, or work out user-mode network subnets.
- It has no command-line program and never starts a virtual machine.

## Requirements

Python 3.10 or later and PyYAML. The test suite uses pytest.