"""Expansion of `{{.Key}}` placeholders in guest and host paths."""

from __future__ import annotations

import getpass
import ipaddress
import logging
import os
import re
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from limaconf.model import TCP, CopyToHost, PortForward

_log = logging.getLogger(__name__)

IPV4_ZERO = ipaddress.IPv4Address("0.0.0.0")
IPV4_LOOPBACK1 = ipaddress.IPv4Address("127.0.0.1")

SOCKET_DIR = "sock"

_NO_VALUE = "<no value>"
_FIELD_RE = re.compile(r"\.([A-Za-z_][A-Za-z0-9_]*)")
_SPACE = " \t\r\n"


class TemplateError(ValueError):
    """A template could not be parsed."""


@dataclass(frozen=True)
class HostContext:
    """Facts about the host user that templates and defaults depend on."""

    user: str
    uid: str
    home: str
    lima_home: str
    machine_id: str = ""

    @property
    def guest_home(self) -> str:
        """The home directory of the user inside the guest."""
        return f"/home/{self.user}.linux"

    @classmethod
    def current(cls) -> "HostContext":
        """Describe the user running this process."""
        home = str(Path.home())
        lima_home = os.environ.get("LIMA_HOME") or os.path.join(home, ".lima")
        uid = str(os.getuid()) if hasattr(os, "getuid") else "1000"
        return cls(
            user=getpass.getuser(),
            uid=uid,
            home=home,
            lima_home=os.path.abspath(lima_home),
            machine_id=_machine_id(),
        )


def _machine_id() -> str:
    for candidate in ("/etc/machine-id", "/var/lib/dbus/machine-id"):
        try:
            value = Path(candidate).read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if value:
            return value
    return socket.gethostname()


def _evaluate(action: str, data: Mapping[str, str]) -> str:
    if action.startswith("/*") and action.endswith("*/"):
        return ""
    match = _FIELD_RE.fullmatch(action)
    if match is None:
        if not action:
            raise TemplateError("missing value for command")
        raise TemplateError(f"unsupported template action {action!r}")
    return data.get(match.group(1), _NO_VALUE)


def _render(text: str, data: Mapping[str, str]) -> str:
    parts: list[str] = []
    pos = 0
    while True:
        start = text.find("{{", pos)
        if start < 0:
            parts.append(text[pos:])
            break
        end = text.find("}}", start + 2)
        if end < 0:
            raise TemplateError("unclosed action")
        literal = text[pos:start]
        inner = text[start + 2 : end]
        if len(inner) >= 2 and inner[0] == "-" and inner[1] in _SPACE:
            literal = literal.rstrip(_SPACE)
            inner = inner[1:]
        trim_right = len(inner) >= 2 and inner[-1] == "-" and inner[-2] in _SPACE
        if trim_right:
            inner = inner[:-1]
        parts.append(literal)
        parts.append(_evaluate(inner.strip(_SPACE), data))
        pos = end + 2
        if trim_right:
            while pos < len(text) and text[pos] in _SPACE:
                pos += 1
    return "".join(parts)


def execute_guest_template(text: str, ctx: HostContext) -> str:
    """Expand a template that names a path inside the guest."""
    return _render(text, {"Home": ctx.guest_home, "UID": ctx.uid, "User": ctx.user})


def execute_host_template(text: str, inst_dir: str, ctx: HostContext) -> str:
    """Expand a template that names a path on the host."""
    name = os.path.basename(inst_dir)
    data = {
        "Dir": inst_dir,
        "Home": ctx.home,
        "Name": name,
        "UID": ctx.uid,
        "User": ctx.user,
        "Instance": name,
        "LimaHome": ctx.lima_home,
    }
    return _render(text, data)


def fill_port_forward_defaults(rule: PortForward, inst_dir: str, ctx: HostContext) -> None:
    """Fill the unset fields of a port forwarding rule in place."""
    if not rule.proto:
        rule.proto = TCP
    if rule.guest_ip is None:
        rule.guest_ip = IPV4_ZERO if rule.guest_ip_must_be_zero else IPV4_LOOPBACK1
    if rule.host_ip is None:
        rule.host_ip = IPV4_LOOPBACK1
    if rule.guest_port_range == (0, 0):
        if rule.guest_port == 0:
            rule.guest_port_range = (1, 65535)
        else:
            rule.guest_port_range = (rule.guest_port, rule.guest_port)
    if rule.host_port_range == (0, 0):
        if rule.host_port == 0:
            rule.host_port_range = rule.guest_port_range
        else:
            rule.host_port_range = (rule.host_port, rule.host_port)
    if rule.guest_socket:
        try:
            rule.guest_socket = execute_guest_template(rule.guest_socket, ctx)
        except TemplateError as exc:
            _log.warning("Couldn't process guestSocket %r as a template: %s", rule.guest_socket, exc)
    if rule.host_socket:
        try:
            rule.host_socket = execute_host_template(rule.host_socket, inst_dir, ctx)
        except TemplateError as exc:
            _log.warning("Couldn't process hostSocket %r as a template: %s", rule.host_socket, exc)
        if not os.path.isabs(rule.host_socket):
            rule.host_socket = os.path.join(inst_dir, SOCKET_DIR, rule.host_socket)


def fill_copy_to_host_defaults(rule: CopyToHost, inst_dir: str, ctx: HostContext) -> None:
    """Expand the templates of a copy-to-host rule in place."""
    if rule.guest_file:
        try:
            rule.guest_file = execute_guest_template(rule.guest_file, ctx)
        except TemplateError as exc:
            _log.warning("Couldn't process guest %r as a template: %s", rule.guest_file, exc)
    if rule.host_file:
        try:
            rule.host_file = execute_host_template(rule.host_file, inst_dir, ctx)
        except TemplateError as exc:
            _log.warning("Couldn't process host %r as a template: %s", rule.host_file, exc)