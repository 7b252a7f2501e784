"""Reading an instance configuration and mixing in default and override files."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from typing import Optional, Union

import yaml

from limaconf.defaults import fill_default
from limaconf.model import LimaYAML, from_mapping
from limaconf.templating import HostContext

_log = logging.getLogger(__name__)

_KNOWN_KEYS = frozenset(
    (
        "vmType", "os", "arch", "images", "cpuType", "cpus", "memory", "disk",
        "additionalDisks", "mounts", "mountType", "ssh", "firmware", "audio", "video",
        "provision", "containerd", "guestInstallPrefix", "probes", "portForwards",
        "copyToHost", "message", "networks", "env", "dns", "hostResolver",
        "propagateProxyEnv", "caCerts", "rosetta", "plain", "kernel", "initrd", "cmdline",
    )
)

_MERGE_TAG = "tag:yaml.org,2002:merge"


class YAMLLoadError(ValueError):
    """A configuration document cannot be read."""


class _UniqueKeyLoader(yaml.SafeLoader):
    """A safe loader that rejects mappings with repeated keys."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if key_node.tag == _MERGE_TAG:
                    continue
                key = self.construct_object(key_node, deep=True)
                try:
                    duplicate = key in seen
                except TypeError:
                    continue
                if duplicate:
                    raise yaml.constructor.ConstructorError(
                        "while constructing a mapping",
                        node.start_mark,
                        f"found duplicate key {key!r}",
                        key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def parse_yaml(data: Union[bytes, str], comment: str) -> LimaYAML:
    """Parse one configuration document; ``comment`` names it in error messages."""
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    try:
        doc = yaml.load(text, Loader=_UniqueKeyLoader)
        if doc is None:
            doc = {}
        if not isinstance(doc, Mapping):
            raise ValueError(f"expected a mapping, got {type(doc).__name__}")
        result = from_mapping(doc)
    except (yaml.YAMLError, ValueError, TypeError, KeyError) as exc:
        raise YAMLLoadError(f"failed to unmarshal YAML ({comment}): {exc}") from exc
    unknown = sorted(str(key) for key in doc if key not in _KNOWN_KEYS)
    if unknown:
        _log.warning(
            "Non-strict YAML is deprecated and will be unsupported in a future version "
            "(%s): unknown fields %s",
            comment,
            ", ".join(unknown),
        )
    return result


def _read_optional(path: Optional[Union[str, os.PathLike]]) -> Optional[bytes]:
    if path is None:
        return None
    try:
        with open(path, "rb") as handle:
            return handle.read()
    except FileNotFoundError:
        return None


def load(
    data: Union[bytes, str],
    file_path: str,
    default_path: Optional[Union[str, os.PathLike]] = None,
    override_path: Optional[Union[str, os.PathLike]] = None,
    ctx: Optional[HostContext] = None,
) -> LimaYAML:
    """Parse a configuration and fill unset fields with default values.

    The optional default and override files are mixed in when they exist.
    The result is not validated.
    """
    y = parse_yaml(data, f"main file {json.dumps(file_path)}")
    d = LimaYAML()
    o = LimaYAML()

    content = _read_optional(default_path)
    if content is not None:
        _log.debug("Mixing %r into %r", str(default_path), file_path)
        d = parse_yaml(content, f"default file {json.dumps(str(default_path))}")

    content = _read_optional(override_path)
    if content is not None:
        _log.debug("Mixing %r into %r", str(override_path), file_path)
        o = parse_yaml(content, f"override file {json.dumps(str(override_path))}")

    return fill_default(y, d, o, file_path, ctx)