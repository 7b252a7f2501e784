"""Re-emit JSON log lines produced by a child process through a Python logger."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

_TRACE = 5
logging.addLevelName(_TRACE, "TRACE")

_EPSILON = timedelta(seconds=1)

_RFC3339_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)

_LEVELS = {
    "panic": "panic",
    "fatal": "fatal",
    "error": "error",
    "warn": "warning",
    "warning": "warning",
    "info": "info",
    "debug": "debug",
    "trace": "trace",
}


class _Malformed(ValueError):
    pass


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise _Malformed("time must be a string")
    match = _RFC3339_RE.match(value)
    if match is None:
        raise _Malformed(f"invalid time {value!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction = match.group(7) or ""
    micro = int((fraction + "000000")[:6])
    zone = match.group(8)
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    try:
        parsed = datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)
    except ValueError as exc:
        raise _Malformed(str(exc)) from exc
    if parsed == datetime(1, 1, 1, tzinfo=timezone.utc):
        return None
    return parsed


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _decode(line: str) -> tuple[str, str, Optional[datetime]]:
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        raise _Malformed(str(exc)) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise _Malformed("not an object")
    level = data.get("level")
    msg = data.get("msg")
    if level is not None and not isinstance(level, str):
        raise _Malformed("level must be a string")
    if msg is not None and not isinstance(msg, str):
        raise _Malformed("msg must be a string")
    return level or "", msg or "", _parse_time(data.get("time"))


def propagate_json(
    logger: logging.Logger,
    json_line: Union[bytes, str],
    header: str,
    begin: Optional[datetime] = None,
) -> None:
    """Log one JSON line with its own level; lines older than ``begin`` are dropped.

    Panic and fatal lines are logged as errors, carrying the original level in the
    record attribute ``propagated_level``. Lines that cannot be decoded are logged
    verbatim at info level.
    """
    line = json_line.decode("utf-8", "replace") if isinstance(json_line, bytes) else json_line
    if not line.strip():
        return
    try:
        level_text, msg, when = _decode(line)
        level = _LEVELS.get(level_text.lower())
        if level is None:
            raise _Malformed(f"not a valid level: {level_text!r}")
    except _Malformed:
        logger.info(header + line)
        return

    if when is not None and begin is not None and _as_aware(begin) > when + _EPSILON:
        return

    text = header + msg
    if level in ("panic", "fatal"):
        logger.error(text, extra={"propagated_level": level})
    elif level == "error":
        logger.error(text)
    elif level == "warning":
        logger.warning(text)
    elif level == "info":
        logger.info(text)
    elif level == "debug":
        logger.debug(text)
    else:
        logger.log(_TRACE, text)