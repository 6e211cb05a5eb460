"""
Volume selector resolution.

Turns what an operator typed (or a shell extension passed) into a
``VolumeSelector``. Pure string handling; nothing here touches the system.
"""

from __future__ import annotations

import re

from formatforge.core.errors import InvalidSelector
from formatforge.core.models import VolumeSelector

DEVICE_ID_PREFIXES = ("\\\\?\\", "\\\\.\\")

_LETTER = re.compile(r"^([A-Za-z])(?::[\\/]?)?$")
_DEVICE_ID = re.compile(r"^\\\\[?.]\\Volume\{[^{}\\]+\}\\?$", re.IGNORECASE)


def resolve_selector(text: str) -> VolumeSelector:
    """
    Resolve ``E``, ``E:``, ``E:\\`` or ``\\\\?\\Volume{GUID}\\``.

    Letters are canonicalised to ``E:``; device ids to the ``\\\\?\\`` form
    with a trailing backslash, which mountvol requires.
    """
    if not isinstance(text, str):
        raise InvalidSelector(repr(text), "selector must be a string")

    candidate = text.strip()
    if not candidate:
        raise InvalidSelector(text, "selector is empty")

    match = _LETTER.match(candidate)
    if match:
        return VolumeSelector(letter=f"{match.group(1).upper()}:")

    if candidate.startswith(DEVICE_ID_PREFIXES):
        if not _DEVICE_ID.match(candidate):
            raise InvalidSelector(text, "device id must look like \\\\?\\Volume{GUID}\\")
        device_id = "\\\\?\\" + candidate[4:]
        if not device_id.endswith("\\"):
            device_id += "\\"
        return VolumeSelector(device_id=device_id)

    raise InvalidSelector(text)


def is_letter_selector(text: str) -> bool:
    """Whether ``text`` names a drive letter (no temporary mount needed)."""
    try:
        return resolve_selector(text).has_letter
    except InvalidSelector:
        return False
