"""Text helpers shared by the document parsers."""

from __future__ import annotations

import os
from html import unescape
from typing import Any, Optional


def local_name(tag: str) -> str:
    """Strip an XML namespace: '{http://iase.disa.mil/cci}cci_item' -> 'cci_item'."""
    if tag and tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag or ""


def clean_text(value: Any) -> str:
    """Normalize a checklist text value.

    Unescapes HTML entities up to twice (double-encoded values show up in
    CKLB exports) and normalizes line endings.
    """
    if value is None:
        return ""
    s = str(value)
    for _ in range(2):
        unescaped = unescape(s)
        if unescaped == s:
            break
        s = unescaped
    return s.replace("\r\n", "\n")


def optional_text(value: Any) -> Optional[str]:
    """Like clean_text, but empty values become None."""
    s = clean_text(value)
    return s if s.strip() else None


def redact_home(message: str) -> str:
    """Replace the user's home directory in a message shown to the user."""
    if not message:
        return message
    home = os.environ.get("USERPROFILE") or os.environ.get("HOME") or ""
    if home and home != "/":
        return message.replace(home, "~")
    return message
