"""Stable colored ``[name]`` prefixes for command output."""

from __future__ import annotations

import hashlib

from rich.color import Color
from rich.style import Style
from rich.text import Text


def hash_key(key: str) -> int:
    """64-bit digest of ``key`` that is identical across runs and machines."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


def key_color(key: str) -> Color:
    value = hash_key(key)
    return Color.from_rgb((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)


def command_tag(name: str) -> Text:
    tag = Text()
    tag.append("[", style="dim")
    tag.append(name, style=Style(color=key_color(name), bold=True))
    tag.append("]", style="dim")
    return tag


def tagged_line(tag: Text, line: str) -> Text:
    """``tag`` followed by ``line`` with no markup interpretation of the line."""
    rendered = tag.copy()
    rendered.append(" ")
    rendered.append(line)
    return rendered
