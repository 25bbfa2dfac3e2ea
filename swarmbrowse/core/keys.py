# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Translation of key events to the bytes an ANSI terminal would send.

Key names follow the "modifier+key" convention used by terminal UI
toolkits ("enter", "ctrl+c", "pgup", "f5"). Printable input arrives as a
runes event carrying its text.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

ESC = b"\x1b"

# Ctrl+\ ends local observation of a session. Never sent to the remote.
DETACH_KEY = "ctrl+\\"
DETACH_BYTE = b"\x1c"

RUNES = "runes"

SPECIAL_KEYS: Dict[str, bytes] = {
    "enter": b"\r",
    "tab": b"\t",
    "backspace": b"\x7f",
    "esc": ESC,
    "space": b" ",
    # Cursor keys
    "up": b"\x1b[A",
    "down": b"\x1b[B",
    "right": b"\x1b[C",
    "left": b"\x1b[D",
    # Navigation
    "pgup": b"\x1b[5~",
    "pgdown": b"\x1b[6~",
    "home": b"\x1b[H",
    "end": b"\x1b[F",
    "insert": b"\x1b[2~",
    "delete": b"\x1b[3~",
    # Function keys: F1-F4 use SS3, F5-F12 the numbered CSI form
    "f1": b"\x1bOP",
    "f2": b"\x1bOQ",
    "f3": b"\x1bOR",
    "f4": b"\x1bOS",
    "f5": b"\x1b[15~",
    "f6": b"\x1b[17~",
    "f7": b"\x1b[18~",
    "f8": b"\x1b[19~",
    "f9": b"\x1b[20~",
    "f10": b"\x1b[21~",
    "f11": b"\x1b[23~",
    "f12": b"\x1b[24~",
    # Control punctuation
    "ctrl+]": b"\x1d",
    "ctrl+^": b"\x1e",
    "ctrl+_": b"\x1f",
}

# Ctrl+A..Ctrl+Z map to 0x01..0x1A
SPECIAL_KEYS.update(
    {f"ctrl+{chr(letter)}": bytes([letter - ord("a") + 1]) for letter in range(ord("a"), ord("z") + 1)}
)

ALIASES = {
    "escape": "esc",
    "return": "enter",
    "pageup": "pgup",
    "pagedown": "pgdown",
    "page_up": "pgup",
    "page_down": "pgdown",
    "ctrl+backslash": DETACH_KEY,
}


@dataclass(frozen=True)
class KeyEvent:
    """A single key press from the local input side."""

    key: str
    text: str = ""
    alt: bool = False

    @classmethod
    def runes(cls, text: str, alt: bool = False) -> "KeyEvent":
        return cls(key=RUNES, text=text, alt=alt)

    @property
    def name(self) -> str:
        key = self.key.lower()
        return ALIASES.get(key, key)


def is_detach(event: KeyEvent) -> bool:
    return event.name == DETACH_KEY


def encode_key(event: KeyEvent) -> Optional[bytes]:
    """Return the bytes to forward for ``event``.

    Returns None for the detach key, and b"" for keys with no terminal
    representation.
    """
    if is_detach(event):
        return None

    if event.key == RUNES:
        data = event.text.encode("utf-8")
        return ESC + data if event.alt and data else data

    return SPECIAL_KEYS.get(event.name, b"")


def split_detach(chunk: bytes) -> Tuple[bytes, bool]:
    """Split raw input at the detach byte.

    Returns the bytes to forward and whether detach was requested.
    Anything typed after the detach byte is dropped.
    """
    index = chunk.find(DETACH_BYTE)
    if index == -1:
        return chunk, False
    return chunk[:index], True
