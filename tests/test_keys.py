"""Tests for swarmbrowse/core/keys.py"""

import pytest

from swarmbrowse.core.keys import (
    DETACH_BYTE,
    KeyEvent,
    encode_key,
    is_detach,
    split_detach,
)


class TestEncodeKey:
    """Key events translate to the bytes a terminal would send"""

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("enter", b"\r"),
            ("tab", b"\t"),
            ("backspace", b"\x7f"),
            ("esc", b"\x1b"),
            ("space", b" "),
            ("up", b"\x1b[A"),
            ("down", b"\x1b[B"),
            ("right", b"\x1b[C"),
            ("left", b"\x1b[D"),
            ("pgup", b"\x1b[5~"),
            ("pgdown", b"\x1b[6~"),
            ("home", b"\x1b[H"),
            ("end", b"\x1b[F"),
            ("insert", b"\x1b[2~"),
            ("delete", b"\x1b[3~"),
            ("f1", b"\x1bOP"),
            ("f4", b"\x1bOS"),
            ("f5", b"\x1b[15~"),
            ("f6", b"\x1b[17~"),
            ("f11", b"\x1b[23~"),
            ("f12", b"\x1b[24~"),
            ("ctrl+]", b"\x1d"),
            ("ctrl+^", b"\x1e"),
            ("ctrl+_", b"\x1f"),
        ],
    )
    def test_special_keys(self, key, expected):
        assert encode_key(KeyEvent(key)) == expected

    def test_ctrl_letters(self):
        """Ctrl+A..Z map to 0x01..0x1A"""
        assert encode_key(KeyEvent("ctrl+a")) == b"\x01"
        assert encode_key(KeyEvent("ctrl+c")) == b"\x03"
        assert encode_key(KeyEvent("ctrl+d")) == b"\x04"
        assert encode_key(KeyEvent("ctrl+z")) == b"\x1a"

    def test_aliases(self):
        assert encode_key(KeyEvent("escape")) == b"\x1b"
        assert encode_key(KeyEvent("Enter")) == b"\r"

    def test_runes_are_utf8(self):
        assert encode_key(KeyEvent.runes("ls")) == b"ls"
        assert encode_key(KeyEvent.runes("ü")) == "ü".encode("utf-8")

    def test_alt_prefixes_escape(self):
        assert encode_key(KeyEvent.runes("b", alt=True)) == b"\x1bb"

    def test_unknown_key_sends_nothing(self):
        assert encode_key(KeyEvent("hyper+q")) == b""

    def test_detach_key_sends_nothing(self):
        event = KeyEvent("ctrl+\\")
        assert is_detach(event)
        assert encode_key(event) is None


class TestSplitDetach:
    """Detach handling for raw tty input"""

    def test_no_detach(self):
        assert split_detach(b"echo hi\r") == (b"echo hi\r", False)

    def test_detach_alone(self):
        assert split_detach(DETACH_BYTE) == (b"", True)

    def test_bytes_before_detach_are_kept(self):
        """Input after the detach byte is dropped"""
        assert split_detach(b"ls" + DETACH_BYTE + b"rm -rf") == (b"ls", True)
