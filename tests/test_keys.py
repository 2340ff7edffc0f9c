"""Unit tests for deskmacro.engine.keys and the pynput key mapping."""

from __future__ import annotations

import pytest

from deskmacro.engine.hooks import key_to_vk
from deskmacro.engine.keys import control_type_id, is_modifier, parse_key_spec, vk_to_key_name


class TestKeyTables:
    def test_vk_names(self):
        assert vk_to_key_name(0x0D) == "Enter"
        assert vk_to_key_name(0x41) == "A"
        assert vk_to_key_name(0x70) == "F1"
        assert vk_to_key_name(0xA2) == "Ctrl"
        assert vk_to_key_name(0xFF) == "VK_FF"

    def test_is_modifier(self):
        assert is_modifier(0x10)
        assert not is_modifier(0x41)

    def test_control_type_lookup(self):
        assert control_type_id("Button") == 50000
        assert control_type_id(" edit ") == 50004
        assert control_type_id("Widget") is None


class TestParseKeySpec:
    def test_combo(self):
        assert parse_key_spec("Ctrl+S") == [[0x11, 0x53]]

    def test_sequence(self):
        assert parse_key_spec("Alt,F") == [[0x12], [0x46]]

    def test_aliases(self):
        assert parse_key_spec("esc") == [[0x1B]]

    @pytest.mark.parametrize("spec", ["", "Ctrl+", "Ctrl+Banana"])
    def test_invalid(self, spec):
        with pytest.raises(ValueError):
            parse_key_spec(spec)


class TestKeyToVk:
    class _Char:
        def __init__(self, char: str) -> None:
            self.char = char
            self.vk = None

    class _Special:
        def __init__(self, name: str) -> None:
            self.name = name
            self.value = None

    def test_character_keys(self):
        assert key_to_vk(self._Char("a")) == 0x41
        assert key_to_vk(self._Char(" ")) == 0x20
        assert key_to_vk(self._Char("é")) is None

    def test_named_keys(self):
        assert key_to_vk(self._Special("ctrl_l")) == 0xA2
        assert key_to_vk(self._Special("enter")) == 0x0D
        assert key_to_vk(self._Special("f5")) == 0x74
