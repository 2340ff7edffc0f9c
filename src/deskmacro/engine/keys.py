"""Static key and control-type tables.

Virtual-key codes follow the Windows ``VK_*`` numbering, which is also what
the recorder's event source reports.  Key names are the ones ``send_keys``
steps use (``Ctrl+S``, ``Alt,F``, ``Enter``).
"""

from __future__ import annotations

# Modifier virtual keys (generic, left and right variants) -> canonical name.
MODIFIER_KEYS: dict[int, str] = {
    0x10: "Shift",
    0xA0: "Shift",
    0xA1: "Shift",
    0x11: "Ctrl",
    0xA2: "Ctrl",
    0xA3: "Ctrl",
    0x12: "Alt",
    0xA4: "Alt",
    0xA5: "Alt",
    0x5B: "Win",
    0x5C: "Win",
}

# Rendering order inside a combo.
MODIFIER_ORDER: tuple[str, ...] = ("Ctrl", "Alt", "Shift", "Win")


def _build_key_names() -> dict[int, str]:
    names = {
        0x08: "Back",
        0x09: "Tab",
        0x0D: "Enter",
        0x13: "Pause",
        0x14: "CapsLock",
        0x1B: "Escape",
        0x20: "Space",
        0x21: "PageUp",
        0x22: "PageDown",
        0x23: "End",
        0x24: "Home",
        0x25: "Left",
        0x26: "Up",
        0x27: "Right",
        0x28: "Down",
        0x2C: "PrintScreen",
        0x2D: "Insert",
        0x2E: "Delete",
        0x5D: "Apps",
        0x6A: "Multiply",
        0x6B: "Add",
        0x6C: "Separator",
        0x6D: "Subtract",
        0x6E: "Decimal",
        0x6F: "Divide",
        0x90: "NumLock",
        0x91: "Scroll",
        0xBA: "OemSemicolon",
        0xBB: "OemPlus",
        0xBC: "OemComma",
        0xBD: "OemMinus",
        0xBE: "OemPeriod",
        0xBF: "OemQuestion",
        0xC0: "OemTilde",
        0xDB: "OemOpenBrackets",
        0xDC: "OemPipe",
        0xDD: "OemCloseBrackets",
        0xDE: "OemQuotes",
    }
    for vk in range(0x30, 0x3A):
        names[vk] = chr(vk)
    for vk in range(0x41, 0x5B):
        names[vk] = chr(vk)
    for n in range(10):
        names[0x60 + n] = f"NumPad{n}"
    for n in range(1, 25):
        names[0x6F + n] = f"F{n}"
    return names


KEY_NAMES: dict[int, str] = _build_key_names()


def _build_printable() -> dict[int, str]:
    chars = {
        0x20: " ",
        0x6A: "*",
        0x6B: "+",
        0x6D: "-",
        0x6E: ".",
        0x6F: "/",
        0xBA: ";",
        0xBB: "=",
        0xBC: ",",
        0xBD: "-",
        0xBE: ".",
        0xBF: "/",
        0xC0: "`",
        0xDB: "[",
        0xDC: "\\",
        0xDD: "]",
        0xDE: "'",
    }
    for vk in range(0x30, 0x3A):
        chars[vk] = chr(vk)
    for vk in range(0x41, 0x5B):
        chars[vk] = chr(vk).lower()
    for n in range(10):
        chars[0x60 + n] = str(n)
    return chars


# Keys that join a typing run, with the character they produce (US layout, unshifted).
PRINTABLE_CHARS: dict[int, str] = _build_printable()


def _build_key_codes() -> dict[str, int]:
    codes = {name.lower(): vk for vk, name in KEY_NAMES.items()}
    codes.update({"shift": 0x10, "ctrl": 0x11, "control": 0x11, "alt": 0x12, "menu": 0x12, "win": 0x5B, "windows": 0x5B})
    codes.update({"esc": 0x1B, "return": 0x0D, "backspace": 0x08, "del": 0x2E, "ins": 0x2D, "pgup": 0x21, "pgdn": 0x22})
    return codes


# Lower-cased key name -> virtual-key code.  Accepts common aliases.
KEY_CODES: dict[str, int] = _build_key_codes()

# UI Automation control type name -> ControlType id.
CONTROL_TYPES: dict[str, int] = {
    "Button": 50000,
    "Calendar": 50001,
    "CheckBox": 50002,
    "ComboBox": 50003,
    "Edit": 50004,
    "Hyperlink": 50005,
    "Image": 50006,
    "ListItem": 50007,
    "List": 50008,
    "Menu": 50009,
    "MenuBar": 50010,
    "MenuItem": 50011,
    "ProgressBar": 50012,
    "RadioButton": 50013,
    "ScrollBar": 50014,
    "Slider": 50015,
    "Spinner": 50016,
    "StatusBar": 50017,
    "Tab": 50018,
    "TabItem": 50019,
    "Text": 50020,
    "ToolBar": 50021,
    "ToolTip": 50022,
    "Tree": 50023,
    "TreeItem": 50024,
    "Custom": 50025,
    "Group": 50026,
    "Thumb": 50027,
    "DataGrid": 50028,
    "DataItem": 50029,
    "Document": 50030,
    "SplitButton": 50031,
    "Window": 50032,
    "Pane": 50033,
    "Header": 50034,
    "HeaderItem": 50035,
    "Table": 50036,
    "TitleBar": 50037,
    "Separator": 50038,
    "SemanticZoom": 50039,
    "AppBar": 50040,
}

_CONTROL_TYPES_LOWER = {name.lower(): cid for name, cid in CONTROL_TYPES.items()}


def is_modifier(vk: int) -> bool:
    return vk in MODIFIER_KEYS


def vk_to_key_name(vk: int) -> str:
    """Name of *vk* as used in ``send_keys`` specs; ``VK_XX`` if unnamed."""
    if vk in MODIFIER_KEYS:
        return MODIFIER_KEYS[vk]
    return KEY_NAMES.get(vk, f"VK_{vk:02X}")


def control_type_id(name: str) -> int | None:
    """Case-insensitive control type lookup."""
    return _CONTROL_TYPES_LOWER.get(name.strip().lower())


def parse_key_spec(spec: str) -> list[list[int]]:
    """Parse ``Ctrl+S`` / ``Alt,F`` style key specs into virtual-key groups.

    ``,`` separates keys pressed one after another; ``+`` joins keys held
    together.  Raises ``ValueError`` on an empty or unknown key name.
    """
    groups: list[list[int]] = []
    for chord in spec.split(","):
        group: list[int] = []
        for part in chord.split("+"):
            token = part.strip()
            if not token:
                raise ValueError(f"Empty key in '{spec}'")
            vk = KEY_CODES.get(token.lower())
            if vk is None:
                raise ValueError(f"Unknown key '{token}' in '{spec}'")
            group.append(vk)
        groups.append(group)
    return groups
