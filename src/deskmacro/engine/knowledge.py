"""Product knowledge bases.

A knowledge base is a free-form YAML document (``_knowledge.yaml`` by
convention, any ``_``-prefixed file counts) with ``kind: knowledge-base``
that describes one target application: how to launch it, which keytips and
shortcuts are verified, notable automation ids.  It lives in the product's
folder next to that product's macros.

The document is kept as a loose tree of dicts/lists/scalars and read
through the small accessor functions below, which tolerate missing keys
and unexpected shapes.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

import yaml

from deskmacro.models import KNOWLEDGE_BASE_KIND

logger = logging.getLogger("deskmacro.engine.knowledge")


@dataclasses.dataclass
class KnowledgeBase:
    product_name: str
    file_path: str
    summary: str
    raw_yaml: str
    document: dict[str, Any] = dataclasses.field(default_factory=dict, repr=False)

    @property
    def process_name(self) -> str | None:
        return get_str(get_map(self.document, "application"), "process_name")


# -- Accessors ----------------------------------------------------------------


def get_map(node: Any, key: str) -> dict[str, Any]:
    value = node.get(key) if isinstance(node, dict) else None
    return value if isinstance(value, dict) else {}


def get_list(node: Any, key: str) -> list[Any]:
    value = node.get(key) if isinstance(node, dict) else None
    return value if isinstance(value, list) else []


def get_str(node: Any, key: str, default: str | None = None) -> str | None:
    value = node.get(key) if isinstance(node, dict) else None
    if value is None or isinstance(value, (dict, list)):
        return default
    return str(value)


# -- Loading ------------------------------------------------------------------


def product_name_for(relative_path: str) -> str:
    """Product folder of a knowledge base file; ``default`` at the root."""
    parent = Path(relative_path).parent.as_posix()
    return "default" if parent in ("", ".") else parent


def load_knowledge_base(path: Path, relative_path: str) -> KnowledgeBase | None:
    """Parse *path*; ``None`` if it is not a knowledge base document.

    Raises ``yaml.YAMLError`` / ``OSError`` for unreadable files so the
    registry can report them.
    """
    raw = path.read_text(encoding="utf-8")
    document = yaml.safe_load(raw)
    if not isinstance(document, dict) or get_str(document, "kind") != KNOWLEDGE_BASE_KIND:
        logger.debug("Skipping %s: not a knowledge base", relative_path)
        return None
    product = product_name_for(relative_path)
    return KnowledgeBase(
        product_name=product,
        file_path=relative_path,
        summary=build_summary(document, product),
        raw_yaml=raw,
        document=document,
    )


def build_summary(document: dict[str, Any], product_name: str) -> str:
    """Condensed multi-line description of a knowledge base."""
    lines = [f"  {product_name}:"]

    app = get_map(document, "application")
    if app:
        name = get_str(app, "name", "Unknown")
        version = get_str(app, "version", "")
        lines.append(f"    Application: {name} {version}".rstrip())
        exe_path = get_str(app, "exe_path")
        if exe_path:
            lines.append(f"    Exe Path: {exe_path}")

    installation = get_map(document, "installation")
    base_path = get_str(installation, "base_path")
    if base_path:
        lines.append(f"    Install Path: {base_path}")
    samples = get_map(installation, "samples")
    sample_count = sum(len(v) for v in samples.values() if isinstance(v, list))
    if sample_count:
        lines.append(f"    Sample Files: {sample_count}+ files available")

    keytips = [
        f"{get_str(s, 'keys')} ({get_str(s, 'action', '')})"
        for s in get_list(get_map(document, "keytips"), "verified_sequences")
        if get_str(s, "keys")
    ]
    if keytips:
        lines.append(f"    Verified Keytips: {', '.join(keytips)}")

    shortcuts = [
        f"{get_str(s, 'key')} ({get_str(s, 'action', '')})"
        for s in get_list(document, "keyboard_shortcuts")
        if get_str(s, "key")
    ]
    if shortcuts:
        lines.append(f"    Keyboard Shortcuts: {', '.join(shortcuts)}")

    automation_ids = get_map(document, "automation_ids")
    tab_ids = [get_str(t, "id") for t in get_list(automation_ids, "ribbon_tabs") if get_str(t, "id")]
    id_count = sum(len(v) for v in automation_ids.values() if isinstance(v, list))
    if tab_ids:
        lines.append(f"    Key Automation IDs: {', '.join(tab_ids)} + {id_count} more")

    tips = get_list(document, "navigation_tips")
    if tips:
        lines.append(f"    Navigation Tips: {len(tips)} tips available")

    workflows = get_map(document, "workflows")
    if workflows:
        lines.append(f"    Workflows: {len(workflows)} documented workflows")

    return "\n".join(lines)
