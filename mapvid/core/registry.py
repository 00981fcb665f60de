# mapvid/core/registry.py
"""Plugin registry helpers.

Discovers components registered under the `mapvid.plugins` entry point
group. A package providing e.g. a faster frame renderer registers it in its
pyproject.toml:

[project.entry-points."mapvid.plugins"]
svg_renderer = "my_renderers.svg:SvgFrameRenderer"

and a pipeline spec refers to it as ``class: ep:svg_renderer``.
"""

from __future__ import annotations
from importlib.metadata import EntryPoint, entry_points
from typing import Any, List, Tuple

ENTRY_GROUP = "mapvid.plugins"


def _group_entry_points() -> List[EntryPoint]:
    return list(entry_points(group=ENTRY_GROUP))


def list_registered_plugins() -> List[Tuple[str, str]]:
    """Return a list of (name, value) for discovered entry points.

    The `value` is the entry point string (e.g. 'module.sub:Class').
    """
    return [(ep.name, ep.value) for ep in _group_entry_points()]


def load_plugin_class(name: str) -> Any:
    """Load the object pointed to by the entry point name.

    Raises LookupError if no such entry point is registered.
    """
    for ep in _group_entry_points():
        if ep.name == name:
            return ep.load()
    raise LookupError(f"No {ENTRY_GROUP} entry point named {name!r}")
