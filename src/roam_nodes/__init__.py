"""
Roam nodes - node retrieval and candidate formatting for note selection.

Nodes (note headings) are stored in SQLite alongside their tags, aliases
and references. This package collapses those one-to-many relations into one
row per node, expands each node into one record per title variant and turns
the records into display candidates for an interactive selector.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("roam-nodes")
except PackageNotFoundError:
    __version__ = "0.3.0"
