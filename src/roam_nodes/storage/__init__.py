"""Storage layer for roam-nodes."""

from roam_nodes.storage.node_query import AggregationStrategy, build_node_query
from roam_nodes.storage.node_repository import NodeRepository
from roam_nodes.storage.row_decoder import decode_row, decode_rows

__all__ = [
    "AggregationStrategy",
    "NodeRepository",
    "build_node_query",
    "decode_row",
    "decode_rows",
]
