"""Services that turn stored nodes into selectable candidates."""

from roam_nodes.services.candidate_service import (
    CandidateListBuilder,
    index_by_label,
    node_for_label,
)
from roam_nodes.services.formatter import (
    CallbackDisplay,
    DisplayTemplate,
    NodeFormatter,
    TemplateDisplay,
    TemplateField,
    Truncation,
)
from roam_nodes.services.sorting import SortKey, comparator_for

__all__ = [
    "CallbackDisplay",
    "CandidateListBuilder",
    "DisplayTemplate",
    "NodeFormatter",
    "SortKey",
    "TemplateDisplay",
    "TemplateField",
    "Truncation",
    "comparator_for",
    "index_by_label",
    "node_for_label",
]
