"""Service that assembles candidate lists for node selection."""
import functools
import logging
from typing import Callable, Dict, List, Optional, Sequence

from roam_nodes.models.schema import Candidate, Node
from roam_nodes.observability import timed_operation
from roam_nodes.services.formatter import DisplayConfig, NodeFormatter, TemplateDisplay
from roam_nodes.services.sorting import Comparator, SortKey, comparator_for
from roam_nodes.storage.node_query import AggregationStrategy
from roam_nodes.storage.node_repository import NodeRepository
from roam_nodes.storage.row_decoder import decode_rows

logger = logging.getLogger(__name__)

NodeFilter = Callable[[Node], bool]


class CandidateListBuilder:
    """Build the ordered candidate list a node selector presents.

    Each call runs retrieval, filtering, formatting and sorting to
    completion and keeps nothing afterwards, so one builder can serve
    any number of independent calls.
    """

    def __init__(
        self,
        repository: NodeRepository,
        display: Optional[DisplayConfig] = None,
        default_sort: SortKey = SortKey.FILE_MTIME,
        strategy: AggregationStrategy = AggregationStrategy.SUBQUERY,
        directory: Optional[str] = None,
        display_width: int = 120,
    ):
        """Initialize the builder.

        Args:
            repository: Node store to read from.
            display: Default display configuration; the built-in template
                when None.
            default_sort: Ordering used when a call passes no comparator.
            strategy: Aggregation strategy for the node query.
            directory: Knowledge-base root stripped from file paths in labels.
            display_width: Total label width for fill-width template fields.
        """
        self.repository = repository
        self.default_sort = SortKey(default_sort)
        self.strategy = AggregationStrategy(strategy)
        self.directory = directory
        self.display_width = display_width
        self.display = display if display is not None else TemplateDisplay()
        self.formatter = self._build_formatter(self.display)

    def _build_formatter(self, display: DisplayConfig) -> NodeFormatter:
        return NodeFormatter.from_display(
            display, directory=self.directory, display_width=self.display_width
        )

    def list_nodes(
        self, filter_fn: Optional[NodeFilter] = None, sort_by_mtime: bool = False
    ) -> List[Node]:
        """Retrieve, expand and optionally filter nodes.

        Raises:
            RetrievalError: If the store cannot be queried.
            DecodeError: If a row cannot be decoded.
        """
        rows = self.repository.fetch_rows(
            strategy=self.strategy, sort_by_mtime=sort_by_mtime
        )
        nodes = decode_rows(rows)
        if filter_fn is not None:
            nodes = [node for node in nodes if filter_fn(node)]
        return nodes

    def list_candidates(
        self,
        filter_fn: Optional[NodeFilter] = None,
        sort_fn: Optional[Comparator] = None,
        display: Optional[DisplayConfig] = None,
    ) -> List[Candidate]:
        """Build the ordered candidate list.

        Args:
            filter_fn: Keep only nodes for which this returns True.
            sort_fn: Comparator over candidates; overrides the default sort.
            display: Display configuration for this call only.

        Returns:
            Candidates in presentation order.

        Raises:
            RetrievalError: If the store cannot be queried.
            DecodeError: If a row cannot be decoded.
            FormatError: If a node cannot be formatted.
            Any exception raised by ``filter_fn`` or ``sort_fn``.
        """
        with timed_operation(
            "list_candidates", sort=self.default_sort.value, custom_sort=sort_fn is not None
        ) as op:
            presorted = sort_fn is None and self.default_sort is SortKey.FILE_MTIME
            nodes = self.list_nodes(filter_fn=filter_fn, sort_by_mtime=presorted)
            op["node_count"] = len(nodes)

            formatter = self.formatter if display is None else self._build_formatter(display)
            candidates = formatter.format_all(nodes)

            comparator = sort_fn
            if comparator is None and not presorted:
                comparator = comparator_for(self.default_sort)
            if comparator is not None:
                candidates.sort(key=functools.cmp_to_key(comparator))

            op["result_count"] = len(candidates)
            return candidates


def node_for_label(candidates: Sequence[Candidate], label: str) -> Optional[Node]:
    """Find the node behind a selected label.

    Returns:
        The node of the first candidate with that label, or None.
    """
    for candidate in candidates:
        if candidate.label == label:
            return candidate.node
    return None


def index_by_label(candidates: Sequence[Candidate]) -> Dict[str, Node]:
    """Map each label to its node; the first candidate wins on duplicate labels."""
    index: Dict[str, Node] = {}
    for candidate in candidates:
        index.setdefault(candidate.label, candidate.node)
    return index
