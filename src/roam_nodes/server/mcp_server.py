"""MCP server exposing node candidates to a selection client."""

import logging
import uuid
from typing import Optional

from mcp.server.fastmcp import FastMCP

from roam_nodes.config import RoamConfig
from roam_nodes.exceptions import RoamError
from roam_nodes.models.schema import Node
from roam_nodes.observability import metrics, timed_operation
from roam_nodes.services.candidate_service import CandidateListBuilder
from roam_nodes.services.formatter import DisplayTemplate, TemplateDisplay
from roam_nodes.services.sorting import SortKey, comparator_for
from roam_nodes.storage.node_repository import NodeRepository
from roam_nodes.storage.row_decoder import decode_rows

logger = logging.getLogger(__name__)

MAX_LIMIT = 1000


def build_candidate_builder(
    settings: RoamConfig, repository: NodeRepository
) -> CandidateListBuilder:
    """Compose a CandidateListBuilder from configuration."""
    template = (
        DisplayTemplate.parse(settings.display_template)
        if settings.display_template
        else DisplayTemplate.default()
    )
    return CandidateListBuilder(
        repository,
        display=TemplateDisplay(template),
        default_sort=settings.default_sort,
        strategy=settings.aggregation_strategy,
        directory=str(settings.get_directory()),
        display_width=settings.display_width,
    )


def describe_node(node: Node) -> str:
    """Render a node's details as plain text."""
    lines = [
        f"# {node.title}",
        f"ID: {node.id}",
        f"File: {node.file}",
    ]
    if node.olp:
        lines.append(f"Outline: {' > '.join(node.olp)}")
    if node.todo:
        lines.append(f"TODO: {node.todo}")
    if node.aliases:
        lines.append(f"Aliases: {', '.join(node.aliases)}")
    if node.tags:
        lines.append(f"Tags: {', '.join(node.tags)}")
    if node.refs:
        lines.append(f"Refs: {', '.join(str(ref) for ref in node.refs)}")
    if node.file_mtime:
        lines.append(f"Modified: {node.file_mtime.isoformat()}")
    return "\n".join(lines)


class RoamMcpServer:
    """MCP server for node selection."""

    def __init__(
        self,
        settings: Optional[RoamConfig] = None,
        engine=None,
        builder: Optional[CandidateListBuilder] = None,
    ):
        """Initialize the MCP server.

        Args:
            settings: Configuration; a fresh RoamConfig when None.
            engine: Pre-configured SQLAlchemy engine shared with the repository.
            builder: Candidate builder to serve. Built from ``settings`` when
                None.
        """
        self.settings = settings or RoamConfig()
        self.mcp = FastMCP(self.settings.server_name)
        self.repository = NodeRepository(engine=engine) if builder is None else builder.repository
        self.builder = builder or build_candidate_builder(self.settings, self.repository)
        self._register_tools()
        logger.info("Roam MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way."""
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, RoamError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="roam_list_candidates")
        def roam_list_candidates(
            tag: Optional[str] = None,
            sort: str = "default",
            limit: int = 50,
        ) -> str:
            """List selectable nodes, one line per title variant.
            Args:
                tag: Only include nodes carrying this tag (optional)
                sort: "default", "file-mtime", "file-atime", "title" or "none"
                limit: Maximum number of candidates to return
            """
            with timed_operation("roam_list_candidates", tag=tag, sort=sort) as op:
                try:
                    if limit < 1 or limit > MAX_LIMIT:
                        raise ValueError(f"limit must be between 1 and {MAX_LIMIT}")
                    sort_fn = None
                    if sort != "default":
                        key = SortKey(sort.lower())
                        sort_fn = comparator_for(key) or (lambda a, b: 0)
                    filter_fn = (lambda node: tag in node.tags) if tag else None

                    candidates = self.builder.list_candidates(
                        filter_fn=filter_fn, sort_fn=sort_fn
                    )
                    op["result_count"] = len(candidates)
                    if not candidates:
                        return "No nodes found."
                    lines = [
                        f"{candidate.label.rstrip()} [{candidate.node_id}]"
                        for candidate in candidates[:limit]
                    ]
                    if len(candidates) > limit:
                        lines.append(f"... {len(candidates) - limit} more")
                    return "\n".join(lines)
                except Exception as e:
                    op["error"] = e
                    return self.format_error_response(e)

        @self.mcp.tool(name="roam_get_node")
        def roam_get_node(node_id: str) -> str:
            """Show the details of a node.
            Args:
                node_id: The ID of the node
            """
            with timed_operation("roam_get_node", node_id=node_id[:30]) as op:
                try:
                    rows = self.repository.fetch_rows(
                        strategy=self.builder.strategy, node_ids=[node_id]
                    )
                    nodes = decode_rows(rows)
                    op["found"] = bool(nodes)
                    if not nodes:
                        return f"Node not found: {node_id}"
                    # The first variant carries the primary title
                    return describe_node(nodes[0])
                except Exception as e:
                    op["error"] = e
                    return self.format_error_response(e)

        @self.mcp.tool(name="roam_status")
        def roam_status(reset_metrics: bool = False) -> str:
            """Report node store health and per-operation metrics.
            Args:
                reset_metrics: Clear the collected metrics after reporting them
            """
            with timed_operation("roam_status", reset_metrics=reset_metrics) as op:
                try:
                    lines = [
                        f"# {self.settings.server_name} {self.settings.server_version}",
                        "",
                        "## Store",
                    ]
                    reachable = self.repository.check_connection()
                    op["reachable"] = reachable
                    if reachable:
                        lines.append(
                            f"**Reachable:** yes | **Nodes:** {self.repository.count_nodes()}"
                        )
                    else:
                        lines.append("**Reachable:** no")
                    lines.append(
                        f"**Aggregation:** {self.builder.strategy.value} | "
                        f"**Default sort:** {self.builder.default_sort.value}"
                    )

                    summary = metrics.summary()
                    lines += [
                        "",
                        "## Metrics",
                        f"**Uptime:** {summary['uptime_seconds']:.0f} seconds",
                        f"**Calls:** {summary['calls']} | **Failures:** {summary['failures']} | "
                        f"**Success Rate:** {summary['success_rate']:.1%}",
                    ]
                    snapshot = metrics.snapshot()
                    if snapshot:
                        lines += [
                            "",
                            "| Operation | Calls | Failures | Mean ms | Slowest ms | Results |",
                            "|-----------|-------|----------|---------|------------|---------|",
                        ]
                        for name, stats in sorted(snapshot.items()):
                            lines.append(
                                f"| {name} | {stats.calls} | {stats.failures} | "
                                f"{stats.mean_ms:.1f} | {stats.slowest_ms:.1f} | {stats.results} |"
                            )
                        errors = [
                            f"- {name}: {stats.last_error[:80]}"
                            for name, stats in sorted(snapshot.items())
                            if stats.last_error
                        ]
                        if errors:
                            lines += ["", "**Last errors:**", *errors]

                    if reset_metrics:
                        metrics.reset()
                        lines += ["", "Metrics reset."]
                    return "\n".join(lines)
                except Exception as e:
                    op["error"] = e
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server over stdio."""
        self.mcp.run()
