"""Aggregating query that returns one row per node.

Joining a node to its tags, aliases and refs at once multiplies rows: a node
with T tags, A aliases and R refs appears T*A*R times. Aggregating that
result in a single GROUP BY inflates every list by the cardinality of the
other two relations. Both strategies below avoid that:

``NESTED``
    Resolve one fan-out at a time. Group by (id, tag, alias) and aggregate
    refs, then group by (id, tag) and aggregate aliases, then group by id and
    aggregate tags. At every step the previously aggregated columns are
    constant within the group and are passed through.

``SUBQUERY``
    Aggregate each relation on its own with a correlated scalar subquery.
    Nothing is joined, so there is no fan-out to undo.

Lists are encoded with SQLite's ``json_group_array``. Outer joins may leave
``null`` members in the NESTED encoding; the row decoder drops them.
"""
import logging
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import Select, func, select

from roam_nodes.models.db_models import DBAlias, DBFile, DBNode, DBRef, DBTag

logger = logging.getLogger(__name__)

# Column labels produced by build_node_query, in select order
NODE_COLUMNS = (
    "id",
    "file",
    "file_title",
    "level",
    "point",
    "todo",
    "priority",
    "scheduled",
    "deadline",
    "title",
    "properties",
    "olp",
    "file_atime",
    "file_mtime",
    "tags",
    "aliases",
    "refs",
)

# Columns holding json_group_array encodings
LIST_COLUMNS = ("tags", "aliases", "refs")


class AggregationStrategy(str, Enum):
    """How the one-to-many relations are folded into a node row."""

    SUBQUERY = "subquery"  # Correlated subquery per relation
    NESTED = "nested"  # Three nested GROUP BY passes


def _ref_pair(type_column, ref_column):
    """Encode one reference as a two-element JSON array."""
    return func.json_array(type_column, ref_column)


def _aggregate_correlated():
    """Build one correlated scalar subquery per relation."""
    tags = (
        select(func.json_group_array(DBTag.tag))
        .where(DBTag.node_id == DBNode.id)
        .scalar_subquery()
    )
    aliases = (
        select(func.json_group_array(DBAlias.alias))
        .where(DBAlias.node_id == DBNode.id)
        .scalar_subquery()
    )
    refs = (
        select(func.json_group_array(_ref_pair(DBRef.type, DBRef.ref)))
        .where(DBRef.node_id == DBNode.id)
        .scalar_subquery()
    )
    return tags, aliases, refs


def _aggregate_nested():
    """Build the three-pass aggregate as a subquery keyed by node id."""
    # Pass 1: alias held fixed, so each ref appears once per group
    by_alias = (
        select(
            DBNode.id.label("node_id"),
            DBTag.tag.label("tag"),
            DBAlias.alias.label("alias"),
            func.json_group_array(_ref_pair(DBRef.type, DBRef.ref)).label("refs"),
        )
        .select_from(DBNode)
        .outerjoin(DBTag, DBTag.node_id == DBNode.id)
        .outerjoin(DBAlias, DBAlias.node_id == DBNode.id)
        .outerjoin(DBRef, DBRef.node_id == DBNode.id)
        .group_by(DBNode.id, DBTag.tag, DBAlias.alias)
        .subquery("by_alias")
    )

    # Pass 2: one row per alias within (id, tag); refs constant per group
    by_tag = (
        select(
            by_alias.c.node_id,
            by_alias.c.tag,
            func.json_group_array(by_alias.c.alias).label("aliases"),
            func.max(by_alias.c.refs).label("refs"),
        )
        .group_by(by_alias.c.node_id, by_alias.c.tag)
        .subquery("by_tag")
    )

    # Pass 3: one row per tag within id; aliases and refs constant per group
    return (
        select(
            by_tag.c.node_id,
            func.json_group_array(by_tag.c.tag).label("tags"),
            func.max(by_tag.c.aliases).label("aliases"),
            func.max(by_tag.c.refs).label("refs"),
        )
        .group_by(by_tag.c.node_id)
        .subquery("by_node")
    )


def build_node_query(
    strategy: AggregationStrategy = AggregationStrategy.SUBQUERY,
    sort_by_mtime: bool = False,
    node_ids: Optional[Iterable[str]] = None,
) -> Select:
    """Build the single read query that returns one row per node.

    Args:
        strategy: How tags, aliases and refs are aggregated.
        sort_by_mtime: Order rows by file modification time, newest first.
            Pushing the sort into SQL spares the caller an in-memory sort of
            the full result.
        node_ids: Restrict the result to these node ids.

    Returns:
        A select whose labels are listed in NODE_COLUMNS.
    """
    strategy = AggregationStrategy(strategy)
    scalar_columns = (
        DBNode.id.label("id"),
        DBNode.file.label("file"),
        DBFile.title.label("file_title"),
        DBNode.level.label("level"),
        DBNode.point.label("point"),
        DBNode.todo.label("todo"),
        DBNode.priority.label("priority"),
        DBNode.scheduled.label("scheduled"),
        DBNode.deadline.label("deadline"),
        DBNode.title.label("title"),
        DBNode.properties.label("properties"),
        DBNode.olp.label("olp"),
        DBFile.atime.label("file_atime"),
        DBFile.mtime.label("file_mtime"),
    )

    if strategy is AggregationStrategy.NESTED:
        aggregate = _aggregate_nested()
        query = (
            select(
                *scalar_columns,
                aggregate.c.tags.label("tags"),
                aggregate.c.aliases.label("aliases"),
                aggregate.c.refs.label("refs"),
            )
            .select_from(DBNode)
            .join(aggregate, aggregate.c.node_id == DBNode.id)
            .outerjoin(DBFile, DBFile.file == DBNode.file)
        )
    else:
        tags, aliases, refs = _aggregate_correlated()
        query = (
            select(
                *scalar_columns,
                tags.label("tags"),
                aliases.label("aliases"),
                refs.label("refs"),
            )
            .select_from(DBNode)
            .outerjoin(DBFile, DBFile.file == DBNode.file)
        )

    if node_ids is not None:
        query = query.where(DBNode.id.in_(list(node_ids)))

    if sort_by_mtime:
        # SQLite sorts NULL lowest, so nodes without a file mtime come last
        query = query.order_by(DBFile.mtime.desc(), DBNode.id)

    logger.debug(
        f"Built node query (strategy={strategy.value}, sort_by_mtime={sort_by_mtime})"
    )
    return query
