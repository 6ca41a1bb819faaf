"""Repository for node storage and retrieval."""

import datetime
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roam_nodes.exceptions import ErrorCode, RetrievalError
from roam_nodes.models.db_models import (
    DBAlias,
    DBFile,
    DBNode,
    DBRef,
    DBTag,
    get_session_factory,
    init_db,
)
from roam_nodes.models.schema import Node, Ref, unique_in_order
from roam_nodes.storage.node_query import AggregationStrategy, build_node_query

logger = logging.getLogger(__name__)


class NodeRepository:
    """Read access to the node store plus the writes an indexer needs.

    Retrieval goes through a single aggregating query per call
    (see ``roam_nodes.storage.node_query``); decoding the rows is left to
    ``roam_nodes.storage.row_decoder`` so callers can observe raw rows.
    """

    def __init__(self, engine: Optional[Engine] = None, db_url: Optional[str] = None):
        """Initialize the repository.

        Args:
            engine: Pre-configured SQLAlchemy engine. When provided, the
                    repository uses it directly instead of calling init_db().
            db_url: Database URL used when no engine is given. None selects an
                    in-memory database.
        """
        self.engine = engine if engine is not None else init_db(db_url)
        self.session_factory = get_session_factory(self.engine)
        logger.info(f"NodeRepository initialized: db_url={self.engine.url}")

    def fetch_rows(
        self,
        strategy: AggregationStrategy = AggregationStrategy.SUBQUERY,
        sort_by_mtime: bool = False,
        node_ids: Optional[Iterable[str]] = None,
    ) -> List[Mapping[str, Any]]:
        """Run the aggregating query and return one mapping per node.

        Raises:
            RetrievalError: If the store cannot be queried. No rows are
                returned in that case.
        """
        query = build_node_query(
            strategy=strategy, sort_by_mtime=sort_by_mtime, node_ids=node_ids
        )
        try:
            with self.session_factory() as session:
                rows = session.execute(query).mappings().all()
        except SQLAlchemyError as e:
            raise RetrievalError(
                "Failed to query nodes",
                code=ErrorCode.RETRIEVAL_FAILED,
                original_error=e,
            ) from e
        return [dict(row) for row in rows]

    def count_nodes(self) -> int:
        """Get total count of nodes in the store."""
        try:
            with self.session_factory() as session:
                return session.scalar(select(func.count(DBNode.id))) or 0
        except SQLAlchemyError as e:
            raise RetrievalError(
                "Node store unreachable",
                code=ErrorCode.STORE_UNREACHABLE,
                original_error=e,
            ) from e

    def check_connection(self) -> bool:
        """Return True when the store answers a trivial query."""
        try:
            with self.session_factory() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Node store unreachable: {e}")
            return False

    # -- Indexing ---------------------------------------------------------

    def save_node(self, node: Node) -> None:
        """Write a node and replace its tags, aliases and refs.

        The containing file row is created when missing, using the node's
        file metadata.
        """
        with self.session_factory() as session:
            self._save_node_in_session(session, node)
            session.commit()
        logger.debug(f"Saved node {node.id}")

    def save_nodes(self, nodes: Sequence[Node]) -> int:
        """Write several nodes in one transaction.

        Returns:
            Number of nodes written.
        """
        with self.session_factory() as session:
            for node in nodes:
                self._save_node_in_session(session, node)
            session.commit()
        logger.info(f"Saved {len(nodes)} nodes")
        return len(nodes)

    def delete_node(self, node_id: str) -> bool:
        """Delete a node together with its tags, aliases and refs.

        Returns:
            True if the node existed.
        """
        with self.session_factory() as session:
            db_node = session.get(DBNode, node_id)
            if db_node is None:
                return False
            session.delete(db_node)
            session.commit()
            return True

    @staticmethod
    def _upsert_file_in_session(
        session: Session,
        file: str,
        title: Optional[str],
        atime: Optional[datetime.datetime],
        mtime: Optional[datetime.datetime],
    ) -> DBFile:
        db_file = session.get(DBFile, file)
        if db_file is None:
            db_file = DBFile(file=file)
            session.add(db_file)
        db_file.title = title
        db_file.atime = atime
        db_file.mtime = mtime
        return db_file

    def _save_node_in_session(self, session: Session, node: Node) -> None:
        self._upsert_file_in_session(
            session, node.file, node.file_title, node.file_atime, node.file_mtime
        )

        db_node = session.get(DBNode, node.id)
        if db_node is None:
            db_node = DBNode(id=node.id)
            session.add(db_node)
        else:
            for model in (DBTag, DBAlias, DBRef):
                session.execute(delete(model).where(model.node_id == node.id))

        db_node.file = node.file
        db_node.level = node.level
        db_node.point = node.point
        db_node.todo = node.todo
        db_node.priority = node.priority
        db_node.scheduled = node.scheduled
        db_node.deadline = node.deadline
        db_node.title = node.title
        db_node.properties = json.dumps(node.properties, ensure_ascii=False)
        db_node.olp = json.dumps(list(node.olp), ensure_ascii=False)

        session.add_all(DBTag(node_id=node.id, tag=tag) for tag in unique_in_order(node.tags))
        session.add_all(
            DBAlias(node_id=node.id, alias=alias)
            for alias in unique_in_order(node.aliases)
            if alias != node.title
        )
        session.add_all(
            DBRef(node_id=node.id, type=ref.type, ref=ref.value)
            for ref in self._unique_refs(node.refs)
        )
        session.flush()

    @staticmethod
    def _unique_refs(refs: Iterable[Ref]) -> List[Ref]:
        seen: Dict[Tuple[str, str], Ref] = {}
        for ref in refs:
            seen.setdefault((ref.type, ref.value), ref)
        return list(seen.values())
