"""Tests for the aggregating node query."""
import datetime
import json

import pytest

from roam_nodes.exceptions import ErrorCode, RetrievalError
from roam_nodes.models.db_models import DBAlias, DBNode, DBRef, DBTag
from roam_nodes.models.schema import Ref
from roam_nodes.storage.node_query import (
    NODE_COLUMNS,
    AggregationStrategy,
    build_node_query,
)
from roam_nodes.storage.row_decoder import decode_refs, decode_string_list

STRATEGIES = [AggregationStrategy.SUBQUERY, AggregationStrategy.NESTED]


def _rows_for(repository, node_id, strategy):
    return [
        row for row in repository.fetch_rows(strategy=strategy) if row["id"] == node_id
    ]


@pytest.mark.parametrize("strategy", STRATEGIES)
class TestFanOut:
    """One row per node whatever the relation cardinalities."""

    def test_asymmetric_cardinalities(self, node_repository, node_factory, strategy):
        """T=3, A=2, R=4 decodes to exactly 3 tags, 2 aliases, 4 refs."""
        refs = tuple(Ref(type="cite", value=f"key{i}") for i in range(4))
        node_repository.save_node(
            node_factory(
                "fan", "Fan Out",
                tags=("a", "b", "c"),
                aliases=("x", "y"),
                refs=refs,
            )
        )

        rows = _rows_for(node_repository, "fan", strategy)

        assert len(rows) == 1
        row = rows[0]
        tags = decode_string_list(row, "tags")
        aliases = decode_string_list(row, "aliases")
        decoded_refs = decode_refs(row)
        assert sorted(tags) == ["a", "b", "c"]
        assert sorted(aliases) == ["x", "y"]
        assert sorted(r.value for r in decoded_refs) == ["key0", "key1", "key2", "key3"]
        # Raw encodings carry no duplicates either
        assert len(json.loads(row["tags"])) == 3
        assert len(json.loads(row["aliases"])) == 2
        assert len(json.loads(row["refs"])) == 4

    def test_contract_example(self, node_repository, node_factory, strategy):
        """Tags {A,B}, aliases {x,y}, refs [(w,1),(w,2)] round-trip exactly."""
        node_repository.save_node(
            node_factory(
                "n", "Node",
                tags=("A", "B"),
                aliases=("x", "y"),
                refs=(Ref(type="w", value="1"), Ref(type="w", value="2")),
            )
        )

        rows = _rows_for(node_repository, "n", strategy)

        assert len(rows) == 1
        assert set(decode_string_list(rows[0], "tags")) == {"A", "B"}
        assert set(decode_string_list(rows[0], "aliases")) == {"x", "y"}
        assert decode_refs(rows[0]) == (Ref(type="w", value="1"), Ref(type="w", value="2"))

    @pytest.mark.parametrize(
        "tag_count,alias_count,ref_count",
        [(0, 0, 0), (1, 0, 3), (0, 4, 0), (2, 3, 0), (5, 1, 2)],
    )
    def test_cardinality_grid(
        self, node_repository, node_factory, strategy, tag_count, alias_count, ref_count
    ):
        """Zero on any side neither drops nor duplicates the other relations."""
        node_repository.save_node(
            node_factory(
                "grid", "Grid",
                tags=tuple(f"t{i}" for i in range(tag_count)),
                aliases=tuple(f"a{i}" for i in range(alias_count)),
                refs=tuple(Ref(type="k", value=str(i)) for i in range(ref_count)),
            )
        )

        rows = _rows_for(node_repository, "grid", strategy)

        assert len(rows) == 1
        assert len(decode_string_list(rows[0], "tags")) == tag_count
        assert len(decode_string_list(rows[0], "aliases")) == alias_count
        assert len(decode_refs(rows[0])) == ref_count

    def test_one_row_per_node(self, populated_repository, strategy):
        """Every stored node appears exactly once."""
        rows = populated_repository.fetch_rows(strategy=strategy)

        ids = [row["id"] for row in rows]
        assert sorted(ids) == ["node1", "node2", "node3"]

    def test_relations_do_not_leak_between_nodes(
        self, node_repository, node_factory, strategy
    ):
        """Tags of one node never show up on another."""
        node_repository.save_nodes(
            [
                node_factory("left", "Left", tags=("l1", "l2"), aliases=("L",)),
                node_factory("right", "Right", tags=("r1",)),
            ]
        )

        rows = {row["id"]: row for row in node_repository.fetch_rows(strategy=strategy)}

        assert set(decode_string_list(rows["left"], "tags")) == {"l1", "l2"}
        assert decode_string_list(rows["right"], "tags") == ("r1",)
        assert decode_string_list(rows["right"], "aliases") == ()

    def test_sort_by_mtime(self, populated_repository, strategy):
        """Pushed-down sort returns newest file first."""
        rows = populated_repository.fetch_rows(strategy=strategy, sort_by_mtime=True)

        assert [row["id"] for row in rows] == ["node3", "node2", "node1"]

    def test_missing_mtime_sorts_last(self, node_repository, node_factory, strategy):
        """Nodes without a file mtime come after dated ones."""
        node_repository.save_nodes(
            [
                node_factory("undated", "Undated"),
                node_factory("dated", "Dated", mtime=datetime.datetime(2024, 1, 1)),
            ]
        )

        rows = node_repository.fetch_rows(strategy=strategy, sort_by_mtime=True)

        assert [row["id"] for row in rows] == ["dated", "undated"]

    def test_node_ids_filter(self, populated_repository, strategy):
        """Restricting by id returns only those nodes."""
        rows = populated_repository.fetch_rows(strategy=strategy, node_ids=["node2"])

        assert [row["id"] for row in rows] == ["node2"]

    def test_scalar_columns(self, populated_repository, strategy):
        """File metadata is joined onto the node row."""
        rows = populated_repository.fetch_rows(strategy=strategy, node_ids=["node2"])

        row = rows[0]
        assert set(NODE_COLUMNS) <= set(row)
        assert row["file"] == "/kb/notes/node2.org"
        assert row["file_title"] == "Beta"
        assert row["todo"] == "TODO"
        assert json.loads(row["olp"]) == ["Projects"]
        assert isinstance(row["file_mtime"], datetime.datetime)


class TestBuildNodeQuery:
    """Tests for the query builder itself."""

    def test_accepts_strategy_value(self):
        """Strategy may be given by its string value."""
        query = build_node_query(strategy="nested")
        assert "by_alias" in str(query)

    def test_subquery_strategy_has_no_join_to_relations(self):
        """Correlated strategy aggregates each relation separately."""
        sql = str(build_node_query(strategy=AggregationStrategy.SUBQUERY))
        assert sql.count("json_group_array(") == 3
        assert "by_alias" not in sql

    def test_sort_clause_only_when_requested(self):
        """ORDER BY appears only for the mtime sort."""
        assert "ORDER BY" not in str(build_node_query())
        assert "ORDER BY" in str(build_node_query(sort_by_mtime=True))

    def test_unknown_strategy_rejected(self):
        """An unknown strategy name is a ValueError."""
        with pytest.raises(ValueError):
            build_node_query(strategy="cartesian")


class TestRetrievalFailure:
    """Store failures surface as RetrievalError."""

    def test_missing_table(self, populated_repository, engine):
        """A schema mismatch aborts the call."""
        DBRef.__table__.drop(engine)

        with pytest.raises(RetrievalError) as exc_info:
            populated_repository.fetch_rows()

        assert exc_info.value.original_error is not None
        assert "refs" in str(exc_info.value.original_error)

    def test_check_connection(self, populated_repository):
        """A healthy store answers the trivial query and counts its nodes."""
        assert populated_repository.check_connection() is True
        assert populated_repository.count_nodes() == 3

    def test_count_on_broken_store(self, populated_repository, engine):
        """Counting against a missing nodes table reports the store unreachable."""
        for model in (DBTag, DBAlias, DBRef, DBNode):
            model.__table__.drop(engine)

        with pytest.raises(RetrievalError) as exc_info:
            populated_repository.count_nodes()

        assert exc_info.value.code == ErrorCode.STORE_UNREACHABLE


class TestIndexing:
    """Write helpers used to populate the store."""

    def test_resave_replaces_relations(self, node_repository, node_factory):
        """Saving a node again replaces its tags, aliases and refs."""
        node_repository.save_node(
            node_factory("n", "Node", tags=("old",), aliases=("Before",))
        )
        node_repository.save_node(node_factory("n", "Node", tags=("new", "newer")))

        rows = node_repository.fetch_rows()

        assert len(rows) == 1
        assert set(decode_string_list(rows[0], "tags")) == {"new", "newer"}
        assert decode_string_list(rows[0], "aliases") == ()

    def test_alias_equal_to_title_not_stored(self, node_repository, node_factory):
        node_repository.save_node(node_factory("n", "Node", aliases=("Node", "Other")))

        rows = node_repository.fetch_rows()

        assert decode_string_list(rows[0], "aliases") == ("Other",)

    def test_delete_node(self, populated_repository):
        assert populated_repository.delete_node("node1") is True
        assert populated_repository.delete_node("node1") is False

        rows = populated_repository.fetch_rows()
        assert sorted(row["id"] for row in rows) == ["node2", "node3"]
