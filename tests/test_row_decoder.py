"""Tests for decoding aggregated rows into nodes."""
import datetime

import pytest

from roam_nodes.exceptions import DecodeError, ErrorCode
from roam_nodes.models.schema import Ref
from roam_nodes.storage.row_decoder import decode_row, decode_rows


def make_row(**overrides):
    """Build a raw row as the aggregating query returns it."""
    row = {
        "id": "n1",
        "file": "/kb/notes/foo.org",
        "file_title": "Foo file",
        "level": 1,
        "point": 42,
        "todo": None,
        "priority": None,
        "scheduled": None,
        "deadline": None,
        "title": "Foo",
        "properties": '{"ID": "n1"}',
        "olp": '["Top"]',
        "file_atime": datetime.datetime(2024, 5, 1),
        "file_mtime": datetime.datetime(2024, 4, 1),
        "tags": "[]",
        "aliases": "[]",
        "refs": "[]",
    }
    row.update(overrides)
    return row


class TestTitleExpansion:
    """One node record per title variant."""

    def test_aliases_expand(self):
        """Primary title "Foo" with aliases Bar and Baz gives three records."""
        nodes = decode_row(make_row(aliases='["Bar", "Baz"]', tags='["t"]'))

        assert [n.title for n in nodes] == ["Foo", "Bar", "Baz"]
        assert {n.id for n in nodes} == {"n1"}
        first = nodes[0].model_dump(exclude={"title"})
        for node in nodes[1:]:
            assert node.model_dump(exclude={"title"}) == first
        # Every variant keeps the full alias set
        assert all(n.aliases == ("Bar", "Baz") for n in nodes)

    def test_no_aliases_single_record(self):
        """An empty alias set yields exactly the primary title."""
        nodes = decode_row(make_row())

        assert len(nodes) == 1
        assert nodes[0].title == "Foo"

    def test_alias_equal_to_title_not_repeated(self):
        """An alias identical to the title adds no extra record."""
        nodes = decode_row(make_row(aliases='["Foo", "Bar"]'))

        assert [n.title for n in nodes] == ["Foo", "Bar"]

    def test_decode_rows_preserves_order(self):
        """Records follow row order, variants grouped per row."""
        rows = [
            make_row(id="a", title="A", aliases='["A2"]'),
            make_row(id="b", title="B"),
        ]

        nodes = decode_rows(rows)

        assert [(n.id, n.title) for n in nodes] == [("a", "A"), ("a", "A2"), ("b", "B")]


class TestFieldDecoding:
    """Scalar and list columns."""

    def test_empty_relations(self):
        """No tags, aliases or refs decode to empty tuples."""
        node = decode_row(make_row())[0]

        assert node.tags == ()
        assert node.aliases == ()
        assert node.refs == ()

    def test_null_encodings_are_empty(self):
        """NULL list columns are treated as empty."""
        node = decode_row(make_row(tags=None, aliases=None, refs=None))[0]

        assert node.tags == ()
        assert node.refs == ()

    def test_outer_join_nulls_dropped(self):
        """Null members left by outer joins are ignored."""
        node = decode_row(
            make_row(tags='[null]', aliases='[null]', refs='[[null, null]]')
        )[0]

        assert node.tags == ()
        assert node.aliases == ()
        assert node.refs == ()

    def test_refs_keep_order_and_drop_repeats(self):
        """Refs stay ordered; repeated pairs collapse."""
        node = decode_row(
            make_row(refs='[["cite", "b"], ["cite", "a"], ["cite", "b"]]')
        )[0]

        assert node.refs == (Ref(type="cite", value="b"), Ref(type="cite", value="a"))

    def test_duplicate_tags_collapse(self):
        """Tags behave as a set."""
        node = decode_row(make_row(tags='["x", "y", "x"]'))[0]

        assert node.tags == ("x", "y")

    def test_scalars(self):
        """Scalar columns land on the node unchanged."""
        node = decode_row(make_row(todo="TODO", priority="A", level=2))[0]

        assert node.file == "/kb/notes/foo.org"
        assert node.file_title == "Foo file"
        assert node.point == 42
        assert node.level == 2
        assert node.todo == "TODO"
        assert node.priority == "A"
        assert node.properties == {"ID": "n1"}
        assert node.olp == ("Top",)
        assert node.file_mtime == datetime.datetime(2024, 4, 1)

    def test_point_zero_is_kept(self):
        """A zero offset is a value, not a missing one."""
        node = decode_row(make_row(point=0))[0]
        assert node.point == 0


class TestDecodeErrors:
    """Malformed rows raise DecodeError naming the node."""

    def test_invalid_json(self):
        """Broken list encoding."""
        with pytest.raises(DecodeError) as exc_info:
            decode_row(make_row(tags='["unterminated'))

        assert exc_info.value.node_id == "n1"
        assert exc_info.value.column == "tags"
        assert exc_info.value.code == ErrorCode.DECODE_MALFORMED_LIST

    def test_list_column_not_a_list(self):
        """A JSON object where a list belongs."""
        with pytest.raises(DecodeError) as exc_info:
            decode_row(make_row(aliases='{"a": 1}'))

        assert exc_info.value.column == "aliases"

    def test_malformed_ref_pair(self):
        """Refs must be two-element pairs."""
        with pytest.raises(DecodeError) as exc_info:
            decode_row(make_row(refs='[["cite"]]'))

        assert exc_info.value.column == "refs"

    def test_properties_not_a_mapping(self):
        """Properties must decode to a mapping."""
        with pytest.raises(DecodeError):
            decode_row(make_row(properties='["ID"]'))

    def test_missing_title(self):
        """A row without a title is not a node."""
        with pytest.raises(DecodeError) as exc_info:
            decode_row(make_row(title=None))

        assert exc_info.value.node_id == "n1"
