"""Common test fixtures for roam-nodes."""

import datetime

import pytest

from roam_nodes.models.db_models import init_db
from roam_nodes.models.schema import Node, Ref
from roam_nodes.services.candidate_service import CandidateListBuilder
from roam_nodes.services.sorting import SortKey
from roam_nodes.storage.node_repository import NodeRepository

KB_ROOT = "/kb/notes"

T1 = datetime.datetime(2024, 1, 1, 9, 0, 0)
T2 = datetime.datetime(2024, 2, 1, 9, 0, 0)
T3 = datetime.datetime(2024, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    """Create an in-memory database with the node tables."""
    engine = init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def node_repository(engine):
    """Create an empty node repository."""
    return NodeRepository(engine=engine)


@pytest.fixture
def node_factory():
    """Build Node records with sensible defaults."""

    def make_node(node_id, title, file=None, mtime=None, atime=None, **kwargs):
        return Node(
            id=node_id,
            title=title,
            file=file or f"{KB_ROOT}/{node_id}.org",
            file_title=kwargs.pop("file_title", title),
            file_mtime=mtime,
            file_atime=atime,
            **kwargs,
        )

    return make_node


@pytest.fixture
def populated_repository(node_repository, node_factory):
    """Three nodes whose files were modified at T1 < T2 < T3.

    Inserted out of mtime order so retrieval order is not accidentally
    the expected order.
    """
    node_repository.save_nodes(
        [
            node_factory(
                "node2", "Beta", mtime=T2, atime=T3,
                tags=("project",), olp=("Projects",), todo="TODO",
            ),
            node_factory(
                "node1", "Alpha", mtime=T1, atime=T1,
                tags=("project", "idea"), aliases=("First",),
            ),
            node_factory(
                "node3", "Gamma", mtime=T3, atime=T2,
                refs=(Ref(type="cite", value="smith2020"),),
            ),
        ]
    )
    return node_repository


@pytest.fixture
def candidate_builder(populated_repository):
    """Candidate builder over the populated repository, default sort by mtime."""
    return CandidateListBuilder(
        populated_repository, default_sort=SortKey.FILE_MTIME, directory=KB_ROOT
    )
