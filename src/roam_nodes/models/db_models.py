"""SQLAlchemy database models for the node store."""
from typing import Optional

from sqlalchemy import (Column, DateTime, ForeignKey, Integer, String, Text,
                        UniqueConstraint, create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

IN_MEMORY_URL = "sqlite:///:memory:"

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBFile(Base):
    """Database model for a file containing nodes."""
    __tablename__ = "files"
    file = Column(String(1024), primary_key=True)
    title = Column(String(255), nullable=True)
    atime = Column(DateTime, nullable=True)
    mtime = Column(DateTime, nullable=True, index=True)

    # Relationships
    nodes = relationship("DBNode", back_populates="file_entry", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """Return string representation of file."""
        return f"<File(file='{self.file}', title='{self.title}')>"


class DBNode(Base):
    """Database model for a node (a heading or a whole file)."""
    __tablename__ = "nodes"
    id = Column(String(255), primary_key=True, index=True)
    file = Column(String(1024), ForeignKey("files.file"), nullable=False, index=True)
    level = Column(Integer, default=0, nullable=False)
    point = Column(Integer, default=1, nullable=False)
    todo = Column(String(50), nullable=True)
    priority = Column(String(10), nullable=True)
    scheduled = Column(String(64), nullable=True)
    deadline = Column(String(64), nullable=True)
    title = Column(String(1024), nullable=False, index=True)
    # JSON-encoded mapping and list
    properties = Column(Text, default="{}", nullable=False)
    olp = Column(Text, default="[]", nullable=False)

    # Relationships
    file_entry = relationship("DBFile", back_populates="nodes")
    tags = relationship("DBTag", cascade="all, delete-orphan")
    aliases = relationship("DBAlias", cascade="all, delete-orphan")
    refs = relationship("DBRef", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """Return string representation of node."""
        return f"<Node(id='{self.id}', title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag attached to a node."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    node_id = Column(String(255), ForeignKey("nodes.id"), nullable=False, index=True)
    tag = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("node_id", "tag", name="unique_node_tag"),
    )

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(node_id='{self.node_id}', tag='{self.tag}')>"


class DBAlias(Base):
    """Database model for an alternate title of a node."""
    __tablename__ = "aliases"
    id = Column(Integer, primary_key=True, autoincrement=True)
    node_id = Column(String(255), ForeignKey("nodes.id"), nullable=False, index=True)
    alias = Column(String(1024), nullable=False)

    __table_args__ = (
        UniqueConstraint("node_id", "alias", name="unique_node_alias"),
    )

    def __repr__(self) -> str:
        """Return string representation of alias."""
        return f"<Alias(node_id='{self.node_id}', alias='{self.alias}')>"


class DBRef(Base):
    """Database model for an external reference of a node."""
    __tablename__ = "refs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    node_id = Column(String(255), ForeignKey("nodes.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    ref = Column(String(1024), nullable=False)

    __table_args__ = (
        UniqueConstraint("node_id", "type", "ref", name="unique_node_ref"),
    )

    def __repr__(self) -> str:
        """Return string representation of ref."""
        return f"<Ref(node_id='{self.node_id}', type='{self.type}', ref='{self.ref}')>"


def create_db_engine(db_url: Optional[str] = None) -> Engine:
    """Create an engine with the SQLite settings used for node lookups.

    An in-memory URL (or None) gets a StaticPool so every session sees the
    same database. File databases use WAL mode and a small QueuePool.
    """
    if db_url is None or db_url == IN_MEMORY_URL:
        return create_engine(
            IN_MEMORY_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    # SQLite is single-writer, so a small pool is ideal
    engine = create_engine(
        db_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the engine and the node tables if they do not exist yet."""
    engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine)
