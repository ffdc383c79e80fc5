"""Correction Store - Persist user corrections and learned weight deltas.

Everything lives under a single key as one JSON document, so any
key/value backend can hold it:

- ``InMemoryBackend``  tests and one-shot runs
- ``JsonFileBackend``  one ``<key>.json`` file per key in a directory
- ``SqliteBackend``    SQLAlchemy key/value table in a SQLite database

The document layout uses camelCase keys and is versioned; a document with
another version, or one that does not parse, is replaced by defaults.
Backend failures are logged and never propagate out of the store.

Concurrent writers are last-write-wins: there is no locking.
"""

import json
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal, Optional, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from chatlens.config import Settings, get_settings
from chatlens.pipeline.models import Role

logger = structlog.get_logger(__name__)

STORAGE_KEY = "chat-algo-corrections"
STORE_VERSION = 1
SNIPPET_MAX_CHARS = 200


class StoreError(Exception):
    """Raised by a backend when it cannot read or write."""


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Persisted Records
# =============================================================================

class _StoreModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CorrectionRecord(_StoreModel):
    """A role correction and the context needed to learn from it."""

    timestamp: int = Field(ge=0, description="Epoch milliseconds")
    text_snippet: str = Field(description="First 200 characters of the corrected block")
    original_role: Role
    corrected_role: Role
    active_features: list[str] = Field(default_factory=list)
    char_count: int = Field(ge=0)
    original_confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("text_snippet", mode="before")
    @classmethod
    def _truncate_snippet(cls, value: str) -> str:
        return value[:SNIPPET_MAX_CHARS] if isinstance(value, str) else value


class StructureCorrection(_StoreModel):
    """A block merge or split made by the user."""

    timestamp: int = Field(ge=0)
    type: Literal["merge", "split"]
    text_snippets: list[str] = Field(default_factory=list)


class UserTopicEntry(_StoreModel):
    """User-defined topic keywords."""

    topic: str = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)
    added_at: int = Field(ge=0)


class CorrectionStoreData(_StoreModel):
    """Full persisted document."""

    version: int = STORE_VERSION
    role_corrections: list[CorrectionRecord] = Field(default_factory=list)
    structure_corrections: list[StructureCorrection] = Field(default_factory=list)
    user_topics: list[UserTopicEntry] = Field(default_factory=list)
    weight_deltas: dict[str, float] = Field(default_factory=dict)


class StoreStats(BaseModel):
    """Counts for display."""

    total_corrections: int
    role_corrections: int
    structure_corrections: int
    user_topics: int
    learned_features: int


# =============================================================================
# Backends
# =============================================================================

class KeyValueBackend(Protocol):
    """Minimal string key/value storage."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryBackend:
    """Process-local dictionary backend."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileBackend:
    """One JSON file per key inside a directory."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StoreError(f"Cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Write then rename so a crash never leaves half a document
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except (OSError, UnicodeEncodeError) as e:
            Path(tmp).unlink(missing_ok=True)
            raise StoreError(f"Cannot write {path}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot delete {self._path(key)}: {e}") from e


Base = declarative_base()


class KeyValueEntry(Base):
    """Row of the key/value table."""

    __tablename__ = "kv_store"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)


class SqliteBackend:
    """Key/value table in a SQLite database via SQLAlchemy.

    Nothing touches the disk until the first read or write, so a backend
    pointed at an unusable location fails with ``StoreError`` at that
    point instead of at construction.
    """

    def __init__(self, path: Path | str | None = None, url: Optional[str] = None):
        if url is None:
            if path is None:
                raise ValueError("SqliteBackend needs a path or a database url")
            url = f"sqlite:///{path}"
        self.path = Path(path) if path is not None else None
        self.engine = create_engine(url, connect_args={"check_same_thread": False})
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        try:
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            Base.metadata.create_all(bind=self.engine)
        except (OSError, SQLAlchemyError) as e:
            raise StoreError(f"Cannot open database {self.engine.url}: {e}") from e
        self._schema_ready = True

    def get(self, key: str) -> Optional[str]:
        self._ensure_schema()
        try:
            with self.SessionLocal() as db:
                entry = db.get(KeyValueEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot read key {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        self._ensure_schema()
        try:
            with self.SessionLocal() as db:
                entry = db.get(KeyValueEntry, key)
                if entry is None:
                    db.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
                    entry.updated_at = datetime.now(timezone.utc)
                db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot write key {key}: {e}") from e

    def delete(self, key: str) -> None:
        self._ensure_schema()
        try:
            with self.SessionLocal() as db:
                entry = db.get(KeyValueEntry, key)
                if entry is not None:
                    db.delete(entry)
                    db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot delete key {key}: {e}") from e


# =============================================================================
# Correction Store
# =============================================================================

class CorrectionStore:
    """Versioned correction document on top of a key/value backend.

    Every operation loads the document, applies the change and saves it
    back, so several processes sharing a backend see each other's writes
    (last write wins).
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        max_role_corrections: int = 500,
        max_structure_corrections: int = 200,
        clock: Callable[[], int] = now_ms,
        key: str = STORAGE_KEY,
    ):
        self.backend = backend if backend is not None else InMemoryBackend()
        self.max_role_corrections = max_role_corrections
        self.max_structure_corrections = max_structure_corrections
        self.clock = clock
        self.key = key

    # ── Persistence ──

    def load(self) -> CorrectionStoreData:
        """Load the document, falling back to defaults on any problem."""
        try:
            raw = self.backend.get(self.key)
        except StoreError as e:
            logger.warning("correction_store_read_failed", error=str(e))
            return CorrectionStoreData()

        if not raw:
            return CorrectionStoreData()

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("correction_store_corrupt", error=str(e))
            return CorrectionStoreData()

        found = payload.get("version") if isinstance(payload, dict) else None
        # JSON true would compare equal to 1
        if type(found) is not int or found != STORE_VERSION:
            logger.warning("correction_store_version_mismatch", found=found, expected=STORE_VERSION)
            return CorrectionStoreData()

        try:
            return CorrectionStoreData.model_validate(payload)
        except ValidationError as e:
            logger.warning("correction_store_invalid", errors=e.error_count())
            return CorrectionStoreData()

    def save(self, data: CorrectionStoreData) -> bool:
        """Persist the document. Returns False (and logs) on failure."""
        try:
            self.backend.set(self.key, data.model_dump_json(by_alias=True))
        except StoreError as e:
            logger.error("correction_store_write_failed", error=str(e))
            return False
        return True

    # ── Corrections ──

    def add_role_correction(self, record: CorrectionRecord) -> None:
        """Append a role correction, keeping only the newest entries."""
        data = self.load()
        data.role_corrections.append(record)
        data.role_corrections = data.role_corrections[-self.max_role_corrections:]
        self.save(data)
        logger.info(
            "role_correction_recorded",
            original_role=record.original_role.value,
            corrected_role=record.corrected_role.value,
            active_features=len(record.active_features),
        )

    def add_structure_correction(self, record: StructureCorrection) -> None:
        """Append a merge/split correction, keeping only the newest entries."""
        data = self.load()
        data.structure_corrections.append(record)
        data.structure_corrections = data.structure_corrections[-self.max_structure_corrections:]
        self.save(data)
        logger.info("structure_correction_recorded", type=record.type)

    def role_corrections(self) -> list[CorrectionRecord]:
        return self.load().role_corrections

    def structure_corrections(self) -> list[StructureCorrection]:
        return self.load().structure_corrections

    # ── User topics ──

    def add_user_topic(self, topic: str, keywords: list[str]) -> UserTopicEntry:
        """Add a topic, or merge keywords into an existing one."""
        data = self.load()
        stamp = self.clock()
        for entry in data.user_topics:
            if entry.topic == topic:
                entry.keywords = list(dict.fromkeys([*entry.keywords, *keywords]))
                entry.added_at = stamp
                break
        else:
            entry = UserTopicEntry(topic=topic, keywords=list(dict.fromkeys(keywords)), added_at=stamp)
            data.user_topics.append(entry)
        self.save(data)
        logger.info("user_topic_saved", topic=topic, keywords=len(entry.keywords))
        return entry

    def remove_user_topic(self, topic: str) -> bool:
        """Remove a user topic. Returns True if it existed."""
        data = self.load()
        remaining = [t for t in data.user_topics if t.topic != topic]
        if len(remaining) == len(data.user_topics):
            return False
        data.user_topics = remaining
        self.save(data)
        logger.info("user_topic_removed", topic=topic)
        return True

    def user_topics(self) -> list[UserTopicEntry]:
        return self.load().user_topics

    def user_topic_dictionary(self) -> dict[str, list[str]]:
        """User topics as a topic → keywords mapping."""
        return {entry.topic: list(entry.keywords) for entry in self.user_topics()}

    # ── Weight deltas ──

    def weight_deltas(self) -> dict[str, float]:
        return dict(self.load().weight_deltas)

    def set_weight_deltas(self, deltas: dict[str, float]) -> None:
        """Replace the learned weight deltas."""
        data = self.load()
        data.weight_deltas = dict(deltas)
        self.save(data)

    # ── Maintenance ──

    def clear(self) -> None:
        """Reset the store to an empty document."""
        self.save(CorrectionStoreData())
        logger.info("correction_store_cleared")

    def stats(self) -> StoreStats:
        data = self.load()
        return StoreStats(
            total_corrections=len(data.role_corrections) + len(data.structure_corrections),
            role_corrections=len(data.role_corrections),
            structure_corrections=len(data.structure_corrections),
            user_topics=len(data.user_topics),
            learned_features=len(data.weight_deltas),
        )


def get_default_store(settings: Optional[Settings] = None) -> CorrectionStore:
    """Build the store configured by settings."""
    settings = settings or get_settings()

    if settings.store_backend == "memory":
        backend: KeyValueBackend = InMemoryBackend()
    elif settings.store_backend == "sqlite":
        backend = SqliteBackend(settings.store_path / "chatlens.db")
    else:
        backend = JsonFileBackend(settings.store_path)

    return CorrectionStore(
        backend=backend,
        max_role_corrections=settings.max_role_corrections,
        max_structure_corrections=settings.max_structure_corrections,
    )
