"""
Session Registry

Owns the merged, de-duplicated, visibility-filtered collection of sessions.
Persistence and the baseline seed set are injected so the merge rules can
be exercised in isolation.

Storage structure of the JSON file backend:
<storage_dir>/
├── sessions.json
└── raw/
    └── <session_id>.csv
"""

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from surveylens.core.errors import NotFoundError, PersistenceError
from surveylens.core.session_store import Session

logger = logging.getLogger(__name__)

SeedProvider = Callable[[], Iterable[Session]]


@dataclass
class SessionPatch:
    """The only mutations allowed on a committed session."""
    is_public: Optional[bool] = None
    column_visibility: Dict[str, bool] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.is_public is None and not self.column_visibility


class SessionBackend(ABC):
    """Storage for the full session collection and the raw source files."""

    @abstractmethod
    def load_records(self) -> List[Dict]:
        """Read every stored session record."""
        pass

    @abstractmethod
    def save_records(self, records: List[Dict]):
        """Replace the stored collection."""
        pass

    @abstractmethod
    def store_source(self, session_id: str, data: bytes):
        """Keep the original CSV bytes of a session."""
        pass

    @abstractmethod
    def load_source(self, session_id: str) -> bytes:
        """Return the original CSV bytes of a session."""
        pass

    @abstractmethod
    def delete_source(self, session_id: str):
        """Drop the original CSV bytes of a session, if any."""
        pass


class InMemoryBackend(SessionBackend):
    """Backend that keeps everything in process memory."""

    def __init__(self, records: Optional[List[Dict]] = None):
        self._records = copy.deepcopy(records or [])
        self._sources: Dict[str, bytes] = {}

    def load_records(self) -> List[Dict]:
        return copy.deepcopy(self._records)

    def save_records(self, records: List[Dict]):
        self._records = copy.deepcopy(records)

    def store_source(self, session_id: str, data: bytes):
        self._sources[session_id] = bytes(data)

    def load_source(self, session_id: str) -> bytes:
        if session_id not in self._sources:
            raise NotFoundError(f"No source file stored for session '{session_id}'", session_id)
        return self._sources[session_id]

    def delete_source(self, session_id: str):
        self._sources.pop(session_id, None)


class JsonFileBackend(SessionBackend):
    """
    Stores the session collection as one JSON file.

    The collection is written to a temporary file and atomically renamed
    over the previous one. Filesystem and decode failures surface as
    PersistenceError.
    """

    INDEX_NAME = "sessions.json"

    def __init__(self, base_path: str):
        """
        Initialize the file backend.

        Args:
            base_path: Directory holding sessions.json and raw/
        """
        self.base_path = Path(base_path)
        self.index_path = self.base_path / self.INDEX_NAME
        self.raw_path = self.base_path / "raw"

    def _initialize_storage(self):
        """Create storage directory structure."""
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            self.raw_path.mkdir(exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create storage directory {self.base_path}: {e}")

    def load_records(self) -> List[Dict]:
        if not self.index_path.exists():
            return []
        try:
            with open(self.index_path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Cannot read session index {self.index_path}: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("sessions"), list):
            raise PersistenceError(f"Session index {self.index_path} has an invalid structure")
        return data["sessions"]

    def save_records(self, records: List[Dict]):
        """Persist the collection atomically (write to temp, then rename)."""
        self._initialize_storage()
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.base_path), suffix=".tmp", prefix="sessions_"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"sessions": records}, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.index_path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Failed to save session index {self.index_path}: {e}")

    def _source_path(self, session_id: str) -> Path:
        safe_id = "".join(c if c.isalnum() or c in "-_." else "_" for c in session_id)
        return self.raw_path / f"{safe_id}.csv"

    def store_source(self, session_id: str, data: bytes):
        self._initialize_storage()
        try:
            self._source_path(session_id).write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Failed to store source file: {e}", session_id)

    def load_source(self, session_id: str) -> bytes:
        path = self._source_path(session_id)
        if not path.exists():
            raise NotFoundError(f"No source file stored for session '{session_id}'", session_id)
        try:
            return path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Failed to read source file: {e}", session_id)

    def delete_source(self, session_id: str):
        path = self._source_path(session_id)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise PersistenceError(f"Failed to delete source file: {e}", session_id)


class SessionRegistry:
    """
    Registry of ingested sessions.

    Sessions come from two places: a read-only baseline seed set and the
    cached collection held by the backend. Listing merges both, keeping the
    baseline copy when an id appears in both, and hides private sessions
    from non-privileged consumers. Writes replace the whole cached
    collection (last writer wins).
    """

    def __init__(self, backend: SessionBackend, seed_provider: Optional[SeedProvider] = None):
        """
        Initialize the registry.

        Args:
            backend: Persistence backend
            seed_provider: Callable returning the baseline sessions
        """
        self.backend = backend
        self._seed_provider = seed_provider or (lambda: [])
        self._cache: Optional[List[Session]] = None

        # Sessions whose commit failed, kept for retry
        self.pending: Dict[str, Tuple[Session, Optional[bytes]]] = {}

    # =========================================================================
    # Reading
    # =========================================================================

    def refresh(self) -> List[Session]:
        """Reload the cached collection from the backend."""
        records = self.backend.load_records()
        try:
            self._cache = [Session.from_dict(r) for r in records]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Stored session record is invalid: {e}")
        return self._cache

    def _cached(self) -> List[Session]:
        if self._cache is None:
            self.refresh()
        return self._cache

    def _seed_sessions(self) -> List[Session]:
        return [s for s in self._seed_provider()]

    def list(self, privileged: bool = False) -> List[Session]:
        """
        Merge baseline and cached sessions.

        Args:
            privileged: Include private sessions

        Returns:
            Sessions de-duplicated by id, newest first
        """
        merged: Dict[str, Session] = {}
        for session in self._seed_sessions():
            merged.setdefault(session.id, session)
        for session in self._cached():
            merged.setdefault(session.id, session)  # baseline takes precedence

        sessions = sorted(merged.values(), key=lambda s: s.last_updated, reverse=True)
        if not privileged:
            sessions = [s for s in sessions if s.is_public]
        return sessions

    def get(self, session_id: str, privileged: bool = False) -> Session:
        """
        Get a session by id.

        Raises:
            NotFoundError: unknown id, or private session for a public consumer
        """
        for session in self.list(privileged=privileged):
            if session.id == session_id:
                return session
        raise NotFoundError(f"Session '{session_id}' not found", session_id)

    def export_source(self, session_id: str, privileged: bool = False) -> bytes:
        """Return the unmodified CSV bytes a session was built from."""
        session = self.get(session_id, privileged=privileged)
        if not session.enable_csv_download and not privileged:
            raise NotFoundError(f"Source download is disabled for session '{session_id}'", session_id)
        return self.backend.load_source(session_id)

    # =========================================================================
    # Writing
    # =========================================================================

    def commit(self, session: Session, source_bytes: Optional[bytes] = None) -> Session:
        """
        Persist a newly ingested session.

        The session becomes visible to list() only after the full collection
        was written and read back. On failure it stays in `pending`.

        Raises:
            PersistenceError: inconsistent session, duplicate id, or backend failure
        """
        problems = session.check_invariants()
        if problems:
            raise PersistenceError(
                f"Refusing to commit inconsistent session: {'; '.join(problems)}",
                session.id,
            )

        previous = self._cached()
        seed_ids = {s.id for s in self._seed_sessions()}
        if session.id in seed_ids or any(s.id == session.id for s in previous):
            raise PersistenceError(f"Session '{session.id}' already exists", session.id)

        self.pending[session.id] = (session, source_bytes)
        try:
            if source_bytes is not None:
                self.backend.store_source(session.id, source_bytes)
            self._write(previous + [session])
        except PersistenceError as e:
            self._cache = previous
            if e.session_id is None:
                e.session_id = session.id
            logger.error(f"Commit of session '{session.id}' failed, kept for retry: {e}")
            raise

        del self.pending[session.id]
        logger.info(f"Committed session '{session.id}' ({session.participation_count} responses)")
        return session

    def retry_pending(self) -> List[str]:
        """Re-commit sessions whose earlier commit failed."""
        committed = []
        for session_id, (session, source_bytes) in list(self.pending.items()):
            self.commit(session, source_bytes)
            committed.append(session_id)
        return committed

    def update(self, session_id: str, patch: SessionPatch) -> Session:
        """
        Apply a visibility toggle and/or per-column visualizability overrides.

        Raises:
            NotFoundError: unknown session or column id
            PersistenceError: baseline session, or backend failure
            ValueError: the patch changes nothing
        """
        if patch.is_empty:
            raise ValueError("Session patch changes nothing")

        sessions = self._cached()
        index = self._writable_index(session_id, sessions)

        updated = copy.deepcopy(sessions[index])
        for column_id in patch.column_visibility:
            if updated.get_column(column_id) is None:
                raise NotFoundError(
                    f"Session '{session_id}' has no column '{column_id}'", session_id
                )

        if patch.is_public is not None:
            updated.is_public = patch.is_public
        for column_id, visible in patch.column_visibility.items():
            updated.get_column(column_id).is_visualizable = visible
        updated.touch()

        self._write(sessions[:index] + [updated] + sessions[index + 1:])
        logger.info(f"Updated session '{session_id}' ({updated.visibility})")
        return self.get(session_id, privileged=True)

    def toggle_public(self, session_id: str) -> Session:
        """Flip a session between public and private."""
        sessions = self._cached()
        current = sessions[self._writable_index(session_id, sessions)]
        return self.update(session_id, SessionPatch(is_public=not current.is_public))

    def detach(self, session_id: str) -> Session:
        """
        Remove a session and its stored source file.

        Raises:
            NotFoundError: unknown id
            PersistenceError: baseline session, or backend failure
        """
        sessions = self._cached()
        index = self._writable_index(session_id, sessions)
        removed = sessions[index]

        self._write(sessions[:index] + sessions[index + 1:])
        self.backend.delete_source(session_id)
        logger.info(f"Deleted session '{session_id}'")
        return removed

    def _writable_index(self, session_id: str, sessions: List[Session]) -> int:
        seed_ids = {s.id for s in self._seed_sessions()}
        if session_id in seed_ids:
            raise PersistenceError(f"Session '{session_id}' is a baseline session and is read-only", session_id)
        for index, session in enumerate(sessions):
            if session.id == session_id:
                return index
        raise NotFoundError(f"Session '{session_id}' not found", session_id)

    def _write(self, sessions: List[Session]):
        """Write the full collection, then read it back."""
        self.backend.save_records([s.to_dict() for s in sessions])
        self.refresh()


def load_seed_sessions(path: Optional[str]) -> List[Session]:
    """
    Load baseline sessions from a JSON file (a list of session records).

    A missing path yields no seeds.
    """
    if not path:
        return []
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("sessions", [])
        return [Session.from_dict(record) for record in data]
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"Cannot load seed sessions from {path}: {e}")


def create_registry(storage_dir: str, seed_path: Optional[str] = None) -> SessionRegistry:
    """Registry over a JSON file backend with an optional seed file."""
    seeds = load_seed_sessions(seed_path)
    return SessionRegistry(JsonFileBackend(storage_dir), seed_provider=lambda: seeds)
