# infrastructure/persistence/sqlite_base.py
import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')
Statement = Tuple[str, Sequence[Any]]


@dataclass(frozen=True)
class SQLiteSettings:
    db_path: Path
    wal: bool = True
    timeout: float = 30.0
    lock_retries: int = 3
    lock_backoff: float = 0.1
    pool_size: int = 5
    synchronous: str = 'NORMAL'

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> 'SQLiteSettings':
        return cls(
            db_path=Path(config.get('db_path', 'runtime/host.db')),
            wal=bool(config.get('enable_wal_mode', True)),
            timeout=float(config.get('timeout', 30.0)),
            lock_retries=max(1, int(config.get('retry_attempts', 3))),
            lock_backoff=float(config.get('retry_delay', 0.1)),
            pool_size=int(config.get('pool_size', 5)),
            synchronous=str(config.get('synchronous', 'NORMAL')).upper(),
        )


class _ConnectionPool:
    """Small LIFO pool; store methods are called from worker threads."""

    def __init__(self, settings: SQLiteSettings):
        self._settings = settings
        self._idle: List[sqlite3.Connection] = []
        self._lock = Lock()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._settings.db_path, timeout=self._settings.timeout, check_same_thread=False)
        if self._settings.wal:
            conn.execute('PRAGMA journal_mode=WAL')
        conn.execute(f'PRAGMA synchronous={self._settings.synchronous}')
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._idle.pop() if self._idle else None
        if conn is None:
            conn = self._open()
        try:
            yield conn
        finally:
            with self._lock:
                if len(self._idle) < self._settings.pool_size:
                    self._idle.append(conn)
                    conn = None
            if conn is not None:
                conn.close()

    def close(self) -> None:
        with self._lock:
            idle, self._idle = self._idle, []
        for conn in idle:
            conn.close()


class SQLiteBackend:
    """
    Shared plumbing for SQLite stores: pooled connections in WAL mode and a
    retry with linear backoff while the file is locked by another writer.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.settings = SQLiteSettings.from_mapping(config or {})
        self.settings.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool = _ConnectionPool(self.settings)
        self._counter_lock = Lock()
        self.operation_count = 0
        logger.info(f'{self.__class__.__name__} opened {self.settings.db_path}')

    def _retry_locked(self, func: Callable[[], T]) -> T:
        attempts = self.settings.lock_retries
        for attempt in range(1, attempts + 1):
            try:
                return func()
            except sqlite3.OperationalError as exc:
                if 'database is locked' not in str(exc) or attempt == attempts:
                    raise
                logger.debug(f'Database locked (attempt {attempt}/{attempts}); backing off')
                time.sleep(self.settings.lock_backoff * attempt)
        raise AssertionError('unreachable')

    def _count(self) -> None:
        with self._counter_lock:
            self.operation_count += 1

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        def _run():
            with self._pool.connection() as conn:
                return conn.execute(sql, tuple(params)).fetchall()

        rows = self._retry_locked(_run)
        self._count()
        return rows

    def write(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one statement in its own transaction; returns the affected row count."""
        return self.write_batch([(sql, params)])[0]

    def write_batch(self, statements: Sequence[Statement]) -> List[int]:
        """Run *statements* atomically, in order."""
        def _run():
            with self._pool.connection() as conn:
                with conn:
                    return [conn.execute(sql, tuple(params)).rowcount for sql, params in statements]

        counts = self._retry_locked(_run)
        self._count()
        return counts

    def close(self) -> None:
        self._pool.close()
