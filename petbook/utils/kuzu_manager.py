"""
Kuzu Connection Manager

Provides thread-safe access to an embedded KuzuDB database: lazy, locked
initialization of the database and schema, one connection per unit of work,
and a process-wide write lock so read-write transactions run one at a time.
"""

import threading
import logging
import kuzu  # type: ignore
import os
import time
from pathlib import Path
from typing import Optional, Dict, Any, Generator, List
from contextlib import contextmanager
from datetime import datetime, timezone

from ..domain.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

_QUERY_LOG_ENABLED = os.getenv('KUZU_QUERY_LOG', 'false').lower() in ('1', 'true', 'on', 'yes')

DEFAULT_DB_NAME = 'petbook.db'

SCHEMA_STATEMENTS: List[str] = [
    "CREATE NODE TABLE IF NOT EXISTS Pet(id STRING, PRIMARY KEY(id))",
    "CREATE NODE TABLE IF NOT EXISTS Owner(key STRING, id STRING, kind STRING, PRIMARY KEY(key))",
    """
    CREATE REL TABLE IF NOT EXISTS OWNERSHIP(
        FROM Owner TO Pet,
        record_id STRING,
        status STRING,
        start_date TIMESTAMP,
        end_date TIMESTAMP,
        transfer_reason STRING
    )
    """,
]


def _default_slow_query_ms() -> int:
    try:
        return int(os.getenv('KUZU_SLOW_QUERY_MS', '150'))
    except ValueError:
        return 150


class KuzuConnectionManager:
    """
    Thread-safe KuzuDB connection manager.

    Key Features:
    - Thread-safe initialization with proper locking
    - Connection-per-request pattern to avoid shared state
    - Automatic connection cleanup
    - Serialized writers through ``write_lock``
    """

    def __init__(self, database_path: Optional[str] = None, slow_query_ms: Optional[int] = None):
        """Initialize manager state (no heavy I/O)."""
        if database_path:
            self.database_path = database_path
        else:
            kuzu_dir = os.getenv('KUZU_DB_PATH', 'data/kuzu')
            self.database_path = os.path.join(kuzu_dir, DEFAULT_DB_NAME)

        self.slow_query_ms = slow_query_ms if slow_query_ms is not None else _default_slow_query_ms()

        self._lock = threading.RLock()  # Reentrant lock for nested calls
        self.write_lock = threading.Lock()
        self._database: Optional[kuzu.Database] = None
        self._is_initialized = False
        self._fatal_init_error: Optional[Exception] = None

        self._active_connections: Dict[int, Dict[str, Any]] = {}
        self._total_connections_created = 0

        logger.info(f"KuzuConnectionManager created for database: {self.database_path}")

    def _initialize_database(self) -> None:
        """Open the database and create the ownership schema. Caller holds _lock."""
        if self._is_initialized:
            return
        started = time.time()
        try:
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
            self._database = kuzu.Database(self.database_path)
            conn = kuzu.Connection(self._database)
            try:
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(statement)
            finally:
                conn.close()
        except Exception as e:
            logger.error(f"Failed to initialize KuzuDB at {self.database_path}: {e}")
            self._fatal_init_error = StoreUnavailable(f"Cannot open ownership database: {e}")
            self._fatal_init_error.__cause__ = e
            raise self._fatal_init_error
        self._is_initialized = True
        logger.info(f"KuzuDB ready at {self.database_path} in {time.time() - started:.2f}s")

    def _get_thread_info(self) -> Dict[str, Any]:
        current = threading.current_thread()
        return {'thread_id': threading.get_ident(), 'thread_name': current.name}

    @contextmanager
    def get_connection(self, operation: str = "unknown") -> Generator[kuzu.Connection, None, None]:
        """
        Get a KuzuDB connection with automatic cleanup.

        Raises StoreUnavailable if the database cannot be opened or a
        connection cannot be created. Errors raised by the caller's block are
        logged and re-raised unchanged.

        Example:
            with manager.get_connection(operation="pet_history") as conn:
                result = conn.execute("MATCH (p:Pet) RETURN p.id")
        """
        thread_info = self._get_thread_info()

        if self._fatal_init_error is not None:
            raise self._fatal_init_error

        with self._lock:
            if not self._is_initialized:
                self._initialize_database()
            if self._database is None:
                raise StoreUnavailable("KuzuDB database not properly initialized")
            try:
                connection = kuzu.Connection(self._database)
            except Exception as e:
                logger.error(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                             f"Failed to create KuzuDB connection: {e}")
                raise StoreUnavailable(f"Cannot connect to ownership database: {e}") from e
            self._total_connections_created += 1
            connection_id = self._total_connections_created
            self._active_connections[connection_id] = {
                'operation': operation,
                'created_at': datetime.now(timezone.utc).isoformat(),
                'thread_info': thread_info,
            }
            logger.debug(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                         f"Created connection #{connection_id} for operation '{operation}'")

        try:
            yield connection
        except Exception as e:
            logger.error(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                         f"Error during KuzuDB operation '{operation}': {e}")
            raise
        finally:
            with self._lock:
                try:
                    connection.close()
                except Exception as e:
                    logger.error(f"Error closing connection #{connection_id}: {e}")
                self._active_connections.pop(connection_id, None)
                logger.debug(f"Closed connection #{connection_id} for operation '{operation}'")

    def execute(self, conn: kuzu.Connection, query: str, params: Optional[Dict[str, Any]] = None,
                operation: str = "query") -> Any:
        """Execute one statement on conn, logging slow statements."""
        if _QUERY_LOG_ENABLED:
            q_snippet = ' '.join(query.split())[:120]
            logger.debug(f"[KUZU] execute op='{operation}' q='{q_snippet}'")
        t0 = time.time()
        result = conn.execute(query, params or {})
        elapsed_ms = (time.time() - t0) * 1000
        if elapsed_ms >= self.slow_query_ms:
            logger.warning(f"[KUZU] Slow statement for '{operation}': {elapsed_ms:.0f}ms")
        # Handle both single QueryResult and list[QueryResult]
        if isinstance(result, list):
            return result[0] if result else None
        return result

    @property
    def active_connection_count(self) -> int:
        with self._lock:
            return len(self._active_connections)

    def close(self) -> None:
        """Close the underlying database."""
        with self._lock:
            if self._database is not None:
                close = getattr(self._database, 'close', None)
                if close:
                    close()
                self._database = None
            self._is_initialized = False
            logger.info(f"KuzuDB at {self.database_path} closed")
