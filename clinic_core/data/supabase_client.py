# =============================================================================
# clinic_core/data/supabase_client.py
# Supabase client construction and the remote-tier table adapter
# =============================================================================

from __future__ import annotations
import re
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from supabase import Client, ClientOptions, create_client

from clinic_core.config import DEFAULT_REMOTE_TIMEOUT, StoreConfig
from clinic_core.errors import TierUnavailableError
from clinic_core.logging import get_logger

from .criteria import SearchCriteria

logger = get_logger(__name__)

Record = Dict[str, Any]

# Supabase caps a single select at 1000 rows
BATCH_SIZE = 1000

_PLAIN_NAME = re.compile(r"^[A-Za-z0-9_]+$")

_clients: Dict[Tuple[str, str, float], Client] = {}
_clients_lock = threading.Lock()


def quote_filter_value(value: str) -> str:
    """Double-quote a value for a PostgREST logic tree such as ``or=(...)``."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def quote_column(name: str) -> str:
    """Column names outside [A-Za-z0-9_] are quoted inside logic trees."""
    return name if _PLAIN_NAME.match(name) else quote_filter_value(name)


def get_supabase_client(
    endpoint: Optional[str],
    key: Optional[str],
    timeout: float = DEFAULT_REMOTE_TIMEOUT,
) -> Optional[Client]:
    """
    Return a Supabase client for the given credentials, creating it once.

    Args:
        endpoint: Project URL ("https://your-project.supabase.co")
        key: Anon or service key
        timeout: Seconds before a PostgREST call is abandoned

    Returns:
        Supabase client instance or None if not configured or creation failed
    """
    if not endpoint or not key:
        return None

    cache_key = (endpoint, key, float(timeout))
    with _clients_lock:
        client = _clients.get(cache_key)
        if client is not None:
            return client
        try:
            client = create_client(
                endpoint,
                key,
                options=ClientOptions(postgrest_client_timeout=timeout),
            )
        except Exception as e:
            logger.warning(f"Failed to initialize Supabase client: {e}")
            return None
        _clients[cache_key] = client
        return client


def client_for(config: StoreConfig) -> Optional[Client]:
    """Supabase client for a store config, or None when remote is not configured."""
    if not config.remote_configured:
        return None
    return get_supabase_client(config.remote_endpoint, config.remote_key, config.remote_timeout)


def clear_client_cache() -> None:
    """Forget every cached client (used when credentials change)."""
    with _clients_lock:
        _clients.clear()


class RemoteTable:
    """
    Remote-tier adapter for one Supabase table.

    Every method either returns the backend's answer or raises
    TierUnavailableError; callers never see library exceptions.
    """

    def __init__(self, client: Optional[Client], table_name: str, id_field: str = "id"):
        """
        Initialize adapter for a specific table.

        Args:
            client: Supabase client (None means the remote tier is unconfigured)
            table_name: Name of the Supabase table
            id_field: Primary key column
        """
        self.client = client
        self.table_name = table_name
        self.id_field = id_field

    def is_connected(self) -> bool:
        """Check if a Supabase client is available."""
        return self.client is not None

    def _run(self, operation: str, build: Callable[[Any], Any]) -> Any:
        """Execute a query built from the table handle, mapping failures."""
        if not self.is_connected():
            raise TierUnavailableError(
                "Supabase is not configured",
                table=self.table_name,
                operation=operation,
            )
        try:
            return build(self.client.table(self.table_name)).execute()
        except Exception as e:
            raise TierUnavailableError(
                f"Supabase {operation} failed: {e}",
                table=self.table_name,
                operation=operation,
            ) from e

    # =========================================================================
    # READS
    # =========================================================================

    def fetch_all(self, order_by: Optional[str] = None, desc: bool = True) -> List[Record]:
        """
        Fetch ALL records from the table (handles the Supabase 1000 row limit).

        Args:
            order_by: Column to order by (optional)
            desc: Sort descending when ordering

        Returns:
            List of records
        """
        return self.search(SearchCriteria(), order_by=order_by, desc=desc)

    def fetch_eq(
        self,
        field: str,
        value: Any,
        order_by: Optional[str] = None,
        desc: bool = True,
    ) -> List[Record]:
        """Fetch records whose ``field`` equals ``value``."""
        return self.search(SearchCriteria.where(**{field: value}), order_by=order_by, desc=desc)

    def search(
        self,
        criteria: SearchCriteria,
        order_by: Optional[str] = None,
        desc: bool = True,
    ) -> List[Record]:
        """
        Fetch every record matching ``criteria``, paging through the table.

        Equality filters become ``eq`` (``is.null`` for None); the free-text
        term becomes ``ilike`` (one field) or an ``or`` of ``ilike`` filters
        (several fields) with quoted values.
        """
        term = criteria.normalized_term
        if term is not None and not criteria.fields:
            return []

        all_data: List[Record] = []
        offset = 0

        while True:
            def build(table, start=offset):
                query = table.select("*")
                for name, value in criteria.equality_filters().items():
                    if value is None:
                        query = query.is_(name, "null")
                    else:
                        query = query.eq(name, value)
                if term is not None:
                    pattern = f"%{term}%"
                    if len(criteria.fields) == 1:
                        query = query.ilike(criteria.fields[0], pattern)
                    else:
                        quoted = quote_filter_value(pattern)
                        query = query.or_(
                            ",".join(
                                f"{quote_column(name)}.ilike.{quoted}" for name in criteria.fields
                            )
                        )
                if order_by:
                    query = query.order(order_by, desc=desc)
                return query.range(start, start + BATCH_SIZE - 1)

            response = self._run("select", build)
            batch = response.data or []
            all_data.extend(batch)

            # Fewer than a full batch means we've reached the end
            if len(batch) < BATCH_SIZE:
                break
            offset += BATCH_SIZE

        return all_data

    def fetch_page(
        self,
        offset: int,
        limit: int,
        order_by: Optional[str] = None,
        desc: bool = True,
    ) -> List[Record]:
        """Fetch one page of records."""
        def build(table):
            query = table.select("*")
            if order_by:
                query = query.order(order_by, desc=desc)
            return query.range(offset, offset + limit - 1)

        return self._run("select", build).data or []

    def count(self) -> int:
        """Exact number of rows in the table."""
        response = self._run("count", lambda table: table.select("*", count="exact", head=True))
        return int(response.count or 0)

    def max_value(self, field: str) -> Optional[Any]:
        """Largest value of ``field``, or None on an empty table."""
        response = self._run(
            "select",
            lambda table: table.select(field).order(field, desc=True).limit(1),
        )
        rows = response.data or []
        return rows[0].get(field) if rows else None

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert(self, record: Record) -> Record:
        """Insert one record and return the row as stored by the backend."""
        response = self._run("insert", lambda table: table.insert(record))
        rows = response.data or []
        return rows[0] if rows else record

    def update_by_id(self, record_id: Any, fields: Record) -> Optional[Record]:
        """
        Update the row with ``record_id``.

        Returns:
            The updated row, or None when the backend returned no row
        """
        response = self._run(
            "update",
            lambda table: table.update(fields).eq(self.id_field, record_id),
        )
        rows = response.data or []
        return rows[0] if rows else None

    def delete_by_id(self, record_id: Any) -> List[Record]:
        """
        Delete the row with ``record_id``.

        Returns:
            The deleted rows (empty when nothing matched)
        """
        response = self._run("delete", lambda table: table.delete().eq(self.id_field, record_id))
        return response.data or []
