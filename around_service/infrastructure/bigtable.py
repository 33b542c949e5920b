"""
Durable post rows in Cloud Bigtable
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import bigtable

from ..config import Settings
from ..domain.repositories import IDurableStore
from ..errors import AdapterError, AdapterErrorKind
from ..result import Result

logger = logging.getLogger(__name__)


def open_instance(settings: Settings, admin: bool = False) -> Any:
    """Return a handle on the configured Bigtable instance"""
    client = bigtable.Client(project=settings.GCP_PROJECT_ID, admin=admin)
    return client.instance(settings.BIGTABLE_INSTANCE_ID)


class BigtablePostStore(IDurableStore):
    """Write-only post rows, one row per post identifier"""

    def __init__(self, settings: Settings, instance: Optional[Any] = None):
        self.settings = settings
        self._instance = instance
        self._tables: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _table(self, table_id: str) -> Any:
        with self._lock:
            if self._instance is None:
                self._instance = open_instance(self.settings)
            if table_id not in self._tables:
                self._tables[table_id] = self._instance.table(table_id)
            return self._tables[table_id]

    async def write_row(
        self,
        table: str,
        row_key: str,
        columns: Mapping[Tuple[str, str], bytes],
        timestamp: datetime
    ) -> Result[None, AdapterError]:
        return await asyncio.to_thread(self._write_row, table, row_key, columns, timestamp)

    def _write_row(
        self,
        table: str,
        row_key: str,
        columns: Mapping[Tuple[str, str], bytes],
        timestamp: datetime
    ) -> Result[None, AdapterError]:
        try:
            row = self._table(table).direct_row(row_key.encode("utf-8"))
            for (family, column), value in columns.items():
                row.set_cell(family, column.encode("utf-8"), value, timestamp=timestamp)
            status = row.commit()
        except (GoogleAPIError, GoogleAuthError) as e:
            logger.error(f"Failed to write row {row_key} to {table}: {e}")
            return Result.err(AdapterError(AdapterErrorKind.STORE_UNAVAILABLE, str(e)))

        if status is not None and status.code != 0:
            logger.error(f"Bigtable rejected row {row_key}: {status.message}")
            return Result.err(AdapterError(AdapterErrorKind.STORE_UNAVAILABLE, status.message))

        logger.info(f"Post is saved to Bigtable: {row_key}")
        return Result.ok(None)
