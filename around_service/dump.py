"""
Copy every post row from Bigtable into a BigQuery table for analysis

Run with ``python -m around_service.dump`` or ``around-dump``. The target
table is replaced on each run.
"""
import logging
import sys
from typing import Any, Dict, Iterable, Iterator, List, Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import bigquery

from .config import Settings, configure_logging
from .domain.models import ROW_COLUMNS
from .infrastructure.bigtable import open_instance

logger = logging.getLogger(__name__)

DUMP_SCHEMA = [
    bigquery.SchemaField("postId", "STRING"),
    bigquery.SchemaField("user", "STRING"),
    bigquery.SchemaField("message", "STRING"),
    bigquery.SchemaField("lat", "FLOAT"),
    bigquery.SchemaField("lon", "FLOAT"),
]


def _cell(row: Any, family: str, column: str) -> Optional[str]:
    cells = row.cells.get(family, {}).get(column.encode("utf-8"))
    if not cells:
        return None
    return cells[0].value.decode("utf-8")


def row_to_record(row: Any) -> Optional[Dict[str, Any]]:
    """Flatten a Bigtable row into a BigQuery record, or None if it is incomplete"""
    post_id = row.row_key.decode("utf-8")
    values = {column: _cell(row, family, column) for family, column in ROW_COLUMNS}
    missing = [column for column, value in values.items() if value is None]
    if missing:
        logger.warning(f"Skipping row {post_id}: missing {', '.join(missing)}")
        return None
    try:
        lat = float(values["lat"])
        lon = float(values["lon"])
    except ValueError:
        logger.warning(f"Skipping row {post_id}: unreadable coordinates")
        return None
    return {
        "postId": post_id,
        "user": values["user"],
        "message": values["message"],
        "lat": lat,
        "lon": lon,
    }


def read_records(rows: Iterable[Any]) -> Iterator[Dict[str, Any]]:
    for row in rows:
        record = row_to_record(row)
        if record is not None:
            yield record


def dump_posts(settings: Settings, table: Any = None, client: Any = None) -> int:
    """
    Load all post rows into BigQuery

    Args:
        settings: Settings naming the Bigtable table and BigQuery destination
        table: Bigtable table handle (opened from settings when omitted)
        client: BigQuery client (created from settings when omitted)

    Returns:
        Number of rows loaded
    """
    if table is None:
        table = open_instance(settings).table(settings.BIGTABLE_TABLE_ID)
    if client is None:
        client = bigquery.Client(project=settings.GCP_PROJECT_ID)

    records: List[Dict[str, Any]] = list(read_records(table.read_rows()))
    destination = f"{settings.GCP_PROJECT_ID}.{settings.BIGQUERY_DATASET}.{settings.BIGQUERY_TABLE}"
    logger.info(f"Loading {len(records)} posts into {destination}")

    job_config = bigquery.LoadJobConfig(
        schema=DUMP_SCHEMA,
        write_disposition=bigquery.WriteDisposition.WRITE_TRUNCATE,
        create_disposition=bigquery.CreateDisposition.CREATE_IF_NEEDED,
    )
    job = client.load_table_from_json(records, destination, job_config=job_config)
    job.result()

    logger.info(f"Loaded {len(records)} posts into {destination}")
    return len(records)


def main() -> int:
    settings = Settings()
    configure_logging(settings)
    try:
        dump_posts(settings)
    except (GoogleAPIError, GoogleAuthError) as e:
        logger.error(f"Post dump failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
