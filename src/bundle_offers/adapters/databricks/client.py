from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, TypeVar

from databricks import sql as databricks_sql
from databricks.sql.exc import OperationalError

from bundle_offers.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

Params = Optional[dict[str, Any]]


class DatabricksSqlClient:
    """Runs parameterized statements against a Databricks SQL warehouse."""

    def __init__(self, settings: Settings, max_retries: int = 3, initial_delay: float = 1.0) -> None:
        self.settings = settings
        self.max_retries = max(1, max_retries)
        self.initial_delay = initial_delay
        self._connection: Optional[Any] = None

    def qualified(self, table_name: str) -> str:
        """Table name prefixed with the configured catalog and schema."""
        parts = [p for p in (self.settings.databricks_catalog, self.settings.databricks_schema) if p]
        parts.append(f"{self.settings.databricks_table_prefix}{table_name}")
        return ".".join(parts)

    def _connect(self) -> Any:
        if self._connection is None:
            if not all(
                [
                    self.settings.databricks_server_hostname,
                    self.settings.databricks_http_path,
                    self.settings.databricks_access_token,
                ]
            ):
                raise ValueError(
                    "Databricks connection requires DATABRICKS_SERVER_HOSTNAME, "
                    "DATABRICKS_HTTP_PATH, and DATABRICKS_ACCESS_TOKEN"
                )
            logger.info(f"Connecting to Databricks server: {self.settings.databricks_server_hostname}")
            self._connection = databricks_sql.connect(
                server_hostname=self.settings.databricks_server_hostname,
                http_path=self.settings.databricks_http_path,
                access_token=self.settings.databricks_access_token,
            )
        return self._connection

    def _with_retries(self, operation: Callable[[], T]) -> T:
        """Retry transient connection failures with exponential backoff."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return operation()
            except OperationalError as e:
                if attempt == self.max_retries:
                    logger.error(f"Statement failed after {attempt} attempts: {e}")
                    raise
                delay = self.initial_delay * (2 ** (attempt - 1))
                logger.warning(f"Statement failed (attempt {attempt}/{self.max_retries}), retrying in {delay}s: {e}")
                self._connection = None
                time.sleep(delay)
        raise RuntimeError("unreachable")

    def query(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        """Run a SELECT with named `:param` markers; rows come back as dicts."""
        logger.debug(f"Executing query: {sql[:200]}...")

        def _run() -> list[dict[str, Any]]:
            cursor = self._connect().cursor()
            try:
                cursor.execute(sql, parameters=params or None)
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()

        return self._with_retries(_run)

    def execute(self, sql: str, params: Params = None) -> None:
        logger.debug(f"Executing statement: {sql[:200]}...")

        def _run() -> None:
            cursor = self._connect().cursor()
            try:
                cursor.execute(sql, parameters=params or None)
            finally:
                cursor.close()

        self._with_retries(_run)

    def close(self) -> None:
        if self._connection:
            try:
                self._connection.close()
                logger.info("Closed Databricks connection")
            except OperationalError as e:
                logger.warning(f"Error closing connection: {e}")
            finally:
                self._connection = None

    def __enter__(self) -> "DatabricksSqlClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
