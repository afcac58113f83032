"""
Spanner database access for spanform.

Wraps the blocking google-cloud-spanner client behind async methods for
catalog queries, DML batches and DDL batches.
"""

import asyncio
import concurrent.futures
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from google.api_core import exceptions as api_exceptions
from google.cloud import spanner
from google.cloud.spanner_v1 import param_types

from ..config import SpannerConnection
from ..exceptions import DatabaseError, SchemaChangeError


logger = logging.getLogger(__name__)


def _param_type(value: Any):
    if isinstance(value, bool):
        return param_types.BOOL
    if isinstance(value, int):
        return param_types.INT64
    if isinstance(value, (list, tuple)):
        return param_types.Array(param_types.STRING)
    return param_types.STRING


def infer_param_types(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Spanner parameter types for a mapping of query parameters."""
    if not params:
        return None
    return {name: _param_type(value) for name, value in params.items()}


def _status_name(error: Exception) -> Optional[str]:
    code = getattr(error, "grpc_status_code", None)
    return code.name if code is not None else None


class SpannerDatabase:
    """
    Async facade over one Spanner database.

    Each call runs the client library in a worker thread; DDL batches are
    waited until the long-running operation completes.
    """

    def __init__(self, config: SpannerConnection, client: Optional[Any] = None):
        self.config = config
        self._client = client
        self._database = None

    @property
    def database_path(self) -> str:
        return self.config.database_path

    def _get_database(self):
        if self._database is None:
            if self._client is None:
                self._client = spanner.Client(project=self.config.project)
            instance = self._client.instance(self.config.instance)
            self._database = instance.database(self.config.database)
            logger.debug(f"Opened Spanner database {self.database_path}")
        return self._database

    async def fetch(
        self, sql: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Run a read-only query and return rows as dictionaries."""
        try:
            return await asyncio.to_thread(self._fetch_sync, sql, params)
        except api_exceptions.GoogleAPICallError as e:
            raise DatabaseError(f"Query failed: {e}", cause=e) from e

    def _fetch_sync(
        self, sql: str, params: Optional[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        database = self._get_database()
        with database.snapshot() as snapshot:
            results = snapshot.execute_sql(
                sql,
                params=params,
                param_types=infer_param_types(params),
                timeout=self.config.query_timeout,
            )
            rows = list(results)
            fields = [f.name for f in results.fields] if rows else []
        return [dict(zip(fields, row)) for row in rows]

    async def execute_dml(
        self, statements: Sequence[Tuple[str, Dict[str, Any]]]
    ) -> None:
        """Run DML statements as one batch inside a read-write transaction."""
        if not statements:
            return
        try:
            await asyncio.to_thread(self._execute_dml_sync, list(statements))
        except api_exceptions.GoogleAPICallError as e:
            raise DatabaseError(f"DML batch failed: {e}", cause=e) from e

    def _execute_dml_sync(self, statements: List[Tuple[str, Dict[str, Any]]]) -> None:
        database = self._get_database()
        batch = [(sql, params, infer_param_types(params)) for sql, params in statements]

        def work(transaction):
            status, row_counts = transaction.batch_update(batch)
            if status.code != 0:
                raise DatabaseError(
                    f"DML batch stopped after {len(row_counts)} statements: "
                    f"{status.message}"
                )

        database.run_in_transaction(work)

    async def update_ddl(
        self, statements: Sequence[str], proto_descriptors: Optional[bytes] = None
    ) -> None:
        """Apply a batch of DDL statements and wait for completion.

        Raises:
            SchemaChangeError: carrying the gRPC status name of the failure.
        """
        statements = list(statements)
        if not statements:
            return
        for statement in statements:
            logger.debug(f"DDL: {statement}")
        try:
            await asyncio.to_thread(self._update_ddl_sync, statements, proto_descriptors)
        except api_exceptions.GoogleAPICallError as e:
            raise SchemaChangeError(
                f"Schema change failed: {e.message}",
                status_code=_status_name(e),
                statements=statements,
                cause=e,
            ) from e
        except concurrent.futures.TimeoutError as e:
            raise SchemaChangeError(
                f"Schema change did not finish within {self.config.ddl_timeout}s",
                status_code="DEADLINE_EXCEEDED",
                statements=statements,
                cause=e,
            ) from e

    def _update_ddl_sync(
        self, statements: List[str], proto_descriptors: Optional[bytes]
    ) -> None:
        database = self._get_database()
        kwargs = {}
        if proto_descriptors:
            kwargs["proto_descriptors"] = proto_descriptors
        operation = database.update_ddl(statements, **kwargs)
        operation.result(timeout=self.config.ddl_timeout)

    async def close(self) -> None:
        """Release the client."""
        self._database = None
        self._client = None

    async def __aenter__(self) -> "SpannerDatabase":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
