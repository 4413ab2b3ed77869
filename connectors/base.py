from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Union
import asyncio
import logging
import threading
import time

from config import DEBUG_DURATION, QUERY_TIMEOUT
from sqlchain import GeneratorOptions, QueryIR, QuoteStyle, ir_to_sql
from sqlchain.errors import ExecutionTimeoutError

from .results import QueryResult

logger = logging.getLogger(__name__)


class Cancellation:
    """Hook a running query registers so a timed-out caller can stop it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._callback: Optional[Callable[[], None]] = None
        self._fired = False

    def set(self, callback: Callable[[], None]):
        with self._lock:
            self._callback = callback
            fired = self._fired
        if fired:
            callback()

    def fire(self):
        with self._lock:
            self._fired = True
            callback = self._callback
        if callback is not None:
            callback()


class QueryConnector(ABC):
    """Base class for execution collaborators.

    A connector runs one query per call; it never shares a connection
    between calls.
    """

    def __init__(self, name: str, config: dict):
        self.name = name
        self.config = config

    @property
    def quote_style(self) -> QuoteStyle:
        """Identifier quoting the backend expects for generated SQL"""
        return QuoteStyle.DOUBLE

    @abstractmethod
    def _run(self, sql: str, cancellation: Cancellation) -> QueryResult:
        """Execute SQL and collect the result. Driver errors must be translated."""
        pass

    @abstractmethod
    def validate_config(self) -> dict:
        """Validate configuration. Returns {valid: bool, errors: List[str]}"""
        pass

    def to_sql(self, query: Union[QueryIR, str]) -> str:
        if isinstance(query, str):
            return query
        return ir_to_sql(query, GeneratorOptions(quote_style=self.quote_style))

    def execute(self, query: Union[QueryIR, str], timeout: Optional[float] = None) -> QueryResult:
        """
        Run a QueryIR (rendered for this backend) or raw SQL.

        timeout falls back to the connector's "timeout" config entry and then
        to SQLCHAIN_QUERY_TIMEOUT; None means wait indefinitely.
        """
        sql = self.to_sql(query)
        if timeout is None:
            timeout = self.config.get('timeout', QUERY_TIMEOUT)

        start = time.perf_counter()
        cancellation = Cancellation()
        if timeout is None:
            result = self._run(sql, cancellation)
        else:
            executor = ThreadPoolExecutor(max_workers=1)
            future = executor.submit(self._run, sql, cancellation)
            try:
                result = future.result(timeout=timeout)
            except FutureTimeoutError:
                logger.warning(f"[{self.name}] Query exceeded {timeout}s, cancelling")
                cancellation.fire()
                raise ExecutionTimeoutError(timeout) from None
            finally:
                executor.shutdown(wait=False)

        if DEBUG_DURATION:
            logger.info(f"TIMING: [{self.name}] query took {(time.perf_counter() - start) * 1000:.2f}ms")
        return result

    def test_connection(self) -> dict:
        """Test if connection is valid. Returns {success: bool, message: str}"""
        try:
            self.execute("SELECT 1")
            return {"success": True, "message": "Connection successful"}
        except Exception as e:
            return {"success": False, "message": str(e)}

    def close(self):
        """Close connection and clean up resources"""
        pass


class AsyncQueryConnector:
    """Async wrapper running a sync connector in the thread pool"""

    def __init__(self, connector: QueryConnector):
        self._sync_connector = connector

    @property
    def name(self) -> str:
        return self._sync_connector.name

    @property
    def quote_style(self) -> QuoteStyle:
        return self._sync_connector.quote_style

    async def execute(self, query: Union[QueryIR, str], timeout: Optional[float] = None) -> QueryResult:
        """Wrap sync execute in thread pool, bounded by the same timeout"""
        call = asyncio.to_thread(self._sync_connector.execute, query, timeout)
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError:
            raise ExecutionTimeoutError(timeout) from None

    async def test_connection(self) -> dict:
        return await asyncio.to_thread(self._sync_connector.test_connection)

    def validate_config(self) -> dict:
        """Delegate to sync connector (no I/O)"""
        return self._sync_connector.validate_config()

    async def close(self):
        await asyncio.to_thread(self._sync_connector.close)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
