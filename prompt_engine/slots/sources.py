"""Data sources for system and API slots.

System slots read from a fixed table of environment facts computed from an
injected clock. API slots are fetched over HTTP with httpx: each attempt runs under
a hard deadline, failures are retried with exponential backoff, and concurrent
fetches of the same (slot, data source) pair share one in-flight request.
"""

import asyncio
import json
import sys
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import httpx

from prompt_engine.exceptions import DataSourceError, ExpressionError
from prompt_engine.logging import get_engine_logger
from prompt_engine.values import coerce_value, to_text

from .expression import evaluate
from .types import ApiSource, ResponseExtraction

logger = get_engine_logger(__name__)


# ---------------------------------------------------------------------------
# System values
# ---------------------------------------------------------------------------


def _timezone(now: datetime) -> str:
    return now.astimezone().tzname() or "UTC"


def system_values(now_seconds: float, locale: str) -> dict[str, Callable[[], Any]]:
    """Return the system slot table keyed by slot id.

    Values are produced lazily so only the slots a template references are computed.
    """
    now = datetime.fromtimestamp(now_seconds, tz=UTC)
    return {
        "current_time": lambda: now.isoformat(),
        "current_date": lambda: now.date().isoformat(),
        "current_timestamp": lambda: int(now_seconds * 1000),
        "current_year": lambda: now.year,
        "current_month": lambda: now.month,
        "current_day": lambda: now.day,
        "random_id": lambda: uuid.uuid4().hex[:12],
        "uuid": lambda: str(uuid.uuid4()),
        "locale": lambda: locale,
        "language": lambda: locale.split("_", 1)[0],
        "platform": lambda: sys.platform,
        "timezone": lambda: _timezone(now),
    }


SYSTEM_SLOT_IDS = frozenset(system_values(0.0, "en_US"))
"""Slot ids with a built-in system value."""


# ---------------------------------------------------------------------------
# Response extraction
# ---------------------------------------------------------------------------


def extract_path(data: Any, path: str) -> Any:
    """Walk a dot path (``data.items.0.name``) through maps and lists.

    Raises:
        KeyError: If a segment does not exist.
    """
    current = data
    for segment in filter(None, path.split(".")):
        if isinstance(current, Mapping) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.lstrip("-").isdigit() and -len(current) <= int(segment) < len(current):
            current = current[int(segment)]
        else:
            raise KeyError(segment)
    return current


def extract_value(slot_id: str, extraction: ResponseExtraction | None, data: Any) -> Any:
    """Pull the slot value out of a decoded API response.

    Raises:
        DataSourceError: If the path or transform does not yield a slot value.
    """
    try:
        if extraction is not None and extraction.path:
            value = extract_path(data, extraction.path)
        elif extraction is not None and extraction.transform:
            value = evaluate(extraction.transform, {"data": data})
        else:
            value = data
        return coerce_value(value)
    except KeyError as e:
        raise DataSourceError(slot_id, f"Slot '{slot_id}' response has no field {e.args[0]!r}") from e
    except (ExpressionError, TypeError, ValueError) as e:
        raise DataSourceError(slot_id, f"Slot '{slot_id}' response could not be extracted: {e}") from e


# ---------------------------------------------------------------------------
# API fetching
# ---------------------------------------------------------------------------


def request_key(slot_id: str, source: ApiSource) -> str:
    """Identity of an outbound request used for in-flight coalescing."""
    return f"api:{slot_id}:{json.dumps(source.to_json_dict(), sort_keys=True, default=str)}"


class ApiFetcher:
    """Fetches API slot values with timeout, retry and in-flight coalescing.

    When constructed without a client, a short-lived ``httpx.AsyncClient`` is opened
    per request.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def fetch(
        self,
        slot_id: str,
        source: ApiSource,
        *,
        timeout_ms: int,
        retry_count: int,
        backoff_seconds: float,
        semaphore: asyncio.Semaphore,
    ) -> Any:
        """Return the extracted value for ``source``.

        A second caller with the same slot and source awaits the first caller's
        request instead of issuing its own.

        Raises:
            DataSourceError: When every attempt failed or extraction failed.
        """
        key = request_key(slot_id, source)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_with_retry(slot_id, source, timeout_ms, retry_count, backoff_seconds, semaphore))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug(f"Joining in-flight request for slot '{slot_id}'")
        data = await asyncio.shield(task)
        return extract_value(slot_id, source.response_extraction, data)

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _fetch_with_retry(
        self,
        slot_id: str,
        source: ApiSource,
        timeout_ms: int,
        retry_count: int,
        backoff_seconds: float,
        semaphore: asyncio.Semaphore,
    ) -> Any:
        attempts = max(retry_count, 0) + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                async with semaphore:
                    return await asyncio.wait_for(self._request(source, timeout_ms), timeout=timeout_ms / 1000)
            except TimeoutError as e:
                last_error = e
                reason = f"timed out after {timeout_ms}ms"
            except httpx.HTTPError as e:
                last_error = e
                reason = str(e) or type(e).__name__
            if attempt < attempts - 1:
                delay = backoff_seconds * (2**attempt)
                logger.warning(f"Slot '{slot_id}' request to {source.endpoint} failed: {reason}. Retrying in {delay:.1f}s (attempt {attempt + 1}/{attempts})")
                await asyncio.sleep(delay)
            else:
                logger.error(f"Slot '{slot_id}' request to {source.endpoint} failed after {attempts} attempts: {reason}")
        raise DataSourceError(slot_id, f"Slot '{slot_id}' API request failed after {attempts} attempt(s): {last_error!r}") from last_error

    async def _request(self, source: ApiSource, timeout_ms: int) -> Any:
        if self._client is not None:
            return await self._send(self._client, source)
        async with httpx.AsyncClient(timeout=timeout_ms / 1000) as client:
            return await self._send(client, source)

    @staticmethod
    async def _send(client: httpx.AsyncClient, source: ApiSource) -> Any:
        if source.method == "GET":
            response = await client.request(source.method, source.endpoint, headers=source.headers, params={k: to_text(v) for k, v in source.params.items()})
        else:
            response = await client.request(source.method, source.endpoint, headers=source.headers, json=source.params or None)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError:
            return response.text


__all__ = ["SYSTEM_SLOT_IDS", "ApiFetcher", "extract_path", "extract_value", "request_key", "system_values"]
