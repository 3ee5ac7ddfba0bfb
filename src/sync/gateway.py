"""Remote delta gateway: pull changes since a cursor, push batches of records."""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

import httpx
import structlog

from history.records import EmotionRecord, normalize_record

from .errors import InvalidResponse, NetworkFailure

logger = structlog.get_logger().bind(source="gateway")


@dataclass(frozen=True)
class PullResult:
    records: list[EmotionRecord] = field(default_factory=list)
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class PushResult:
    accepted_ids: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


class RemoteGateway(Protocol):
    async def pull(self, cursor: Optional[str]) -> PullResult: ...

    async def push(self, records: list[EmotionRecord]) -> PushResult: ...


def _parse_records(items: Any) -> list[EmotionRecord]:
    if not isinstance(items, list):
        raise InvalidResponse(f"Expected a list of records, got {type(items).__name__}")
    records = []
    for item in items:
        try:
            records.append(normalize_record(item))
        except ValueError as e:
            raise InvalidResponse(f"Malformed record in pull response: {e}") from e
    return records


def parse_pull_payload(payload: Any, cursor: Optional[str]) -> PullResult:
    """Collapse every historical pull response shape into a PullResult.

    Accepted shapes: a bare record array, ``{records, nextCursor}`` (also
    ``syncToken`` or ``serverTs`` as the cursor) and ``{serverChanges}``.
    Without a cursor in the payload the previous cursor is kept.
    """
    if isinstance(payload, list):
        return PullResult(records=_parse_records(payload), next_cursor=cursor)
    if not isinstance(payload, dict):
        raise InvalidResponse(f"Unexpected pull payload: {type(payload).__name__}")

    if "records" in payload:
        items = payload["records"]
    elif "serverChanges" in payload:
        items = payload["serverChanges"]
    else:
        raise InvalidResponse("Pull payload has neither records nor serverChanges")

    next_cursor = cursor
    for key in ("nextCursor", "syncToken", "serverTs"):
        if payload.get(key) is not None:
            next_cursor = str(payload[key])
            break
    return PullResult(records=_parse_records(items or []), next_cursor=next_cursor)


def parse_push_payload(payload: Any) -> PushResult:
    if not isinstance(payload, dict):
        raise InvalidResponse(f"Unexpected push payload: {type(payload).__name__}")
    accepted = payload.get("acceptedIds", payload.get("accepted"))
    rejected = payload.get("rejected", payload.get("rejectedIds")) or []
    if not isinstance(accepted, list) or not isinstance(rejected, list):
        raise InvalidResponse("Push payload is missing acceptedIds")
    return PushResult(
        accepted_ids=[str(i) for i in accepted],
        rejected=[str(i) for i in rejected],
    )


class HttpDeltaGateway:
    """Talks to the history API over HTTP with httpx."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        pull_limit: int = 500,
        api_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.pull_limit = pull_limit
        headers = {"User-Agent": "moodsync/0.1"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, headers=headers)
        if client is not None and api_token:
            self.client.headers.update(headers)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"Timed out calling {path}") from e
        except httpx.HTTPStatusError as e:
            raise NetworkFailure(f"HTTP {e.response.status_code} from {path}") from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"Request error calling {path}: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponse(f"Response from {path} is not JSON") from e

    async def pull(self, cursor: Optional[str]) -> PullResult:
        params = {"limit": self.pull_limit}
        if cursor:
            params["since"] = cursor
        payload = await self._request("GET", "/api/history", params=params)
        result = parse_pull_payload(payload, cursor)
        logger.debug("gateway.pulled", count=len(result.records), cursor=result.next_cursor)
        return result

    async def push(self, records: Iterable[EmotionRecord]) -> PushResult:
        body = {"records": [r.to_dict() for r in records]}
        payload = await self._request("POST", "/api/history", json=body)
        result = parse_push_payload(payload)
        logger.debug(
            "gateway.pushed",
            accepted=len(result.accepted_ids),
            rejected=len(result.rejected),
        )
        return result

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
