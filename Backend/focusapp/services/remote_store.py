"""SessionStore backed by the sessions REST API of a remote focusapp server.

The bearer token is part of the store's configuration; there is no shared
client or process-wide token.
"""
import logging
import uuid
from datetime import datetime

import httpx

from focusapp.errors import (
    AlreadyActiveError,
    InvalidStateError,
    NoActiveSessionError,
    NotFoundError,
    StorageError,
)
from focusapp.schemas.session import SessionResponse
from focusapp.services.session_service import as_utc
from focusapp.services.session_store import SessionRecord

logger = logging.getLogger(__name__)

PAGE_SIZE = 200

CONFLICT_ERRORS = {
    cls.__name__: cls for cls in (AlreadyActiveError, InvalidStateError, NoActiveSessionError)
}


def _to_record(payload: dict) -> SessionRecord:
    data = SessionResponse.model_validate(payload)
    return SessionRecord(
        id=data.id,
        start_time=as_utc(data.start_time),
        end_time=as_utc(data.end_time),
        duration_seconds=data.duration_seconds,
        is_break=data.is_break,
    )


class RemoteSessionStore:
    def __init__(
        self,
        base_url: str,
        token: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "RemoteSessionStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Remote session store request %s %s failed: %s", method, url, exc)
            raise StorageError(f"Remote store unreachable: {exc}") from exc

        if response.status_code == 409:
            body = response.json()
            error_class = CONFLICT_ERRORS.get(body.get("type"), AlreadyActiveError)
            raise error_class(body.get("detail", "Conflicting session state"))
        if response.status_code >= 400 and response.status_code != 404:
            logger.warning("Remote session store returned %d for %s %s", response.status_code, method, url)
            raise StorageError(f"Remote store returned {response.status_code}")
        return response

    async def insert(self, record: SessionRecord) -> uuid.UUID:
        response = await self._request(
            "POST",
            "/sessions",
            json={
                "start_time": record.start_time.isoformat(),
                "end_time": record.end_time.isoformat() if record.end_time else None,
                "duration_seconds": record.duration_seconds,
                "is_break": record.is_break,
            },
        )
        return uuid.UUID(response.json()["id"])

    async def update(self, record: SessionRecord) -> None:
        if record.id is None:
            raise NotFoundError("Cannot update a session that was never stored")
        response = await self._request(
            "PATCH",
            f"/sessions/{record.id}",
            json={
                "end_time": record.end_time.isoformat() if record.end_time else None,
                "duration_seconds": record.duration_seconds,
            },
        )
        if response.status_code == 404:
            raise NotFoundError(f"Session {record.id} not found")

    async def get_by_id(self, session_id: uuid.UUID) -> SessionRecord | None:
        response = await self._request("GET", f"/sessions/{session_id}")
        if response.status_code == 404:
            return None
        return _to_record(response.json())

    async def get_active(self) -> SessionRecord | None:
        response = await self._request("GET", "/sessions/open")
        if response.status_code == 404:
            return None
        return _to_record(response.json())

    async def query_range(self, start: datetime, end: datetime) -> list[SessionRecord]:
        records: list[SessionRecord] = []
        offset = 0
        while True:
            response = await self._request(
                "GET",
                "/sessions",
                params={
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "limit": PAGE_SIZE,
                    "offset": offset,
                },
            )
            page = response.json()
            records.extend(_to_record(item) for item in page)
            if len(page) < PAGE_SIZE:
                return records
            offset += PAGE_SIZE

    async def clear(self) -> int:
        response = await self._request("DELETE", "/sessions")
        return response.json()["deleted"]
