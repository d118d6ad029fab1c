"""
CallIDAssignmentClient: binds caller IDs to a project after an upload.

Talks to the CallID service over HTTP, forwarding the gateway identity
headers of the uploading user instead of authenticating itself.

    no assignment / empty slots → service auto-assign, result returned as is
    filled slots                → re-match the existing numbers to the new
                                  sample's area codes and stamp them on the
                                  sample table's CALLID columns

CallID binding never fails an upload: every error is logged and the
result is None.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.callid.rematch import existing_assignments, has_filled_slots, rematch, table_column_values
from app.core.config import settings
from app.core.logging import get_logger
from app.pipeline.errors import APIRequestError
from app.samples.store import SampleTableStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class GatewayIdentity:
    """Identity asserted by the API gateway (``x-user-*`` headers)."""

    authenticated: str | None = None
    username: str | None = None
    roles: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return str(self.authenticated or "").lower() == "true"

    def headers(self) -> dict[str, str]:
        return {
            "x-user-authenticated": self.authenticated or "",
            "x-user-name": self.username or "",
            "x-user-roles": self.roles or "",
        }


class CallIDAssignmentClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.CALLID_SERVICE_URL
        self.timeout = timeout or settings.CALLID_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self, identity: GatewayIdentity) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json", **identity.headers()},
            transport=self._transport,
        )

    # ─── Service calls ─────────────────────────────────

    async def get_project_callids(self, project_id: int, identity: GatewayIdentity) -> list[dict[str, Any]]:
        """The project's CallID records; empty when the service has none (404)."""
        async with self._client(identity) as client:
            response = await client.get(f"/api/callid/projects/{project_id}")
        if response.status_code == 404:
            return []
        self._raise_for_status(response)
        data = response.json()
        if isinstance(data, dict):
            return [data]
        return list(data or [])

    async def auto_assign(
        self,
        table_name: str,
        project_id: int,
        client_id: int | None,
        identity: GatewayIdentity,
    ) -> dict[str, Any]:
        """Ask the service to pick numbers from the table's top area codes."""
        body = {"tableName": table_name, "projectId": project_id, "clientId": client_id}
        async with self._client(identity) as client:
            response = await client.post("/api/callid/auto-assign", json=body)
        if response.is_error:
            # the service explains refusals in the body
            try:
                return response.json()
            except ValueError:
                self._raise_for_status(response)
        return response.json()

    async def ranked_area_codes(self, table_name: str, identity: GatewayIdentity) -> list[str]:
        """Area codes of the table, most frequent first."""
        async with self._client(identity) as client:
            response = await client.get("/api/callid/auto-assign/area-codes", params={"tableName": table_name})
        self._raise_for_status(response)
        return [str(item.get("AreaCode")) for item in response.json().get("areaCodes", [])]

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_error:
            raise APIRequestError(
                f"CallID service returned {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

    # ─── Assignment ────────────────────────────────────

    async def assign(
        self,
        db: AsyncSession,
        *,
        table_name: str,
        project_id: Any,
        client_id: int | None,
        identity: GatewayIdentity,
    ) -> dict[str, Any] | None:
        """Bind caller IDs for a freshly processed table; None when the service calls fail."""
        if not project_id:
            return None
        log = logger.bind(table=table_name, project_id=project_id)
        try:
            project = int(project_id)
            records = await self.get_project_callids(project, identity)
            record = records[0] if records else None
            if not has_filled_slots(record):
                log.info("Auto-assigning CallIDs")
                return await self.auto_assign(table_name, project, client_id, identity)

            area_codes = await self.ranked_area_codes(table_name, identity)
            assignments = rematch(existing_assignments(record), area_codes)
            stamped = True
            try:
                await self._stamp_table(db, table_name, table_column_values(assignments))
            except Exception as exc:
                # The binding on the service stands; only the table copy is stale
                log.warning("Writing re-matched CallIDs to the table failed", error=str(exc))
                await db.rollback()
                stamped = False
            log.info(
                "Existing CallIDs re-matched",
                moved=[a.slot for a in assignments if a.moved_from_slot],
            )
            return {
                "success": True,
                "message": f"Reusing {len(assignments)} existing CallID(s) for project",
                "tableUpdated": stamped,
                "reused": True,
                "rematched": True,
                "projectId": project,
                "tableName": table_name,
                "assignments": [a.to_dict() for a in assignments],
                "areaCodes": area_codes,
            }
        except Exception as exc:
            log.exception("CallID assignment failed (non-critical)", error=str(exc))
            await db.rollback()
            return None

    @staticmethod
    async def _stamp_table(db: AsyncSession, table_name: str, values: dict[str, str]) -> None:
        if not values:
            return
        store = SampleTableStore(db, table_name)
        columns = {}
        for name, phone in values.items():
            stored = await store.find_column(name)
            if stored:
                columns[stored] = phone
        if columns:
            await store.update_where(columns)
            await db.commit()
