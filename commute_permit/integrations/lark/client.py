"""Minimal async client for the Lark (Feishu) Open API.

Covers the two surfaces the service needs: Base (bitable) record CRUD and
IM messages. Authentication uses an app-level tenant access token, cached
until shortly before it expires.
"""

import asyncio
import json
import logging
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Refresh the tenant token this many seconds before Lark says it expires
TOKEN_REFRESH_MARGIN_SECONDS = 300
DEFAULT_PAGE_SIZE = 100


class LarkAPIError(Exception):
    """Lark answered with a non-zero `code` or an HTTP error."""

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


class LarkClient:
    """Thin wrapper over httpx.AsyncClient with tenant-token handling."""

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        domain: str = "https://open.feishu.cn",
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._app_id = app_id
        self._app_secret = app_secret
        self._http = http_client or httpx.AsyncClient(base_url=domain, timeout=timeout)
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    async def close(self) -> None:
        await self._http.aclose()

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def _tenant_access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            try:
                response = await self._http.post(
                    "/open-apis/auth/v3/tenant_access_token/internal",
                    json={"app_id": self._app_id, "app_secret": self._app_secret},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise LarkAPIError(f"Failed to obtain tenant access token: {e}") from e

            body = response.json()
            if body.get("code") != 0:
                raise LarkAPIError(
                    f"Tenant token request rejected: {body.get('msg')}",
                    code=body.get("code"),
                )

            self._token = body["tenant_access_token"]
            expires_in = int(body.get("expire", 7200))
            self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 60)
            logger.debug("Refreshed Lark tenant access token")
            return self._token

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send an authenticated request and return the `data` object."""
        token = await self._tenant_access_token()
        try:
            response = await self._http.request(
                method,
                path,
                params={k: v for k, v in (params or {}).items() if v is not None},
                json=json_body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise LarkAPIError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise LarkAPIError(f"{method} {path} returned HTTP {response.status_code} without JSON") from e

        if response.status_code >= 400 or body.get("code") != 0:
            raise LarkAPIError(
                f"{method} {path} failed: {body.get('msg') or response.status_code}",
                code=body.get("code"),
            )
        return body.get("data") or {}

    # -------------------------------------------------------------------------
    # Base (bitable) records
    # -------------------------------------------------------------------------

    def _records_path(self, app_token: str, table_id: str) -> str:
        return f"/open-apis/bitable/v1/apps/{app_token}/tables/{table_id}/records"

    async def list_records(
        self,
        app_token: str,
        table_id: str,
        *,
        filter_formula: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_records: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every page of records matching `filter_formula`."""
        items: list[dict[str, Any]] = []
        page_token: str | None = None

        while True:
            data = await self.request(
                "GET",
                self._records_path(app_token, table_id),
                params={
                    "filter": filter_formula,
                    "page_size": page_size,
                    "page_token": page_token,
                },
            )
            items.extend(data.get("items") or [])
            if max_records is not None and len(items) >= max_records:
                return items[:max_records]
            if not data.get("has_more"):
                return items
            page_token = data.get("page_token")

    async def get_record(self, app_token: str, table_id: str, record_id: str) -> dict[str, Any]:
        data = await self.request("GET", f"{self._records_path(app_token, table_id)}/{record_id}")
        return data.get("record") or {}

    async def create_record(self, app_token: str, table_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        data = await self.request(
            "POST", self._records_path(app_token, table_id), json_body={"fields": fields}
        )
        return data.get("record") or {}

    async def update_record(
        self, app_token: str, table_id: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self.request(
            "PUT",
            f"{self._records_path(app_token, table_id)}/{record_id}",
            json_body={"fields": fields},
        )
        return data.get("record") or {}

    async def delete_record(self, app_token: str, table_id: str, record_id: str) -> None:
        await self.request("DELETE", f"{self._records_path(app_token, table_id)}/{record_id}")

    # -------------------------------------------------------------------------
    # IM messages
    # -------------------------------------------------------------------------

    async def send_card_message(self, open_id: str, card: dict[str, Any]) -> dict[str, Any]:
        """Send an interactive card to a user identified by open_id."""
        return await self.request(
            "POST",
            "/open-apis/im/v1/messages",
            params={"receive_id_type": "open_id"},
            json_body={
                "receive_id": open_id,
                "msg_type": "interactive",
                "content": json.dumps(card, ensure_ascii=False),
            },
        )
