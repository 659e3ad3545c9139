"""Airtable REST backend for the tabular store."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Sequence
from urllib import parse

import httpx

from stockbot.core.errors import RecordNotFound, StoreError
from stockbot.storage.base import Record, TableStore

API_ROOT = "https://api.airtable.com/v0"


class AirtableTableStore(TableStore):
    """Talk to one Airtable base through its REST API.

    Logical table names are mapped onto Airtable table names. Airtable has no
    list-typed free-form column, so the fields named in ``json_fields`` are
    stored as JSON text and decoded on read.
    """

    def __init__(
        self,
        base_id: str,
        token: str,
        table_names: Mapping[str, str],
        *,
        timeout: float = 10.0,
        json_fields: frozenset[str] = frozenset({"batch_ids"}),
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token or not base_id:
            raise ValueError("Airtable token and base id are required")
        self._base_id = _clean_base_id(base_id)
        self._table_names = dict(table_names)
        self._json_fields = json_fields
        self._client = httpx.AsyncClient(
            base_url=f"{API_ROOT}/{self._base_id}/",
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._logger = logging.getLogger("stockbot.airtable")

    async def aclose(self) -> None:
        await self._client.aclose()

    def _path(self, table: str, record_id: str | None = None) -> str:
        name = self._table_names.get(table, table)
        # URL-encode table names like "Inventory Batches" -> "Inventory%20Batches"
        segment = parse.quote(name, safe="")
        return f"{segment}/{record_id}" if record_id else segment

    async def find(self, table: str, filters: Mapping[str, Any] | None = None) -> Sequence[Record]:
        params: dict[str, str] = {"pageSize": "100"}
        if filters:
            params["filterByFormula"] = build_formula(filters)
        records: list[Record] = []
        while True:
            data = await self._request("GET", self._path(table), table=table, params=params)
            records.extend(self._to_record(item) for item in data.get("records", []))
            offset = data.get("offset")
            if not offset:
                break
            params["offset"] = offset
        return records

    async def get(self, table: str, record_id: str) -> Record | None:
        try:
            data = await self._request("GET", self._path(table, record_id), table=table, record_id=record_id)
        except RecordNotFound:
            return None
        return self._to_record(data)

    async def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        data = await self._request(
            "POST",
            self._path(table),
            table=table,
            body={"fields": self._encode(fields), "typecast": True},
        )
        return self._to_record(data)

    async def patch(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        data = await self._request(
            "PATCH",
            self._path(table, record_id),
            table=table,
            record_id=record_id,
            body={"fields": self._encode(fields), "typecast": True},
        )
        return self._to_record(data)

    async def delete(self, table: str, record_id: str) -> None:
        await self._request("DELETE", self._path(table, record_id), table=table, record_id=record_id)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        table: str,
        record_id: str | None = None,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._logger.debug("HTTP %s %s", method, path)
        try:
            response = await self._client.request(method, path, params=params, json=body)
        except httpx.HTTPError as exc:
            raise StoreError(f"Airtable {method} {table} failed: {exc}") from exc

        if response.status_code == 404 and record_id is not None:
            raise RecordNotFound(table, record_id)
        if response.status_code >= 400:
            self._logger.error("HTTP error %s for %s %s: %s", response.status_code, method, path, response.text)
            raise StoreError(f"Airtable HTTP {response.status_code}: {response.text}")
        if not response.content:
            return {}
        return response.json()

    def _encode(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        encoded: dict[str, Any] = {}
        for key, value in fields.items():
            if key in self._json_fields and value is not None:
                value = json.dumps(value, ensure_ascii=False)
            encoded[key] = value
        return encoded

    def _to_record(self, payload: Mapping[str, Any]) -> Record:
        fields = dict(payload.get("fields", {}))
        for key in self._json_fields:
            raw = fields.get(key)
            if isinstance(raw, str) and raw:
                try:
                    fields[key] = json.loads(raw)
                except json.JSONDecodeError:
                    self._logger.warning("Field %s of %s is not valid JSON", key, payload.get("id"))
                    fields[key] = []
        return Record(id=str(payload["id"]), fields=fields)


def build_formula(filters: Mapping[str, Any]) -> str:
    """Render equality filters as an Airtable ``filterByFormula`` expression."""

    clauses = [f"{{{name}}} = {_literal(value)}" for name, value in filters.items()]
    if len(clauses) == 1:
        return clauses[0]
    return f"AND({', '.join(clauses)})"


def _literal(value: Any) -> str:
    if value is None:
        return "BLANK()"
    if isinstance(value, bool):
        return "TRUE()" if value else "FALSE()"
    if isinstance(value, (int, float)):
        return repr(value)
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _clean_base_id(value: str) -> str:
    # Base ids copied from the UI often carry stray separators.
    return re.sub(r"[^a-zA-Z0-9]", "", value.strip())
