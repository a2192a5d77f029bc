from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from botocore.exceptions import BotoCoreError, ClientError

from walkshed.adapters.aws import dynamodb_client
from walkshed.adapters.persistence.cache_entry_codec import entry_from_dict, entry_to_dict
from walkshed.app.ports.output import IWalkshedCacheBackend
from walkshed.domain.exceptions import CacheBackendError
from walkshed.domain.models import CacheEntry

logger = logging.getLogger(__name__)

RESET_MARKER_KEY = "__reset_marker__"


@dataclass(slots=True)
class DynamoDbWalkshedCacheBackend(IWalkshedCacheBackend):
    """Stores walkshed cache entries in a DynamoDB table (hash key: `key`).

    Items:
      - key (S), kind (S: polygon|unavailable), updated_at_ms (N)
      - polygon (S, JSON list of [lat, lon]) or retry_after_ms (N)
    The reset marker lives in the same table under RESET_MARKER_KEY.

    Env vars:
      - WALKSHED_CACHE_TABLE (default: walkshed-cache-v1)
      - ENDPOINT_URL (preferred for LocalStack)
      - AWS_REGION
    """

    table_name: str | None = None
    name: str = "dynamodb"

    def _table(self) -> str:
        return self.table_name or os.getenv("WALKSHED_CACHE_TABLE") or "walkshed-cache-v1"

    def _log_failure(self, operation: str, exc: Exception) -> None:
        logger.warning(
            "DynamoDB walkshed cache operation failed",
            extra={"operation": operation, "table": self._table(), "error": repr(exc)},
        )

    @staticmethod
    def _to_item(key: str, entry: CacheEntry) -> dict[str, Any]:
        data = entry_to_dict(entry)
        item: dict[str, Any] = {
            "key": {"S": key},
            "kind": {"S": data["kind"]},
            "updated_at_ms": {"N": str(data["updated_at_ms"])},
        }
        if data["kind"] == "polygon":
            item["polygon"] = {"S": json.dumps(data["polygon"])}
        else:
            item["retry_after_ms"] = {"N": str(data["retry_after_ms"])}
        return item

    @staticmethod
    def _from_item(item: Mapping[str, Any]) -> tuple[str, CacheEntry] | None:
        key = item.get("key", {}).get("S")
        if not key or key == RESET_MARKER_KEY:
            return None

        raw: dict[str, Any] = {"kind": item.get("kind", {}).get("S")}
        try:
            if "updated_at_ms" in item:
                raw["updated_at_ms"] = int(item["updated_at_ms"]["N"])
            if "retry_after_ms" in item:
                raw["retry_after_ms"] = int(item["retry_after_ms"]["N"])
            if "polygon" in item:
                raw["polygon"] = json.loads(item["polygon"]["S"])
        except (KeyError, TypeError, ValueError):
            return None

        entry = entry_from_dict(raw)
        if entry is None:
            return None
        return key, entry

    def _scan_sync(self) -> dict[str, CacheEntry]:
        ddb = dynamodb_client()
        entries: dict[str, CacheEntry] = {}
        kwargs: dict[str, Any] = {"TableName": self._table(), "ConsistentRead": True}
        while True:
            resp = ddb.scan(**kwargs)
            for item in resp.get("Items", []) or []:
                parsed = self._from_item(item)
                if parsed is not None:
                    entries[parsed[0]] = parsed[1]
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return entries
            kwargs["ExclusiveStartKey"] = last_key

    def _put_many_sync(self, entries: Mapping[str, CacheEntry]) -> None:
        ddb = dynamodb_client()
        for key, entry in entries.items():
            ddb.put_item(TableName=self._table(), Item=self._to_item(key, entry))

    def _delete_sync(self, keys: Iterable[str]) -> None:
        ddb = dynamodb_client()
        for key in keys:
            ddb.delete_item(TableName=self._table(), Key={"key": {"S": key}})

    def _get_marker_sync(self) -> int:
        ddb = dynamodb_client()
        resp = ddb.get_item(
            TableName=self._table(),
            Key={"key": {"S": RESET_MARKER_KEY}},
            ConsistentRead=True,
        )
        item = resp.get("Item")
        if not item:
            return 0
        try:
            return int(item.get("marker", {}).get("N", "0"))
        except (TypeError, ValueError) as exc:
            raise CacheBackendError(f"Malformed reset marker: {item!r}") from exc

    def _put_marker_sync(self, marker: int) -> None:
        ddb = dynamodb_client()
        ddb.put_item(
            TableName=self._table(),
            Item={
                "key": {"S": RESET_MARKER_KEY},
                "kind": {"S": "marker"},
                "marker": {"N": str(int(marker))},
            },
        )

    async def read_all(self) -> dict[str, CacheEntry] | None:
        try:
            return await asyncio.to_thread(self._scan_sync)
        except (BotoCoreError, ClientError) as exc:
            self._log_failure("scan", exc)
            return None

    async def upsert(self, key: str, entry: CacheEntry) -> bool:
        return await self.upsert_many({key: entry})

    async def upsert_many(self, entries: Mapping[str, CacheEntry]) -> bool:
        if not entries:
            return True
        try:
            await asyncio.to_thread(self._put_many_sync, dict(entries))
            return True
        except (BotoCoreError, ClientError) as exc:
            self._log_failure("put_item", exc)
            return False

    async def delete(self, keys: Iterable[str]) -> bool:
        doomed = sorted({k for k in keys if k})
        if not doomed:
            return True
        try:
            await asyncio.to_thread(self._delete_sync, doomed)
            return True
        except (BotoCoreError, ClientError) as exc:
            self._log_failure("delete_item", exc)
            return False

    async def clear(self) -> bool:
        entries = await self.read_all()
        if entries is None:
            return False
        return await self.delete(entries.keys())

    async def read_reset_marker(self) -> int | None:
        try:
            return await asyncio.to_thread(self._get_marker_sync)
        except (BotoCoreError, ClientError, CacheBackendError) as exc:
            self._log_failure("get_item", exc)
            return None

    async def write_reset_marker(self, marker: int) -> bool:
        try:
            await asyncio.to_thread(self._put_marker_sync, marker)
            return True
        except (BotoCoreError, ClientError) as exc:
            self._log_failure("put_item", exc)
            return False
