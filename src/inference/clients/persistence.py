import copy
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from src.inference.errors import PersistenceError


logger = logging.getLogger(__name__)


# =================================================
# REST collection (backend-as-a-service)
# =================================================
class RestCollection:
    """
    One entity collection on the backend-as-a-service REST API.

    Records live at ``{base_url}/entities/{entity}`` and are plain JSON
    objects carrying a string ``id``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        entity: str,
    ):
        self._client = client
        self.entity = entity
        self._path = f"/entities/{entity}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PersistenceError(f"{method} {url} failed: {exc}") from exc
        return response

    @staticmethod
    def _json(response: httpx.Response, method: str, url: str) -> Any:
        if response.is_error:
            raise PersistenceError(
                f"{method} {url} returned {response.status_code}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise PersistenceError(f"{method} {url} returned invalid JSON") from exc

    async def list(self, sort: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"sort": sort} if sort else None
        response = await self._request("GET", self._path, params=params)
        return self._json(response, "GET", self._path)

    async def filter(self, **criteria: Any) -> List[Dict[str, Any]]:
        params = {"q": json.dumps(criteria)}
        response = await self._request("GET", self._path, params=params)
        return self._json(response, "GET", self._path)

    async def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        url = f"{self._path}/{record_id}"
        response = await self._request("GET", url)
        if response.status_code == 404:
            return None
        return self._json(response, "GET", url)

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", self._path, json=record)
        return self._json(response, "POST", self._path)

    async def update(self, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._path}/{record_id}"
        response = await self._request("PUT", url, json=changes)
        return self._json(response, "PUT", url)


# =================================================
# In-memory collection (tests / offline development)
# =================================================
class InMemoryCollection:
    """Same surface as RestCollection, backed by a dict."""

    def __init__(self, entity: str, records: Optional[List[Dict[str, Any]]] = None):
        self.entity = entity
        self._records: Dict[str, Dict[str, Any]] = {}
        for record in records or []:
            self._store(record)

    def _store(self, record: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(record)
        stored.setdefault("id", uuid.uuid4().hex)
        stored.setdefault("created_date", datetime.now(timezone.utc).isoformat())
        self._records[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def list(self, sort: Optional[str] = None) -> List[Dict[str, Any]]:
        records = [copy.deepcopy(r) for r in self._records.values()]
        if sort:
            key = sort.lstrip("-")
            records.sort(key=lambda r: str(r.get(key) or ""), reverse=sort.startswith("-"))
        return records

    async def filter(self, **criteria: Any) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(r)
            for r in self._records.values()
            if all(r.get(k) == v for k, v in criteria.items())
        ]

    async def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        created = self._store(record)
        logger.debug("Created %s %s", self.entity, created["id"])
        return created

    async def update(self, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        if record_id not in self._records:
            raise PersistenceError(f"{self.entity} {record_id} does not exist")
        self._records[record_id].update(copy.deepcopy(changes))
        return copy.deepcopy(self._records[record_id])
