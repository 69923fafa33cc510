import logging

import requests

from errors import RecordNotFound, StoreConflict, StoreError

logger = logging.getLogger(__name__)


def quote_filter_value(value) -> str:
    """Quote a value for a PocketBase filter expression."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _is_unique_violation(payload) -> bool:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return False
    return any(
        isinstance(err, dict) and err.get("code") == "validation_not_unique"
        for err in data.values()
    )


class PocketBaseStore:
    """Records of one PocketBase collection, over the REST API."""

    def __init__(self, base_url: str, collection: str = "tele_users", token: str = "",
                 timeout: float = 10.0, session=None):
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def records_path(self) -> str:
        return f"/api/collections/{self.collection}/records"

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = {"Authorization": self.token} if self.token else {}
        try:
            response = self.session.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            if not response.ok:
                raise StoreError(f"{method} {path} returned {response.status_code}") from e
            raise StoreError(f"{method} {path} returned a non-JSON body") from e

        if response.status_code == 400 and _is_unique_violation(payload):
            raise StoreConflict(f"{method} {path} rejected a duplicate record")
        if not response.ok:
            message = payload.get("message", "") if isinstance(payload, dict) else ""
            raise StoreError(f"{method} {path} returned {response.status_code}: {message}")
        if not isinstance(payload, dict):
            raise StoreError(f"{method} {path} returned unexpected body")
        return payload

    def health_check(self) -> None:
        self._request("GET", "/api/health")

    def get_first(self, field: str, value) -> dict:
        payload = self._request(
            "GET",
            self.records_path,
            params={
                "filter": f"{field}={quote_filter_value(value)}",
                "page": 1,
                "perPage": 1,
                "skipTotal": 1,
            },
        )
        items = payload.get("items")
        if not isinstance(items, list):
            raise StoreError("record list response has no items")
        if not items:
            raise RecordNotFound(f"no {self.collection} record with {field}={value}")
        return items[0]

    def create(self, fields: dict) -> dict:
        record = self._request("POST", self.records_path, json=fields)
        logger.info(f"Created {self.collection} record {record.get('id')}")
        return record

    def update(self, record_id: str, fields: dict) -> dict:
        record = self._request("PATCH", f"{self.records_path}/{record_id}", json=fields)
        logger.info(f"Updated {self.collection} record {record_id}")
        return record
