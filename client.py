import datetime
import json
from typing import Optional

import requests

from errors import SyncError


class CloudClient:
    """REST client for the per-user ``app_data`` document table."""

    TABLE = "app_data"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.http = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.TABLE}"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def fetch(self, user_id: str) -> Optional[str]:
        """Return the user's document as JSON text, or ``None`` if there is none."""
        try:
            resp = self.http.get(
                self.url,
                params={"user_id": f"eq.{user_id}", "select": "data,updated_at"},
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            rows = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise SyncError(f"could not fetch cloud data: {exc}") from exc
        if not rows or not rows[0].get("data"):
            return None
        return json.dumps(rows[0]["data"], ensure_ascii=False)

    def push(self, user_id: str, document: str) -> None:
        """Upsert the user's document; the latest push wins."""
        payload = {
            "user_id": user_id,
            "data": json.loads(document),
            "updated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        headers = self._headers()
        headers["Prefer"] = "resolution=merge-duplicates"
        try:
            resp = self.http.post(
                self.url,
                params={"on_conflict": "user_id"},
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise SyncError(f"could not push cloud data: {exc}") from exc
