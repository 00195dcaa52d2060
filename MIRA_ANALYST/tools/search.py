"""Page-content lookups for user-provided links using the Exa API."""
from __future__ import annotations

from typing import Any, Dict, List, Sequence

import requests


class ExaContentsClient:
    """Fetches readable text for a set of URLs via Exa ``/contents``."""

    CONTENTS_ENDPOINT = "https://api.exa.ai/contents"

    def __init__(self, api_key: str, timeout: float = 60.0, max_characters: int = 4000) -> None:
        if not api_key:
            raise ValueError("Exa API key must be provided for ExaContentsClient")
        self.api_key = api_key
        self.timeout = timeout
        self.max_characters = max_characters

    def _request(self, session: requests.Session, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        response = session.post(endpoint, headers=headers, json=payload, timeout=self.timeout)
        if response.status_code != 200:
            raise RuntimeError(f"Exa API error {response.status_code}: {response.text[:300]}")
        return response.json()

    def get_contents(self, urls: Sequence[str]) -> List[Dict[str, Any]]:
        payload = {
            "urls": list(urls),
            "text": {"maxCharacters": self.max_characters},
        }
        session = requests.Session()
        try:
            data = self._request(session, self.CONTENTS_ENDPOINT, payload)
        finally:
            session.close()
        return data.get("results", []) or []
