# stocksync/services/feed_client.py

from dataclasses import dataclass
from typing import Optional

import requests

from stocksync.errors import TransportError

SYNC_TIMEOUT = 60
TEST_TIMEOUT = 30


@dataclass
class FeedResponse:
    status_code: int
    body: str


class FeedClient:
    """Récupère le flux CSV par HTTP GET (pas d'authentification)."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self.http = session or requests.Session()

    def get(self, url: str, timeout: int = SYNC_TIMEOUT, verify_tls: bool = True) -> FeedResponse:
        try:
            resp = self.http.get(url, timeout=timeout, verify=verify_tls)
        except requests.RequestException as e:
            raise TransportError(str(e)) from e

        return FeedResponse(status_code=resp.status_code, body=resp.text or "")
