"""
Postmark suppression API client for the marketing (broadcast) stream.
"""

import logging
from typing import Optional, List, Dict, Any, Tuple

import requests

from academy.services.transactional_email_service import POSTMARK_API_URL, TransactionalEmailConfig

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
PUSH_BATCH_SIZE = 1000


class PostmarkError(Exception):
    pass


class PostmarkSuppressionClient:
    """Reads and writes the suppression list of one message stream."""

    def __init__(
        self,
        server_token: Optional[str] = None,
        message_stream: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        config = TransactionalEmailConfig.marketing()
        self.server_token = server_token if server_token is not None else config.postmark_server_token
        self.message_stream = message_stream or config.postmark_message_stream
        self.http = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.server_token)

    @property
    def _base(self) -> str:
        return f"{POSTMARK_API_URL}/message-streams/{self.message_stream}/suppressions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self.server_token,
        }

    def list_suppressions(self) -> List[Dict[str, Any]]:
        """All suppressions, paging ``PAGE_SIZE`` at a time; raises PostmarkError on HTTP failure."""
        suppressions: List[Dict[str, Any]] = []
        offset = 0
        while True:
            response = self.http.get(
                self._base,
                params={"count": PAGE_SIZE, "offset": offset},
                headers=self._headers(),
                timeout=30,
            )
            if response.status_code != 200:
                raise PostmarkError(f"Failed to fetch suppressions: HTTP {response.status_code}")
            batch = (response.json() or {}).get("Suppressions") or []
            suppressions.extend(batch)
            if len(batch) < PAGE_SIZE:
                return suppressions
            offset += PAGE_SIZE

    def add_suppressions(self, emails: List[str]) -> Tuple[List[str], List[str]]:
        """Return ``(pushed, failed)`` email lists."""
        pushed, failed = [], []
        for start in range(0, len(emails), PUSH_BATCH_SIZE):
            batch = emails[start:start + PUSH_BATCH_SIZE]
            try:
                response = self.http.post(
                    self._base,
                    json={"Suppressions": [{"EmailAddress": e} for e in batch]},
                    headers=self._headers(),
                    timeout=30,
                )
                ok = response.status_code == 200
            except requests.RequestException as e:
                logger.error(f"Failed to push {len(batch)} suppression(s) to Postmark: {e}")
                ok = False
            (pushed if ok else failed).extend(batch)
        return pushed, failed

    def delete_suppression(self, email: str) -> bool:
        try:
            response = self.http.post(
                f"{self._base}/delete",
                json={"Suppressions": [{"EmailAddress": email}]},
                headers=self._headers(),
                timeout=30,
            )
            return response.status_code == 200
        except requests.RequestException as e:
            logger.error(f"Failed to delete suppression for {email}: {e}")
            return False
