# integrations/helpscout_client.py

"""
Help Scout Mailbox API v2 client
Fetches conversation threads for the ticket being evaluated
OAuth client-credentials exchange unless a static access token is configured
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from config.settings import Settings
from errors import UpstreamFetchError
from schemas import AgentResponse

logger = logging.getLogger(__name__)

API_BASE = "https://api.helpscout.net/v2"
TOKEN_URL = f"{API_BASE}/oauth2/token"

# Refresh a little before Help Scout says the token expires
TOKEN_EXPIRY_MARGIN = 60


class HelpScoutClient:
    """
    Thin requests-based client. Blocking calls; use the async wrappers
    from the event loop.
    """

    def __init__(
        self,
        app_id: str = "",
        app_secret: str = "",
        access_token: str = "",
        auth_timeout: float = 10.0,
        api_timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.static_token = access_token
        self.auth_timeout = auth_timeout
        self.api_timeout = api_timeout
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "HelpScoutClient":
        return cls(
            app_id=settings.helpscout_app_id,
            app_secret=settings.helpscout_app_secret,
            access_token=settings.helpscout_access_token,
            auth_timeout=settings.helpscout_auth_timeout,
            api_timeout=settings.helpscout_api_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.static_token or (self.app_id and self.app_secret))

    # ── Auth ──────────────────────────────────────────────────

    def get_access_token(self) -> str:
        if self.static_token:
            return self.static_token

        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        if not (self.app_id and self.app_secret):
            raise UpstreamFetchError("Help Scout credentials not configured")

        logger.debug("Requesting Help Scout OAuth token")
        try:
            response = self.session.post(
                TOKEN_URL,
                json={
                    "grant_type": "client_credentials",
                    "client_id": self.app_id,
                    "client_secret": self.app_secret,
                },
                timeout=self.auth_timeout,
            )
        except requests.Timeout as e:
            raise UpstreamFetchError(f"Help Scout auth timed out after {self.auth_timeout}s") from e
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Help Scout auth failed: {str(e)[:200]}") from e

        if response.status_code != 200:
            raise UpstreamFetchError(
                f"Help Scout auth HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise UpstreamFetchError("Help Scout auth response had no access_token")

        self._token = token
        expires_in = float(data.get("expires_in") or 0)
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
        return token

    # ── Conversations ─────────────────────────────────────────

    def get_threads(self, conversation_id) -> List[Dict[str, Any]]:
        """All threads of a conversation, as returned by the API."""
        token = self.get_access_token()
        url = f"{API_BASE}/conversations/{conversation_id}/threads"

        logger.debug("Fetching conversation threads for %s", conversation_id)
        try:
            response = self.session.get(
                url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=self.api_timeout,
            )
        except requests.Timeout as e:
            raise UpstreamFetchError(f"Help Scout API timed out after {self.api_timeout}s") from e
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Help Scout API request failed: {str(e)[:200]}") from e

        if response.status_code == 401 and not self.static_token:
            # Token revoked early; next call re-authenticates
            self._token = None

        if response.status_code != 200:
            raise UpstreamFetchError(
                f"Help Scout API HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        threads = (response.json().get("_embedded") or {}).get("threads") or []
        logger.debug("Conversation %s has %d threads", conversation_id, len(threads))
        return threads

    async def fetch_threads(self, conversation_id) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.get_threads, conversation_id)


# ── Thread helpers ────────────────────────────────────────────


def thread_created_at(thread: Dict[str, Any]) -> datetime:
    raw = thread.get("createdAt")
    if raw:
        try:
            value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return datetime.min.replace(tzinfo=timezone.utc)


def thread_author_type(thread: Dict[str, Any]) -> Optional[str]:
    created_by = thread.get("createdBy")
    if isinstance(created_by, str):
        return created_by
    if isinstance(created_by, dict):
        return created_by.get("type")
    return None


def find_latest_team_response(threads: List[Dict[str, Any]]) -> Optional[AgentResponse]:
    """Newest message thread written by a team member, or None."""
    for thread in sorted(threads or [], key=thread_created_at, reverse=True):
        if thread.get("type") != "message" or thread_author_type(thread) != "user":
            continue
        if not thread.get("body"):
            continue

        created_by = thread.get("createdBy")
        created_by = created_by if isinstance(created_by, dict) else {}
        return AgentResponse(
            text=thread["body"],
            created_at=thread.get("createdAt"),
            agent_id=created_by.get("id") or "unknown",
            agent_name=created_by.get("first") or "Unknown",
        )
    return None
