"""
Spotify OAuth (PKCE) login flow.

The flow moves FirstVisit -> RequestedUserAuthorization(verifier) -> GotToken(token)
only through explicit calls: begin_login() when the user asks to connect and
complete_login() with the authorization code Spotify redirects back with.
The current state is persisted as JSON between runs.
"""
import asyncio
import base64
import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
from urllib.parse import parse_qs, urlparse

from requests.exceptions import RequestException
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOauthError, SpotifyPKCE

from . import config
from .spotify import SpotifyNotConfiguredError, SpotifyPlaylistClient, make_client

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when the login flow cannot proceed."""
    pass


class NotAuthenticatedError(AuthError):
    """Raised when an authenticated client is requested without a token."""
    pass


@dataclass(frozen=True)
class FirstVisit:
    pass


@dataclass(frozen=True)
class RequestedUserAuthorization:
    verifier: str


@dataclass(frozen=True)
class GotToken:
    token: dict = field(hash=False)


OAuthFlow = Union[FirstVisit, RequestedUserAuthorization, GotToken]


class OAuthFlowState(Enum):
    """Payload-less view of the OAuth flow, used for routing decisions."""
    FIRST_VISIT = "first_visit"
    REQUESTED_USER_AUTHORIZATION = "requested_user_authorization"
    GOT_TOKEN = "got_token"


def oauth_flow_state(flow: OAuthFlow) -> OAuthFlowState:
    if isinstance(flow, GotToken):
        return OAuthFlowState.GOT_TOKEN
    if isinstance(flow, RequestedUserAuthorization):
        return OAuthFlowState.REQUESTED_USER_AUTHORIZATION
    return OAuthFlowState.FIRST_VISIT


def flow_to_dict(flow: OAuthFlow) -> dict:
    data: dict = {"state": oauth_flow_state(flow).value}
    if isinstance(flow, RequestedUserAuthorization):
        data["verifier"] = flow.verifier
    elif isinstance(flow, GotToken):
        data["token"] = flow.token
    return data


def flow_from_dict(data: object) -> OAuthFlow:
    """Decode a persisted flow; anything unrecognized is a first visit."""
    if not isinstance(data, dict):
        return FirstVisit()
    state = data.get("state")
    if state == OAuthFlowState.REQUESTED_USER_AUTHORIZATION.value and isinstance(data.get("verifier"), str):
        return RequestedUserAuthorization(verifier=data["verifier"])
    if state == OAuthFlowState.GOT_TOKEN.value and isinstance(data.get("token"), dict):
        return GotToken(token=data["token"])
    return FirstVisit()


class AuthStore:
    """JSON file holding the current OAuth flow state."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or config.AUTH_STATE_FILE
        self._lock = asyncio.Lock()

    def _read(self) -> OAuthFlow:
        if not os.path.exists(self.path):
            return FirstVisit()
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                return flow_from_dict(json.load(handle))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable auth state %s: %s", self.path, e)
            return FirstVisit()

    def _atomic_write(self, flow: OAuthFlow) -> None:
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        temp_path = self.path + ".tmp"
        with open(temp_path, "w", encoding="utf-8") as handle:
            json.dump(flow_to_dict(flow), handle, ensure_ascii=True, indent=2)
        os.replace(temp_path, self.path)

    async def load(self) -> OAuthFlow:
        async with self._lock:
            return await asyncio.to_thread(self._read)

    async def save(self, flow: OAuthFlow) -> None:
        async with self._lock:
            await asyncio.to_thread(self._atomic_write, flow)
        logger.info("OAuth flow state -> %s", oauth_flow_state(flow).value)


def code_challenge(verifier: str) -> str:
    """S256 PKCE challenge for a verifier."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def make_auth_manager(verifier: Optional[str] = None, token: Optional[dict] = None) -> SpotifyPKCE:
    """Create a SpotifyPKCE auth manager from config, restoring verifier or token."""
    if not config.SPOTIFY_CLIENT_ID:
        raise SpotifyNotConfiguredError(
            "Spotify credentials not configured. "
            "Please set SPOTIFY_CLIENT_ID in .env"
        )

    auth_manager = SpotifyPKCE(
        client_id=config.SPOTIFY_CLIENT_ID,
        redirect_uri=config.SPOTIFY_REDIRECT_URI,
        scope=config.SPOTIFY_SCOPES,
        open_browser=False,
        cache_handler=MemoryCacheHandler(token_info=token),
    )
    if verifier:
        auth_manager.code_verifier = verifier
        auth_manager.code_challenge = code_challenge(verifier)
    return auth_manager


def extract_code(code_or_url: str) -> Optional[str]:
    """Accept either a bare authorization code or the full callback URL."""
    value = code_or_url.strip()
    if "://" not in value and "?" not in value:
        return value or None
    query = parse_qs(urlparse(value).query)
    codes = query.get("code")
    return codes[0] if codes else None


async def begin_login(store: AuthStore) -> str:
    """Start a fresh PKCE login; returns the URL the user must open."""
    auth_manager = make_auth_manager()
    url = auth_manager.get_authorize_url()
    await store.save(RequestedUserAuthorization(verifier=auth_manager.code_verifier))
    return url


async def complete_login(store: AuthStore, code_or_url: str) -> GotToken:
    """Exchange the authorization code for a token and persist it."""
    flow = await store.load()
    if not isinstance(flow, RequestedUserAuthorization):
        raise AuthError("No login in progress; start with login first.")

    code = extract_code(code_or_url)
    if not code:
        raise AuthError("No authorization code found in callback.")

    auth_manager = make_auth_manager(verifier=flow.verifier)

    def _exchange() -> Optional[dict]:
        auth_manager.get_access_token(code=code, check_cache=False)
        return auth_manager.cache_handler.get_cached_token()

    try:
        token = await asyncio.to_thread(_exchange)
    except (SpotifyOauthError, RequestException) as e:
        raise AuthError(f"Token exchange failed: {e}") from e

    if not token:
        raise AuthError("Token exchange returned no token.")

    got_token = GotToken(token=token)
    await store.save(got_token)
    return got_token


def client_from_flow(flow: OAuthFlow) -> SpotifyPlaylistClient:
    """Build an authenticated client; only valid once a token was obtained."""
    if not isinstance(flow, GotToken):
        raise NotAuthenticatedError("Not logged in to Spotify.")
    auth_manager = make_auth_manager(token=flow.token)
    return make_client(auth_manager)


def refreshed_flow(client: SpotifyPlaylistClient, flow: OAuthFlow) -> Optional[GotToken]:
    """The token state after a session, if spotipy refreshed the token."""
    if not isinstance(flow, GotToken):
        return None
    token = client.auth_manager.cache_handler.get_cached_token()
    if token and token != flow.token:
        return GotToken(token=token)
    return None
