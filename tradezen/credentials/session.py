# -*- coding: utf-8 -*-
"""
tradezen.credentials.session

Session lifecycle around an externally issued Google bearer credential:
validate a persisted token, fall back to interactive consent, and refresh
silently in the background before the assumed one-hour horizon.
"""

from __future__ import annotations

import asyncio
import functools
import secrets
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Tuple

from tradezen.config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_SCOPES,
    STORAGE_KEYS,
    StoreConfig,
    get_store_config,
)
from tradezen.credentials.oauth_server import redirect_uri_for, run_oauth_flow
from tradezen.exceptions import AuthorizationError, SessionError, TradeZenError
from tradezen.google_workspace.helpers.google_helpers import (
    build_authorization_url,
    exchange_authorization_code,
    fetch_user_info,
    refresh_access_token,
)
from tradezen.logger import logger
from tradezen.state_store import LocalStateStore

ConsentFlow = Callable[..., Tuple[Optional[str], Optional[str]]]


@dataclass
class Credential:
    token: str
    refresh_token: str = ""
    email: Optional[str] = None
    issued_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None  # assumed, Google's browser flow does not report it

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        expected = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in expected})


class SessionManager:
    """
    Owns the single live credential. Other components read it through
    ``get_credential()`` on every call and never keep their own copy.
    """

    def __init__(
        self,
        state: LocalStateStore,
        config: Optional[StoreConfig] = None,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scopes: str = GOOGLE_SCOPES,
        consent_flow: Optional[ConsentFlow] = None,
    ) -> None:
        self._state = state
        self._config = config or get_store_config()
        self._client_id = GOOGLE_CLIENT_ID if client_id is None else client_id
        self._client_secret = GOOGLE_CLIENT_SECRET if client_secret is None else client_secret
        self._scopes = scopes
        self._consent_flow = consent_flow or run_oauth_flow
        self._redirect_uri: Optional[str] = None
        self._initialized = False

        self._credential: Optional[Credential] = None
        self._refresh_handle: Optional[asyncio.TimerHandle] = None
        self._refresh_task: Optional[asyncio.Future] = None
        # Bumped on sign-out/close so a refresh that lands afterwards is dropped
        self._generation = 0
        self._sign_out_listeners: List[Callable[[], None]] = []

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------
    def initialize(self) -> None:
        """Prepare the authorization flow. Safe to call more than once."""
        if self._initialized:
            return
        if not self._client_id or not self._client_secret:
            raise SessionError("Google OAuth not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.")
        self._redirect_uri = redirect_uri_for(self._config.oauth_port)
        self._initialized = True

    def close(self) -> None:
        """Process teardown: stop the refresh timer but keep persisted state."""
        self._generation += 1
        self._cancel_scheduled_refresh()

    def add_sign_out_listener(self, callback: Callable[[], None]) -> None:
        self._sign_out_listeners.append(callback)

    # --------------------------------------------------
    # Queries
    # --------------------------------------------------
    def is_signed_in(self) -> bool:
        return self._credential is not None

    @property
    def user_email(self) -> Optional[str]:
        return self._credential.email if self._credential else None

    @property
    def refresh_scheduled(self) -> bool:
        return self._refresh_handle is not None

    async def get_credential(self) -> Credential:
        """Return the live credential or fail with ``AuthorizationError``."""
        if self._credential is None:
            raise AuthorizationError("Not signed in")
        return self._credential

    # --------------------------------------------------
    # Sign in / refresh / sign out
    # --------------------------------------------------
    async def sign_in(self) -> Credential:
        """
        Adopt the persisted credential if the identity endpoint still accepts
        it, otherwise run interactive consent.

        Raises:
            SessionError: consent was denied or the flow failed.
            TransportError: the persisted credential could not be checked.
        """
        if not self._initialized:
            raise SessionError("SessionManager not initialized. Call initialize() first.")

        persisted = self._load_persisted()
        if persisted is not None:
            try:
                info = await fetch_user_info(persisted.token)
            except AuthorizationError:
                logger.info("[SESSION] Persisted credential rejected, requesting consent")
                self._state.remove(STORAGE_KEYS["AUTH_TOKEN"])
            else:
                persisted.email = info.get("email") or persisted.email
                self._adopt(persisted)
                return persisted

        credential = await self._interactive_consent()
        self._adopt(credential)
        return credential

    async def refresh(self) -> Credential:
        """
        Obtain a new access token from the granted consent without prompting.
        Any failure signs the session out; it is never retried here.
        """
        current = self._credential
        generation = self._generation
        if current is None or not current.refresh_token:
            self.sign_out()
            raise SessionError("No refresh token available; sign in again")

        try:
            tokens = await refresh_access_token(self._client_id, self._client_secret, current.refresh_token)
            access_token = tokens.get("access_token")
            if not access_token:
                raise AuthorizationError("Token endpoint returned no access_token")
            info = await fetch_user_info(access_token)
        except TradeZenError as e:
            logger.error(f"[SESSION] Token refresh failed for {current.email}: {e}")
            if generation == self._generation:
                self.sign_out()
            raise SessionError("Silent refresh failed; sign in again") from e

        if generation != self._generation:
            raise SessionError("Session ended while refreshing")

        now = time.time()
        credential = Credential(
            token=access_token,
            refresh_token=tokens.get("refresh_token") or current.refresh_token,
            email=info.get("email") or current.email,
            issued_at=now,
            expires_at=now + self._config.token_lifetime,
        )
        self._adopt(credential)
        logger.info(f"[SESSION] Token refreshed for {credential.email}")
        return credential

    def sign_out(self) -> None:
        """Drop the credential and every handle derived from this identity."""
        self._generation += 1
        self._cancel_scheduled_refresh()
        self._credential = None
        self._state.remove(
            STORAGE_KEYS["AUTH_TOKEN"],
            STORAGE_KEYS["SHEET_ID"],
            STORAGE_KEYS["DRIVE_FOLDER_ID"],
            STORAGE_KEYS["USER_INFO"],
        )
        logger.info("[SESSION] Signed out")
        for listener in list(self._sign_out_listeners):
            listener()

    # --------------------------------------------------
    # Internals
    # --------------------------------------------------
    def _load_persisted(self) -> Optional[Credential]:
        data = self._state.get(STORAGE_KEYS["AUTH_TOKEN"])
        if not isinstance(data, dict) or not data.get("token"):
            return None
        try:
            return Credential.from_dict(data)
        except TypeError:
            logger.warning("[SESSION] Discarding malformed persisted credential")
            self._state.remove(STORAGE_KEYS["AUTH_TOKEN"])
            return None

    async def _interactive_consent(self) -> Credential:
        state_token = secrets.token_urlsafe(32)
        auth_url = build_authorization_url(self._client_id, self._redirect_uri, self._scopes, state_token)
        flow = functools.partial(
            self._consent_flow,
            auth_url,
            port=self._config.oauth_port,
            timeout=self._config.oauth_timeout,
            expected_state=state_token,
        )
        code, error = await asyncio.to_thread(flow)
        if error or not code:
            raise SessionError(f"Google sign-in failed: {error or 'no authorization code'}")

        try:
            tokens = await exchange_authorization_code(self._client_id, self._client_secret, code, self._redirect_uri)
            access_token = tokens.get("access_token")
            if not access_token:
                raise AuthorizationError("Token exchange returned no access_token")
            info = await fetch_user_info(access_token)
        except TradeZenError as e:
            raise SessionError(f"Google sign-in failed: {e}") from e

        now = time.time()
        return Credential(
            token=access_token,
            refresh_token=tokens.get("refresh_token", ""),
            email=info.get("email"),
            issued_at=now,
            expires_at=now + self._config.token_lifetime,
        )

    def _adopt(self, credential: Credential) -> None:
        if credential.expires_at is None:
            credential.expires_at = credential.issued_at + self._config.token_lifetime
        self._credential = credential
        self._state.set(STORAGE_KEYS["AUTH_TOKEN"], credential.to_dict())
        if credential.email:
            self._state.set(STORAGE_KEYS["USER_INFO"], {"email": credential.email})
        logger.info(f"[SESSION] Signed in as {credential.email}")

        delay = credential.issued_at + self._config.refresh_delay - time.time()
        self._schedule_refresh(max(delay, 0.0))

    def _schedule_refresh(self, delay: float) -> None:
        self._cancel_scheduled_refresh()
        loop = asyncio.get_running_loop()
        self._refresh_handle = loop.call_later(delay, self._on_refresh_due)
        logger.debug(f"[SESSION] Token refresh scheduled in {int(delay)}s")

    def _cancel_scheduled_refresh(self) -> None:
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None

    def _on_refresh_due(self) -> None:
        self._refresh_handle = None
        logger.info("[SESSION] Auto-refreshing token")
        self._refresh_task = asyncio.ensure_future(self._background_refresh())

    async def _background_refresh(self) -> None:
        try:
            await self.refresh()
        except TradeZenError as e:
            logger.warning(f"[SESSION] Auto-refresh failed: {e}")
