"""
Hellas Store - Account Service

Keeps the signed-in session in memory and persists only the account
identity (username + refresh token). Access tokens never reach disk.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..clients.auth_client import AuthClientError, MicrosoftAuthClient, MinecraftSession
from .errors import AuthError
from .events import TOPIC_ACCOUNT_UPDATED, EventChannel
from .models import AccountInfo, DeviceCode, DevicePollResult, Session
from .state import StateStore

logger = logging.getLogger(__name__)


class AccountService:
    """Device-code login, refresh-token restore and logout."""

    def __init__(self, client: MicrosoftAuthClient, state_store: StateStore, events: EventChannel):
        self.client = client
        self.state_store = state_store
        self.events = events
        self._lock = threading.Lock()
        self._session: Optional[Session] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def account(self) -> AccountInfo:
        session = self._session
        if session and session.username and session.access_token:
            return AccountInfo(username=session.username, logged_in=True)
        stored = self.state_store.load().account
        return AccountInfo(username=stored.username, logged_in=False)

    def require_session(self) -> Session:
        """
        Raises:
            AuthError: If nobody is signed in.
        """
        session = self._session
        if not session or not session.username or not session.access_token:
            raise AuthError("Please log in with your Minecraft account before launching.")
        return session

    # =========================================================================
    # Login flows
    # =========================================================================

    def start_device_login(self) -> DeviceCode:
        try:
            auth = self.client.request_device_code()
        except AuthClientError as e:
            raise AuthError(str(e)) from e
        return DeviceCode(
            device_code=auth.device_code,
            user_code=auth.user_code,
            verification_uri=auth.verification_uri,
            expires_at=auth.expires_at,
            interval=auth.interval,
            message=auth.message,
        )

    def poll_device_login(self, device_code: str) -> DevicePollResult:
        if not device_code:
            raise AuthError("Device code missing.")
        try:
            result = self.client.poll_device_code(device_code)
        except AuthClientError as e:
            raise AuthError(str(e)) from e

        if result.status == "success" and result.session is not None:
            self._set_session(result.session)
            return DevicePollResult(status="success", account=self.account())
        return DevicePollResult(status=result.status, message=result.message)

    def restore(self) -> bool:
        """Sign in again from the stored refresh token. False if there is none or it failed."""
        stored = self.state_store.load().account
        if not stored.refresh_token:
            self._session = None
            return False

        try:
            session = self.client.login_with_refresh_token(stored.refresh_token)
        except AuthClientError as e:
            logger.error("[AccountService] Stored login refresh failed: %s", e)
            self._session = None
            self.state_store.clear_account()
            return False

        self._set_session(session)
        return True

    def logout(self) -> AccountInfo:
        with self._lock:
            self._session = None
        self.state_store.clear_account()
        info = self.account()
        self.events.emit(TOPIC_ACCOUNT_UPDATED, info.model_dump())
        return info

    def _set_session(self, session: MinecraftSession) -> None:
        with self._lock:
            self._session = Session(
                username=session.username,
                uuid=session.uuid,
                access_token=session.access_token,
                refresh_token=session.refresh_token,
            )
        self.state_store.set_account(session.username, session.refresh_token)
        self.events.emit(TOPIC_ACCOUNT_UPDATED, self.account().model_dump())
