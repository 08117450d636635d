"""
Microsoft / Xbox / Minecraft Authentication Client

Implements the device-code sign-in chain:

    device code -> Microsoft token -> Xbox Live user token -> XSTS token
        -> Minecraft access token -> entitlement check -> profile

Refresh tokens re-enter the chain at the Microsoft token step.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEVICE_CODE_URL = "https://login.live.com/oauth20_connect.srf"
TOKEN_URL = "https://login.live.com/oauth20_token.srf"
XBL_AUTH_URL = "https://user.auth.xboxlive.com/user/authenticate"
XSTS_AUTH_URL = "https://xsts.auth.xboxlive.com/xsts/authorize"
MC_LOGIN_URL = "https://api.minecraftservices.com/authentication/login_with_xbox"
MC_PROFILE_URL = "https://api.minecraftservices.com/minecraft/profile"
MC_ENTITLEMENTS_URL = "https://api.minecraftservices.com/entitlements/mcstore"
DEVICE_SCOPE = "XboxLive.signin offline_access"

# Microsoft OAuth error codes -> poll status
POLL_STATUS = {
    "authorization_pending": ("pending", None),
    "slow_down": ("slow_down", None),
    "authorization_declined": ("declined", "Sign-in was declined."),
    "expired_token": ("expired", "Device code expired. Please start again."),
    "code_expired": ("expired", "Device code expired. Please start again."),
}


class AuthClientError(Exception):
    """A step of the sign-in chain failed."""
    pass


@dataclass
class DeviceAuthorization:
    """Parsed device authorization response."""
    device_code: str
    user_code: str
    verification_uri: str
    expires_at: float
    interval: int
    message: str = ""


@dataclass
class MinecraftSession:
    """Result of a completed sign-in chain."""
    username: str
    uuid: str
    access_token: str
    refresh_token: str


@dataclass
class TokenPollResult:
    """One poll of the device token endpoint."""
    status: str
    message: Optional[str] = None
    session: Optional[MinecraftSession] = None


class MicrosoftAuthClient:
    """Client for the Microsoft device-code and Minecraft services endpoints."""

    def __init__(self, client_id: str, timeout: int = 30):
        self.client_id = client_id
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "Mozilla/5.0 (compatible; HellasLauncher/1.0)",
            "Accept": "application/json",
        })

    def _post(self, url: str, error_message: str, **kwargs) -> requests.Response:
        try:
            return self.session.post(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise AuthClientError(f"{error_message} ({e})") from e

    def _get(self, url: str, error_message: str, **kwargs) -> requests.Response:
        try:
            return self.session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise AuthClientError(f"{error_message} ({e})") from e

    @staticmethod
    def _json(response: requests.Response, error_message: str) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise AuthClientError(error_message) from e
        if not isinstance(payload, dict):
            raise AuthClientError(error_message)
        return payload

    # =========================================================================
    # Device Code
    # =========================================================================

    def request_device_code(self) -> DeviceAuthorization:
        error = "Failed to start Microsoft device authorization."
        response = self._post(
            DEVICE_CODE_URL,
            error,
            data={
                "client_id": self.client_id,
                "scope": DEVICE_SCOPE,
                "response_type": "device_code",
            },
        )
        if not response.ok:
            raise AuthClientError(error)

        payload = self._json(response, error)
        if not payload.get("device_code"):
            raise AuthClientError("Device authorization response was missing required fields.")

        return DeviceAuthorization(
            device_code=payload["device_code"],
            user_code=payload.get("user_code", ""),
            verification_uri=payload.get("verification_uri", ""),
            expires_at=time.time() + (payload.get("expires_in") or 900),
            interval=max(5, int(payload.get("interval") or 5)),
            message=payload.get("message", ""),
        )

    def poll_device_code(self, device_code: str) -> TokenPollResult:
        """Exchange the device code; pending/declined/expired are statuses, not errors."""
        response = self._post(
            TOKEN_URL,
            "Login failed.",
            data={
                "grant_type": "device_code",
                "client_id": self.client_id,
                "code": device_code,
            },
        )
        payload = self._json(response, "Login failed.")
        if not response.ok or payload.get("error"):
            code = payload.get("error") or "unknown_error"
            status, message = POLL_STATUS.get(code, ("error", None))
            if status == "error":
                message = payload.get("error_description") or "Login failed."
            return TokenPollResult(status=status, message=message)

        return TokenPollResult(status="success", session=self.build_session(payload))

    def login_with_refresh_token(self, refresh_token: str) -> MinecraftSession:
        response = self._post(
            TOKEN_URL,
            "Failed to refresh Microsoft login.",
            data={
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "refresh_token": refresh_token,
            },
        )
        payload = self._json(response, "Failed to refresh Microsoft login.")
        if not response.ok or payload.get("error"):
            raise AuthClientError(payload.get("error_description") or "Failed to refresh Microsoft login.")
        return self.build_session(payload)

    # =========================================================================
    # Xbox / Minecraft chain
    # =========================================================================

    def build_session(self, ms_token: Dict[str, Any]) -> MinecraftSession:
        """Run the Xbox and Minecraft steps for a Microsoft token payload."""
        xbl = self.authenticate_xbox_live(ms_token["access_token"])
        xsts = self.authorize_xsts(xbl["Token"])
        mc_token = self.login_minecraft(xsts)
        self.ensure_ownership(mc_token)
        profile = self.fetch_profile(mc_token)

        logger.info("[MicrosoftAuthClient] Signed in as %s", profile["name"])
        return MinecraftSession(
            username=profile["name"],
            uuid=profile.get("id", ""),
            access_token=mc_token,
            refresh_token=ms_token.get("refresh_token", ""),
        )

    def authenticate_xbox_live(self, access_token: str) -> Dict[str, Any]:
        error = "Xbox Live authentication failed."
        response = self._post(
            XBL_AUTH_URL,
            error,
            json={
                "Properties": {
                    "AuthMethod": "RPS",
                    "SiteName": "user.auth.xboxlive.com",
                    "RpsTicket": f"d={access_token}",
                },
                "RelyingParty": "http://auth.xboxlive.com",
                "TokenType": "JWT",
            },
        )
        if not response.ok:
            raise AuthClientError(error)
        return self._json(response, error)

    def authorize_xsts(self, user_token: str) -> Dict[str, Any]:
        error = "Xbox security token service authorization failed."
        response = self._post(
            XSTS_AUTH_URL,
            error,
            json={
                "Properties": {"SandboxId": "RETAIL", "UserTokens": [user_token]},
                "RelyingParty": "rp://api.minecraftservices.com/",
                "TokenType": "JWT",
            },
        )
        if not response.ok:
            raise AuthClientError(error)
        return self._json(response, error)

    def login_minecraft(self, xsts: Dict[str, Any]) -> str:
        error = "Minecraft authentication failed."
        try:
            user_hash = xsts["DisplayClaims"]["xui"][0]["uhs"]
        except (KeyError, IndexError, TypeError) as e:
            raise AuthClientError(error) from e

        response = self._post(
            MC_LOGIN_URL,
            error,
            json={"identityToken": f"XBL3.0 x={user_hash};{xsts['Token']}"},
        )
        payload = self._json(response, error)
        if not response.ok or not payload.get("access_token"):
            raise AuthClientError(error)
        return payload["access_token"]

    def ensure_ownership(self, mc_access_token: str) -> None:
        error = "Failed to validate Minecraft entitlements."
        response = self._get(
            MC_ENTITLEMENTS_URL, error, headers={"Authorization": f"Bearer {mc_access_token}"}
        )
        if not response.ok:
            raise AuthClientError(error)
        if not self._json(response, error).get("items"):
            raise AuthClientError("No Minecraft entitlements found for this account.")

    def fetch_profile(self, mc_access_token: str) -> Dict[str, Any]:
        error = "Failed to fetch Minecraft profile."
        response = self._get(
            MC_PROFILE_URL, error, headers={"Authorization": f"Bearer {mc_access_token}"}
        )
        if not response.ok:
            raise AuthClientError(error)
        payload = self._json(response, error)
        if not payload.get("name"):
            raise AuthClientError("Minecraft profile is missing account information.")
        return payload
