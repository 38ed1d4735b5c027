"""
Identity and profile persistence.

Two implementations share the ProfileStore interface:
- SupabaseProfileStore talks to a hosted Supabase project (auth + REST).
- DemoProfileStore keeps the fixed demo directory in memory and is used when
  no hosted backend is configured.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from demo_data import DEMO_EMAIL, build_demo_users, is_demo_credentials
from errors import AuthFailure, ProfileStoreFailure
from models import UserProfile, profile_from_record

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None


@dataclass
class AuthSession:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None


@dataclass
class SignUpResult:
    user: Optional[AuthUser]
    session: Optional[AuthSession]  # None while the email is unconfirmed


SessionCallback = Callable[[str, Optional[AuthSession]], None]


class ProfileStore(ABC):
    """Abstract base class for identity + profile backends"""

    def __init__(self):
        self._listeners: List[SessionCallback] = []

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """Register for sign-in/out events. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, event: str, session: Optional[AuthSession]):
        for callback in list(self._listeners):
            try:
                callback(event, session)
            except Exception as e:
                logger.error(f"Session change listener failed on {event}: {e}")

    @abstractmethod
    def get_session(self) -> Optional[AuthSession]:
        pass

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    def sign_up(self, email: str, password: str) -> SignUpResult:
        pass

    @abstractmethod
    def sign_out(self) -> None:
        pass

    @abstractmethod
    def read_profile(self, user_id: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    def insert_profile(self, record: Dict[str, Any]) -> UserProfile:
        pass

    @abstractmethod
    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserProfile]:
        """Apply a partial update. Returns None when no row exists for the user."""
        pass

    @abstractmethod
    def list_profiles(self) -> List[UserProfile]:
        pass

    def close(self) -> None:
        """Release network resources. Stores without any keep the no-op."""
        pass


def _error_message(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return default


def _rows_to_profiles(rows: Any) -> List[UserProfile]:
    profiles = []
    for row in rows or []:
        try:
            profiles.append(profile_from_record(row))
        except ValueError as e:
            logger.warning(f"Skipping malformed profile row: {e}")
    return profiles


class SupabaseProfileStore(ProfileStore):
    """
    Hosted backend client. One instance per signed-in user: it holds that
    user's access token the same way a browser client would.
    """

    def __init__(self, url: str, anon_key: str, timeout: float = 10.0,
                 http: Optional[requests.Session] = None):
        """
        Args:
            url: Project URL, e.g. https://xyz.supabase.co
            anon_key: Public anon key of the project
            timeout: Seconds before an HTTP call is abandoned
            http: Optional preconfigured requests session
        """
        super().__init__()
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.http = http or requests.Session()  # Use a session for connection pooling
        self._session: Optional[AuthSession] = None

    # ------------------------------------------------------------------ http
    def _headers(self, extra: Optional[Dict[str, str]] = None, token: Optional[str] = None) -> Dict[str, str]:
        if token is None:
            token = self._session.access_token if self._session else self.anon_key
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _auth_call(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> Any:
        try:
            response = self.http.request(
                method, f"{self.url}/auth/v1/{path}",
                headers=self._headers(token=token), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"Auth service unreachable: {e}")
            raise AuthFailure("Unable to reach the authentication service. Please try again.") from e

        payload = self._json(response)
        if response.status_code >= 400:
            raise AuthFailure(_error_message(payload, f"Authentication failed ({response.status_code})"))
        return payload

    def _rest_call(self, method: str, params: Dict[str, str], json_body: Any = None,
                   prefer: Optional[str] = None) -> Any:
        response = self._rest_request(method, params, json_body, prefer)
        if response.status_code == 401 and self._session is not None and self._session.refresh_token:
            # Access token expired: refresh once and replay the request
            self._refresh_session()
            response = self._rest_request(method, params, json_body, prefer)

        payload = self._json(response)
        if response.status_code >= 400:
            code = payload.get("code") if isinstance(payload, dict) else None
            raise ProfileStoreFailure(
                _error_message(payload, f"Profile store error ({response.status_code})"),
                code=str(code) if code is not None else None,
            )
        return payload

    def _rest_request(self, method: str, params: Dict[str, str], json_body: Any,
                      prefer: Optional[str]):
        extra = {"Prefer": prefer} if prefer else None
        try:
            return self.http.request(
                method, f"{self.url}/rest/v1/{PROFILES_TABLE}",
                params=params, json=json_body,
                headers=self._headers(extra), timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Profile store unreachable: {e}")
            raise ProfileStoreFailure("Unable to reach the profile store. Please try again.") from e

    def _refresh_session(self) -> AuthSession:
        """Trade the refresh token for a new access token, or end the session."""
        try:
            payload = self._auth_call(
                "POST", "token", token=self.anon_key,
                params={"grant_type": "refresh_token"},
                json={"refresh_token": self._session.refresh_token},
            )
            session = self._session_from(payload)
            if session is None:
                raise AuthFailure("Token refresh returned no session")
        except AuthFailure as e:
            logger.warning(f"Token refresh failed, signing out: {e}")
            self._session = None
            self._notify("SIGNED_OUT", None)
            raise AuthFailure("Your session has expired. Please sign in again.") from e

        self._session = session
        logger.info(f"Refreshed access token for {session.user.id}")
        self._notify("TOKEN_REFRESHED", session)
        return session

    @staticmethod
    def _json(response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _user_from(payload: Dict[str, Any]) -> AuthUser:
        return AuthUser(id=str(payload["id"]), email=payload.get("email"))

    def _session_from(self, payload: Dict[str, Any]) -> Optional[AuthSession]:
        if not isinstance(payload, dict) or not payload.get("access_token"):
            return None
        return AuthSession(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            user=self._user_from(payload["user"]),
        )

    # ------------------------------------------------------------------ auth
    def get_session(self) -> Optional[AuthSession]:
        return self._session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = self._auth_call(
            "POST", "token", params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = self._session_from(payload)
        if session is None:
            raise AuthFailure("Sign in failed. Please try again.")
        self._session = session
        logger.info(f"Signed in user {session.user.id}")
        self._notify("SIGNED_IN", session)
        return session

    def sign_up(self, email: str, password: str) -> SignUpResult:
        payload = self._auth_call("POST", "signup", json={"email": email, "password": password})
        session = self._session_from(payload)
        if session is not None:
            self._session = session
            self._notify("SIGNED_IN", session)
            return SignUpResult(user=session.user, session=session)

        # Email confirmation pending: the user object comes back on its own
        if isinstance(payload, dict) and payload.get("id"):
            return SignUpResult(user=self._user_from(payload), session=None)
        if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
            return SignUpResult(user=self._user_from(payload["user"]), session=None)
        return SignUpResult(user=None, session=None)

    def sign_out(self) -> None:
        if self._session is None:
            return
        try:
            self._auth_call("POST", "logout")
        finally:
            self._session = None
            self._notify("SIGNED_OUT", None)

    # -------------------------------------------------------------- profiles
    def read_profile(self, user_id: str) -> Optional[UserProfile]:
        rows = self._rest_call("GET", {"user_id": f"eq.{user_id}", "select": "*"})
        profiles = _rows_to_profiles(rows)
        return profiles[0] if profiles else None

    def insert_profile(self, record: Dict[str, Any]) -> UserProfile:
        rows = self._rest_call("POST", {"select": "*"}, json_body=[record], prefer="return=representation")
        profiles = _rows_to_profiles(rows)
        if not profiles:
            raise ProfileStoreFailure("Profile insert returned no rows")
        return profiles[0]

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserProfile]:
        rows = self._rest_call(
            "PATCH", {"user_id": f"eq.{user_id}", "select": "*"},
            json_body=changes, prefer="return=representation",
        )
        profiles = _rows_to_profiles(rows)
        return profiles[0] if profiles else None

    def list_profiles(self) -> List[UserProfile]:
        return _rows_to_profiles(self._rest_call("GET", {"select": "*"}))

    def close(self) -> None:
        self.http.close()


class DemoProfileStore(ProfileStore):
    """In-memory stand-in with the fixed demo directory."""

    def __init__(self, users: Optional[List[UserProfile]] = None):
        super().__init__()
        self.users = users if users is not None else build_demo_users()
        self._session: Optional[AuthSession] = None

    def demo_user(self) -> UserProfile:
        return next((u for u in self.users if u.email == DEMO_EMAIL), self.users[0])

    def get_session(self) -> Optional[AuthSession]:
        return self._session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        if not is_demo_credentials(email, password):
            raise AuthFailure("Invalid login credentials")
        user = self.demo_user()
        self._session = AuthSession(
            access_token="demo-token",
            user=AuthUser(id=user.user_id or user.id, email=user.email),
        )
        self._notify("SIGNED_IN", self._session)
        return self._session

    def sign_up(self, email: str, password: str) -> SignUpResult:
        raise AuthFailure("Sign up is not available in demo mode. Please configure Supabase to create an account.")

    def sign_out(self) -> None:
        self._session = None
        self._notify("SIGNED_OUT", None)

    def _index(self, user_id: str) -> Optional[int]:
        for i, user in enumerate(self.users):
            if user.user_id == user_id or user.id == user_id:
                return i
        return None

    def read_profile(self, user_id: str) -> Optional[UserProfile]:
        index = self._index(user_id)
        return self.users[index] if index is not None else None

    def insert_profile(self, record: Dict[str, Any]) -> UserProfile:
        profile = profile_from_record(record)
        if self._index(profile.user_id) is not None:
            raise ProfileStoreFailure("duplicate key value violates unique constraint", code="23505")
        self.users.append(profile)
        return profile

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserProfile]:
        index = self._index(user_id)
        if index is None:
            return None
        updated = UserProfile.model_validate({**self.users[index].model_dump(), **changes})
        self.users[index] = updated
        return updated

    def list_profiles(self) -> List[UserProfile]:
        return list(self.users)
