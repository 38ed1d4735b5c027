"""
Application session context.

An AppSession holds one user's auth state, profile and search wizard. It is
created explicitly, initialised with init() and torn down on sign-out,
instead of living in module-level globals.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from demo_data import is_demo_credentials
from errors import AuthFailure, ProfileStoreFailure, SafePassageError, ValidationError
from models import (
    CommunityStyle,
    ProfileUpdate,
    SignUpRequest,
    UserProfile,
    default_profile,
    profile_to_record,
    update_to_record,
)
from profile_store import AuthSession, AuthUser, DemoProfileStore, ProfileStore
from search_flow import SearchFlow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
DEFAULT_SESSION_TTL = 12 * 60 * 60

# Provider message fragment -> user-facing message
SIGN_IN_MESSAGES = [
    ("Invalid login credentials", "Invalid email or password. Please check your credentials and try again."),
    ("Email not confirmed", "Please verify your email address before signing in. Check your inbox for a confirmation link."),
    ("User not found", "No account found with this email. Please sign up first."),
    ("Too many requests", "Too many login attempts. Please wait a few minutes and try again."),
    ("rate limit", "Too many login attempts. Please wait a few minutes and try again."),
]

SIGN_UP_MESSAGES = [
    ("User already registered", "An account with this email already exists. Please sign in instead."),
    ("Password should be", "Password is too weak. Please use a stronger password with at least 6 characters."),
    ("Invalid email", "Please enter a valid email address."),
    ("rate limit", "Too many signup attempts. Please wait a few minutes and try again."),
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def friendly_auth_message(raw: str, table, fallback: str) -> str:
    for fragment, message in table:
        if fragment.lower() in (raw or "").lower():
            return message
    return raw or fallback


@dataclass
class SignUpOutcome:
    profile: Optional[UserProfile]
    email_confirmation_required: bool


class AppSession:
    """Auth + profile state for one client, with an explicit lifecycle."""

    def __init__(self, store: ProfileStore, demo_store: DemoProfileStore,
                 demo_mode: bool = False, search_latency: float = 0.0):
        self.store = store
        self.demo_store = demo_store
        self.is_demo_mode = demo_mode
        self.search_latency = search_latency
        self.user: Optional[AuthUser] = None
        self.profile: Optional[UserProfile] = None
        self.search = SearchFlow(simulated_latency=search_latency)
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------- lifecycle
    def init(self):
        """Pick up an existing session and start listening for auth changes."""
        if self.is_demo_mode:
            return
        self._unsubscribe = self.store.on_session_change(self._on_session_change)
        try:
            session = self.store.get_session()
        except SafePassageError as e:
            logger.error(f"Session check failed: {e}")
            return
        if session is not None:
            self._on_session_change("INITIAL_SESSION", session)

    def teardown(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self.store.close()
        self.user = None
        self.profile = None
        self.search = SearchFlow(simulated_latency=self.search_latency)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def _on_session_change(self, event: str, session: Optional[AuthSession]):
        logger.debug(f"Auth event {event}")
        if event == "TOKEN_REFRESHED":
            # Same user, new access token
            return
        self.user = session.user if session else None
        if session is not None:
            self.load_profile(session.user.id, session.user.email)
        else:
            self.profile = None

    def load_profile(self, user_id: str, email: Optional[str] = None) -> UserProfile:
        """Read the stored profile, falling back to a placeholder."""
        try:
            profile = self.store.read_profile(user_id)
        except ProfileStoreFailure as e:
            logger.error(f"Profile load error for {user_id}: {e}")
            profile = None
        self.profile = profile or default_profile(user_id, email)
        return self.profile

    def _enter_demo_mode(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self.store is not self.demo_store:
            self.store.close()
        self.store = self.demo_store
        self.is_demo_mode = True

    # ------------------------------------------------------------------ auth
    def sign_in(self, email: str, password: str) -> UserProfile:
        if not email:
            raise ValidationError("Please enter your email address.")
        if not password:
            raise ValidationError("Please enter your password.")

        if self.is_demo_mode or is_demo_credentials(email, password):
            # Demo login works even without a configured backend
            self._enter_demo_mode()
            demo_user = self.demo_store.demo_user()
            self.user = AuthUser(id=demo_user.user_id or demo_user.id, email=demo_user.email)
            self.profile = demo_user
            logger.info("Signed in with the demo account")
            return self.profile

        try:
            session = self.store.sign_in_with_password(email, password)
        except AuthFailure as e:
            raise AuthFailure(friendly_auth_message(
                e.message, SIGN_IN_MESSAGES, "Failed to sign in. Please try again."
            )) from e

        if session is None:
            raise AuthFailure("Sign in failed. Please try again.")
        if self.profile is None or self.user is None or self.user.id != session.user.id:
            # No listener fired (e.g. init() was skipped)
            self.user = session.user
            self.load_profile(session.user.id, session.user.email)
        return self.profile

    def sign_up(self, request: SignUpRequest) -> SignUpOutcome:
        if not request.email:
            raise ValidationError("Please enter your email address.")
        if not request.password:
            raise ValidationError("Please enter your password.")
        if not request.name.strip():
            raise ValidationError("Please enter your name.")
        if len(request.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
        if self.is_demo_mode:
            raise AuthFailure("Sign up is not available in demo mode. Please configure Supabase to create an account.")

        try:
            result = self.store.sign_up(request.email, request.password)
        except AuthFailure as e:
            raise AuthFailure(friendly_auth_message(
                e.message, SIGN_UP_MESSAGES, "Failed to create account. Please try again."
            )) from e

        if result.user is None:
            raise AuthFailure("Failed to create account. Please try again.")

        created = _now()
        new_profile = UserProfile(
            id=result.user.id,
            user_id=result.user.id,
            email=result.user.email or request.email,
            name=request.name.strip() or "New User",
            avatar=request.avatar or "👤",
            location=request.location or "",
            priorities=request.priorities,
            style=request.style or CommunityStyle.QUIET_OBSERVER,
            bio=request.bio or "",
            preferred_itinerary_types=request.preferred_itinerary_types,
            created_at=created,
            updated_at=created,
        )
        logger.info(f"Creating profile for {result.user.id}")

        try:
            profile = self.store.insert_profile(profile_to_record(new_profile))
        except ProfileStoreFailure as e:
            logger.error(f"Profile creation error: code={e.code} {e}")
            if e.code == "23505":
                logger.info("Profile already exists, fetching existing profile...")
                profile = self.load_profile(result.user.id, result.user.email)
            elif e.code == "PGRST204":
                raise ProfileStoreFailure('Database table "profiles" is missing. Please contact administrator.', code=e.code) from e
            elif "schema cache" in e.message:
                raise ProfileStoreFailure("Database schema issue. Please contact administrator to run migrations.", code=e.code) from e
            else:
                raise ProfileStoreFailure(
                    f"Failed to create user profile: {e.message}. Please try signing in or contact support.",
                    code=e.code,
                ) from e

        if result.session is not None:
            self.user = result.user
        self.profile = profile
        return SignUpOutcome(profile=profile, email_confirmation_required=result.session is None)

    def sign_out(self):
        if self.is_demo_mode:
            self.user = None
            self.profile = None
            return
        try:
            self.store.sign_out()
        except SafePassageError as e:
            logger.error(f"Sign out error: {e}")
            raise AuthFailure("Failed to sign out. Please try again.") from e
        finally:
            # Local state is cleared even when the server call fails
            self.user = None
            self.profile = None

    # --------------------------------------------------------------- profile
    def update_profile(self, updates: ProfileUpdate) -> UserProfile:
        if self.profile is None:
            raise ProfileStoreFailure("No profile found")

        changes = update_to_record(updates)

        if self.is_demo_mode or self.user is None:
            merged = {**self.profile.model_dump(), **changes, "updated_at": _now()}
            self.profile = UserProfile.model_validate(merged)
            return self.profile

        changes["updated_at"] = _now()
        logger.info(f"Updating profile {self.user.id} with fields {sorted(changes)}")
        updated = self.store.update_profile(self.user.id, changes)
        if updated is not None:
            self.profile = updated
            return self.profile

        logger.info("No profile found, creating new profile...")
        merged = {**self.profile.model_dump(), **changes}
        merged.update({
            "id": self.user.id,
            "user_id": self.user.id,
            "email": self.user.email,
            "created_at": _now(),
        })
        self.profile = self.store.insert_profile(profile_to_record(UserProfile.model_validate(merged)))
        return self.profile

    def directory_candidates(self) -> List[UserProfile]:
        """Everyone in the directory except the current user."""
        own_ids = set()
        if self.user is not None:
            own_ids.add(self.user.id)
        if self.profile is not None:
            own_ids.update(i for i in (self.profile.id, self.profile.user_id) if i)
        return [
            p for p in self.store.list_profiles()
            if p.id not in own_ids and (p.user_id or p.id) not in own_ids
        ]

    def snapshot(self) -> Dict:
        return {
            "authenticated": self.is_authenticated,
            "demo_mode": self.is_demo_mode,
            "user": {"id": self.user.id, "email": self.user.email} if self.user else None,
            "profile": self.profile.model_dump(mode="json") if self.profile else None,
        }


class SessionRegistry:
    """
    Maps API bearer tokens to AppSessions.

    A token expires after `ttl` seconds without use; expired sessions are
    torn down lazily on lookup and whenever a new session is created.
    """

    def __init__(self, factory: Callable[[], AppSession], ttl: float = DEFAULT_SESSION_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self._factory = factory
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, AppSession] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def create(self) -> Tuple[str, AppSession]:
        self.evict_expired()
        session = self._factory()
        session.init()
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[token] = session
            self._last_seen[token] = self._clock()
        return token, session

    def get(self, token: Optional[str]) -> Optional[AppSession]:
        if not token:
            return None
        expired = None
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if now - self._last_seen[token] > self.ttl:
                expired = self._pop(token)
            else:
                self._last_seen[token] = now
        if expired is not None:
            logger.info("Dropped an expired session token")
            expired.teardown()
            return None
        return session

    def evict_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [token for token, seen in self._last_seen.items() if now - seen > self.ttl]
            expired = [self._pop(token) for token in stale]
        for session in expired:
            session.teardown()
        if expired:
            logger.info(f"Evicted {len(expired)} expired sessions")
        return len(expired)

    def discard(self, token: str):
        with self._lock:
            session = self._pop(token)
        if session is not None:
            session.teardown()

    def _pop(self, token: str) -> Optional[AppSession]:
        self._last_seen.pop(token, None)
        return self._sessions.pop(token, None)

    def __len__(self) -> int:
        return len(self._sessions)
