import json
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from config import Settings
from errors import AuthFailure, GenerationFailure, ProfileStoreFailure
from gemini_client import GenerationResponse
from main import create_app
from models import profile_from_record
from profile_store import AuthSession, AuthUser, DemoProfileStore, ProfileStore, SignUpResult


class FakeGeminiClient:
    """Stands in for GeminiClient; records every prompt it receives."""

    def __init__(self, text: str = "", citations: Optional[List[Dict[str, Any]]] = None,
                 error: Optional[Exception] = None):
        self.text = text
        self.citations = citations or []
        self.error = error
        self.calls = []

    def generate_text(self, prompt, grounding_enabled=False, temperature=None):
        self.calls.append({"prompt": prompt, "grounding_enabled": grounding_enabled, "temperature": temperature})
        if self.error is not None:
            raise self.error
        return GenerationResponse(text=self.text, citations=list(self.citations))


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    def json(self):
        return self._payload


class FakeHttp:
    """Minimal requests.Session replacement returning queued responses in order."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


class InMemoryStore(ProfileStore):
    """Hosted-store double with controllable failures and call counting."""

    def __init__(self, confirm_email: bool = False):
        super().__init__()
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.accounts: Dict[str, str] = {}
        self.confirm_email = confirm_email
        self.session: Optional[AuthSession] = None
        self.calls: List[str] = []
        self.sign_in_error: Optional[str] = None
        self.sign_up_error: Optional[str] = None
        self.insert_error: Optional[ProfileStoreFailure] = None
        self.sign_out_error: Optional[str] = None
        self.closed = False

    def get_session(self):
        self.calls.append("get_session")
        return self.session

    def sign_in_with_password(self, email, password):
        self.calls.append("sign_in")
        if self.sign_in_error:
            raise AuthFailure(self.sign_in_error)
        if self.accounts.get(email) != password:
            raise AuthFailure("Invalid login credentials")
        self.session = AuthSession(access_token="tok", user=AuthUser(id=f"uid-{email}", email=email))
        self._notify("SIGNED_IN", self.session)
        return self.session

    def sign_up(self, email, password):
        self.calls.append("sign_up")
        if self.sign_up_error:
            raise AuthFailure(self.sign_up_error)
        self.accounts[email] = password
        user = AuthUser(id=f"uid-{email}", email=email)
        if self.confirm_email:
            return SignUpResult(user=user, session=None)
        self.session = AuthSession(access_token="tok", user=user)
        self._notify("SIGNED_IN", self.session)
        return SignUpResult(user=user, session=self.session)

    def sign_out(self):
        self.calls.append("sign_out")
        if self.sign_out_error:
            raise AuthFailure(self.sign_out_error)
        self.session = None
        self._notify("SIGNED_OUT", None)

    def read_profile(self, user_id):
        self.calls.append("read_profile")
        row = self.rows.get(user_id)
        return profile_from_record(row) if row else None

    def insert_profile(self, record):
        self.calls.append("insert_profile")
        if self.insert_error is not None:
            raise self.insert_error
        self.rows[record["user_id"]] = dict(record)
        return profile_from_record(record)

    def update_profile(self, user_id, changes):
        self.calls.append("update_profile")
        if user_id not in self.rows:
            return None
        self.rows[user_id].update(changes)
        return profile_from_record(self.rows[user_id])

    def list_profiles(self):
        return [profile_from_record(row) for row in self.rows.values()]

    def close(self):
        self.closed = True


@pytest.fixture
def demo_store():
    return DemoProfileStore()


@pytest.fixture
def fake_gemini():
    return FakeGeminiClient(text="## Safety & Ethics Briefing\n\nDay 1 ...")


@pytest.fixture
def demo_settings():
    return Settings(gemini_api_key="test-key", supabase_url="", supabase_anon_key="")


@pytest.fixture
def client(demo_settings, fake_gemini, demo_store):
    app = create_app(settings=demo_settings, gemini_client=fake_gemini, demo_store=demo_store)
    return TestClient(app)


@pytest.fixture
def auth_headers(client):
    response = client.post("/auth/signin", json={"email": "demo@safepassage.network", "password": "DemoPass2024!"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
