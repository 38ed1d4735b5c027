import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from config import Settings
from errors import (
    AuthFailure,
    GenerationFailure,
    InvalidTransition,
    ProfileStoreFailure,
    SafePassageError,
    ValidationError,
)
from gemini_client import GeminiClient
from icebreaker import IcebreakerGenerator, primary_priority
from itinerary_planner import EthicalItineraryPlanner, apply_profile_defaults
from models import (
    ContentReport,
    IcebreakerResult,
    ItineraryRequest,
    ItineraryResult,
    ProfileUpdate,
    SearchForm,
    SignInRequest,
    SignUpRequest,
    taxonomy,
)
from profile_store import DemoProfileStore, SupabaseProfileStore
from session import AppSession, SessionRegistry

logger = logging.getLogger(__name__)

STATUS_CODES = [
    (ValidationError, 422),
    (AuthFailure, 401),
    (InvalidTransition, 409),
    (ProfileStoreFailure, 502),
    (GenerationFailure, 502),
]


def to_http_error(error: SafePassageError) -> HTTPException:
    for kind, status in STATUS_CODES:
        if isinstance(error, kind):
            return HTTPException(status_code=status, detail=error.message)
    return HTTPException(status_code=500, detail=error.message)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Quiet noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def create_app(settings: Optional[Settings] = None, gemini_client: Optional[GeminiClient] = None,
               demo_store: Optional[DemoProfileStore] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Safe Passage API", version="1.0.0")

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    client = gemini_client or GeminiClient(gemini_key=settings.gemini_api_key, model_name=settings.gemini_model)
    demo_store = demo_store or DemoProfileStore()
    demo_mode = not settings.supabase_configured
    if demo_mode:
        logger.warning("Supabase is not configured, running in demo mode")

    def make_session() -> AppSession:
        if demo_mode:
            store = demo_store
        else:
            store = SupabaseProfileStore(settings.supabase_url, settings.supabase_anon_key,
                                         timeout=settings.request_timeout)
        return AppSession(store, demo_store, demo_mode=demo_mode,
                          search_latency=settings.search_simulated_latency)

    app.state.settings = settings
    app.state.sessions = SessionRegistry(make_session, ttl=settings.session_ttl)
    app.state.planner = EthicalItineraryPlanner(client)
    app.state.icebreakers = IcebreakerGenerator(client)

    def current_session(request: Request, authorization: Optional[str] = Header(default=None)) -> AppSession:
        session = request.app.state.sessions.get(_bearer(authorization))
        if session is None or not session.is_authenticated:
            raise HTTPException(status_code=401, detail="Not signed in")
        return session

    @app.get("/")
    async def root():
        return {"message": "Safe Passage API", "status": "running", "demo_mode": demo_mode}

    @app.get("/taxonomy")
    async def get_taxonomy():
        """Priorities, community styles, itinerary types and report reasons"""
        return taxonomy()

    # ----------------------------------------------------------------- auth
    @app.post("/auth/signin")
    def sign_in(body: SignInRequest, request: Request):
        registry: SessionRegistry = request.app.state.sessions
        token, session = registry.create()
        try:
            session.sign_in(body.email, body.password)
        except SafePassageError as e:
            registry.discard(token)
            raise to_http_error(e)
        return {"token": token, **session.snapshot()}

    @app.post("/auth/signup")
    def sign_up(body: SignUpRequest, request: Request):
        registry: SessionRegistry = request.app.state.sessions
        token, session = registry.create()
        try:
            outcome = session.sign_up(body)
        except SafePassageError as e:
            registry.discard(token)
            raise to_http_error(e)

        if outcome.email_confirmation_required:
            registry.discard(token)
            return {
                "token": None,
                "email_confirmation_required": True,
                "message": "Account created! Please check your email to verify your account before signing in.",
            }
        return {"token": token, "email_confirmation_required": False, **session.snapshot()}

    @app.post("/auth/signout")
    def sign_out(request: Request, authorization: Optional[str] = Header(default=None),
                 session: AppSession = Depends(current_session)):
        registry: SessionRegistry = request.app.state.sessions
        try:
            session.sign_out()
        except SafePassageError as e:
            raise to_http_error(e)
        finally:
            registry.discard(_bearer(authorization))
        return {"status": "signed_out"}

    @app.get("/auth/session")
    def get_session(session: AppSession = Depends(current_session)):
        return session.snapshot()

    # -------------------------------------------------------------- profile
    @app.get("/profile")
    def get_profile(session: AppSession = Depends(current_session)):
        return session.profile.model_dump(mode="json")

    @app.put("/profile")
    def update_profile(updates: ProfileUpdate, session: AppSession = Depends(current_session)):
        try:
            profile = session.update_profile(updates)
        except SafePassageError as e:
            raise to_http_error(e)
        return profile.model_dump(mode="json")

    # -------------------------------------------------------------- matches
    @app.post("/matches/search")
    def search_matches(form: SearchForm, session: AppSession = Depends(current_session)):
        flow = session.search
        try:
            flow.submit(form, session.profile)
            try:
                candidates = session.directory_candidates()
            except SafePassageError:
                flow.abort()
                raise
            flow.complete(candidates)
        except SafePassageError as e:
            raise to_http_error(e)
        return flow.snapshot()

    @app.get("/matches/search")
    def get_search(session: AppSession = Depends(current_session)):
        return session.search.snapshot()

    @app.post("/matches/reset")
    def reset_search(session: AppSession = Depends(current_session)):
        try:
            session.search.reset()
        except SafePassageError as e:
            raise to_http_error(e)
        return session.search.snapshot()

    @app.post("/matches/{user_id}/icebreaker", response_model=IcebreakerResult)
    def connect(user_id: str, request: Request, session: AppSession = Depends(current_session)):
        flow = session.search
        match = flow.find_result(user_id)
        if match is None:
            raise HTTPException(status_code=404, detail=f"No match with id {user_id} in the current results")

        try:
            flow.begin_connect(user_id)
        except SafePassageError as e:
            raise to_http_error(e)

        message = None
        try:
            location = (session.profile.location if session.profile else "") \
                or flow.form.destination or "our destination"
            result = request.app.state.icebreakers.generate(
                match.profile.name, primary_priority(flow.form.priorities), location
            )
            message = result.message
        finally:
            flow.finish_connect(user_id, message)
        return result

    # ------------------------------------------------------------ itinerary
    @app.post("/itinerary", response_model=ItineraryResult)
    def generate_itinerary(body: ItineraryRequest, request: Request,
                           session: AppSession = Depends(current_session)):
        """
        Generate an ethical itinerary with Gemini AI, grounded with search sources
        """
        itinerary_request = apply_profile_defaults(body, session.profile)
        try:
            return request.app.state.planner.generate(itinerary_request)
        except GenerationFailure as e:
            raise HTTPException(
                status_code=502,
                detail="We encountered an issue generating your safe passage. Please verify your API key and try again.",
            ) from e
        except SafePassageError as e:
            raise to_http_error(e)

    # -------------------------------------------------------------- reports
    @app.post("/reports")
    def submit_report(report: ContentReport, session: AppSession = Depends(current_session)):
        logger.warning(
            f"REPORT SUBMITTED by {session.user.id}: reason={report.reason!r} "
            f"details={report.details!r} content={report.content[:200]!r}"
        )
        return {"status": "received", "message": "Thank you for helping keep our community safe."}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
