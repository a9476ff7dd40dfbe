from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from marinova.ai.gemini import GeminiError, GeminiGenerator
from marinova.ai.prompt import (
    SYSTEM_INSTRUCTION,
    build_chat_prompt,
    build_image_prompt,
    build_insights_prompt,
    build_report_prompt,
    build_weather_analysis_prompt,
)
from marinova.auth import AuthService, get_current_user_id
from marinova.billing.plans import is_paid_plan
from marinova.billing.subscriptions import SubscriptionManager
from marinova.config import Config, load_config
from marinova.db import Store
from marinova.errors import AppError, AuthenticationError, ServerError, UpstreamError, ValidationError
from marinova.mail.mailer import Mailer, ResendMailer
from marinova.usage.gate import TrackResult, UsageGate
from marinova.weather.client import OpenMeteoClient, WeatherError


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


router = APIRouter()


def _state(request: Request) -> Any:
    return request.app.state


def _error_response(exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


# -----------------------------
# Health
# -----------------------------


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"success": True, "status": "ok"}


# -----------------------------
# Auth
# -----------------------------

# Request bodies are all-optional: missing fields must reach the service
# validation (400 with a message), not FastAPI's 422.


class RegisterRequest(BaseModel):
    fullName: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class VerifyEmailRequest(BaseModel):
    token: Optional[str] = None


@router.post("/auth/register", status_code=201)
def auth_register(payload: RegisterRequest, request: Request) -> Dict[str, Any]:
    token, user = _state(request).auth.register(
        payload.fullName or "",
        payload.email or "",
        payload.password or "",
    )
    return {
        "success": True,
        "message": "Registration successful! Please check your email to verify your account.",
        "token": token,
        "user": user,
    }


@router.post("/auth/login")
def auth_login(payload: LoginRequest, request: Request) -> Dict[str, Any]:
    token, user = _state(request).auth.login(payload.email or "", payload.password or "")
    return {"success": True, "message": "Login successful", "token": token, "user": user}


@router.get("/auth/me")
def auth_me(request: Request, user_id: int = Depends(get_current_user_id)) -> Dict[str, Any]:
    return {"success": True, "user": _state(request).auth.get_current_user(user_id)}


@router.post("/auth/verify-email")
def auth_verify_email(payload: VerifyEmailRequest, request: Request) -> Dict[str, Any]:
    user = _state(request).auth.verify_email(payload.token or "")
    plan = user["subscriptionStatus"]
    if is_paid_plan(plan):
        message = f"Email verified successfully! Your {plan} plan is active."
    else:
        message = f"Email verified successfully! You have {user['usageCredits']} free credits."
    return {"success": True, "message": message, "user": user}


@router.post("/auth/resend-verification")
def auth_resend_verification(request: Request, user_id: int = Depends(get_current_user_id)) -> Dict[str, Any]:
    _state(request).auth.resend_verification(user_id)
    return {"success": True, "message": "Verification email sent! Please check your inbox."}


# -----------------------------
# Usage / subscription
# -----------------------------


class TrackUsageRequest(BaseModel):
    feature: Optional[str] = None


class SubscribeRequest(BaseModel):
    plan: Optional[str] = None


@router.post("/usage/track")
def usage_track(
    payload: TrackUsageRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> Dict[str, Any]:
    result: TrackResult = _state(request).gate.track(user_id, payload.feature or "")
    return {
        "success": True,
        "message": "Usage tracked",
        "usageCredits": result.remaining,
        "subscriptionStatus": result.subscription_status,
    }


@router.get("/usage/credits")
def usage_credits(request: Request, user_id: int = Depends(get_current_user_id)) -> Dict[str, Any]:
    user = _state(request).auth.get_current_user(user_id)
    return {
        "success": True,
        "usageCredits": user["usageCredits"],
        "subscriptionStatus": user["subscriptionStatus"],
        "isEmailVerified": user["isEmailVerified"],
        "usageHistory": user["usageHistory"],
    }


@router.put("/usage/subscribe")
def usage_subscribe(
    payload: SubscribeRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> Dict[str, Any]:
    user = _state(request).subscriptions.update_subscription(user_id, payload.plan)
    return {
        "success": True,
        "message": f"Subscription updated to {user['subscriptionStatus']}",
        "subscriptionStatus": user["subscriptionStatus"],
        "usageCredits": user["usageCredits"],
    }


# -----------------------------
# Weather (pass-through)
# -----------------------------


@router.get("/weather/forecast")
def weather_forecast(
    request: Request,
    lat: float = Query(...),
    lon: float = Query(...),
    _user_id: int = Depends(get_current_user_id),
) -> Dict[str, Any]:
    try:
        weather = _state(request).weather.fetch(lat, lon)
    except ValueError as e:
        raise ValidationError(str(e))
    except WeatherError as e:
        _debug(f"Weather provider failed: {e.message}")
        raise UpstreamError("Failed to fetch weather data")
    return {"success": True, "weather": weather}


# -----------------------------
# AI (gated)
# -----------------------------


class AnalyzeWeatherRequest(BaseModel):
    locationName: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    weatherData: Optional[Dict[str, Any]] = None


class ChatMessage(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class ChatRequest(BaseModel):
    messages: Optional[List[ChatMessage]] = None


class ReportRequest(BaseModel):
    topic: Optional[str] = None


class ImageRequest(BaseModel):
    prompt: Optional[str] = None


def _generate_gated(
    request: Request,
    user_id: int,
    feature: str,
    prompt: str,
    *,
    image: bool = False,
) -> tuple[str, TrackResult]:
    """Charge the gate first, then call the model.

    The credit is not refunded when generation fails (track is at-most-once).
    """
    st = _state(request)
    result = st.gate.track(user_id, feature)
    try:
        if image:
            out = st.generator.generate_image(prompt)
        else:
            out = st.generator.generate(prompt, system_instruction=SYSTEM_INSTRUCTION)
    except GeminiError as e:
        _debug(f"AI generation failed for feature={feature}: {e.message}")
        raise UpstreamError("AI generation failed. Please try again later.")
    return out, result


@router.post("/ai/analyze-weather")
def ai_analyze_weather(
    payload: AnalyzeWeatherRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> Dict[str, Any]:
    name = (payload.locationName or "").strip()
    if not name or payload.lat is None or payload.lon is None or not payload.weatherData:
        raise ValidationError("Missing required fields")

    prompt = build_weather_analysis_prompt(name, payload.lat, payload.lon, payload.weatherData)
    text, result = _generate_gated(request, user_id, "forecast", prompt)
    return {"success": True, "analysis": text, "usageCredits": result.remaining}


@router.post("/ai/chat")
def ai_chat(
    payload: ChatRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> Dict[str, Any]:
    messages = [m.model_dump() for m in (payload.messages or []) if (m.content or "").strip()]
    if not messages:
        raise ValidationError("Invalid messages format")

    text, result = _generate_gated(request, user_id, "chat", build_chat_prompt(messages))
    return {"success": True, "response": text, "usageCredits": result.remaining}


@router.post("/ai/generate-report")
def ai_generate_report(
    payload: ReportRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> Dict[str, Any]:
    topic = (payload.topic or "").strip()
    if not topic:
        raise ValidationError("Topic is required")

    text, result = _generate_gated(request, user_id, "report", build_report_prompt(topic))
    return {"success": True, "report": text, "usageCredits": result.remaining}


@router.post("/ai/generate-insights")
def ai_generate_insights(request: Request, user_id: int = Depends(get_current_user_id)) -> Dict[str, Any]:
    month = datetime.now(timezone.utc).strftime("%B %Y")
    text, result = _generate_gated(request, user_id, "insights", build_insights_prompt(month))
    return {"success": True, "insights": text, "usageCredits": result.remaining}


@router.post("/ai/generate-image")
def ai_generate_image(
    payload: ImageRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> Dict[str, Any]:
    prompt = (payload.prompt or "").strip()
    if not prompt:
        raise ValidationError("Prompt is required")

    image_url, result = _generate_gated(request, user_id, "image", build_image_prompt(prompt), image=True)
    return {"success": True, "imageUrl": image_url, "usageCredits": result.remaining}


# -----------------------------
# App factory
# -----------------------------


def create_app(
    cfg: Config | None = None,
    *,
    store: Store | None = None,
    mailer: Mailer | None = None,
    generator: Any | None = None,
    weather: Any | None = None,
) -> FastAPI:
    """Build the API with explicitly wired collaborators.

    Anything not passed in is built from config. The store is opened on
    startup and closed on shutdown.
    """
    cfg = cfg or load_config()
    store = store or Store(cfg.DB_DSN)
    mailer = mailer or ResendMailer.from_config(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not store.is_open:
            store.open()
        yield
        store.close()

    app = FastAPI(title="Marinova Ocean Intelligence API", version="0.1.0", lifespan=lifespan)

    app.state.cfg = cfg
    app.state.store = store
    app.state.auth = AuthService(cfg, store, mailer)
    app.state.gate = UsageGate(store)
    app.state.subscriptions = SubscriptionManager(cfg, store)
    app.state.generator = generator or GeminiGenerator(cfg)
    app.state.weather = weather or OpenMeteoClient.from_config(cfg)

    # CORS is mainly needed for local development (SPA dev server -> API).
    cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["*"],
        )

    @app.exception_handler(AppError)
    async def _app_error(_request: Request, exc: AppError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(ValidationError("Invalid request"))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Router-level 404 / 405 and friends, in the same envelope as AppError.
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.middleware("http")
    async def _unexpected_errors(request: Request, call_next):
        """Anything that is not an AppError becomes an opaque 500."""
        if cfg.API_LOG_REQUESTS:
            _debug(f"{request.method} {request.url.path}")
        try:
            return await call_next(request)
        except Exception as e:
            _debug(f"Unhandled error on {request.method} {request.url.path}: {e!r}")
            return _error_response(ServerError())

    app.include_router(router)
    return app


app = create_app()
