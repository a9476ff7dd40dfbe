from __future__ import annotations

import re
import threading
from typing import Any, Callable, Dict, List

import pytest
from fastapi.testclient import TestClient

from marinova.ai.gemini import GeminiError
from marinova.api.server import create_app
from marinova.auth.service import AuthService
from marinova.billing.subscriptions import SubscriptionManager
from marinova.config import Config
from marinova.db import Store
from marinova.mail.mailer import SendResult
from marinova.usage.gate import UsageGate
from marinova.weather.client import WeatherError


class FakeMailer:
    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []
        self.fail = False
        self.explode = False

    def send(self, to: str, subject: str, html: str) -> SendResult:
        if self.explode:
            raise RuntimeError("smtp connection reset")
        self.sent.append({"to": to, "subject": subject, "html": html})
        if self.fail:
            return SendResult(success=False, error="mail_provider_down")
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")

    def last_token(self) -> str:
        m = re.search(r"/verify/([0-9a-f]{64})", self.sent[-1]["html"])
        assert m is not None
        return m.group(1)


class FakeGenerator:
    def __init__(self) -> None:
        self.prompts: List[str] = []
        self.fail = False

    def generate(self, prompt: str, system_instruction: str | None = None) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise GeminiError("HTTP 503: overloaded")
        return f"generated #{len(self.prompts)}"

    def generate_image(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise GeminiError("HTTP 503: overloaded")
        return "data:image/png;base64,iVBORw0KGgo="


class FakeWeather:
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.fail = False

    def fetch(self, lat: float, lon: float) -> Dict[str, Any]:
        if not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
            raise ValueError("latitude_out_of_range")
        self.calls.append((lat, lon))
        if self.fail:
            raise WeatherError("Open-Meteo error 500")
        return {"latitude": lat, "longitude": lon, "current": {"temperature_2m": 18.4, "wind_speed_10m": 22.0}}


@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        DB_DSN=str(tmp_path / "marinova-test.sqlite"),
        AUTH_JWT_SECRET="test-secret",
        AUTH_TOKEN_EXPIRE_MINUTES=10080,
        AUTH_PASSWORD_MIN_LENGTH=6,
        AUTH_ALLOWED_EMAIL_DOMAIN="gmail.com",
        FREE_USAGE_CREDITS=3,
        PAID_USAGE_CREDITS=999999,
        FRONTEND_URL="http://localhost:3000",
        RESEND_API_KEY=None,
        CORS_ALLOW_ORIGINS="",
    )


@pytest.fixture
def store(cfg):
    s = Store(cfg.DB_DSN).open()
    yield s
    s.close()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def weather() -> FakeWeather:
    return FakeWeather()


@pytest.fixture
def auth(cfg, store, mailer) -> AuthService:
    return AuthService(cfg, store, mailer)


@pytest.fixture
def gate(store) -> UsageGate:
    return UsageGate(store)


@pytest.fixture
def subscriptions(cfg, store) -> SubscriptionManager:
    return SubscriptionManager(cfg, store)


@pytest.fixture
def verified_user(auth, mailer):
    """Register + verify an account; returns its public view."""

    def _make(email: str = "alice@gmail.com", full_name: str = "Alice Waters") -> Dict[str, Any]:
        auth.register(full_name, email, "seaspray42")
        return auth.verify_email(mailer.last_token())

    return _make


@pytest.fixture
def client(cfg, store, mailer, generator, weather):
    app = create_app(cfg, store=store, mailer=mailer, generator=generator, weather=weather)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def run_concurrently():
    """Run callables on parallel threads; re-raise the first unexpected error."""

    def _run(*targets: Callable[[], Any]) -> None:
        errors: List[BaseException] = []

        def _wrap(fn: Callable[[], Any]) -> Callable[[], None]:
            def _inner() -> None:
                try:
                    fn()
                except BaseException as e:  # surfaced on the main thread below
                    errors.append(e)

            return _inner

        threads = [threading.Thread(target=_wrap(fn)) for fn in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        assert not any(t.is_alive() for t in threads)
        if errors:
            raise errors[0]

    return _run
