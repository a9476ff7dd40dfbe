from __future__ import annotations

import time

import jwt


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _register(client, email="alice@gmail.com", name="Alice Waters", password="seaspray42"):
    return client.post("/auth/register", json={"fullName": name, "email": email, "password": password})


def _verified_token(client, mailer, email="alice@gmail.com"):
    token = _register(client, email=email).json()["token"]
    r = client.post("/auth/verify-email", json={"token": mailer.last_token()})
    assert r.status_code == 200
    return token


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"success": True, "status": "ok"}


def test_signup_verify_spend_and_upgrade(client, mailer):
    r = _register(client)
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["user"]["isEmailVerified"] is False
    assert body["user"]["usageCredits"] == 3
    token = body["token"]

    r = client.post("/usage/track", json={"feature": "forecast"}, headers=bearer(token))
    assert r.status_code == 403
    assert r.json()["requiresVerification"] is True

    r = client.post("/auth/verify-email", json={"token": mailer.last_token()})
    assert r.status_code == 200
    assert r.json()["message"] == "Email verified successfully! You have 3 free credits."

    for expected in (2, 1, 0):
        r = client.post("/usage/track", json={"feature": "forecast"}, headers=bearer(token))
        assert r.status_code == 200
        assert r.json()["usageCredits"] == expected

    r = client.post("/usage/track", json={"feature": "forecast"}, headers=bearer(token))
    assert r.status_code == 403
    assert r.json()["requiresSubscription"] is True
    assert r.json()["usageCredits"] == 0

    r = client.put("/usage/subscribe", json={"plan": "retail_india"}, headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["message"] == "Subscription updated to retail_india"
    assert r.json()["usageCredits"] == 999999

    r = client.post("/usage/track", json={"feature": "chat"}, headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["subscriptionStatus"] == "retail_india"

    r = client.get("/usage/credits", headers=bearer(token))
    assert r.status_code == 200
    assert [h["feature"] for h in r.json()["usageHistory"]] == ["forecast"] * 3 + ["chat"]


def test_register_validation_errors(client):
    r = _register(client, email="bob@yahoo.com")
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Only @gmail.com email addresses are allowed"}

    r = client.post("/auth/register", json={"email": "bob@gmail.com"})
    assert r.status_code == 400
    assert r.json()["message"] == "Please provide all required fields"

    r = client.post("/auth/register", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400


def test_register_duplicate(client):
    assert _register(client).status_code == 201
    r = _register(client, email="ALICE@gmail.com")
    assert r.status_code == 400
    assert r.json()["message"] == "User with this email already exists"


def test_login_failures_look_the_same(client):
    _register(client)
    wrong = client.post("/auth/login", json={"email": "alice@gmail.com", "password": "nope-nope"})
    unknown = client.post("/auth/login", json={"email": "zed@gmail.com", "password": "seaspray42"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()

    ok = client.post("/auth/login", json={"email": "alice@gmail.com", "password": "seaspray42"})
    assert ok.status_code == 200
    assert ok.json()["user"]["email"] == "alice@gmail.com"


def test_me_requires_valid_token(client, cfg):
    r = client.get("/auth/me")
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"
    assert r.json()["message"] == "No authentication token, access denied"

    r = client.get("/auth/me", headers=bearer("garbage"))
    assert r.status_code == 401
    assert r.json()["message"] == "Token is invalid or expired"

    now = int(time.time())
    expired = jwt.encode({"sub": "1", "iat": now - 120, "exp": now - 60}, cfg.AUTH_JWT_SECRET, algorithm="HS256")
    r = client.get("/auth/me", headers=bearer(expired))
    assert r.status_code == 401

    forged = jwt.encode({"sub": "1", "exp": now + 600}, "someone-else", algorithm="HS256")
    assert client.get("/auth/me", headers=bearer(forged)).status_code == 401


def test_me_for_deleted_account(client, store):
    body = _register(client).json()
    with store.session() as conn:
        conn.execute("DELETE FROM users WHERE user_id=?", (body["user"]["id"],))
    r = client.get("/auth/me", headers=bearer(body["token"]))
    assert r.status_code == 404
    assert r.json()["message"] == "User not found"


def test_me_returns_redacted_user(client):
    token = _register(client).json()["token"]
    user = client.get("/auth/me", headers=bearer(token)).json()["user"]
    assert user["usageHistory"] == []
    assert not {"password_hash", "passwordHash", "verification_token", "verificationToken"} & set(user)


def test_verify_email_errors(client, mailer):
    r = client.post("/auth/verify-email", json={})
    assert r.status_code == 400
    assert r.json()["message"] == "Verification token is required"

    _register(client)
    token = mailer.last_token()
    assert client.post("/auth/verify-email", json={"token": token}).status_code == 200
    r = client.post("/auth/verify-email", json={"token": token})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid or expired verification token"


def test_resend_verification(client, mailer):
    token = _register(client).json()["token"]

    r = client.post("/auth/resend-verification", headers=bearer(token))
    assert r.status_code == 200
    assert len(mailer.sent) == 2

    mailer.fail = True
    r = client.post("/auth/resend-verification", headers=bearer(token))
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to send verification email. Please try again."

    mailer.fail = False
    client.post("/auth/verify-email", json={"token": mailer.last_token()})
    r = client.post("/auth/resend-verification", headers=bearer(token))
    assert r.status_code == 400
    assert r.json()["message"] == "Email is already verified"


def test_track_requires_feature(client, mailer):
    token = _verified_token(client, mailer)
    r = client.post("/usage/track", json={}, headers=bearer(token))
    assert r.status_code == 400
    assert r.json()["message"] == "Feature name is required"


def test_subscribe_rejects_unknown_plan(client, mailer):
    token = _verified_token(client, mailer)
    r = client.put("/usage/subscribe", json={"plan": "platinum"}, headers=bearer(token))
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_weather_forecast(client, mailer, weather):
    token = _verified_token(client, mailer)

    r = client.get("/weather/forecast", params={"lat": 15.5, "lon": 73.8}, headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["weather"]["current"]["temperature_2m"] == 18.4
    assert weather.calls == [(15.5, 73.8)]

    r = client.get("/weather/forecast", params={"lat": 95, "lon": 0}, headers=bearer(token))
    assert r.status_code == 400

    r = client.get("/weather/forecast", params={"lat": 15.5}, headers=bearer(token))
    assert r.status_code == 400

    weather.fail = True
    r = client.get("/weather/forecast", params={"lat": 1, "lon": 2}, headers=bearer(token))
    assert r.status_code == 502
    assert r.json()["message"] == "Failed to fetch weather data"


def test_weather_forecast_is_not_metered(client, mailer):
    token = _verified_token(client, mailer)
    client.get("/weather/forecast", params={"lat": 1, "lon": 2}, headers=bearer(token))
    assert client.get("/usage/credits", headers=bearer(token)).json()["usageCredits"] == 3


def test_analyze_weather_spends_a_credit(client, mailer, generator):
    token = _verified_token(client, mailer)
    payload = {"locationName": "Goa", "lat": 15.5, "lon": 73.8, "weatherData": {"current": {"wind_speed_10m": 12}}}

    r = client.post("/ai/analyze-weather", json=payload, headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["analysis"] == "generated #1"
    assert r.json()["usageCredits"] == 2
    assert "Goa" in generator.prompts[0]

    r = client.post("/ai/analyze-weather", json={"locationName": "Goa"}, headers=bearer(token))
    assert r.status_code == 400
    assert r.json()["message"] == "Missing required fields"


def test_chat_and_report_need_a_subscription(client, mailer, generator):
    token = _verified_token(client, mailer)

    r = client.post("/ai/chat", json={"messages": [{"role": "user", "content": "Surf tomorrow?"}]}, headers=bearer(token))
    assert r.status_code == 403
    assert r.json()["requiresSubscription"] is True

    r = client.post("/ai/generate-report", json={"topic": "Monsoon swell"}, headers=bearer(token))
    assert r.status_code == 403
    assert generator.prompts == []

    client.put("/usage/subscribe", json={"plan": "enterprise"}, headers=bearer(token))

    r = client.post("/ai/chat", json={"messages": [{"role": "user", "content": "Surf tomorrow?"}]}, headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["response"] == "generated #1"
    assert "User: Surf tomorrow?" in generator.prompts[0]

    r = client.post("/ai/generate-report", json={"topic": "Monsoon swell"}, headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["usageCredits"] == 999999


def test_chat_and_report_input_validation(client, mailer):
    token = _verified_token(client, mailer)
    r = client.post("/ai/chat", json={"messages": []}, headers=bearer(token))
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid messages format"

    r = client.post("/ai/generate-report", json={"topic": "  "}, headers=bearer(token))
    assert r.status_code == 400
    assert r.json()["message"] == "Topic is required"


def test_generation_failure_is_502_and_keeps_the_charge(client, mailer, generator):
    token = _verified_token(client, mailer)
    generator.fail = True

    r = client.post("/ai/generate-insights", headers=bearer(token))
    assert r.status_code == 502
    assert r.json()["message"] == "AI generation failed. Please try again later."

    credits = client.get("/usage/credits", headers=bearer(token)).json()
    assert credits["usageCredits"] == 2
    assert [h["feature"] for h in credits["usageHistory"]] == ["insights"]


def test_unverified_user_cannot_generate(client, mailer, generator):
    token = _register(client).json()["token"]
    r = client.post("/ai/generate-insights", headers=bearer(token))
    assert r.status_code == 403
    assert r.json()["requiresVerification"] is True
    assert generator.prompts == []


def test_unexpected_error_becomes_opaque_500(client, mailer, monkeypatch):
    token = _verified_token(client, mailer)

    def _boom(user_id, feature):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(client.app.state.gate, "track", _boom)
    r = client.post("/usage/track", json={"feature": "forecast"}, headers=bearer(token))
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Server error"}


def test_unknown_route_and_wrong_method_use_the_envelope(client):
    r = client.get("/no-such-route")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Not Found"}

    r = client.delete("/health")
    assert r.status_code == 405
    assert r.json() == {"success": False, "message": "Method Not Allowed"}


def test_verify_after_upgrade_names_the_plan(client, mailer):
    token = _register(client).json()["token"]
    r = client.put("/usage/subscribe", json={"plan": "enterprise"}, headers=bearer(token))
    assert r.status_code == 200

    r = client.post("/auth/verify-email", json={"token": mailer.last_token()})
    assert r.status_code == 200
    assert r.json()["message"] == "Email verified successfully! Your enterprise plan is active."
    assert "free credits" not in r.json()["message"]


def test_generate_image_spends_a_credit(client, mailer, generator):
    token = _verified_token(client, mailer)
    r = client.post("/ai/generate-image", json={"prompt": "Lighthouse in a storm"}, headers=bearer(token))
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["imageUrl"].startswith("data:image/png;base64,")
    assert body["usageCredits"] == 2
    assert "Lighthouse in a storm" in generator.prompts[-1]


def test_generate_image_errors(client, mailer, generator):
    r = client.post("/ai/generate-image", json={"prompt": "Reef"}, headers=bearer(_register(client).json()["token"]))
    assert r.status_code == 403
    assert r.json()["requiresVerification"] is True

    token = _verified_token(client, mailer, email="bob@gmail.com")
    r = client.post("/ai/generate-image", json={"prompt": "   "}, headers=bearer(token))
    assert r.status_code == 400
    assert r.json()["message"] == "Prompt is required"

    generator.fail = True
    r = client.post("/ai/generate-image", json={"prompt": "Reef"}, headers=bearer(token))
    assert r.status_code == 502
    assert generator.prompts and "Reef" in generator.prompts[-1]
