from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List

import requests

from marinova.config import Config


def _debug(msg: str) -> None:
    print(f"[ai] {msg}")


@dataclass
class GeminiError(Exception):
    message: str


def _endpoint(base_url: str, model: str) -> str:
    base = base_url.rstrip("/")
    if not base.endswith("/v1beta"):
        base = f"{base}/v1beta"
    return f"{base}/models/{model}:generateContent"


def _first_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    # candidates[0].content.parts
    candidates = data.get("candidates") or []
    if not candidates:
        raise GeminiError(f"No candidates in response: {data}")
    return ((candidates[0] or {}).get("content") or {}).get("parts") or []


def _extract_text(data: Dict[str, Any]) -> str:
    text = "".join(str(p["text"]) for p in _first_parts(data) if "text" in p)
    if not text:
        raise GeminiError(f"No text in response: {data}")
    return text


def _extract_image_url(data: Dict[str, Any]) -> str:
    """First inline image as a data: URL."""
    for p in _first_parts(data):
        blob = p.get("inlineData") or p.get("inline_data")
        if blob and blob.get("data"):
            mime = blob.get("mimeType") or blob.get("mime_type") or "image/png"
            return f"data:{mime};base64,{blob['data']}"
    raise GeminiError("No image in response")


class GeminiGenerator:
    """Text and image generator behind the gated AI routes (Gemini generateContent over REST).

    5xx responses and transport errors are retried with linear backoff;
    4xx fails immediately.
    """

    def __init__(self, cfg: Config, retries: int = 3, timeout_seconds: int = 60):
        self.cfg = cfg
        self.retries = max(1, retries)
        self.timeout_seconds = timeout_seconds

    def _post(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.cfg.GEMINI_API_KEY:
            raise GeminiError("GEMINI_API_KEY is not configured")

        url = _endpoint(self.cfg.GEMINI_BASE_URL, model)
        headers = {"x-goog-api-key": self.cfg.GEMINI_API_KEY}

        last_err = "no attempt made"
        for attempt in range(1, self.retries + 1):
            try:
                r = requests.post(url, json=body, headers=headers, timeout=self.timeout_seconds)
            except requests.RequestException as e:
                last_err = f"transport: {e}"
            else:
                if r.status_code == 200:
                    try:
                        return r.json()
                    except ValueError:
                        raise GeminiError("Gemini returned non-JSON response")
                last_err = f"HTTP {r.status_code}: {r.text}"
                if r.status_code < 500:
                    raise GeminiError(last_err)

            if attempt < self.retries:
                _debug(f"Gemini attempt {attempt} failed: {last_err}")
                time.sleep(1.5 * attempt)

        raise GeminiError(f"Failed to call Gemini: {last_err}")

    def generate(self, prompt: str, system_instruction: str | None = None) -> str:
        if not prompt:
            raise GeminiError("Empty prompt")
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": float(self.cfg.AI_TEMPERATURE),
                "maxOutputTokens": int(self.cfg.AI_MAX_TOKENS),
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return _extract_text(self._post(self.cfg.GEMINI_MODEL, body))

    def generate_image(self, prompt: str) -> str:
        if not prompt:
            raise GeminiError("Empty prompt")
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        return _extract_image_url(self._post(self.cfg.GEMINI_IMAGE_MODEL, body))
