from __future__ import annotations

import json
from typing import Any, Dict, List


SYSTEM_INSTRUCTION = """
You are Marinova, an ocean and marine-weather assistant for sailors, surfers,
fishers and coastal operators. Be concise and practical. Use metric units.
Never present a forecast as a safety guarantee.
""".strip()


def _compact(data: Any, limit: int = 12000) -> str:
    # Large hourly arrays are trimmed; the model only needs the shape and recent values.
    s = json.dumps(data, separators=(",", ":"), default=str)
    return s if len(s) <= limit else s[:limit] + "..."


def build_weather_analysis_prompt(location_name: str, lat: float, lon: float, weather: Dict[str, Any]) -> str:
    return f"""
Write a short marine weather brief for {location_name} (lat {lat:.3f}, lon {lon:.3f}).
Cover current conditions, the next 24 hours, wind and gusts, and any notable risks.
End with one line on overall conditions for small craft.

Weather data (JSON):
{_compact(weather)}
""".strip()


def build_chat_prompt(messages: List[Dict[str, str]]) -> str:
    lines = []
    for m in messages:
        role = "Assistant" if (m.get("role") or "").lower() in ("assistant", "model") else "User"
        lines.append(f"{role}: {(m.get('content') or '').strip()}")
    lines.append("Assistant:")
    return "\n".join(lines)


def build_report_prompt(topic: str) -> str:
    return f"""
Write a structured research report on: {topic.strip()}

Sections: Summary, Background, Current Conditions and Trends, Risks, Outlook.
Use markdown headings.
""".strip()


def build_insights_prompt(month: str) -> str:
    return f"""
Give monthly ocean insights for {month}: three notable seasonal patterns
(temperature, swell, storms), one watch-out, and one opportunity for coastal users.
Use short markdown bullet points.
""".strip()


def build_image_prompt(prompt: str) -> str:
    return f"Ocean and coastal illustration, realistic lighting, no text overlays: {prompt.strip()}"
