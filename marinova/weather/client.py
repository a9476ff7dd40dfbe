from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import requests

from marinova.config import Config


def _debug(msg: str) -> None:
    print(f"[weather] {msg}")


@dataclass
class WeatherError(Exception):
    message: str


HOURLY_FIELDS = (
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "precipitation_probability",
    "precipitation",
    "weather_code",
    "pressure_msl",
    "cloud_cover",
    "visibility",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
)

DAILY_FIELDS = (
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "sunrise",
    "sunset",
    "uv_index_max",
    "precipitation_sum",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
    "wind_direction_10m_dominant",
)

CURRENT_FIELDS = (
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "is_day",
    "precipitation",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
)


def validate_coordinates(lat: float, lon: float) -> None:
    if not (-90.0 <= float(lat) <= 90.0):
        raise ValueError("latitude_out_of_range")
    if not (-180.0 <= float(lon) <= 180.0):
        raise ValueError("longitude_out_of_range")


class OpenMeteoClient:
    """Current / hourly / daily forecast from Open-Meteo, returned verbatim."""

    def __init__(self, base_url: str, timeout_seconds: int = 30):
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, cfg: Config) -> "OpenMeteoClient":
        return cls(cfg.WEATHER_BASE_URL, cfg.WEATHER_TIMEOUT_SECONDS)

    def fetch(self, lat: float, lon: float) -> Dict[str, Any]:
        validate_coordinates(lat, lon)
        url = f"{self.base_url.rstrip('/')}/forecast"
        params = {
            "latitude": float(lat),
            "longitude": float(lon),
            "hourly": ",".join(HOURLY_FIELDS),
            "daily": ",".join(DAILY_FIELDS),
            "current": ",".join(CURRENT_FIELDS),
            "timezone": "auto",
            "forecast_days": 7,
        }
        _debug(f"Fetching forecast: lat={lat} lon={lon}")
        try:
            r = requests.get(url, params=params, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise WeatherError(f"Open-Meteo request failed: {e}")
        if r.status_code != 200:
            raise WeatherError(f"Open-Meteo error {r.status_code}: {r.text}")
        try:
            data = r.json()
        except ValueError:
            raise WeatherError("Open-Meteo returned non-JSON response")
        if not isinstance(data, dict):
            raise WeatherError("Open-Meteo returned unexpected payload")
        return data
