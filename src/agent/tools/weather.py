"""Weather tool configuration for the AI agent.

Weather lookups are confirmation-gated: the model may request them, but the
handler only runs once a human approves the call. Data comes from the
Open-Meteo geocoding and forecast APIs, which need no API key.
"""

import logging
from typing import Any, cast

import requests
from pydantic import BaseModel, Field

from src.agent.models import ToolDef

logger = logging.getLogger(__name__)

GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

# Timeout for weather API requests in seconds
REQUEST_TIMEOUT = 10

# WMO weather interpretation codes used by Open-Meteo
WEATHER_CODES: dict[int, str] = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    71: "slight snow",
    73: "moderate snow",
    75: "heavy snow",
    80: "rain showers",
    81: "heavy rain showers",
    82: "violent rain showers",
    95: "thunderstorm",
}


class WeatherArgs(BaseModel):
    """Arguments for looking up the weather."""

    city: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Name of the city to get the current weather for",
    )


def _get_json(url: str, params: dict[str, Any]) -> dict[str, Any]:
    response = requests.get(url, params=params, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return cast(dict[str, Any], response.json())


def _get_weather_handler(args: BaseModel) -> dict[str, Any]:
    """Handle a weather lookup.

    :param args: WeatherArgs instance.
    :returns: Current conditions for the city.
    :raises ValueError: If the city cannot be found.
    """
    weather_args = cast(WeatherArgs, args)
    logger.debug(f"Looking up weather: city={weather_args.city!r}")

    geocoding = _get_json(GEOCODING_URL, {"name": weather_args.city, "count": 1})
    results = geocoding.get("results") or []
    if not results:
        raise ValueError(f"Unknown city: {weather_args.city}")
    place = results[0]

    forecast = _get_json(
        FORECAST_URL,
        {
            "latitude": place["latitude"],
            "longitude": place["longitude"],
            "current": "temperature_2m,weather_code,wind_speed_10m",
        },
    )
    current = forecast.get("current", {})
    code = current.get("weather_code")

    return {
        "city": place.get("name", weather_args.city),
        "country": place.get("country"),
        "temperature_c": current.get("temperature_2m"),
        "wind_speed_kmh": current.get("wind_speed_10m"),
        "conditions": WEATHER_CODES.get(code, "unknown") if code is not None else "unknown",
    }


GET_WEATHER_TOOL = ToolDef(
    name="get_weather_information",
    description=(
        "Get the current weather for a city. Requires the user's approval before it runs; "
        "if the user denies it, tell them the lookup was not performed."
    ),
    args_model=WeatherArgs,
    handler=_get_weather_handler,
)


def get_weather_tools() -> list[ToolDef]:
    """Get all weather tool definitions.

    :returns: List of ToolDef instances for weather operations.
    """
    return [GET_WEATHER_TOOL]
