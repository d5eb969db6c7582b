"""get_weather tool: current conditions from the Open-Meteo forecast API."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, Field

from tinman.tools.base import Tool, ToolContext
from tinman.validation.adapter import create_streaming_schema

FORECAST_URL = "https://api.open-meteo.com/v1/forecast"


class WeatherInput(BaseModel):
    """Arguments of get_weather."""

    latitude: float = Field(ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(ge=-180, le=180, description="Longitude in degrees")


async def fetch_weather(
    latitude: float, longitude: float, client: httpx.AsyncClient,
) -> dict[str, Any]:
    """Fetch the forecast for a coordinate.

    Raises:
        httpx.HTTPError: On transport failure or a non-2xx response.
    """
    response = await client.get(
        FORECAST_URL,
        params={
            "latitude": latitude,
            "longitude": longitude,
            "current": "temperature_2m",
            "hourly": "temperature_2m",
            "daily": "sunrise,sunset",
            "timezone": "auto",
        },
        timeout=10.0,
    )
    response.raise_for_status()
    return response.json()


async def get_weather(params: WeatherInput, context: ToolContext) -> dict[str, Any]:
    if context.http_client is not None:
        return await fetch_weather(params.latitude, params.longitude, context.http_client)
    async with httpx.AsyncClient() as client:
        return await fetch_weather(params.latitude, params.longitude, client)


GET_WEATHER_TOOL = Tool(
    name="get_weather",
    description="Get the current weather at a location.",
    schema=create_streaming_schema(WeatherInput),
    execute=get_weather,
)
