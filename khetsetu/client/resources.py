"""Farm, crop, weather, market and pest endpoints of the KhetSetu backend."""

from __future__ import annotations

from typing import Any, Iterable
from urllib.parse import urlencode

from khetsetu.client.http_client import HttpClient


def sanitize_plot_numbers(plot_numbers: Iterable[Any]) -> list[int]:
    """Coerce plot numbers to positive integers, dropping anything else."""
    cleaned: list[int] = []
    for raw in plot_numbers:
        try:
            number = int(float(raw))
        except (TypeError, ValueError, OverflowError):
            continue
        if number > 0:
            cleaned.append(number)
    return cleaned


def _with_query(path: str, params: dict[str, Any]) -> str:
    present = {key: value for key, value in params.items() if value not in (None, "")}
    if not present:
        return path
    return f"{path}?{urlencode(present)}"


class ResourceClient:
    """Thin wrappers returning raw response envelopes."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    def get_farms(self) -> dict[str, Any]:
        return self._client.request("/farms")

    def get_farm(self, farm_id: str) -> dict[str, Any]:
        return self._client.request(f"/farms/{farm_id}")

    def create_farm(self, farm_data: dict[str, Any]) -> dict[str, Any]:
        return self._client.request("/farms", method="POST", json_body=farm_data)

    def update_farm(self, farm_id: str, farm_data: dict[str, Any]) -> dict[str, Any]:
        return self._client.request(f"/farms/{farm_id}", method="PUT", json_body=farm_data)

    def delete_farm(self, farm_id: str) -> dict[str, Any]:
        return self._client.request(f"/farms/{farm_id}", method="DELETE")

    def get_dashboard(self) -> dict[str, Any]:
        return self._client.request("/farms/dashboard")

    def get_farm_stats(self) -> dict[str, Any]:
        return self._client.request("/farms/stats")

    def update_plot(
        self, farm_id: str, plot_number: int, plot_data: dict[str, Any]
    ) -> dict[str, Any]:
        return self._client.request(
            f"/farms/{farm_id}/plots/{plot_number}", method="PUT", json_body=plot_data
        )

    def bulk_update_plots(
        self, farm_id: str, plot_numbers: Iterable[Any], plot_data: dict[str, Any]
    ) -> dict[str, Any]:
        return self._client.request(
            f"/farms/{farm_id}/plots/bulk-update",
            method="PUT",
            json_body={
                "plotNumbers": sanitize_plot_numbers(plot_numbers),
                "plotData": plot_data,
            },
        )

    def bulk_clear_plots(self, farm_id: str, plot_numbers: Iterable[Any]) -> dict[str, Any]:
        return self._client.request(
            f"/farms/{farm_id}/plots/bulk-clear",
            method="PUT",
            json_body={"plotNumbers": sanitize_plot_numbers(plot_numbers)},
        )

    def add_plot_activity(
        self, farm_id: str, plot_number: int, activity: dict[str, Any]
    ) -> dict[str, Any]:
        return self._client.request(
            f"/farms/{farm_id}/plots/{plot_number}/activities",
            method="POST",
            json_body=activity,
        )

    def get_crops(self) -> dict[str, Any]:
        return self._client.request("/crops")

    def get_crop_recommendations(self, farm_data: dict[str, Any]) -> dict[str, Any]:
        return self._client.request("/crops/recommendations", method="POST", json_body=farm_data)

    def get_weather(self, lat: float, lon: float) -> dict[str, Any]:
        return self._client.request(_with_query("/weather", {"lat": lat, "lon": lon}))

    def get_market_prices(
        self, crop: str | None = None, location: str | None = None
    ) -> dict[str, Any]:
        return self._client.request(
            _with_query("/market/prices", {"crop": crop, "location": location})
        )

    def get_pest_alerts(self, location: str | None = None) -> dict[str, Any]:
        return self._client.request(_with_query("/pests/alerts", {"location": location}))

    def report_pest(self, pest_data: dict[str, Any]) -> dict[str, Any]:
        return self._client.request("/pests/report", method="POST", json_body=pest_data)
