"""Unit tests for the Open-Meteo archive client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from suncast.config import Config
from suncast.integrations.open_meteo import (
    ArchiveFetchError,
    fetch_archive_days,
    parse_archive_payload,
)
from tests.fixtures.weather import make_archive_payload


def _response(status_code: int = 200, payload: object = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = "error body"
    response.json.return_value = payload
    return response


class TestParseArchivePayload:
    def test_one_record_per_day(self) -> None:
        days = parse_archive_payload(make_archive_payload("2025-06-01", "2025-06-03"))

        assert [d["date"] for d in days] == ["2025-06-01", "2025-06-02", "2025-06-03"]

    def test_day_fields(self) -> None:
        day = parse_archive_payload(make_archive_payload("2025-06-01", "2025-06-01"))[0]

        assert day["sunrise"] == "06:58"
        assert day["sunset"] == "19:31"
        assert day["weather_code"] == 2
        assert day["temperature_max"] == 20.1
        assert day["temperature_min"] == 11.4
        assert day["precipitation"] == 0.0
        assert day["conditions"] == "Partly Cloudy"
        assert 0 <= day["sunset_score"] <= 100
        assert day["sunset_label"] in {"Excellent", "Good", "Fair", "Poor"}

    def test_samples_hourly_values_at_sunset_hour(self) -> None:
        payload = make_archive_payload("2025-06-01", "2025-06-01")
        payload["hourly"]["cloud_cover"][18] = 55
        payload["hourly"]["relative_humidity_2m"][18] = 62
        payload["hourly"]["wind_speed_10m"][18] = 14.5

        day = parse_archive_payload(payload)[0]

        assert day["cloud_coverage"] == 55
        assert day["humidity"] == 62
        assert day["wind_speed"] == 14.5

    def test_missing_hourly_block(self) -> None:
        payload = make_archive_payload("2025-06-01", "2025-06-02")
        del payload["hourly"]

        days = parse_archive_payload(payload)

        assert len(days) == 2
        assert "cloud_coverage" not in days[0]
        assert "sunset_score" in days[0]

    def test_short_columns_become_none(self) -> None:
        payload = make_archive_payload("2025-06-01", "2025-06-02")
        payload["daily"]["temperature_2m_max"] = [20.1]

        days = parse_archive_payload(payload)

        assert days[0]["temperature_max"] == 20.1
        assert days[1]["temperature_max"] is None

    def test_missing_daily_raises(self) -> None:
        with pytest.raises(ArchiveFetchError, match="no daily data"):
            parse_archive_payload({"error": True, "reason": "Invalid date"})

    def test_non_object_raises(self) -> None:
        with pytest.raises(ArchiveFetchError):
            parse_archive_payload(["2025-06-01"])


class TestFetchArchiveDays:
    def test_success(self) -> None:
        payload = make_archive_payload("2025-06-01", "2025-06-05")
        with patch(
            "suncast.integrations.open_meteo.requests.get", return_value=_response(payload=payload)
        ) as mock_get:
            days = fetch_archive_days(40.71, -74.01, "2025-06-01", "2025-06-05")

        assert len(days) == 5
        mock_get.assert_called_once()

    def test_request_parameters(self) -> None:
        payload = make_archive_payload("2025-06-01", "2025-06-01")
        with patch(
            "suncast.integrations.open_meteo.requests.get", return_value=_response(payload=payload)
        ) as mock_get:
            fetch_archive_days(40.71, -74.01, "2025-06-01", "2025-06-01")

        args, kwargs = mock_get.call_args
        assert args[0] == Config.ARCHIVE_API_URL
        params = kwargs["params"]
        assert params["latitude"] == 40.71
        assert params["longitude"] == -74.01
        assert params["start_date"] == "2025-06-01"
        assert params["end_date"] == "2025-06-01"
        assert "sunset" in params["daily"]
        assert "cloud_cover" in params["hourly"]
        assert params["timezone"] == "auto"
        assert kwargs["timeout"] == Config.ARCHIVE_API_TIMEOUT
        assert kwargs["headers"]["User-Agent"].startswith("Suncast/")

    def test_http_error(self) -> None:
        with patch(
            "suncast.integrations.open_meteo.requests.get", return_value=_response(status_code=429)
        ):
            with pytest.raises(ArchiveFetchError) as exc_info:
                fetch_archive_days(40.71, -74.01, "2025-06-01", "2025-06-05")

        assert exc_info.value.status_code == 429

    def test_network_error(self) -> None:
        with patch(
            "suncast.integrations.open_meteo.requests.get",
            side_effect=requests.ConnectionError("connection refused"),
        ):
            with pytest.raises(ArchiveFetchError, match="connection refused") as exc_info:
                fetch_archive_days(40.71, -74.01, "2025-06-01", "2025-06-05")

        assert exc_info.value.status_code is None

    def test_timeout(self) -> None:
        with patch(
            "suncast.integrations.open_meteo.requests.get",
            side_effect=requests.Timeout("read timed out"),
        ):
            with pytest.raises(ArchiveFetchError):
                fetch_archive_days(40.71, -74.01, "2025-06-01", "2025-06-05")

    def test_invalid_json(self) -> None:
        response = _response()
        response.json.side_effect = ValueError("Expecting value")
        with patch("suncast.integrations.open_meteo.requests.get", return_value=response):
            with pytest.raises(ArchiveFetchError, match="not valid JSON"):
                fetch_archive_days(40.71, -74.01, "2025-06-01", "2025-06-05")
