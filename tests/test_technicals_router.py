"""Integration tests for the technical analysis endpoints."""

from datetime import datetime, timedelta
from unittest.mock import patch

import numpy as np
from fastapi.testclient import TestClient

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app


client = TestClient(app)


def _payload(prices, volume: float = 1000.0, **extra) -> dict:
    start = datetime(2024, 1, 1)
    points = [
        {"timestamp": (start + timedelta(days=i)).isoformat(), "price": float(p), "volume": volume}
        for i, p in enumerate(prices)
    ]
    return {"ticker": "TEST", "points": points, **extra}


def _double_top_prices() -> list[float]:
    prices = [100.0] * 60
    for center in (40, 48):
        for d in range(-3, 4):
            prices[center + d] = 100.0 + 10.0 * (1 - abs(d) / 4)
    return prices


class TestAnalysisEndpoint:
    """POST /api/technicals/analysis."""

    def test_full_analysis(self):
        """A valid series returns a complete report."""
        response = client.post("/api/technicals/analysis", json=_payload(np.linspace(100, 160, 60)))
        assert response.status_code == 200
        data = response.json()
        assert data["ticker"] == "TEST"
        report = data["report"]
        assert report["data_points"] == 60
        assert report["fibonacci"]["trend"] == "uptrend"
        assert report["bullishness"]["overall"] > 50
        assert len(report["risk_levels"]) == 60
        assert report["candlestick_patterns"] == []
        assert report["trendlines"] == []

    def test_undefined_macd_is_null(self):
        """NaN indicator values are encoded as null."""
        response = client.post("/api/technicals/analysis", json=_payload(np.linspace(100, 160, 60)))
        macd = response.json()["report"]["indicators"]["macd"]["macd"]
        assert macd[0] is None
        assert macd[-1] is not None

    def test_insufficient_data_is_400(self):
        """Short series are a client error with the reason in detail."""
        response = client.post("/api/technicals/analysis", json=_payload(np.linspace(100, 110, 10)))
        assert response.status_code == 400
        assert "Insufficient data" in response.json()["detail"]

    def test_invalid_point_is_422(self):
        """Non-positive prices fail request validation."""
        payload = _payload(np.linspace(100, 160, 60))
        payload["points"][0]["price"] = -1
        response = client.post("/api/technicals/analysis", json=payload)
        assert response.status_code == 422

    @patch("routers.technicals.TechnicalAnalyzer.analyze", side_effect=RuntimeError("boom"))
    def test_unexpected_error_is_500(self, mock_analyze):
        """Unexpected failures return 500 and never a partial report."""
        response = client.post("/api/technicals/analysis", json=_payload(np.linspace(100, 160, 60)))
        assert response.status_code == 500
        assert "report" not in response.json()


class TestComponentEndpoints:
    """Indicators, patterns and volume profile."""

    def test_indicators(self):
        """Indicators are aligned with the points."""
        response = client.post("/api/technicals/indicators", json=_payload(np.linspace(100, 130, 40)))
        assert response.status_code == 200
        indicators = response.json()["indicators"]
        assert len(indicators["sma20"]) == 40
        assert len(indicators["rsi"]) == 40

    def test_indicators_shorter_than_macd_is_400(self):
        """Twenty points cannot seed the 26-bar MACD, and the reason names it."""
        response = client.post("/api/technicals/indicators", json=_payload(np.linspace(100, 120, 20)))
        assert response.status_code == 400
        assert "MACD" in response.json()["detail"]

    def test_indicators_at_macd_minimum(self):
        """Twenty-six points are enough for every indicator."""
        response = client.post("/api/technicals/indicators", json=_payload(np.linspace(100, 126, 26)))
        assert response.status_code == 200
        assert len(response.json()["indicators"]["macd"]["macd"]) == 26

    def test_patterns_for_one_family(self):
        """Only the requested family is returned, grouped by family."""
        response = client.post(
            "/api/technicals/patterns", json=_payload(_double_top_prices(), families=["double"]),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["candidates_scanned"] >= 1
        assert data["patterns"]
        assert all(p["pattern_type"] in ("double_top", "double_bottom") for p in data["patterns"])
        assert len(data["groups"]["double_patterns"]) == len(data["patterns"])
        assert data["groups"]["triangles"] == []

    def test_patterns_respect_max(self):
        """max_patterns caps the ranked output."""
        response = client.post(
            "/api/technicals/patterns", json=_payload(_double_top_prices(), max_patterns=1),
        )
        assert response.status_code == 200
        assert len(response.json()["patterns"]) <= 1

    def test_volume_profile(self):
        """The volume analysis is returned with a point of control."""
        response = client.post("/api/technicals/volume-profile", json=_payload(np.linspace(100, 160, 60)))
        assert response.status_code == 200
        analysis = response.json()["analysis"]
        assert analysis["volume_trend"] == "stable"
        assert analysis["volume_profile"]["point_of_control"]["volume"] > 0
        assert len(analysis["on_balance_volume"]) == 60

    def test_volume_profile_single_point(self):
        """Volume analysis needs only one point."""
        response = client.post("/api/technicals/volume-profile", json=_payload([100.0]))
        assert response.status_code == 200
        analysis = response.json()["analysis"]
        assert analysis["on_balance_volume"] == [0.0]
        assert analysis["volume_profile"]["point_of_control"]["price"] == 100.0


class TestHealth:
    """Service health."""

    def test_health(self):
        """Health endpoint is always up."""
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
