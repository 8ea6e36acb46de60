"""Tests for the risk classifier: fallback rule, model parsing, and the TTL cache."""

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeModelClient
from core.risk_classifier import (
    FALLBACK_CONFIDENCE,
    RiskClassifier,
    RiskFeatures,
    _extract_json,
    fallback_tier,
    haversine_m,
)
from core.ttl_store import TTLStore
from schemas.classification import ClassifyRequest, Provenance
from schemas.incident import RiskLevel

IST = timezone(timedelta(hours=5, minutes=30))


def _request(speed=None, hour=14, lat=28.6139, lon=77.2090, prev=None):
    kwargs = {}
    if prev is not None:
        kwargs["previous_latitude"], kwargs["previous_longitude"] = prev
    return ClassifyRequest(
        speed=speed,
        latitude=lat,
        longitude=lon,
        timestamp=datetime(2026, 3, 2, hour, 15, tzinfo=IST),
        **kwargs,
    )


def _expected_tier(speed, distance, hour):
    night = hour < 6 or hour >= 22
    rush = hour in (7, 8, 9, 17, 18, 19)
    if speed > 60 or distance > 50 or (night and speed > 40):
        return RiskLevel.HIGH
    if 30 <= speed <= 60 or 20 <= distance <= 50 or rush:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class TestGeometry:

    def test_same_point_is_zero(self):
        assert haversine_m(12.97, 77.59, 12.97, 77.59) == 0.0

    def test_one_degree_latitude(self):
        assert haversine_m(0, 0, 1, 0) == pytest.approx(111_195, rel=1e-3)

    def test_features_distance_only_with_both_previous_coordinates(self):
        req = ClassifyRequest(latitude=10, longitude=10, previous_latitude=10.001)
        assert RiskFeatures.from_request(req).distance_m == 0.0

    def test_hour_is_clients_wall_clock(self):
        assert RiskFeatures.from_request(_request(hour=23)).hour == 23

    def test_unknown_speed_is_zero(self):
        assert RiskFeatures.from_request(_request(speed=None)).speed == 0.0


class TestFallbackRule:

    @pytest.mark.parametrize(
        "speed,distance,hour,tier",
        [
            (70, 0, 14, RiskLevel.HIGH),
            (10, 5, 8, RiskLevel.MEDIUM),
            (10, 5, 14, RiskLevel.LOW),
            (45, 0, 23, RiskLevel.HIGH),
            (45, 0, 14, RiskLevel.MEDIUM),
            (0, 60, 14, RiskLevel.HIGH),
            (0, 25, 14, RiskLevel.MEDIUM),
            (60, 0, 12, RiskLevel.MEDIUM),
            (30, 0, 12, RiskLevel.MEDIUM),
            (29.9, 19.9, 21, RiskLevel.LOW),
        ],
    )
    def test_scenarios(self, speed, distance, hour, tier):
        assert fallback_tier(speed, distance, hour) == tier

    def test_matches_rule_on_random_inputs(self):
        rng = random.Random(20260302)
        for _ in range(2000):
            speed = rng.uniform(0, 120)
            distance = rng.uniform(0, 100)
            hour = rng.randrange(24)
            assert fallback_tier(speed, distance, hour) == _expected_tier(speed, distance, hour)

    def test_offline_classifier_uses_fallback(self, offline_classifier):
        result = asyncio.run(offline_classifier.classify(_request(speed=70, hour=14)))
        assert result.risk_level == RiskLevel.HIGH
        assert result.source == Provenance.FALLBACK
        assert result.confidence == FALLBACK_CONFIDENCE
        assert "fallback" in result.reasoning.lower()

    def test_small_movement_in_rush_hour_is_medium(self, offline_classifier):
        # ~5 m north of the current fix
        req = _request(speed=10, hour=8, lat=28.6139, prev=(28.613855, 77.2090))
        assert RiskFeatures.from_request(req).distance_m == pytest.approx(5, abs=0.5)
        result = asyncio.run(offline_classifier.classify(req))
        assert result.risk_level == RiskLevel.MEDIUM


class TestModelReplies:

    def _classify(self, clock, *replies, request=None):
        client = FakeModelClient(*replies)
        classifier = RiskClassifier(client=client, cache=TTLStore(clock=clock))
        return asyncio.run(classifier.classify(request or _request(speed=10, hour=14))), client

    def test_valid_reply(self, clock):
        result, client = self._classify(clock, '{"risk_level": "high", "confidence": 0.8, "reasoning": "fast"}')
        assert result.risk_level == RiskLevel.HIGH
        assert result.confidence == 0.8
        assert result.reasoning == "fast"
        assert result.source == Provenance.MODEL
        assert len(client.calls) == 1
        assert "10.0 km/h" in client.calls[0]["messages"][1]["content"]

    def test_fenced_reply(self, clock):
        reply = 'Here you go:\n```json\n{"risk_level": "MEDIUM", "confidence": 0.6, "reasoning": "x"}\n```'
        result, _ = self._classify(clock, reply)
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.source == Provenance.MODEL

    @pytest.mark.parametrize(
        "reply",
        [
            "I think it is risky",
            '{"risk_level": "extreme", "confidence": 0.9, "reasoning": "?"}',
            '{"risk_level": "high", "confidence": 1.7, "reasoning": "?"}',
            '{"risk_level": "high"}',
            "[1, 2, 3]",
            "",
        ],
    )
    def test_untrustworthy_reply_falls_back(self, clock, reply):
        result, _ = self._classify(clock, reply)
        assert result.source == Provenance.FALLBACK
        assert result.risk_level == RiskLevel.LOW

    def test_transport_error_falls_back(self, clock):
        result, _ = self._classify(clock, TimeoutError("gateway timed out"))
        assert result.source == Provenance.FALLBACK

    def test_no_client_falls_back(self, clock, monkeypatch):
        monkeypatch.setattr("core.config.AI_API_KEY", "")
        classifier = RiskClassifier(cache=TTLStore(clock=clock))
        result = asyncio.run(classifier.classify(_request(speed=80)))
        assert result.source == Provenance.FALLBACK
        assert result.risk_level == RiskLevel.HIGH

    def test_extract_json_rejects_non_object(self):
        with pytest.raises(ValueError):
            _extract_json('"just a string"')


class TestCache:

    def test_second_call_is_served_from_cache(self, clock):
        client = FakeModelClient('{"risk_level": "medium", "confidence": 0.7, "reasoning": "r"}')
        classifier = RiskClassifier(client=client, cache=TTLStore(clock=clock))

        first = asyncio.run(classifier.classify(_request(speed=35)))
        second = asyncio.run(classifier.classify(_request(speed=35)))

        assert len(client.calls) == 1
        assert first.source == Provenance.MODEL
        assert second.source == Provenance.CACHE
        assert (second.risk_level, second.confidence, second.reasoning) == (
            first.risk_level, first.confidence, first.reasoning,
        )

    def test_fallback_results_are_cached_too(self, clock):
        client = FakeModelClient(ConnectionError("down"))
        classifier = RiskClassifier(client=client, cache=TTLStore(clock=clock))
        asyncio.run(classifier.classify(_request(speed=35)))
        again = asyncio.run(classifier.classify(_request(speed=35)))
        assert len(client.calls) == 1
        assert again.source == Provenance.CACHE

    def test_nearby_fixes_share_a_fingerprint(self, clock):
        client = FakeModelClient()
        classifier = RiskClassifier(client=client, cache=TTLStore(clock=clock))
        asyncio.run(classifier.classify(_request(speed=20, lat=28.61391)))
        hit = asyncio.run(classifier.classify(_request(speed=20, lat=28.61394)))
        assert hit.source == Provenance.CACHE
        miss = asyncio.run(classifier.classify(_request(speed=20, lat=28.6200)))
        assert miss.source == Provenance.MODEL
        assert len(client.calls) == 2

    def test_expired_entry_calls_model_again(self, clock):
        client = FakeModelClient()
        classifier = RiskClassifier(client=client, cache=TTLStore(clock=clock), cache_ttl=60)
        asyncio.run(classifier.classify(_request(speed=20)))
        clock.advance(61)
        result = asyncio.run(classifier.classify(_request(speed=20)))
        assert result.source == Provenance.MODEL
        assert len(client.calls) == 2
