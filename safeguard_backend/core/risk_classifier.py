"""
Accident risk classification: remote model with a deterministic fallback.

The rule set is handed to the model as a natural-language prompt and the
model must answer with a strict JSON payload. Whenever the call cannot be
trusted (no key, transport error, non-2xx, rate limit, unparsable or
out-of-range payload) the same rules are applied locally. Results are cached
per quantized feature fingerprint for a short TTL so rapid re-submits do not
hit the model again.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI
from pydantic import ValidationError

from core import config
from core.ttl_store import TTLStore
from schemas.classification import ClassificationResult, ClassifyRequest, ModelVerdict, Provenance
from schemas.incident import RiskLevel

logger = logging.getLogger(__name__)

EARTH_RADIUS_M: float = 6_371_000.0
FALLBACK_CONFIDENCE: float = 0.55

# Rule thresholds (km/h, meters)
HIGH_SPEED: float = 60.0
NIGHT_HIGH_SPEED: float = 40.0
MEDIUM_SPEED: float = 30.0
HIGH_DISTANCE: float = 50.0
MEDIUM_DISTANCE: float = 20.0

SYSTEM_PROMPT = "You are an accident risk classification AI. Always respond with valid JSON only."

USER_PROMPT_TEMPLATE = """You are an AI accident risk classifier for an emergency monitoring system. Analyze the following accident data and classify the risk level.

Accident Data:
- Speed at detection: {speed:.1f} km/h
- Location change: {distance:.2f} meters
- Hour of incident: {hour:02d}:00
- Night time: {night}
- Rush hour: {rush}
- Coordinates: {latitude}, {longitude}

Risk Classification Criteria:
- HIGH: Speed > 60 km/h, or large sudden location change (>50m), or night time with speed > 40 km/h
- MEDIUM: Speed between 30-60 km/h, or moderate location change (20-50m), or rush hour conditions
- LOW: Speed < 30 km/h, minor location change, daytime, non-rush hour

Respond with ONLY a JSON object in this exact format:
{{"risk_level": "low|medium|high", "confidence": 0.0-1.0, "reasoning": "brief explanation"}}"""


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two WGS84 points."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_night(hour: int) -> bool:
    return hour < 6 or hour >= 22


def is_rush_hour(hour: int) -> bool:
    return 7 <= hour <= 9 or 17 <= hour <= 19


@dataclass(frozen=True)
class RiskFeatures:
    speed: float          # km/h
    latitude: float
    longitude: float
    hour: int             # local hour of day, 0-23
    distance_m: float     # movement since the previous fix

    @classmethod
    def from_request(cls, request: ClassifyRequest) -> "RiskFeatures":
        distance = 0.0
        if request.previous_latitude is not None and request.previous_longitude is not None:
            distance = haversine_m(
                request.previous_latitude, request.previous_longitude,
                request.latitude, request.longitude,
            )
        return cls(
            speed=max(request.speed or 0.0, 0.0),
            latitude=request.latitude,
            longitude=request.longitude,
            # wall-clock hour in the offset the client sent
            hour=request.timestamp.hour,
            distance_m=distance,
        )

    @property
    def night(self) -> bool:
        return is_night(self.hour)

    @property
    def rush_hour(self) -> bool:
        return is_rush_hour(self.hour)

    def fingerprint(self) -> str:
        """Quantized cache key: ~111 m location cells, 0.1 km/h speed, whole meters of movement."""
        return "{:.1f}|{:.3f}|{:.3f}|{}|{}".format(
            self.speed, self.latitude, self.longitude, self.hour, round(self.distance_m)
        )


def fallback_tier(speed: float, distance_m: float, hour: int) -> RiskLevel:
    if speed > HIGH_SPEED or distance_m > HIGH_DISTANCE or (is_night(hour) and speed > NIGHT_HIGH_SPEED):
        return RiskLevel.HIGH
    if (
        MEDIUM_SPEED <= speed <= HIGH_SPEED
        or MEDIUM_DISTANCE <= distance_m <= HIGH_DISTANCE
        or is_rush_hour(hour)
    ):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def fallback_result(features: RiskFeatures) -> ClassificationResult:
    tier = fallback_tier(features.speed, features.distance_m, features.hour)
    period = "night" if features.night else "rush hour" if features.rush_hour else "daytime"
    return ClassificationResult(
        risk_level=tier,
        confidence=FALLBACK_CONFIDENCE,
        reasoning=(
            f"Rule-based fallback: {features.speed:.1f} km/h, "
            f"{features.distance_m:.0f} m movement, {period} → {tier.value}"
        ),
        source=Provenance.FALLBACK,
    )


def _extract_json(text: str) -> dict[str, Any]:
    """Pull a JSON object out of the model reply (handles markdown code blocks and chatter)."""
    text = text.strip()
    m = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if m:
        text = m.group(1).strip()
    else:
        m = re.search(r"\{[\s\S]*\}", text)
        if m:
            text = m.group(0)
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("model reply is not a JSON object")
    return data


def _default_client() -> AsyncOpenAI | None:
    if not config.AI_API_KEY:
        logger.warning("AI_API_KEY not set; risk classification will use the fallback rule")
        return None
    return AsyncOpenAI(
        base_url=config.AI_GATEWAY_URL,
        api_key=config.AI_API_KEY,
        timeout=config.HTTP_TIMEOUT,
        max_retries=0,
    )


class RiskClassifier:
    """
    classify() never raises: every failure of the remote call degrades to
    the fallback rule. The cache is not guarded against two concurrent
    misses on the same fingerprint; both compute the same answer.
    """

    def __init__(
        self,
        client: Any = None,
        cache: TTLStore | None = None,
        model: str = config.AI_MODEL,
        cache_ttl: float = config.CLASSIFY_CACHE_TTL_SEC,
    ) -> None:
        self._client = client if client is not None else _default_client()
        self.cache = cache if cache is not None else TTLStore()
        self.model = model
        self.cache_ttl = cache_ttl

    async def classify(self, request: ClassifyRequest) -> ClassificationResult:
        features = RiskFeatures.from_request(request)
        key = features.fingerprint()

        cached: ClassificationResult | None = self.cache.get(key)
        if cached is not None:
            logger.debug("Risk classification cache hit for %s", key)
            return cached.model_copy(update={"source": Provenance.CACHE})

        result = await self._ask_model(features)
        if result is None:
            result = fallback_result(features)

        self.cache.set(key, result, self.cache_ttl)
        logger.info(
            "Risk classified as %s (%.0f%% confidence, %s)",
            result.risk_level.value, result.confidence * 100, result.source.value,
        )
        return result

    async def _ask_model(self, features: RiskFeatures) -> ClassificationResult | None:
        if self._client is None:
            return None

        prompt = USER_PROMPT_TEMPLATE.format(
            speed=features.speed,
            distance=features.distance_m,
            hour=features.hour,
            night="Yes" if features.night else "No",
            rush="Yes" if features.rush_hour else "No",
            latitude=features.latitude,
            longitude=features.longitude,
        )
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                temperature=0,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
            text = response.choices[0].message.content or ""
        except Exception as exc:
            # transport errors, non-2xx (incl. 402 credits / 429 rate limit)
            logger.warning("Risk model call failed, using fallback rule: %s", exc)
            return None

        try:
            verdict = ModelVerdict.model_validate(_extract_json(text))
        except (ValueError, ValidationError) as exc:
            logger.warning("Unusable risk model reply, using fallback rule: %s | %r", exc, text[:200])
            return None

        return ClassificationResult(
            risk_level=verdict.risk_level,
            confidence=verdict.confidence,
            reasoning=verdict.reasoning or "Model classification",
            source=Provenance.MODEL,
        )
