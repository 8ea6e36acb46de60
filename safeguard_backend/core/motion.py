from __future__ import annotations

import logging
import time
from typing import Callable

import numpy as np

from core import config
from schemas.sensor_payload import MotionEventType, MotionPermission, MotionSample

logger = logging.getLogger(__name__)

STANDARD_GRAVITY: float = 9.81  # m/s²


class MotionTriggerSource:
    """
    Rule-based shake / drop detector over device acceleration samples.

    Drop (free fall) is checked first and needs gravity-inclusive data: the
    magnitude falls toward zero. Shake is a large deviation from standard
    gravity, or a large raw magnitude when the device only reports
    gravity-excluded acceleration. After any fire, further detections are
    suppressed for the debounce window.
    """

    def __init__(
        self,
        on_detect: Callable[[MotionEventType], None] | None = None,
        shake_threshold: float = config.SHAKE_THRESHOLD,
        drop_threshold: float = config.DROP_THRESHOLD,
        debounce: float = config.MOTION_DEBOUNCE_SEC,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.shake_threshold = shake_threshold
        self.drop_threshold = drop_threshold
        self.debounce = debounce
        self.enabled = enabled
        self._on_detect = on_detect
        self._clock = clock
        self._permission = MotionPermission.UNKNOWN
        self._last_trigger: float | None = None
        self.last_event: MotionEventType | None = None

    @property
    def permission(self) -> MotionPermission:
        return self._permission

    @property
    def is_enabled(self) -> bool:
        return self.enabled and self._permission == MotionPermission.GRANTED

    def set_callback(self, on_detect: Callable[[MotionEventType], None] | None) -> None:
        self._on_detect = on_detect

    def report_permission(self, requires_consent: bool, granted: bool | None = None) -> MotionPermission:
        """
        Record the platform's motion-sensor consent state.
        Platforms without an explicit prompt are granted immediately.
        """
        if not requires_consent:
            self._permission = MotionPermission.GRANTED
        elif granted is None:
            self._permission = MotionPermission.PROMPT
        else:
            self._permission = MotionPermission.GRANTED if granted else MotionPermission.DENIED
        logger.info("Motion permission: %s", self._permission.value)
        return self._permission

    def process(self, sample: MotionSample) -> MotionEventType | None:
        """Evaluate one sample. Returns the event that fired, if any."""
        if not self.is_enabled:
            return None

        # debounce runs on the receiving clock only; device timestamps may be skewed
        now = self._clock()
        if self._last_trigger is not None and now - self._last_trigger < self.debounce:
            return None

        magnitude = float(np.linalg.norm([sample.x, sample.y, sample.z]))

        # --- Drop (free fall) ---
        if sample.includes_gravity and magnitude < self.drop_threshold:
            return self._fire(MotionEventType.DROP, now, magnitude)

        # --- Shake ---
        deviation = abs(magnitude - STANDARD_GRAVITY) if sample.includes_gravity else magnitude
        if deviation > self.shake_threshold:
            return self._fire(MotionEventType.SHAKE, now, magnitude)

        return None

    def _fire(self, event: MotionEventType, now: float, magnitude: float) -> MotionEventType:
        self._last_trigger = now
        self.last_event = event
        logger.info("%s detected, acceleration magnitude %.2f m/s²", event.value.capitalize(), magnitude)
        if self._on_detect is not None:
            self._on_detect(event)
        return event
