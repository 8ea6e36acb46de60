"""Tests for the shake / drop motion trigger."""

import pytest

from core.motion import STANDARD_GRAVITY, MotionTriggerSource
from schemas.sensor_payload import MotionEventType, MotionPermission, MotionSample


def _granted(**kwargs):
    events = []
    source = MotionTriggerSource(on_detect=events.append, shake_threshold=15, drop_threshold=3, debounce=3, **kwargs)
    source.report_permission(requires_consent=False)
    return source, events


class TestPermission:

    def test_disabled_until_permission_known(self):
        source = MotionTriggerSource(shake_threshold=15, drop_threshold=3)
        assert source.permission == MotionPermission.UNKNOWN
        assert source.process(MotionSample(x=0, y=0, z=0.1, timestamp=10)) is None

    def test_auto_grant_platform_enables_immediately(self):
        source = MotionTriggerSource()
        assert source.report_permission(requires_consent=False) == MotionPermission.GRANTED
        assert source.is_enabled

    def test_consent_platform_waits_for_prompt(self):
        source = MotionTriggerSource()
        assert source.report_permission(requires_consent=True) == MotionPermission.PROMPT
        assert not source.is_enabled
        assert source.process(MotionSample(x=0, y=0, z=0, timestamp=1)) is None

        assert source.report_permission(requires_consent=True, granted=False) == MotionPermission.DENIED
        assert not source.is_enabled

        assert source.report_permission(requires_consent=True, granted=True) == MotionPermission.GRANTED
        assert source.is_enabled

    def test_enabled_flag_turns_detection_off(self):
        source, events = _granted()
        source.enabled = False
        assert source.process(MotionSample(x=0, y=0, z=0, timestamp=1)) is None
        assert events == []


class TestDetection:

    def test_resting_device_fires_nothing(self):
        source, events = _granted()
        assert source.process(MotionSample(x=0, y=0, z=STANDARD_GRAVITY, timestamp=1)) is None
        assert events == []

    def test_free_fall_is_a_drop(self):
        source, events = _granted()
        assert source.process(MotionSample(x=0.5, y=0.5, z=0.5, timestamp=1)) == MotionEventType.DROP
        assert events == [MotionEventType.DROP]
        assert source.last_event == MotionEventType.DROP

    def test_drop_wins_over_shake(self):
        # near-zero magnitude also deviates from g by more than the shake threshold
        events = []
        source = MotionTriggerSource(on_detect=events.append, shake_threshold=5, drop_threshold=3, debounce=3)
        source.report_permission(requires_consent=False)
        sample = MotionSample(x=0.1, y=0.1, z=0.1, timestamp=1)
        assert source.process(sample) == MotionEventType.DROP
        assert events == [MotionEventType.DROP]

    def test_large_deviation_from_gravity_is_a_shake(self):
        source, events = _granted()
        assert source.process(MotionSample(x=30, y=10, z=STANDARD_GRAVITY, timestamp=1)) == MotionEventType.SHAKE
        assert events == [MotionEventType.SHAKE]

    def test_gravity_exclusive_data_uses_raw_magnitude(self):
        source, events = _granted()
        # 12 m/s² raw: under the shake threshold on its own
        assert source.process(MotionSample(x=12, y=0, z=0, includes_gravity=False, timestamp=1)) is None
        assert source.process(MotionSample(x=16, y=0, z=0, includes_gravity=False, timestamp=2)) == MotionEventType.SHAKE

    def test_drop_needs_gravity_reference(self):
        source, events = _granted()
        assert source.process(MotionSample(x=0, y=0, z=0, includes_gravity=False, timestamp=1)) is None
        assert events == []

    def test_debounce_suppresses_followups(self, clock):
        source, events = _granted(clock=clock)
        assert source.process(MotionSample(x=0, y=0, z=0)) == MotionEventType.DROP
        clock.advance(1)
        assert source.process(MotionSample(x=40, y=0, z=0)) is None
        clock.advance(1.5)
        assert source.process(MotionSample(x=0, y=0, z=0)) is None
        clock.advance(0.5)
        assert source.process(MotionSample(x=40, y=0, z=0)) == MotionEventType.SHAKE
        assert events == [MotionEventType.DROP, MotionEventType.SHAKE]

    def test_lagging_device_timestamps_do_not_extend_debounce(self, clock):
        source, events = _granted(clock=clock)
        assert source.process(MotionSample(x=0, y=0, z=0)) == MotionEventType.DROP
        clock.advance(5)
        # device clock an hour behind the server
        lagging = clock() - 3600
        assert source.process(MotionSample(x=0, y=0, z=0, timestamp=lagging)) == MotionEventType.DROP
        assert events == [MotionEventType.DROP, MotionEventType.DROP]

    def test_device_timestamps_ahead_do_not_shorten_debounce(self, clock):
        source, _ = _granted(clock=clock)
        source.process(MotionSample(x=0, y=0, z=0, timestamp=clock()))
        clock.advance(1)
        assert source.process(MotionSample(x=0, y=0, z=0, timestamp=clock() + 3600)) is None

    @pytest.mark.parametrize("x,y,z", [(0, 0, 2.9), (1, 1, 1), (0.0, 2.0, 2.0)])
    def test_drop_threshold_boundary(self, x, y, z):
        source, _ = _granted()
        assert source.process(MotionSample(x=x, y=y, z=z, timestamp=1)) == MotionEventType.DROP
