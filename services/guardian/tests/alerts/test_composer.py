"""
Tests for the template alert composer — the text every degraded alert relies on.
"""

from __future__ import annotations

import pytest

from services.guardian.alerts.composer import (
    NOTIFICATION_BODY_MAX,
    connection_label,
    fallback_message,
    fallback_title,
    short_notification,
    truncate_body,
)
from services.guardian.guard.types import ConnectionMode, RescueMode
from services.guardian.tests.conftest import make_leg, make_tick


class TestConnectionLabel:
    @pytest.mark.parametrize(
        "mode,label",
        [
            (ConnectionMode.train, "Train"),
            (ConnectionMode.flight, "Flight"),
            (ConnectionMode.bus, "Bus"),
            (ConnectionMode.metro, "Metro"),
            (ConnectionMode.ferry, "Ferry"),
            (ConnectionMode.rideshare, "Cab"),
        ],
    )
    def test_labels(self, mode, label):
        assert connection_label(make_leg(next_mode=mode)) == label


class TestShortNotification:
    def test_contents(self):
        text = short_notification(make_tick(miss_chance_pct=87), make_leg(), 12, RescueMode.bike_taxi)
        assert "87%" in text
        assert "Train" in text
        assert "10:30" in text
        assert "Bike Taxi (Rapido)" in text
        assert "~12 min" in text
        assert "Tap to see rescue route" in text

    @pytest.mark.parametrize("mode", list(RescueMode))
    def test_fits_a_notification(self, mode):
        text = short_notification(make_tick(), make_leg(), 120, mode)
        assert len(text) <= NOTIFICATION_BODY_MAX


class TestFallbackTitle:
    def test_contents(self):
        title = fallback_title(make_tick(miss_chance_pct=72), make_leg(next_mode=ConnectionMode.flight, departure_time="06:05"))
        assert title == "⚠️ 72% chance of missing flight at 06:05"


class TestFallbackMessage:
    def test_references_every_fact(self):
        tick = make_tick(miss_chance_pct=91, speed_kmh=11.6)
        leg = make_leg()
        text = fallback_message(tick, leg, "Next signal junction", RescueMode.auto, 9)

        assert "12 km/h" in text
        assert "91%" in text
        assert "IRCTC – Vande Bharat" in text
        assert "10:30" in text
        assert "Train" in text
        assert "Next signal junction" in text
        assert "Auto-Rickshaw" in text
        assert "~9 minutes" in text

    def test_zero_saving_still_complete(self):
        text = fallback_message(make_tick(speed_kmh=0.0), make_leg(), "next junction", RescueMode.auto, 0)
        assert "(0 km/h)" in text
        assert "~0 minutes" in text
        assert text.strip()

    @pytest.mark.parametrize("mode", list(RescueMode))
    def test_every_mode_has_label(self, mode):
        assert fallback_message(make_tick(), make_leg(), "x", mode, 5)


class TestTruncateBody:
    def test_short_text_untouched(self):
        assert truncate_body("hello") == "hello"

    def test_exact_limit_untouched(self):
        text = "a" * NOTIFICATION_BODY_MAX
        assert truncate_body(text) == text

    def test_long_text_cut_with_ellipsis(self):
        text = fallback_message(make_tick(), make_leg(), "Next signal junction", RescueMode.cab, 14)
        assert len(text) > NOTIFICATION_BODY_MAX
        body = truncate_body(text)
        assert len(body) <= NOTIFICATION_BODY_MAX
        assert body.endswith("…")
        assert text.startswith(body[:-1])
