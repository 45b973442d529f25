"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER", "SAFEHARBOR_CALL_MODE"):
            monkeypatch.delenv(name, raising=False)
        s = Settings(_env_file=None)

        assert s.call_mode == "inline-announcement"
        assert s.ivr_max_turns == 6
        assert s.call_context_backend == "memory"
        assert s.twilio_configured is False
        assert s.is_production is False
        assert s.verify_webhook_signatures is True

    def test_vendor_keys_use_canonical_names(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
        monkeypatch.setenv("TWILIO_AUTH_TOKEN", "secret")
        monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+15550001111")
        monkeypatch.setenv("SAFEHARBOR_CALL_MODE", "scripted-ivr")
        monkeypatch.setenv("SAFEHARBOR_IVR_MAX_TURNS", "4")
        s = Settings(_env_file=None)

        assert s.twilio_configured is True
        assert s.call_mode == "scripted-ivr"
        assert s.ivr_max_turns == 4

    def test_invalid_call_mode(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SAFEHARBOR_CALL_MODE", "carrier-pigeon")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_cors_origin_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SAFEHARBOR_CORS_ORIGINS", "https://a.example, https://b.example,")
        assert Settings(_env_file=None).cors_origin_list == ["https://a.example", "https://b.example"]
