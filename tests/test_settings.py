"""Tests for environment-driven engine settings."""

import pytest

from blueprint_coach.config.settings import EngineSettings, _is_feature_enabled


class TestFeatureFlags:
    @pytest.mark.parametrize("value", ["true", "1", "YES", " on "])
    def test_enabled(self, monkeypatch, value):
        monkeypatch.setenv("COACH_TEST_FLAG", value)
        assert _is_feature_enabled("COACH_TEST_FLAG") is True

    def test_disabled(self, monkeypatch):
        monkeypatch.setenv("COACH_TEST_FLAG", "false")
        assert _is_feature_enabled("COACH_TEST_FLAG", default=True) is False

    def test_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("COACH_TEST_FLAG", raising=False)
        assert _is_feature_enabled("COACH_TEST_FLAG", default=True) is True


class TestEngineSettings:
    """Test defaults, env overrides and validation."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.low_confidence_threshold == 50
        assert settings.high_confidence_threshold == 85
        assert settings.auto_advance_enabled is True

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("COACH_LOW_CONFIDENCE", "40")
        monkeypatch.setenv("COACH_HIGH_CONFIDENCE", "90")
        monkeypatch.setenv("COACH_AUTO_ADVANCE", "false")
        monkeypatch.setenv("COACH_AUTOSAVE_DEBOUNCE_MS", "250")
        monkeypatch.setenv("LLM_PROVIDER", " OpenAI ")
        settings = EngineSettings.from_env()
        assert settings.low_confidence_threshold == 40
        assert settings.high_confidence_threshold == 90
        assert settings.auto_advance_enabled is False
        assert settings.autosave_debounce_seconds == 0.25
        assert settings.llm_provider == "openai"

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError):
            EngineSettings(low_confidence_threshold=90, high_confidence_threshold=60)

    def test_invalid_ramble_limit(self):
        with pytest.raises(ValueError):
            EngineSettings(ramble_max_chars=0)
