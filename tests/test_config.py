import pytest

from waitlist.config import ConfigurationError, Settings

ENV = {"SUPABASE_URL": "https://project.supabase.co/", "SUPABASE_ANON_KEY": "anon-key"}


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env(ENV)
        assert settings.backend_url == "https://project.supabase.co"
        assert settings.api_key == "anon-key"
        assert settings.database_url is None
        assert settings.table == "signups"
        assert settings.channel == "signups_changed"
        assert settings.cache_ttl == 300.0
        assert settings.refresh_interval == 30.0
        assert settings.log_level == "INFO"

    def test_overrides(self):
        settings = Settings.from_env({
            **ENV,
            "DATABASE_URL": "postgresql://db/waitlist",
            "SIGNUPS_TABLE": "early_signups",
            "COUNT_CACHE_TTL": "60",
            "COUNTER_REFRESH_INTERVAL": "5",
            "LOG_LEVEL": "debug",
        })
        assert settings.database_url == "postgresql://db/waitlist"
        assert settings.table == "early_signups"
        assert settings.cache_ttl == 60.0
        assert settings.refresh_interval == 5.0
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("missing", ["SUPABASE_URL", "SUPABASE_ANON_KEY"])
    def test_missing_required_fails_fast(self, missing):
        env = dict(ENV)
        del env[missing]
        with pytest.raises(ConfigurationError, match=missing):
            Settings.from_env(env)

    @pytest.mark.parametrize("value", ["soon", "0", "-5", "nan", "inf", "-inf"])
    def test_bad_numbers_rejected(self, value):
        with pytest.raises(ConfigurationError, match="COUNT_CACHE_TTL"):
            Settings.from_env({**ENV, "COUNT_CACHE_TTL": value})

    def test_reads_process_environment(self, monkeypatch):
        for key, value in ENV.items():
            monkeypatch.setenv(key, value)
        assert Settings.from_env().api_key == "anon-key"

    @pytest.mark.parametrize("value", ["verbose", "trace", "10"])
    def test_unknown_log_level_rejected(self, value):
        with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
            Settings.from_env({**ENV, "LOG_LEVEL": value})

    def test_log_level_is_trimmed(self):
        assert Settings.from_env({**ENV, "LOG_LEVEL": " warning "}).log_level == "WARNING"
