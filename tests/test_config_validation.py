"""Tests for startup environment validation and config parsing helpers"""

import pytest

from config.base import _coerce_threshold, _parse_list
from config.validation import validate_and_exit, validate_environment


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("SECRET_KEY", "DATABASE_URL", "SYNC_BACKEND_URL", "DUPLICATE_THRESHOLD", "DEDUPE_PROFILE_PATH"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestValidateEnvironment:
    def test_development_needs_nothing(self, clean_env):
        assert validate_environment("development") == (True, [])

    def test_production_requires_secrets(self, clean_env):
        is_valid, errors = validate_environment("production")

        assert not is_valid
        assert any("SECRET_KEY" in error for error in errors)
        assert any("DATABASE_URL" in error for error in errors)

    def test_production_with_valid_settings(self, clean_env):
        clean_env.setenv("SECRET_KEY", "f" * 64)
        clean_env.setenv("DATABASE_URL", "postgresql://intake@db/intake")
        clean_env.setenv("SYNC_BACKEND_URL", "https://backend.example.org/api")

        assert validate_environment("production") == (True, [])

    def test_production_rejects_non_http_backend(self, clean_env):
        clean_env.setenv("SECRET_KEY", "f" * 64)
        clean_env.setenv("DATABASE_URL", "postgresql://intake@db/intake")
        clean_env.setenv("SYNC_BACKEND_URL", "ftp://backend")

        is_valid, errors = validate_environment("production")

        assert not is_valid
        assert errors == ["SYNC_BACKEND_URL must be an http(s) URL."]

    @pytest.mark.parametrize("value", ["1.2", "-0.1", "high"])
    def test_threshold_out_of_range(self, clean_env, value):
        clean_env.setenv("DUPLICATE_THRESHOLD", value)

        is_valid, errors = validate_environment("testing")

        assert not is_valid
        assert "DUPLICATE_THRESHOLD" in errors[0]

    def test_broken_dedupe_profile(self, clean_env, tmp_path):
        path = tmp_path / "profile.yaml"
        path.write_text("comparators: [Passport]", encoding="utf-8")
        clean_env.setenv("DEDUPE_PROFILE_PATH", str(path))

        is_valid, errors = validate_environment("development")

        assert not is_valid
        assert errors[0].startswith("DEDUPE_PROFILE_PATH is invalid")

    def test_validate_and_exit(self, clean_env):
        with pytest.raises(SystemExit) as excinfo:
            validate_and_exit("production")

        assert excinfo.value.code == 1


class TestConfigHelpers:
    def test_threshold_parsing(self):
        assert _coerce_threshold(None) == 0.88
        assert _coerce_threshold("0.75") == 0.75
        assert _coerce_threshold("2") == 0.88
        assert _coerce_threshold("abc") == 0.88

    def test_pipe_separated_lists(self):
        assert _parse_list("Income exceeds guidelines| Other |Other") == ("Income exceeds guidelines", "Other")
        assert _parse_list("", ("Default",)) == ("Default",)
