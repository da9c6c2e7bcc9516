"""Unit tests for Configuration with precedence testing.

Precedence: CLI > env > file > defaults.
"""

import json
import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from pagevitals.config import Configuration, DEFAULT_CHROME_BIN


@pytest.fixture
def clean_env(monkeypatch):
    for env_var in Configuration.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)
    return monkeypatch


class TestConfigurationPrecedence:
    """Test configuration precedence (CLI > env > file > defaults)."""

    def test_default_values(self):
        config = Configuration()

        assert config.chrome_bin == DEFAULT_CHROME_BIN
        assert config.chrome_port == 9222
        assert config.load_timeout == 30.0
        assert config.settle_ms == 2500
        assert config.cpu_throttle == 4.0
        assert config.ready_attempts == 40
        assert config.ready_interval == 0.25
        assert config.log_level == "INFO"
        assert config.log_format == "text"

    def test_settle_seconds(self):
        config = Configuration()
        config.merge(settle_ms=1500)
        assert config.settle_seconds == 1.5

    def test_load_from_file(self):
        with TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / ".pagevitalsrc"
            config_file.write_text(json.dumps({"chrome_port": 9333, "settle_ms": 1000}))

            config = Configuration()
            config.load_from_file(str(config_file))

            assert config.chrome_port == 9333
            assert config.settle_ms == 1000
            # Defaults still apply for unset values
            assert config.load_timeout == 30.0

    def test_load_from_env(self, clean_env):
        clean_env.setenv("CHROME_BIN", "/opt/chromium/chrome")
        clean_env.setenv("PAGEVITALS_CHROME_PORT", "9444")
        clean_env.setenv("PAGEVITALS_CPU_THROTTLE", "6")

        config = Configuration()
        config.load_from_env()

        assert config.chrome_bin == "/opt/chromium/chrome"
        assert config.chrome_port == 9444
        assert config.cpu_throttle == 6.0

    def test_prefixed_chrome_bin_wins_over_chrome_bin(self, clean_env):
        clean_env.setenv("CHROME_BIN", "/usr/bin/chromium")
        clean_env.setenv("PAGEVITALS_CHROME_BIN", "/usr/bin/google-chrome-beta")

        config = Configuration()
        config.load_from_env()

        assert config.chrome_bin == "/usr/bin/google-chrome-beta"

    def test_cli_overrides_all(self, clean_env):
        with TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / ".pagevitalsrc"
            config_file.write_text(json.dumps({"chrome_port": 9333, "settle_ms": 1000}))
            clean_env.setenv("PAGEVITALS_CHROME_PORT", "9444")

            config = Configuration()
            config.load_from_file(str(config_file))
            config.load_from_env()
            config.merge(chrome_port=9555, settle_ms=None)

            assert config.chrome_port == 9555
            # None means "not given on the command line"
            assert config.settle_ms == 1000


class TestConfigurationErrors:
    """Bad sources are ignored, not fatal."""

    def test_missing_file_is_ignored(self):
        config = Configuration()
        config.load_from_file("/nonexistent/.pagevitalsrc")
        assert config.chrome_port == 9222

    def test_invalid_json_is_ignored(self):
        with TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / ".pagevitalsrc"
            config_file.write_text("{not json")

            config = Configuration()
            config.load_from_file(str(config_file))

            assert config.chrome_port == 9222

    def test_non_object_file_is_ignored(self):
        with TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / ".pagevitalsrc"
            config_file.write_text("[1, 2, 3]")

            config = Configuration()
            config.load_from_file(str(config_file))

            assert config.to_dict() == Configuration().to_dict()

    def test_invalid_env_value_is_ignored(self, clean_env):
        clean_env.setenv("PAGEVITALS_CHROME_PORT", "not-a-port")

        config = Configuration()
        config.load_from_env()

        assert config.chrome_port == 9222

    def test_unknown_keys_are_ignored(self):
        config = Configuration()
        config.merge(no_such_setting=1)
        assert not hasattr(config, "no_such_setting")
