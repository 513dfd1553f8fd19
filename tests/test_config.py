"""Tests for configuration loading."""

import pytest

from site_extractor.config import load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove configuration overrides from the environment."""
    for name in ("WEBSITE_URL", "LOG_LEVEL", "BROWSER_HEADLESS", "PATTERNS_FILE"):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Test load_config."""

    def test_bundled_defaults(self):
        """Test the bundled settings file."""
        config = load_config()

        assert config["site"]["website_url"] is None
        assert config["browser"]["headless"] is True
        assert config["crawler"]["max_attempts"] == 3
        assert config["validation"]["max_entries"] is None
        assert config["logging"]["level"] == "INFO"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        """Test that environment variables take precedence."""
        patterns = tmp_path / "patterns.yaml"
        monkeypatch.setenv("WEBSITE_URL", "https://shop.test")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("BROWSER_HEADLESS", "false")
        monkeypatch.setenv("PATTERNS_FILE", str(patterns))

        config = load_config()

        assert config["site"]["website_url"] == "https://shop.test"
        assert config["logging"]["level"] == "DEBUG"
        assert config["browser"]["headless"] is False
        assert config["patterns"]["file"] == str(patterns)

    @pytest.mark.parametrize("value", ["1", "true", "Yes", "on"])
    def test_headless_truthy_values(self, monkeypatch, value):
        """Test accepted spellings of a true flag."""
        monkeypatch.setenv("BROWSER_HEADLESS", value)

        assert load_config()["browser"]["headless"] is True

    def test_custom_file_missing_sections(self, tmp_path):
        """Test that a partial file still yields every section."""
        path = tmp_path / "settings.yaml"
        path.write_text("crawler:\n  retry_delay: 0\n")

        config = load_config(str(path))

        assert config["crawler"] == {"retry_delay": 0}
        for section in ("site", "browser", "validation", "patterns", "logging"):
            assert config[section] == {}

    def test_empty_file(self, tmp_path):
        """Test that an empty file is accepted."""
        path = tmp_path / "settings.yaml"
        path.write_text("")

        assert load_config(str(path))["site"] == {}

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))
