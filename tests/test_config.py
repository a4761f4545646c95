"""
Tests for settings and environment handling.
"""

import pytest

from repocloak.config import Settings, get_home_dir, get_secret_path, get_settings_path
from repocloak.errors import SettingsError


class TestPaths:
    def test_home_from_environment(self, isolated_home):
        assert get_home_dir() == isolated_home
        assert get_secret_path() == isolated_home / "secret.key"
        assert get_settings_path() == isolated_home / "config.yml"

    def test_default_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("REPOCLOAK_HOME")
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("USERPROFILE", str(tmp_path))
        assert get_home_dir() == tmp_path / ".repo-cloak"


class TestSettings:
    def test_defaults_without_file(self, tmp_path):
        settings = Settings.load(tmp_path / "missing.yml")

        assert settings.encrypt is True
        assert settings.simultaneous is False
        assert settings.case_sensitive is False
        assert settings.ignore == []

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(
            "encrypt: false\nsimultaneous: true\nignore:\n  - vendor\n  - tmp\n",
            encoding="utf-8",
        )

        settings = Settings.load(path)

        assert settings.encrypt is False
        assert settings.simultaneous is True
        assert settings.ignore == ["vendor", "tmp"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("", encoding="utf-8")
        assert Settings.load(path) == Settings()

    def test_default_location(self, isolated_home):
        isolated_home.mkdir()
        (isolated_home / "config.yml").write_text("case_sensitive: true\n", encoding="utf-8")
        assert Settings.load().case_sensitive is True

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("encrypt: [unclosed\n", encoding="utf-8")
        with pytest.raises(SettingsError):
            Settings.load(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(SettingsError):
            Settings.load(path)

    def test_bad_ignore(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("ignore: vendor\n", encoding="utf-8")
        with pytest.raises(SettingsError):
            Settings.load(path)

    @pytest.mark.parametrize("text", [
        'encrypt: "false"\n',
        "simultaneous: 1\n",
        "case_sensitive: yes please\n",
    ])
    def test_flags_must_be_booleans(self, tmp_path, text):
        path = tmp_path / "config.yml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(SettingsError):
            Settings.load(path)

    @pytest.mark.parametrize("value,expected", [("0", False), ("false", False), ("1", True), ("yes", True)])
    def test_encrypt_environment_override(self, tmp_path, monkeypatch, value, expected):
        monkeypatch.setenv("REPOCLOAK_ENCRYPT", value)
        assert Settings.load(tmp_path / "missing.yml").encrypt is expected
