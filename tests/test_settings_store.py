"""
Tests for persisted user settings.
"""

import json

from settings_store import SETTINGS_KEY, SettingsStore, UserSettings


class TestSettingsStore:
    def test_defaults_when_file_missing(self, tmp_path):
        settings = SettingsStore(tmp_path / "settings.json").load()
        assert settings == UserSettings()
        assert settings.source_subreddits == "pics"
        assert settings.sort_mode == "hot"
        assert settings.top_time_filter == "day"
        assert settings.autoscroll_speed == 3

    def test_update_persists_under_fixed_key(self, tmp_path):
        path = tmp_path / "settings.json"
        store = SettingsStore(path)

        store.update(target_subreddit="news", sort_mode="top")

        blob = json.loads(path.read_text())
        assert blob[SETTINGS_KEY]["target_subreddit"] == "news"
        assert blob[SETTINGS_KEY]["sort_mode"] == "top"
        assert SettingsStore(path).load().target_subreddit == "news"

    def test_partial_blob_merged_with_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({SETTINGS_KEY: {"view_mode": "compact", "unknown": 1}}))

        settings = SettingsStore(path).load()

        assert settings.view_mode == "compact"
        assert settings.source_subreddits == "pics"

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert SettingsStore(path).load() == UserSettings()

    def test_no_temp_files_left_behind(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        store.update(view_mode="compact")
        assert [p.name for p in tmp_path.iterdir()] == ["settings.json"]
