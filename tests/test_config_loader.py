"""
Tests for TimelineConfig validation and the config loader.
"""
import json

import pytest

from edtimeline.core.config_loader import load_timeline_config
from edtimeline.core.model import TimelineConfig


class TestTimelineConfig:

    def test_defaults(self):
        config = TimelineConfig()
        assert config.vital_recent_hours == 6
        assert config.clinical_event_days == 30

    @pytest.mark.parametrize("kwargs", [
        {"vital_recent_hours": -1},
        {"clinical_event_days": -5},
        {"vital_recent_hours": True},
        {"clinical_event_days": 2.5},
        {"vital_recent_hours": "6"},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            TimelineConfig(**kwargs)

    def test_from_dict_partial(self):
        config = TimelineConfig.from_dict({"vital_recent_hours": 2})
        assert config.to_dict() == {"vital_recent_hours": 2, "clinical_event_days": 30}
        assert TimelineConfig.from_dict(None) == TimelineConfig()


class TestLoader:

    def test_defaults_without_sources(self):
        assert load_timeline_config(environ={}) == TimelineConfig()

    def test_file_values(self, tmp_path):
        path = tmp_path / "timeline.json"
        path.write_text(json.dumps({"timeline": {"vital_recent_hours": 12}}), encoding="utf-8")
        config = load_timeline_config(path=path, environ={})
        assert config.vital_recent_hours == 12
        assert config.clinical_event_days == 30

    def test_flat_file(self, tmp_path):
        path = tmp_path / "timeline.json"
        path.write_text(json.dumps({"clinical_event_days": 90}), encoding="utf-8")
        assert load_timeline_config(path=path, environ={}).clinical_event_days == 90

    def test_precedence(self, tmp_path):
        path = tmp_path / "timeline.json"
        path.write_text(json.dumps({"vital_recent_hours": 12, "clinical_event_days": 60}), encoding="utf-8")
        environ = {"EDTIMELINE_VITAL_RECENT_HOURS": "8", "EDTIMELINE_CLINICAL_EVENT_DAYS": "45"}
        config = load_timeline_config(
            path=path,
            overrides={"vital_recent_hours": 3, "clinical_event_days": None},
            environ=environ,
        )
        assert config.vital_recent_hours == 3
        assert config.clinical_event_days == 45

    def test_blank_env_is_ignored(self):
        config = load_timeline_config(environ={"EDTIMELINE_VITAL_RECENT_HOURS": "  "})
        assert config.vital_recent_hours == 6

    def test_missing_file(self, tmp_path):
        with pytest.raises(SystemExit, match="Missing config JSON"):
            load_timeline_config(path=tmp_path / "absent.json", environ={})

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(SystemExit, match="Invalid config JSON"):
            load_timeline_config(path=path, environ={})

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(SystemExit):
            load_timeline_config(path=path, environ={})

    @pytest.mark.parametrize("raw", ["-1", "six", "2.5"])
    def test_bad_env_value(self, raw):
        with pytest.raises(SystemExit, match="EDTIMELINE_VITAL_RECENT_HOURS"):
            load_timeline_config(environ={"EDTIMELINE_VITAL_RECENT_HOURS": raw})

    def test_unknown_override(self):
        with pytest.raises(SystemExit, match="Unknown timeline config key"):
            load_timeline_config(overrides={"window": 1}, environ={})
