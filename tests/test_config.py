from unittest import TestCase

import pytest

from calcodec.config import codec_options
from calcodec.config import config_section
from calcodec.config import expand_config_section
from calcodec.config import read_config

config = {
    "default": {"timezone": "Europe/Oslo"},
    "work_outlook": {"agent": "Outlook", "inherits": "default"},
    "work_google": {"agent": "Google Calendar", "calcodec_memory_budget": "2048"},
    "old": {"agent": "Lotus", "disable": True},
    "work": {"contains": ["work_*", "old"]},
    "everything": {"contains": ["work", "default", "everything"]},
}


class TestExpandConfig(TestCase):
    def test_plain_section(self):
        self.assertEqual(expand_config_section(config, "default"), ["default"])

    def test_disabled_section(self):
        self.assertEqual(expand_config_section(config, "old"), [])

    def test_glob(self):
        self.assertEqual(
            expand_config_section(config, "work_*"), ["work_outlook", "work_google"]
        )

    def test_meta_sections(self):
        self.assertEqual(
            expand_config_section(config, "work"), ["work_outlook", "work_google"]
        )
        self.assertEqual(
            expand_config_section(config, "everything"),
            ["work_outlook", "work_google", "default"],
        )

    def test_all_sections(self):
        self.assertNotIn("old", expand_config_section(config, "*"))

    def test_inheritance(self):
        self.assertEqual(
            config_section(config, "work_outlook"),
            {"timezone": "Europe/Oslo", "agent": "Outlook", "inherits": "default"},
        )


class TestCodecOptions:
    def test_options(self):
        assert codec_options(config, "work_outlook") == {
            "timezone": "Europe/Oslo",
            "agent": "Outlook",
        }

    def test_prefix_and_conversion(self):
        assert codec_options(config, "work_google") == {
            "agent": "Google Calendar",
            "memory_budget": 2048,
        }

    def test_first_section_wins(self):
        assert codec_options(config, "work")["agent"] == "Outlook"

    def test_unknown_keys_are_ignored(self):
        assert codec_options({"default": {"url": "https://example.com"}}) == {}

    def test_empty(self):
        assert codec_options({}) == {}
        assert codec_options(config, "old") == {}


class TestReadConfig:
    def test_json(self, tmp_path):
        path = tmp_path / "calendar.conf"
        path.write_text('{"default": {"agent": "json"}}')
        assert read_config(str(path)) == {"default": {"agent": "json"}}

    def test_yaml(self, tmp_path):
        pytest.importorskip("yaml")
        path = tmp_path / "calendar.yaml"
        path.write_text("default:\n  agent: yaml\n  memory_budget: 100\n")
        assert read_config(str(path)) == {"default": {"agent": "yaml", "memory_budget": 100}}

    def test_broken(self, tmp_path):
        pytest.importorskip("yaml")
        path = tmp_path / "calendar.conf"
        path.write_text("default: [unbalanced\n")
        assert not read_config(str(path))

    def test_undecodable(self, tmp_path, caplog):
        path = tmp_path / "calendar.conf"
        path.write_bytes(b"\x80\x81 not text")
        assert read_config(str(path)) == {}
        assert "It will be ignored" in caplog.text
        assert "interactive" not in caplog.text

    def test_missing(self, tmp_path):
        assert read_config(str(tmp_path / "missing.conf")) == {}

    def test_search_path(self, tmp_path, monkeypatch):
        (tmp_path / ".config" / "calcodec").mkdir(parents=True)
        (tmp_path / ".config" / "calcodec" / "calendar.json").write_text(
            '{"default": {"prodid": "-//Home//EN"}}'
        )
        monkeypatch.setenv("HOME", str(tmp_path))
        assert read_config(None) == {"default": {"prodid": "-//Home//EN"}}
