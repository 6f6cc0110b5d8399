"""
Tests for preset parsing and discovery.
"""

from __future__ import annotations

import pytest

from wigglegram.exceptions import PresetError
from wigglegram.presets import PresetRegistry, get_registry, parse_presets, preset_search_dirs


@pytest.fixture(autouse=True)
def isolated_search(tmp_dir, monkeypatch):
    """Keep user and project preset directories out of the tests."""
    monkeypatch.chdir(tmp_dir)
    monkeypatch.delenv("WIGGLEGRAM_PRESET_PATH", raising=False)
    monkeypatch.setattr("wigglegram.presets._USER_CONFIG_DIR", tmp_dir / "no-such-dir")


class TestParsePresets:
    def test_parse(self):
        presets = parse_presets(
            "presets:\n"
            "  - name: tree\n"
            "    title: Old oak\n"
            "    speed: 5\n"
            "    offset: 30\n"
            "    source: demos/tree.mpo\n"
        )
        assert len(presets) == 1
        p = presets[0]
        assert (p.name, p.speed, p.offset) == ("tree", 5.0, 30)
        assert p.title == "Old oak"
        assert p.source == "demos/tree.mpo"

    def test_empty_document(self):
        assert parse_presets("") == []

    @pytest.mark.parametrize(
        "text",
        [
            "presets: [",
            "- just a list",
            "presets: oops",
            "presets:\n  - name: x\n    speed: 4\n",
            "presets:\n  - name: x\n    speed: fast\n    offset: 3\n",
            "presets:\n  - name: x\n    speed: 0\n    offset: 3\n",
            "presets:\n  - name: x\n    speed: 2\n    offset: -3\n",
        ],
    )
    def test_invalid(self, text):
        with pytest.raises(PresetError):
            parse_presets(text)


class TestRegistry:
    def test_builtins(self):
        registry = PresetRegistry()
        names = [p.name for p in registry.list_presets()]
        assert names == sorted(names)
        assert {"garden", "portrait", "street"} <= set(names)
        street = registry.get("street")
        assert (street.speed, street.offset) == (10.0, 96)

    def test_builtins_are_labelled_samples(self):
        for preset in PresetRegistry().list_presets():
            assert preset.title.startswith("Sample")
            assert preset.source == ""

    def test_unknown_name(self):
        with pytest.raises(KeyError, match="Available"):
            PresetRegistry().get("nope")

    def test_extra_dir_overrides_builtin(self, tmp_dir):
        d = tmp_dir / "mine"
        d.mkdir()
        (d / "custom.yaml").write_text(
            "presets:\n  - name: street\n    speed: 3\n    offset: 10\n", encoding="utf-8"
        )
        assert PresetRegistry(extra_dirs=[d]).get("street").speed == 3.0

    def test_env_dirs_searched(self, tmp_dir, monkeypatch):
        d = tmp_dir / "env"
        d.mkdir()
        (d / "env.yml").write_text(
            "presets:\n  - name: beach\n    speed: 7\n    offset: 20\n", encoding="utf-8"
        )
        monkeypatch.setenv("WIGGLEGRAM_PRESET_PATH", str(d))
        assert d in preset_search_dirs()
        assert PresetRegistry(include_builtin=False).get("beach").offset == 20

    def test_local_dir_searched(self, tmp_dir):
        d = tmp_dir / ".wigglegram" / "presets"
        d.mkdir(parents=True)
        (d / "local.yaml").write_text(
            "presets:\n  - name: porch\n    speed: 9\n    offset: 5\n", encoding="utf-8"
        )
        assert PresetRegistry(include_builtin=False).get("porch").speed == 9.0

    def test_bad_file_is_skipped(self, tmp_dir):
        d = tmp_dir / "mixed"
        d.mkdir()
        (d / "a_bad.yaml").write_text("presets: [", encoding="utf-8")
        (d / "b_good.yaml").write_text(
            "presets:\n  - name: ok\n    speed: 1\n    offset: 0\n", encoding="utf-8"
        )
        registry = PresetRegistry(extra_dirs=[d], include_builtin=False)
        assert [p.name for p in registry.list_presets()] == ["ok"]

    def test_register(self):
        from wigglegram.presets import Preset

        registry = PresetRegistry(include_builtin=False)
        registry.register(Preset("mine", 2.0, 4))
        assert registry.get("mine").offset == 4

    def test_rescan(self, tmp_dir):
        d = tmp_dir / "late"
        d.mkdir()
        registry = PresetRegistry(extra_dirs=[d], include_builtin=False)
        assert registry.list_presets() == []
        (d / "late.yaml").write_text(
            "presets:\n  - name: late\n    speed: 2\n    offset: 2\n", encoding="utf-8"
        )
        assert registry.list_presets() == []
        registry.scan(force=True)
        assert [p.name for p in registry.list_presets()] == ["late"]

    def test_default_registry_is_shared(self):
        assert get_registry() is get_registry()
