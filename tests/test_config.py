import pytest

from kbforge.config.settings import DEFAULT_CATEGORIES, KBConfig, find_config_file, load_config
from kbforge.errors import ConfigError


class TestKBConfig:
    def test_defaults(self):
        config = KBConfig()
        assert config.categories == sorted(DEFAULT_CATEGORIES)
        assert (config.zone_weights.title, config.zone_weights.heading, config.zone_weights.body) == (3, 2, 1)
        assert config.default_limit == 20
        assert config.entry_points == ["README.md"]

    def test_categories_normalized(self):
        assert KBConfig(categories=["React", " css ", "react"]).categories == ["css", "react"]

    def test_index_path_relative_to_root(self, tmp_path):
        config = KBConfig(root=str(tmp_path), index_path="out/index.json")
        assert config.resolved_index_path == tmp_path / "out" / "index.json"

    def test_absolute_index_path(self, tmp_path):
        target = tmp_path / "elsewhere.json"
        assert KBConfig(root="kb", index_path=str(target)).resolved_index_path == target

    def test_fingerprint_tracks_categories(self):
        assert KBConfig().fingerprint() == KBConfig(categories=list(DEFAULT_CATEGORIES)).fingerprint()
        assert KBConfig().fingerprint() != KBConfig(categories=["react"]).fingerprint()

    def test_invalid_workers(self):
        with pytest.raises(ConfigError):
            KBConfig.from_env({"workers": 0})

    def test_required_sections_kinds_checked(self):
        with pytest.raises(ConfigError):
            KBConfig.from_env({"required_sections": {"bogus-kind": ["X"]}})
        config = KBConfig(required_sections={"pr-notes": ["TL;DR"]})
        assert config.required_sections == {"pr-notes": ["TL;DR"]}


class TestLoadConfig:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("categories: [Alpha, beta]\nzone_weights:\n  title: 5\n", encoding="utf-8")
        config = load_config(str(path))
        assert config.categories == ["alpha", "beta"]
        assert config.zone_weights.title == 5
        assert config.zone_weights.heading == 2

    def test_config_found_in_root(self, tmp_path):
        (tmp_path / "kbforge.yaml").write_text("default_limit: 5\n", encoding="utf-8")
        assert find_config_file(str(tmp_path)) == tmp_path / "kbforge.yaml"
        config = load_config(root=str(tmp_path))
        assert config.default_limit == 5
        assert config.root == str(tmp_path)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("categories: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "kbforge.yaml"
        path.write_text("default_limit: 0\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "kbforge.yaml"
        path.write_text("workers: 8\nindex_path: from-file.json\n", encoding="utf-8")
        monkeypatch.setenv("KBFORGE_WORKERS", "3")
        config = load_config(str(path))
        assert config.workers == 3
        assert config.index_path == "from-file.json"

    def test_overrides_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KBFORGE_ROOT", "/from/env")
        monkeypatch.setenv("KBFORGE_INDEX_PATH", "env.json")
        config = load_config(root=str(tmp_path), overrides={"index_path": "cli.json", "workers": None})
        assert config.root == str(tmp_path)
        assert config.index_path == "cli.json"

    def test_config_from_environment_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("default_limit: 7\n", encoding="utf-8")
        monkeypatch.setenv("KBFORGE_CONFIG", str(path))
        assert load_config().default_limit == 7

    def test_unknown_template_kind(self, tmp_path):
        path = tmp_path / "kbforge.yaml"
        path.write_text("required_sections:\n  bogus-kind: [X]\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="bogus-kind"):
            load_config(str(path))
