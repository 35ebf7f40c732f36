# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_config.py

from pathlib import Path

import pytest
import yaml

from devbox.config.manager import Config, UserConfig, validate_session_name
from devbox.core.session import Session
from devbox.system.exceptions import ConfigError


class TestLoad:
    def test_environment_supplies_paths(self, tmp_path):
        env = {
            "DEVBOX_REPO_PATH": str(tmp_path / "repo"),
            "DEVBOX_CLONE_PATH_PREFIX": str(tmp_path / "clones"),
            "DEVBOX_REPO_URL": "git@example.org:team/repo.git",
        }
        config = Config.load(env)
        assert config.repo_path == tmp_path / "repo"
        assert config.clone_path_prefix == tmp_path / "clones"
        assert config.repo_url == "git@example.org:team/repo.git"

    def test_defaults_without_user_config(self):
        config = Config.load({})
        assert config.repo_path is None
        assert config.user.image_name == "devbox"
        assert config.user.default_source_branch == "main"
        assert config.user.rename_similarity == 90

    def test_user_config_file_is_merged(self, tmp_path):
        cfg_dir = tmp_path / "cfg"
        cfg_dir.mkdir()
        (cfg_dir / "devbox.yml").write_text(yaml.safe_dump({
            "image_name": "custom-box",
            "rename_similarity": 75,
            "local_log": "~/logs",
        }))
        config = Config.load({"DEVBOX_CONFIG_HOME": str(cfg_dir)})
        assert config.user.image_name == "custom-box"
        assert config.user.rename_similarity == 75
        assert config.user.local_log == Path.home() / "logs"

    def test_invalid_user_config(self, tmp_path):
        cfg_dir = tmp_path / "cfg"
        cfg_dir.mkdir()
        (cfg_dir / "devbox.yml").write_text("rename_similarity: 150\n")
        with pytest.raises(ConfigError):
            Config.load({"DEVBOX_CONFIG_HOME": str(cfg_dir)})

    def test_unparseable_user_config(self, tmp_path):
        cfg_dir = tmp_path / "cfg"
        cfg_dir.mkdir()
        (cfg_dir / "devbox.yml").write_text("image_name: [unclosed\n")
        with pytest.raises(ConfigError):
            Config.load({"DEVBOX_CONFIG_HOME": str(cfg_dir)})


class TestRequire:
    def test_missing_fields_name_environment_variables(self):
        with pytest.raises(ConfigError, match="DEVBOX_REPO_PATH, DEVBOX_CLONE_PATH_PREFIX"):
            Config().require("repo_path", "clone_path_prefix")

    def test_present_fields_pass(self, tmp_path):
        Config(repo_path=tmp_path).require("repo_path")

    def test_clone_path_for(self, tmp_path):
        assert Config(clone_path_prefix=tmp_path).clone_path_for("x") == tmp_path / "x"


class TestSessionNames:
    @pytest.mark.parametrize("name", ["feature-x", "fix_42", "v1.2", "A"])
    def test_valid(self, name):
        assert validate_session_name(name) == name

    @pytest.mark.parametrize("name", ["", "-lead", "has space", "a..b", "x.lock", "trailing.", "a/b", "ü"])
    def test_invalid(self, name):
        with pytest.raises(ConfigError):
            validate_session_name(name)

    def test_session_from_config(self, tmp_path):
        config = Config(clone_path_prefix=tmp_path, user=UserConfig(default_source_branch="develop"))
        session = Session.from_config(config, "feature-x")
        assert session.branch == "feature-x"
        assert session.source_branch == "develop"
        assert session.clone_path == tmp_path / "feature-x"
        assert Session.from_config(config, "feature-x", "main").source_branch == "main"
