"""Tests for backhub.config."""

import logging

import pytest

from backhub.config import (
    BackupConfig,
    ConfigError,
    Settings,
    get_settings,
    is_direct_repo,
    load_config,
    reset_settings,
)
from backhub.logging_setup import configure_logging
from backhub.output import DisplayLogHandler, OutputManager
from tests.conftest import make_console


class TestIsDirectRepo:
    @pytest.mark.parametrize(
        "value",
        ["github.com/tanq16/backhub", "github.com/org/repo.name", "github.com/a/b"],
    )
    def test_direct(self, value):
        assert is_direct_repo(value)

    @pytest.mark.parametrize(
        "value",
        [
            "repos.yaml",
            "github.com/org",
            "github.com/org/repo/extra",
            "gitlab.com/org/repo",
            "https://github.com/org/repo",
            "./github.com/org/repo",
        ],
    )
    def test_not_direct(self, value):
        assert not is_direct_repo(value)


class TestLoadConfig:
    def test_direct_repo_skips_file(self):
        config = load_config("github.com/tanq16/backhub")
        assert config.repos == ["github.com/tanq16/backhub"]

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text("repos:\n  - github.com/org/one\n  - github.com/org/two\n")

        config = load_config(path)

        assert config.repos == ["github.com/org/one", "github.com/org/two"]

    def test_entries_are_stripped(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text("repos:\n  - '  github.com/org/one/ '\n  - ''\n")
        assert load_config(path).repos == ["github.com/org/one"]

    def test_duplicate_entries_collapse_in_order(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text(
            "repos:\n"
            "  - github.com/org/two\n"
            "  - github.com/org/one\n"
            "  - github.com/org/two/\n"
            "  - ' github.com/org/one '\n"
        )
        assert load_config(path).repos == ["github.com/org/two", "github.com/org/one"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text("")
        assert load_config(path).repos == []

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text("repos: []\nextra: true\n")
        assert load_config(path) == BackupConfig(repos=[])

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="reading config file"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text("repos: [unclosed\n")
        with pytest.raises(ConfigError, match="parsing config"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text("- github.com/org/one\n")
        with pytest.raises(ConfigError, match="expected a mapping"):
            load_config(path)

    def test_wrong_type(self, tmp_path):
        path = tmp_path / "repos.yaml"
        path.write_text("repos: 42\n")
        with pytest.raises(ConfigError, match="parsing config"):
            load_config(path)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.gh_token == ""
        assert settings.concurrency == 5
        assert settings.max_stream_lines == 15
        assert settings.update_interval == 0.2
        assert settings.clone_folder == "."
        assert settings.log_level == "WARNING"

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", "secret")
        monkeypatch.setenv("BACKHUB_CONCURRENCY", "8")
        monkeypatch.setenv("BACKHUB_CLONE_FOLDER", "/backups")

        settings = Settings()

        assert settings.gh_token == "secret"
        assert settings.concurrency == 8
        assert str(settings.clone_path) == "/backups"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("BACKHUB_MAX_STREAM_LINES=4\n")
        assert Settings().max_stream_lines == 4

    def test_invalid_concurrency(self, monkeypatch):
        monkeypatch.setenv("BACKHUB_CONCURRENCY", "0")
        with pytest.raises(ValueError):
            Settings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
        first = get_settings()
        reset_settings()
        assert get_settings() is not first


class TestConfigureLogging:
    @pytest.fixture
    def root(self):
        """Root logger, restored afterwards. Tests empty it so basicConfig applies."""
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers = handlers
        root.setLevel(level)

    def test_writes_to_file(self, root, tmp_path):
        log_file = tmp_path / "logs" / "backhub.log"
        root.handlers = []
        configure_logging("INFO", log_file)

        logging.getLogger("backhub.test").info("hello from test")
        for handler in root.handlers:
            handler.flush()

        assert "INFO backhub.test: hello from test" in log_file.read_text()

    def test_quiets_transport_loggers(self, root):
        root.handlers = []
        configure_logging("INFO")
        assert logging.getLogger("dulwich").level == logging.WARNING

    def test_unknown_level_falls_back(self, root):
        root.handlers = []
        configure_logging("chatty")
        assert root.level == logging.WARNING

    def test_terminal_display_takes_records(self, root):
        display = OutputManager(console=make_console())
        root.handlers = []
        configure_logging("WARNING", display=display)
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], DisplayLogHandler)
        assert root.handlers[0].output is display

    def test_log_file_wins_over_display(self, root, tmp_path):
        display = OutputManager(console=make_console())
        root.handlers = []
        configure_logging("WARNING", tmp_path / "backhub.log", display=display)
        assert [type(h) for h in root.handlers] == [logging.FileHandler]
