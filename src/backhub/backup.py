"""Backup orchestration.

Mirrors every configured repository through a fixed-size worker pool.
Each repository gets its own output-manager task named ``repo-<repo>``;
setup steps are reported on the ``logistics`` task.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from backhub.config import BackupConfig, ConfigError, Settings, load_config
from backhub.git_utils import GitBackend, build_repo_url, local_folder_name
from backhub.output import OutputManager, Summary, TaskStatus

logger = logging.getLogger(__name__)

LOGISTICS = "logistics"
REPORT_TABLE = "Backup Report"
REPORT_HEADERS = ["Repository", "Action", "Result"]


def task_name(repo: str) -> str:
    return f"repo-{repo}"


class BackupHandler:
    """Runs a complete backup and reports progress through an OutputManager."""

    def __init__(
        self,
        settings: Settings,
        output: OutputManager | None = None,
        git_backend: GitBackend | None = None,
    ):
        self.settings = settings
        self.token = settings.gh_token
        self.concurrency = settings.concurrency
        self.clone_folder = settings.clone_path
        self.output = output or OutputManager(
            max_stream_lines=settings.max_stream_lines,
            update_interval=settings.update_interval,
        )
        if git_backend is None:
            from backhub.git_utils import git as git_backend
        self.git = git_backend
        self.repos: list[str] = []

    def setup(self) -> None:
        self.output.register(LOGISTICS)
        self.output.set_message(LOGISTICS, "Setting up BackHub")
        self.output.start_display()

    def validate_token(self) -> None:
        """A missing token is a warning: public repositories still work."""
        if not self.token:
            self.output.add_stream_line(LOGISTICS, "proceeding without GitHub token")
            self.output.set_status(LOGISTICS, TaskStatus.WARNING)
            logger.warning("GH_TOKEN not set; private repositories will fail")
        else:
            self.output.set_status(LOGISTICS, TaskStatus.PENDING)
            self.output.add_stream_line(LOGISTICS, "GitHub token is set")

    def load_config(self, path: str | Path) -> BackupConfig:
        """Load repositories into ``self.repos``.

        Raises:
            ConfigError: If the configuration cannot be read or parsed
        """
        self.output.add_stream_line(LOGISTICS, f"Loading configuration from '{path}'")
        try:
            config = load_config(path)
        except ConfigError:
            self.output.add_stream_line(LOGISTICS, "Failed to load configuration")
            raise
        self.repos = config.repos
        if len(config.repos) == 1 and str(path) == config.repos[0]:
            self.output.add_stream_line(
                LOGISTICS, "Direct repo specified, using it as configuration"
            )
        else:
            self.output.add_stream_line(LOGISTICS, f"Loaded {len(self.repos)} repositories")
        return config

    def prepare_clone_folder(self) -> Path:
        """Create the folder holding the mirrors.

        Raises:
            ConfigError: If the folder cannot be created
        """
        try:
            self.clone_folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.output.add_stream_line(LOGISTICS, "Failed to create clone folder")
            raise ConfigError(f"cannot create clone folder {self.clone_folder}: {e}") from e
        return self.clone_folder

    def backup_repo(self, repo: str, name: str) -> str:
        """Clone the mirror if absent, otherwise fetch into it.

        Returns:
            "cloned", "updated" or "up to date"

        Raises:
            GitOperationError: If git fails
        """
        folder = self.clone_folder / local_folder_name(repo)
        url = build_repo_url(repo)

        if not folder.exists():
            self.output.add_stream_line(name, f"Cloning {url} to {folder}")
            try:
                self.git.clone_mirror(url, folder, self.token)
            except Exception as e:
                self.output.add_stream_line(name, f"Failed to clone repository: {e}")
                raise
            self.output.add_stream_line(name, "Clone completed successfully")
            return "cloned"

        self.output.add_stream_line(name, f"Updating existing repository at {folder}")
        try:
            changed = self.git.fetch_mirror(folder, url, self.token)
        except Exception as e:
            self.output.add_stream_line(name, f"Failed to fetch updates: {e}")
            raise
        if not changed:
            self.output.add_stream_line(name, "Repository already up to date")
            return "up to date"
        self.output.add_stream_line(name, "Repository updated successfully")
        return "updated"

    def _process(self, repo: str) -> None:
        name = task_name(repo)
        self.output.register(name)
        self.output.set_message(name, f"Processing {repo}")
        report = self.output.get_table(REPORT_TABLE)
        try:
            action = self.backup_repo(repo, name)
        except Exception as e:
            logger.error("Failed to back up %s: %s", repo, e)
            if not self.token:
                self.output.add_stream_line(
                    name, "Repository might be private and require a GitHub token"
                )
            self.output.report_error(name, e)
            if report is not None:
                report.add_row([repo, "failed", str(e)])
            return
        self.output.set_message(name, f"{repo} backed up successfully")
        self.output.complete(name)
        if report is not None:
            report.add_row([repo, action, "ok"])
        logger.info("Backed up %s (%s)", repo, action)

    def execute_backup(self) -> Summary:
        """Back up every loaded repository, then stop the display."""
        self.output.set_message(LOGISTICS, f"Processing {len(self.repos)} repositories")
        self.output.register_table(REPORT_TABLE, REPORT_HEADERS)

        with ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="backhub-worker"
        ) as pool:
            # _process reports its own failures; list() waits for all workers
            list(pool.map(self._process, self.repos))

        self.output.set_message(LOGISTICS, "Backup process completed")
        self.output.complete(LOGISTICS)
        self.output.stop_display()
        return self.output.summary()

    def run_backup(
        self,
        config_path: str | Path,
        unlimited_output: bool = False,
        report_path: str | Path | None = None,
    ) -> Summary:
        """Entry point: setup, validate, load config, back up everything.

        Raises:
            ConfigError: Setup failures; the display is stopped first
            OSError: If the report file cannot be written
        """
        self.output.set_unlimited_output(unlimited_output)
        self.setup()
        self.validate_token()
        try:
            self.load_config(config_path)
            self.prepare_clone_folder()
        except ConfigError as e:
            self.output.report_error(LOGISTICS, e)
            self.output.stop_display()
            raise
        self.output.set_message(LOGISTICS, "Backup logistics completed")

        summary = self.execute_backup()

        if report_path:
            report = self.output.get_table(REPORT_TABLE)
            if report is not None:
                report.write_markdown_table_to_file(report_path)
                logger.info("Wrote backup report to %s", report_path)
        return summary
