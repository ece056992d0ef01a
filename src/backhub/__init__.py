"""backhub - mirror backups of remote git repositories."""

__version__ = "0.3.0"
