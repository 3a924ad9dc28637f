"""Custom exceptions for github-repo-sync."""


class SyncError(Exception):
    """Base exception for all sync errors."""


class ConfigError(SyncError):
    """Configuration file is missing, malformed, or invalid."""


class ListError(SyncError):
    """A repository listing page could not be fetched."""


class DirectoryError(SyncError):
    """The mirror root directory could not be created."""


class UpdateError(SyncError):
    """A single repository could not be brought up to date."""


class CloneError(UpdateError):
    """Cloning a missing mirror failed."""


class PullError(UpdateError):
    """Updating an existing mirror failed."""
