"""Snapshot pipeline exceptions."""


class SnapshotError(Exception):
    """Base class for fatal snapshot errors."""


class NavigationError(SnapshotError):
    """The browser could not be started or the target page failed to load in time."""


class BundleWriteError(SnapshotError):
    """The output directory or one of the bundle files could not be written."""
