from __future__ import annotations


class WaybackError(Exception):
    """Base class for archive and analysis failures."""


class SnapshotListingError(WaybackError):
    """The archive could not produce a snapshot list for a target."""


class SnapshotFetchError(WaybackError):
    """A single snapshot was unavailable or came back empty."""


class DomainAnalysisError(WaybackError):
    """Anything escaping a single-domain analysis run."""
