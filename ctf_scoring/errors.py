"""
Error types raised by the scoring engine's collaborators.
"""


class ScoringError(Exception):
    """Base class for scoring engine errors."""


class CollaboratorUnavailable(ScoringError):
    """A read from the configuration store or solve repository failed."""


class RepositoryUnavailable(CollaboratorUnavailable):
    """The solve repository could not be reached or answered with an error."""


class ConfigUnavailable(CollaboratorUnavailable):
    """The configuration store could not produce a snapshot."""
