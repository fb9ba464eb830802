"""Exception hierarchy for the monitoring core."""

from __future__ import annotations


class NeuroFitError(Exception):
    """Base class for every error raised by ``neurofit_monitor``."""


class ConfigurationError(NeuroFitError):
    """Invalid or missing configuration (profile, contact, model settings)."""


class UnknownProfileError(ConfigurationError):
    """Requested threshold profile name is not defined."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown threshold profile: {name!r}")
        self.name = name


class CheckpointError(NeuroFitError):
    """A stored classifier checkpoint is unreadable or incompatible."""


class ModelNotReadyError(NeuroFitError):
    """No trained parameter snapshot has been published yet."""
