"""Exceptions raised by the central-membrane matching package."""


class ConfigurationError(ValueError):
    """Invalid geometry, grid or matching configuration."""


class MissingInputError(RuntimeError):
    """A required per-pass input is absent; the pass is aborted."""
