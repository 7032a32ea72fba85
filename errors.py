class LauncherError(Exception):
    """Base exception for the emo launcher."""


class ResolutionError(LauncherError):
    """Raised when a version or Forge promotion cannot be resolved."""


class FetchError(LauncherError):
    """Raised when a remote resource cannot be fetched."""


class ProfileNotFoundError(LauncherError):
    """Raised when a profile or its on-disk files cannot be found."""


class AuthError(LauncherError):
    """Raised when the identity service rejects a request."""


class OwnershipError(AuthError):
    """Raised when an authenticated user does not own the game."""


class NoAccountError(LauncherError):
    """Raised when a client launch has no account to run with."""


class PipelineContractError(LauncherError):
    """Raised when a step runs without its inputs or skips its outputs."""


class ConfigError(LauncherError):
    """Raised when a workspace config file cannot be parsed."""
