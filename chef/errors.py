"""
Exception taxonomy for chef.

Structural failures (store corruption, unknown explicit targets) propagate to
the caller. Per-artifact failures are caught at the artifact boundary by the
update engine and turned into report rows instead.
"""

from __future__ import annotations


class ChefError(Exception):
    """
    Base exception for chef errors.

    Attributes:
        message: Human-readable error message
        remediation: Suggested fix for the error
    """
    def __init__(self, message: str, remediation: str | None = None):
        self.message = message
        self.remediation = remediation
        super().__init__(message)


class StoreError(ChefError):
    """Base class for persistent store failures."""


class StoreCorrupt(StoreError):
    """The store file exists but does not hold a valid JSON document."""

    def __init__(self, path: str, detail: str):
        self.path = path
        super().__init__(
            f"Store file {path} is corrupt: {detail}",
            remediation=f"Fix or move {path} aside; chef will not overwrite it",
        )


class StoreWriteFailed(StoreError):
    """Writing the store file failed."""

    def __init__(self, path: str, detail: str):
        self.path = path
        super().__init__(f"Failed to write store file {path}: {detail}")


class VersionLookupFailed(ChefError):
    """A recipe's version lookup raised or returned nothing."""


class DownloadFailed(ChefError):
    """A recipe's download routine raised."""


class ProviderError(ChefError):
    """A provider answered with a failure or broke the protocol."""


class ProviderUnreachable(ProviderError):
    """The provider process could not be started or its session died."""


class Cancelled(ChefError):
    """Cooperative cancellation was observed."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class UnknownRecipe(ChefError):
    """No recipe with the given name is registered."""

    def __init__(self, names: str | list[str]):
        if isinstance(names, str):
            names = [names]
        self.names = tuple(names)
        joined = ", ".join(self.names)
        super().__init__(
            f"Unknown binary: {joined}",
            remediation="Run 'list' to see the available binaries",
        )


class NotInstalled(ChefError):
    """The recipe exists but has never been installed."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f'Binary "{name}" is not installed',
            remediation="Run 'update' first",
        )
