"""
chef - personal package manager.

Core Modules:
- Recipes: recipe and install-result types, the recipe registry
- Store: per-script JSON ledger of installed versions, settings and providers
- Providers: external provider sessions and the provider-side SDK
- Updates: version reconciliation and sequential installs with cancellation
- Running: launching installed binaries and tracking their processes
"""

__version__ = "1.0.0"

# Version info for backward compatibility
VERSION = __version__

# Recipes
from .recipe import (
    DesktopFile,
    DirInstall,
    DownloadRequest,
    ExeInstall,
    ExternInstall,
    InstallResult,
    Recipe,
    parse_install_result,
)
from .registry import RecipeRegistry
from .cancellation import CancellationToken

# Errors
from .errors import (
    Cancelled,
    ChefError,
    DownloadFailed,
    NotInstalled,
    ProviderError,
    ProviderUnreachable,
    StoreCorrupt,
    StoreError,
    StoreWriteFailed,
    UnknownRecipe,
    VersionLookupFailed,
)

# Store and configuration
from .store import ChefStore, ProviderRegistration, StoreEntry
from .paths import ChefPaths, script_name_from_path
from .config import ChefConfig, Preferences, load_config, load_config_file
from .settings import SettingsManager

# Providers
from .providers import ProviderManager
from .sdk import ChefProvider, ProviderApp, is_provider_mode, run_chef_provider

# Updates and running
from .updater import InstallOutcome, UpdateEngine, UpdateReport, VersionCheck
from .progress import ProgressTracker
from .runner import BinaryRunner, LaunchTarget
from .events import ChefEvents
from .desktop import DesktopFileManager

# Recipe helpers
from .transport import download_file, run_shell
from .utils import get_latest_github_release, get_latest_npm_version, is_url

# Composition root
from .core import Chef

__all__ = [
    "__version__",
    "VERSION",
    # Recipes
    "DesktopFile",
    "DirInstall",
    "DownloadRequest",
    "ExeInstall",
    "ExternInstall",
    "InstallResult",
    "Recipe",
    "parse_install_result",
    "RecipeRegistry",
    "CancellationToken",
    # Errors
    "Cancelled",
    "ChefError",
    "DownloadFailed",
    "NotInstalled",
    "ProviderError",
    "ProviderUnreachable",
    "StoreCorrupt",
    "StoreError",
    "StoreWriteFailed",
    "UnknownRecipe",
    "VersionLookupFailed",
    # Store and configuration
    "ChefStore",
    "ProviderRegistration",
    "StoreEntry",
    "ChefPaths",
    "script_name_from_path",
    "ChefConfig",
    "Preferences",
    "load_config",
    "load_config_file",
    "SettingsManager",
    # Providers
    "ProviderManager",
    "ChefProvider",
    "ProviderApp",
    "is_provider_mode",
    "run_chef_provider",
    # Updates and running
    "InstallOutcome",
    "UpdateEngine",
    "UpdateReport",
    "VersionCheck",
    "ProgressTracker",
    "BinaryRunner",
    "LaunchTarget",
    "ChefEvents",
    "DesktopFileManager",
    # Recipe helpers
    "download_file",
    "run_shell",
    "get_latest_github_release",
    "get_latest_npm_version",
    "is_url",
    # Composition root
    "Chef",
]
