"""Configuration management for Pay Audit.

Configuration is split into two files:

1. settings.json - Machine-specific settings
   - tax_year: year of the tax-rules table to estimate with
   - thresholds: overrides for audit tolerance thresholds
   - tier_policies: overrides for subscription tier masking policies
   - default_tier: tier used when the CLI is not given --tier
   - profile: path to profile.yaml (optional, if not colocated)

2. profile.yaml - Filer metadata used for tax estimates
   - filing_status, allowances, state, czte

Config directory resolution:
1. PAY_AUDIT_CONFIG_PATH environment variable (if set)
2. ~/.config/pay-audit/ (XDG_CONFIG_HOME fallback)

The config directory may also hold a tax-rules/ folder whose YYYY.yaml files
take precedence over the packaged tables.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from .schemas import FilerProfile, MalformedInputError


APP_NAME = "pay-audit"
SETTINGS_FILENAME = "settings.json"
PROFILE_FILENAME = "profile.yaml"
TAX_RULES_DIRNAME = "tax-rules"

logger = logging.getLogger(__name__)


class ProfileNotFoundError(Exception):
    """Raised when no profile is found."""
    pass


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Resolution order:
    1. PAY_AUDIT_CONFIG_PATH environment variable
    2. ~/.config/pay-audit/ (XDG_CONFIG_HOME)

    Returns:
        Path to the configuration directory
    """
    env_path = os.environ.get("PAY_AUDIT_CONFIG_PATH")
    if env_path:
        return Path(env_path)

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    return Path(xdg_config_home) / APP_NAME


def get_settings_path() -> Path:
    """Get the path to settings.json (may not exist yet)."""
    return get_config_dir() / SETTINGS_FILENAME


def get_user_tax_rules_dir() -> Path:
    """Get the user override directory for tax-rules YAML files."""
    return get_config_dir() / TAX_RULES_DIRNAME


def load_settings() -> dict:
    """Load machine-specific settings from settings.json.

    Returns:
        Settings dictionary (empty dict if file doesn't exist)
    """
    settings_file = get_settings_path()

    if not settings_file.exists():
        return {}

    with open(settings_file, "r") as f:
        return json.load(f)


def save_settings(settings: dict) -> Path:
    """Save machine-specific settings to settings.json.

    Returns:
        Path to the saved settings file
    """
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    settings_file = config_dir / SETTINGS_FILENAME

    with open(settings_file, "w") as f:
        json.dump(settings, f, indent=2)

    return settings_file


def get_setting(key: str, default: Any = None) -> Any:
    """Get a setting value from settings.json.

    Args:
        key: Setting key (e.g., "tax_year", "default_tier")
        default: Default value if key not found
    """
    return load_settings().get(key, default)


def set_setting(key: str, value: Any) -> Path:
    """Set a setting value in settings.json.

    Returns:
        Path to the saved settings file
    """
    settings = load_settings()
    settings[key] = value
    return save_settings(settings)


def unset_setting(key: str) -> bool:
    """Remove a setting. Returns True if it was present."""
    settings = load_settings()
    if key not in settings:
        return False
    del settings[key]
    save_settings(settings)
    return True


def get_profile_path(require_exists: bool = False) -> Path:
    """Get the path to the profile.yaml file.

    Resolution order:
    1. settings.json "profile" key (if set)
    2. profile.yaml in config directory

    Raises:
        ProfileNotFoundError: If require_exists=True and no profile found
    """
    custom_profile = load_settings().get("profile")
    if custom_profile:
        profile_path = Path(custom_profile)
        if require_exists and not profile_path.exists():
            raise ProfileNotFoundError(
                f"Profile not found at configured path: {profile_path}\n\n"
                f"Update with: pay-audit settings set profile /path/to/profile.yaml"
            )
        return profile_path

    profile_path = get_config_dir() / PROFILE_FILENAME
    if require_exists and not profile_path.exists():
        raise ProfileNotFoundError(
            f"No profile found. Checked:\n"
            f"  1. settings.json 'profile' key (not set)\n"
            f"  2. {profile_path} (not found)\n\n"
            f"Create {profile_path} with filing_status, allowances, state and czte."
        )
    return profile_path


def load_profile(require_exists: bool = True) -> Optional[FilerProfile]:
    """Load filer metadata from profile.yaml.

    Args:
        require_exists: If True, raises ProfileNotFoundError if not found

    Returns:
        FilerProfile, or None if not required and not found

    Raises:
        ProfileNotFoundError: If require_exists=True and no profile found
        MalformedInputError: If the profile does not match the schema
    """
    profile_path = get_profile_path(require_exists=require_exists)

    if not profile_path.exists():
        return None

    with open(profile_path, "r") as f:
        data = yaml.safe_load(f) or {}

    try:
        return FilerProfile.model_validate(data)
    except ValidationError as e:
        raise MalformedInputError(f"Invalid profile {profile_path}: {e}") from e


def save_profile(profile: FilerProfile, path: Optional[Path] = None) -> Path:
    """Save filer metadata to profile.yaml.

    Returns:
        Path to the saved profile file
    """
    if path is None:
        path = get_profile_path(require_exists=False)

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(profile.model_dump(), f, default_flow_style=False, sort_keys=False)

    logger.debug(f"Saved profile to {path}")
    return path
