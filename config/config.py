"""Configuration constants for layer extraction."""

from typing import Any, Dict, Optional
import os
import toml

CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.toml")

# Supported source documents
DOCUMENT_EXTENSIONS = (
    ".psd",
    ".psb",
    ".PSD",
    ".PSB",
)

# Rule profiles understood by extractor.rules
RULE_PROFILES = ("full", "simple")

# Default export settings
DEFAULT_EXPORT = {
    "manifest_name": "info.json",
    "indent": "\t",
    "dpi": 144,
    "mode": "RGBA",
    "output_root": "",
}

# Default crop focus, overridden by a layer named "important"
DEFAULT_CROP = {
    "horizontal": "center",  # left|center|right
    "vertical": "center",  # top|center|bottom
}

DEFAULT_RULES = {
    "profile": "full",
    "transitive_links": False,
}

# Current active configurations - defaults to built-in values
EXPORT = DEFAULT_EXPORT.copy()
CROP = DEFAULT_CROP.copy()
RULES = DEFAULT_RULES.copy()


def load_toml_config(config_path: str, section: str) -> Dict[str, Any]:
    """Load a configuration section from a TOML file.

    Args:
        config_path: Path to the TOML file
        section: Name of the section to load

    Returns:
        Dictionary containing the configuration data
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        config = toml.load(config_path)
    except Exception as e:
        raise ValueError(f"Failed to parse config file: {str(e)}")

    section_data = config.get(section, {})
    if not section_data:
        raise ValueError(f"No {section} configuration found in TOML file")
    return section_data


def load_export_from_toml(config_path: str) -> Dict[str, Any]:
    """Load export settings (manifest name, indent, dpi, mode, output root)."""
    return load_toml_config(config_path, "export")


def load_crop_from_toml(config_path: str) -> Dict[str, str]:
    """Load the default crop focus descriptor."""
    crop = load_toml_config(config_path, "crop")
    if crop.get("horizontal", "center") not in ("left", "center", "right"):
        raise ValueError(f"Invalid horizontal crop keyword: {crop['horizontal']}")
    if crop.get("vertical", "center") not in ("top", "center", "bottom"):
        raise ValueError(f"Invalid vertical crop keyword: {crop['vertical']}")
    return crop


def load_rules_from_toml(config_path: str) -> Dict[str, Any]:
    """Load the classification profile settings."""
    rules = load_toml_config(config_path, "rules")
    profile = rules.get("profile", DEFAULT_RULES["profile"])
    if profile not in RULE_PROFILES:
        raise ValueError(f"Unknown rule profile: {profile}")
    return rules


def load_config(config_path: Optional[str] = None) -> None:
    """Load all configurations from a TOML file.

    Sections that are missing or invalid keep their defaults.

    Args:
        config_path: Path to the TOML file, defaults to config/config.toml
    """
    global EXPORT, CROP, RULES

    config_path = config_path or CONFIG_PATH
    EXPORT = DEFAULT_EXPORT.copy()
    CROP = DEFAULT_CROP.copy()
    RULES = DEFAULT_RULES.copy()

    try:
        EXPORT.update(load_export_from_toml(config_path))
    except Exception as e:
        print(f"Warning: Failed to load export configuration: {e}")

    try:
        CROP.update(load_crop_from_toml(config_path))
    except Exception as e:
        print(f"Warning: Failed to load crop configuration: {e}")

    try:
        RULES.update(load_rules_from_toml(config_path))
    except Exception as e:
        print(f"Warning: Failed to load rules configuration: {e}")
