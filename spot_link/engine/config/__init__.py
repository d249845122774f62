"""Linking configuration.

Usage:
    from spot_link.engine.config import load_linking_settings, LinkingSettings

    raw = load_linking_settings("configs/linking.yaml")
    settings = LinkingSettings.from_mapping(raw)
    print(settings.cost_threshold)
"""

from spot_link.engine.config.linking_config import (
    KEY_ALTERNATIVE_LINKING_COST_FACTOR,
    KEY_CUTOFF_PERCENTILE,
    KEY_LINKING_FEATURE_PENALTIES,
    KEY_LINKING_MAX_DISTANCE,
    LinkingSettings,
    SettingsError,
    default_linking_settings,
    load_linking_settings,
    save_linking_settings,
    validate_linking_settings,
)

__all__ = [
    "KEY_ALTERNATIVE_LINKING_COST_FACTOR",
    "KEY_CUTOFF_PERCENTILE",
    "KEY_LINKING_FEATURE_PENALTIES",
    "KEY_LINKING_MAX_DISTANCE",
    "LinkingSettings",
    "SettingsError",
    "default_linking_settings",
    "load_linking_settings",
    "save_linking_settings",
    "validate_linking_settings",
]
