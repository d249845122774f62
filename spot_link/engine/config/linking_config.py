"""Frame-to-frame linking settings.

Settings travel as a plain ``{key: value}`` mapping (what a YAML file or a
GUI panel produces) and are validated once, as a whole, before a linking
run starts. :class:`LinkingSettings` is the immutable, validated view.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import yaml


KEY_LINKING_MAX_DISTANCE = "linking_max_distance"
KEY_ALTERNATIVE_LINKING_COST_FACTOR = "alternative_linking_cost_factor"
KEY_CUTOFF_PERCENTILE = "cutoff_percentile"
KEY_LINKING_FEATURE_PENALTIES = "linking_feature_penalties"

MANDATORY_KEYS = (
    KEY_LINKING_MAX_DISTANCE,
    KEY_ALTERNATIVE_LINKING_COST_FACTOR,
    KEY_CUTOFF_PERCENTILE,
)
OPTIONAL_KEYS = (KEY_LINKING_FEATURE_PENALTIES,)

DEFAULT_LINKING_MAX_DISTANCE = 15.0
DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR = 1.05
DEFAULT_CUTOFF_PERCENTILE = 90.0


class SettingsError(ValueError):
    """Raised when a settings mapping fails validation.

    All violations found are kept in ``errors`` so the caller sees every
    problem at once.
    """

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("\n".join(self.errors))


def default_linking_settings() -> Dict[str, Any]:
    """Fresh settings mapping holding the default values."""
    return {
        KEY_LINKING_MAX_DISTANCE: DEFAULT_LINKING_MAX_DISTANCE,
        KEY_ALTERNATIVE_LINKING_COST_FACTOR: DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR,
        KEY_CUTOFF_PERCENTILE: DEFAULT_CUTOFF_PERCENTILE,
        KEY_LINKING_FEATURE_PENALTIES: {},
    }


# =============================================================================
# Validation
# =============================================================================

def _is_real(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _type_name(value: Any) -> str:
    return type(value).__name__


def check_parameter(settings: Mapping[str, Any], key: str, errors: List[str]) -> bool:
    """Check that *key* is present and holds a finite real number."""
    if key not in settings:
        errors.append(f"Parameter {key} could not be found in settings map.")
        return False
    value = settings[key]
    if not _is_real(value):
        errors.append(
            f"Value for parameter {key} is not of the right type: "
            f"expected a real number, got {_type_name(value)}."
        )
        return False
    if not math.isfinite(float(value)):
        errors.append(f"Value for parameter {key} must be finite, got {value}.")
        return False
    return True


def check_feature_map(settings: Mapping[str, Any], key: str, errors: List[str]) -> bool:
    """Check an optional ``{feature name: weight}`` mapping."""
    if key not in settings or settings[key] is None:
        return True
    value = settings[key]
    if not isinstance(value, Mapping):
        errors.append(
            f"Feature penalty map {key} is not of the right type: "
            f"expected a mapping, got {_type_name(value)}."
        )
        return False
    ok = True
    for feature, weight in value.items():
        if not isinstance(feature, str):
            errors.append(f"Feature penalty map {key} has a non-string feature name: {feature!r}.")
            ok = False
        elif not _is_real(weight) or not math.isfinite(float(weight)):
            errors.append(
                f"Feature penalty for {feature} in {key} must be a finite real number, "
                f"got {weight!r}."
            )
            ok = False
        elif weight < 0:
            errors.append(f"Feature penalty for {feature} in {key} must be >= 0, got {weight}.")
            ok = False
    return ok


def check_map_keys(
    settings: Mapping[str, Any],
    mandatory_keys: Sequence[str],
    optional_keys: Sequence[str],
    errors: List[str],
) -> bool:
    """Report keys that are neither mandatory nor optional.

    Missing mandatory keys are reported by :func:`check_parameter`.
    """
    known = set(mandatory_keys) | set(optional_keys)
    ok = all(key in settings for key in mandatory_keys)
    for key in settings:
        if key not in known:
            errors.append(f"Settings map contains an unexpected key: {key}.")
            ok = False
    return ok


def validate_linking_settings(settings: Optional[Mapping[str, Any]]) -> List[str]:
    """Return every violation found in *settings*; empty list means valid."""
    if settings is None:
        return ["Settings map is None."]
    if not isinstance(settings, Mapping):
        return [f"Settings must be a mapping, got {_type_name(settings)}."]

    errors: List[str] = []
    if check_parameter(settings, KEY_LINKING_MAX_DISTANCE, errors):
        if settings[KEY_LINKING_MAX_DISTANCE] <= 0:
            errors.append(
                f"Value for parameter {KEY_LINKING_MAX_DISTANCE} must be > 0, "
                f"got {settings[KEY_LINKING_MAX_DISTANCE]}."
            )
    check_feature_map(settings, KEY_LINKING_FEATURE_PENALTIES, errors)
    if check_parameter(settings, KEY_CUTOFF_PERCENTILE, errors):
        if not 0.0 <= settings[KEY_CUTOFF_PERCENTILE] <= 100.0:
            errors.append(
                f"Value for parameter {KEY_CUTOFF_PERCENTILE} must be in [0, 100], "
                f"got {settings[KEY_CUTOFF_PERCENTILE]}."
            )
    if check_parameter(settings, KEY_ALTERNATIVE_LINKING_COST_FACTOR, errors):
        if settings[KEY_ALTERNATIVE_LINKING_COST_FACTOR] < 0:
            errors.append(
                f"Value for parameter {KEY_ALTERNATIVE_LINKING_COST_FACTOR} must be >= 0, "
                f"got {settings[KEY_ALTERNATIVE_LINKING_COST_FACTOR]}."
            )
    check_map_keys(settings, MANDATORY_KEYS, OPTIONAL_KEYS, errors)
    return errors


# =============================================================================
# Validated settings
# =============================================================================

@dataclass(frozen=True)
class LinkingSettings:
    """Validated, immutable linking settings.

    linking_max_distance: spatial gate; pairs farther apart are never linked.
    alternative_linking_cost_factor: multiplies the cutoff-percentile cost to
        give the cost of leaving a spot unlinked.
    cutoff_percentile: percentile (0-100) of the linkable costs used as the
        base of the alternative cost.
    linking_feature_penalties: optional ``{feature: weight}`` penalties.
    """

    linking_max_distance: float = DEFAULT_LINKING_MAX_DISTANCE
    alternative_linking_cost_factor: float = DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR
    cutoff_percentile: float = DEFAULT_CUTOFF_PERCENTILE
    linking_feature_penalties: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "linking_feature_penalties",
            MappingProxyType(dict(self.linking_feature_penalties or {})),
        )

    @property
    def cost_threshold(self) -> float:
        """Maximal linkable cost: the squared max linking distance."""
        return float(self.linking_max_distance) ** 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            KEY_LINKING_MAX_DISTANCE: self.linking_max_distance,
            KEY_ALTERNATIVE_LINKING_COST_FACTOR: self.alternative_linking_cost_factor,
            KEY_CUTOFF_PERCENTILE: self.cutoff_percentile,
            KEY_LINKING_FEATURE_PENALTIES: dict(self.linking_feature_penalties),
        }

    @classmethod
    def from_mapping(cls, settings: Optional[Mapping[str, Any]]) -> "LinkingSettings":
        """Validate *settings* and build the frozen view.

        Raises:
            SettingsError: listing every violation.
        """
        errors = validate_linking_settings(settings)
        if errors:
            raise SettingsError(errors)
        return cls(
            linking_max_distance=float(settings[KEY_LINKING_MAX_DISTANCE]),
            alternative_linking_cost_factor=float(settings[KEY_ALTERNATIVE_LINKING_COST_FACTOR]),
            cutoff_percentile=float(settings[KEY_CUTOFF_PERCENTILE]),
            linking_feature_penalties={
                k: float(v) for k, v in (settings.get(KEY_LINKING_FEATURE_PENALTIES) or {}).items()
            },
        )


# =============================================================================
# YAML Loading / Saving
# =============================================================================

def load_linking_settings(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a raw settings mapping from YAML.

    The mapping may sit at the top level or under a ``linking:`` section.
    The result is not validated.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise SettingsError([f"Settings file {path} does not contain a mapping."])
    if isinstance(data.get("linking"), dict):
        data = data["linking"]
    return dict(data)


def save_linking_settings(
    settings: Union[LinkingSettings, Mapping[str, Any]],
    path: Union[str, Path],
) -> None:
    """Save settings to a YAML file."""
    if isinstance(settings, LinkingSettings):
        data = settings.to_dict()
    else:
        data = {
            k: dict(v) if isinstance(v, Mapping) else v
            for k, v in settings.items()
        }
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
