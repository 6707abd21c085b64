"""
Masking policy: privacy level plus per-field exemption sets.

The policy is pure data. It is built once at configuration time and shared
read-only by every masking call, so it is a frozen model.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from ..config import MaskingSettings

MASK = "***"


class PrivacyLevel(str, Enum):
    """How aggressively analytics data is masked."""

    OPEN = "open"
    RESTRICTED = "restricted"
    LOCKED = "locked"

    @classmethod
    def _missing_(cls, value: object) -> Optional["PrivacyLevel"]:
        if not isinstance(value, str):
            return None
        lowered = value.lower()
        aliases = {
            "none": cls.OPEN,
            "private": cls.RESTRICTED,
            "sensitive": cls.LOCKED,
        }
        for member in cls:
            if member.value == lowered:
                return member
        return aliases.get(lowered)


def _lower_keys(v: Any) -> FrozenSet[str]:
    if v is None:
        return frozenset()
    if isinstance(v, str):
        v = [v]
    return frozenset(str(key).lower() for key in v)


class MaskingPolicy(BaseModel):
    """
    Immutable masking policy.

    Exemption sets are only consulted at RESTRICTED level. LOCKED ignores
    them and OPEN masks nothing. Keys are stored lower-cased and every lookup
    lower-cases its key, so matching is case-insensitive.
    """

    level: PrivacyLevel = PrivacyLevel.LOCKED
    mask_query_literals: bool = True
    unmasked_header_keys: FrozenSet[str] = Field(default_factory=frozenset)
    unmasked_query_param_keys: FrozenSet[str] = Field(default_factory=frozenset)
    unmasked_body_field_keys: FrozenSet[str] = Field(default_factory=frozenset)
    max_depth: int = Field(default=64, ge=1, le=256)

    model_config = ConfigDict(frozen=True)

    @field_validator(
        "unmasked_header_keys",
        "unmasked_query_param_keys",
        "unmasked_body_field_keys",
        mode="before",
    )
    def normalize_keys(cls, v: Any) -> FrozenSet[str]:
        """Lower-case exemption keys once, at construction."""
        return _lower_keys(v)

    @classmethod
    def from_settings(cls, settings: "MaskingSettings") -> "MaskingPolicy":
        """Build the policy described by the masking section of the settings."""
        return cls(
            level=settings.level,
            mask_query_literals=settings.mask_query_literals,
            unmasked_header_keys=settings.unmasked_headers,
            unmasked_query_param_keys=settings.unmasked_query_params,
            unmasked_body_field_keys=settings.unmasked_body_fields,
            max_depth=settings.max_depth,
        )

    @property
    def body_exempt_keys(self) -> FrozenSet[str]:
        """Body/variable exemptions in effect for this level."""
        if self.level is PrivacyLevel.RESTRICTED:
            return self.unmasked_body_field_keys
        return frozenset()

    def is_header_exempt(self, key: str) -> bool:
        return self._is_exempt(key, self.unmasked_header_keys)

    def is_query_param_exempt(self, key: str) -> bool:
        return self._is_exempt(key, self.unmasked_query_param_keys)

    def is_body_field_exempt(self, key: str) -> bool:
        return self._is_exempt(key, self.unmasked_body_field_keys)

    def _is_exempt(self, key: str, keys: FrozenSet[str]) -> bool:
        if self.level is not PrivacyLevel.RESTRICTED:
            return False
        return key.lower() in keys


# Fail closed when nothing is configured
DEFAULT_POLICY = MaskingPolicy()
