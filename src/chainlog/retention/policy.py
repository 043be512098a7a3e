"""
Retention policy schemas and loading.

Policies can be given in code or loaded from a YAML/JSON file mapping
owner types to bounds, with a ``default`` used for every other type:

    default:
      older_than_days: 30
      keep_recent: 100
    owner_types:
      Order:
        older_than_days: 365
        keep_recent: 500
      Session:
        older_than_days: 7
        keep_recent: 10
"""

import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from chainlog.core.config.settings import settings
from chainlog.core.exceptions.custom_exceptions import ConfigurationError


class RetentionPolicy(BaseModel):
    """Bounds applied to one owner's entries."""

    older_than_days: float = Field(default=settings.RETENTION_OLDER_THAN_DAYS, ge=0)
    keep_recent: int = Field(default=settings.RETENTION_KEEP_RECENT, ge=0)

    @property
    def older_than(self) -> timedelta:
        return timedelta(days=self.older_than_days)

    @classmethod
    def from_settings(cls) -> "RetentionPolicy":
        return cls(
            older_than_days=settings.RETENTION_OLDER_THAN_DAYS,
            keep_recent=settings.RETENTION_KEEP_RECENT,
        )


class RetentionPolicySet(BaseModel):
    """Default policy plus per owner type overrides."""

    default: RetentionPolicy = Field(default_factory=RetentionPolicy.from_settings)
    owner_types: Dict[str, RetentionPolicy] = Field(default_factory=dict)

    @field_validator("owner_types")
    @classmethod
    def validate_owner_type_names(cls, v):
        for name in v:
            if not name.strip():
                raise ValueError("owner type names must not be blank")
        return v

    def for_type(self, owner_type: str) -> RetentionPolicy:
        return self.owner_types.get(owner_type, self.default)

    def overridden(
        self, older_than: Optional[timedelta] = None, keep_recent: Optional[int] = None
    ) -> "RetentionPolicySet":
        """Copy with the given bounds replacing those of every policy."""
        changes: Dict[str, Any] = {}
        if older_than is not None:
            changes["older_than_days"] = older_than.total_seconds() / 86400
        if keep_recent is not None:
            changes["keep_recent"] = keep_recent
        return RetentionPolicySet(
            default=self.default.model_copy(update=changes),
            owner_types={
                name: policy.model_copy(update=changes)
                for name, policy in self.owner_types.items()
            },
        )


class PolicyLoader:
    """Loads RetentionPolicySet definitions from YAML or JSON files"""

    @staticmethod
    def load_config(file_path: str) -> Dict[str, Any]:
        """Load a raw policy mapping from file"""
        path = Path(file_path)

        if not path.exists():
            raise ConfigurationError(
                f"Retention policy file not found: {file_path}",
                error_code="POLICY_FILE_MISSING",
                details={"path": file_path},
            )

        try:
            with open(path, "r") as f:
                if path.suffix.lower() in [".yaml", ".yml"]:
                    data = yaml.safe_load(f)
                elif path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    raise ConfigurationError(
                        f"Unsupported policy file format: {path.suffix}",
                        error_code="POLICY_FILE_FORMAT",
                        details={"path": file_path},
                    )
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to parse retention policy file: {e}",
                error_code="POLICY_FILE_PARSE_ERROR",
                details={"path": file_path},
            ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Retention policy file must contain a mapping",
                error_code="POLICY_FILE_NOT_MAPPING",
                details={"path": file_path},
            )
        return data

    @staticmethod
    def validate(data: Dict[str, Any]) -> RetentionPolicySet:
        """Validate a raw mapping into a RetentionPolicySet"""
        try:
            return RetentionPolicySet(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid retention policy: {e}",
                error_code="POLICY_INVALID",
                details={"errors": e.errors()},
            ) from e


def load_policies(file_path: str) -> RetentionPolicySet:
    """Load and validate retention policies from ``file_path``."""
    return PolicyLoader.validate(PolicyLoader.load_config(file_path))
