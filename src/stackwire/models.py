"""Manifest models for stackwire."""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .types import NAME_PATTERN

_NAME_RE = re.compile(NAME_PATTERN)


class Selector(BaseModel):
    """Type + label selector for a binding target."""

    type: str
    with_labels: dict[str, str] = Field(default_factory=dict)

    def matches(self, component_type: str, labels: dict[str, str]) -> bool:
        if component_type != self.type:
            return False
        return all(labels.get(key) == value for key, value in self.with_labels.items())


class BindingDirective(BaseModel):
    """A request to wire the owning component to a target capability."""

    to: str | None = None
    select: Selector | None = None
    capability: str
    # Checked against ACCESS_LEVELS at bind time so the error is typed.
    access: str
    env: dict[str, str] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_single_target(self) -> BindingDirective:
        """Exactly one of `to` and `select` identifies the target."""
        if (self.to is None) == (self.select is None):
            raise ValueError("binding directive needs exactly one of 'to' or 'select'")
        return self

    def describe_target(self) -> str:
        if self.select is None:
            return self.to or ""
        labels = ",".join(f"{k}={v}" for k, v in sorted(self.select.with_labels.items()))
        return f"{self.select.type}[{labels}]" if labels else self.select.type


class ComponentSpec(BaseModel):
    """Declarative description of one component in a manifest."""

    name: str
    type: str
    config: dict[str, Any] = Field(default_factory=dict)
    binds: list[BindingDirective] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)
    overrides: dict[str, Any] = Field(default_factory=dict)
    policy: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            raise ValueError(
                f"Invalid component name '{v}': must match {NAME_PATTERN}"
            )
        return v

    @field_validator("type")
    @classmethod
    def _check_type(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("component type must not be empty")
        return v


class ConfigurationLayer(BaseModel):
    """One prioritized contribution to a component configuration."""

    name: str
    priority: int
    config: dict[str, Any] = Field(default_factory=dict)


class Manifest(BaseModel):
    """Service manifest: shared context plus the component list."""

    version: str = "1"
    service: str
    owner: str | None = None
    compliance_framework: Literal["baseline", "moderate", "high"] = "baseline"
    environment: str = "dev"
    region: str = "us-east-1"
    account: str = "000000000000"
    governance: dict[str, dict[str, Any]] = Field(default_factory=dict)
    components: list[ComponentSpec] = Field(default_factory=list)
