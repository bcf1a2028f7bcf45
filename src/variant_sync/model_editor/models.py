"""Domain models for external API usages and their modeled methods."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Mode(str, Enum):
    """What the session models: the application's dependencies or a framework."""

    APPLICATION = "application"
    FRAMEWORK = "framework"


class ModeledMethodType(str, Enum):
    """Model kinds; ``NONE`` means explicitly unmodeled."""

    NONE = "none"
    SOURCE = "source"
    SINK = "sink"
    SUMMARY = "summary"
    NEUTRAL = "neutral"


class Provenance(str, Enum):
    """Who authored a model."""

    MANUAL = "manual"
    AI_GENERATED = "ai-generated"
    DF_GENERATED = "df-generated"


@dataclass(frozen=True, slots=True)
class ModeledMethod:
    """Model for one signature; compared by value."""

    type: ModeledMethodType
    input: str = ""
    output: str = ""
    kind: str = ""
    provenance: Provenance = Provenance.MANUAL

    @classmethod
    def none(cls) -> ModeledMethod:
        return cls(type=ModeledMethodType.NONE)

    @property
    def is_modeled(self) -> bool:
        return self.type is not ModeledMethodType.NONE

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "input": self.input,
            "output": self.output,
            "kind": self.kind,
            "provenance": self.provenance.value,
        }

    @classmethod
    def from_payload(cls, payload: object) -> ModeledMethod:
        """Deserialize and validate one modeled method."""

        if not isinstance(payload, dict):
            raise TypeError("modeled method must be an object")
        raw_type = payload.get("type")
        if not isinstance(raw_type, str):
            raise TypeError("modeled method type must be a string")
        try:
            method_type = ModeledMethodType(raw_type)
        except ValueError as error:
            raise ValueError(f"unknown modeled method type {raw_type!r}") from error
        raw_provenance = payload.get("provenance", Provenance.MANUAL.value)
        if not isinstance(raw_provenance, str):
            raise TypeError("modeled method provenance must be a string")
        try:
            provenance = Provenance(raw_provenance)
        except ValueError as error:
            raise ValueError(f"unknown modeled method provenance {raw_provenance!r}") from error
        values: dict[str, str] = {}
        for field_name in ("input", "output", "kind"):
            value = payload.get(field_name, "")
            if not isinstance(value, str):
                raise TypeError(f"modeled method {field_name} must be a string")
            values[field_name] = value
        return cls(type=method_type, provenance=provenance, **values)


@dataclass(frozen=True, slots=True)
class ExternalApiUsage:
    """One external API call site, keyed by its stable signature."""

    signature: str
    package_name: str
    type_name: str
    method_name: str
    method_parameters: str
    library: str = ""
    supported: bool = False
    usage_count: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "packageName": self.package_name,
            "typeName": self.type_name,
            "methodName": self.method_name,
            "methodParameters": self.method_parameters,
            "library": self.library,
            "supported": self.supported,
            "usageCount": self.usage_count,
        }


def calculate_modeled_percentage(usages: Iterable[ExternalApiUsage]) -> float:
    """Share of usages already supported, in percent; 0 when there are none."""

    total = 0
    supported = 0
    for usage in usages:
        total += 1
        if usage.supported:
            supported += 1
    if total == 0:
        return 0.0
    return supported * 100.0 / total


def visible_usages(
    usages: Iterable[ExternalApiUsage],
    *,
    hide_modeled_apis: bool,
) -> list[ExternalApiUsage]:
    """Usages to show; ``hide_modeled_apis`` hides those already modeled in other packs."""

    if not hide_modeled_apis:
        return list(usages)
    return [usage for usage in usages if not usage.supported]


def usages_by_package(usages: Iterable[ExternalApiUsage]) -> dict[str, list[ExternalApiUsage]]:
    """Group usages by package name, keeping first-seen order."""

    grouped: dict[str, list[ExternalApiUsage]] = {}
    for usage in usages:
        grouped.setdefault(usage.package_name, []).append(usage)
    return grouped
