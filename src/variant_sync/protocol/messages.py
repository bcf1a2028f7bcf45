"""Typed, versioned messages exchanged with the presentation surface.

Wire payloads are JSON-compatible objects ``{"t": <kind>, "v": <version>, ...}``
with camelCase field names. Inbound kinds form a closed set: anything else,
or a known kind with the wrong shape, is rejected with ``UnknownMessageKind``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, assert_never

from variant_sync.errors import UnknownMessageKind
from variant_sync.model_editor.in_progress import InProgressMethods
from variant_sync.model_editor.models import ExternalApiUsage, Mode, ModeledMethod
from variant_sync.variant_analysis.models import VariantAnalysisSnapshot

PROTOCOL_VERSION = 1


@dataclass(frozen=True, slots=True)
class RefreshMessage:
    """Reload external API usages and saved models."""


@dataclass(frozen=True, slots=True)
class SaveMessage:
    """Persist the given signatures, applying the submitted models first."""

    signatures: tuple[str, ...]
    methods: Mapping[str, ModeledMethod] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GenerateMessage:
    package_name: str


@dataclass(frozen=True, slots=True)
class StopGenerateMessage:
    package_name: str


@dataclass(frozen=True, slots=True)
class SwitchModeMessage:
    mode: Mode


@dataclass(frozen=True, slots=True)
class ToggleHideModeledMessage:
    pass


@dataclass(frozen=True, slots=True)
class OpenDatabaseMessage:
    pass


@dataclass(frozen=True, slots=True)
class OpenExtensionPackMessage:
    pass


@dataclass(frozen=True, slots=True)
class SetModeledMethodMessage:
    """Direct user edit of one signature."""

    signature: str
    method: ModeledMethod


@dataclass(frozen=True, slots=True)
class CancelVariantAnalysisMessage:
    run_id: str


InboundMessage = (
    RefreshMessage
    | SaveMessage
    | GenerateMessage
    | StopGenerateMessage
    | SwitchModeMessage
    | ToggleHideModeledMessage
    | OpenDatabaseMessage
    | OpenExtensionPackMessage
    | SetModeledMethodMessage
    | CancelVariantAnalysisMessage
)


@dataclass(frozen=True, slots=True)
class SetVariantAnalysisMessage:
    snapshot: VariantAnalysisSnapshot


@dataclass(frozen=True, slots=True)
class SetModeledMethodsMessage:
    modeled_methods: Mapping[str, ModeledMethod]
    modified_signatures: frozenset[str]


@dataclass(frozen=True, slots=True)
class SetInProgressMethodsMessage:
    """Full in-progress set for one package plus the whole map."""

    package_name: str
    in_progress: InProgressMethods


@dataclass(frozen=True, slots=True)
class SetViewStateMessage:
    mode: Mode
    hide_modeled_apis: bool


@dataclass(frozen=True, slots=True)
class SetExternalApiUsagesMessage:
    usages: tuple[ExternalApiUsage, ...]
    modeled_percentage: float


OutboundMessage = (
    SetVariantAnalysisMessage
    | SetModeledMethodsMessage
    | SetInProgressMethodsMessage
    | SetViewStateMessage
    | SetExternalApiUsagesMessage
)


def parse_inbound(payload: object) -> InboundMessage:
    """Validate one inbound payload and build its typed message."""

    if not isinstance(payload, dict):
        raise UnknownMessageKind(None, "message must be an object")
    kind = payload.get("t")
    if not isinstance(kind, str) or not kind:
        raise UnknownMessageKind(kind, "message kind 't' must be a non-empty string")

    version = payload.get("v", PROTOCOL_VERSION)
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        raise UnknownMessageKind(kind, "message version 'v' must be an integer >= 1")
    if version > PROTOCOL_VERSION:
        raise UnknownMessageKind(
            kind,
            f"message version {version} is newer than supported version {PROTOCOL_VERSION}",
        )

    parser = _INBOUND_PARSERS.get(kind)
    if parser is None:
        raise UnknownMessageKind(kind, "unknown message kind")
    try:
        return parser(payload)
    except (TypeError, ValueError) as error:
        raise UnknownMessageKind(kind, str(error)) from error


def outbound_payload(message: OutboundMessage) -> dict[str, Any]:
    """Serialize an outbound message for the transport."""

    match message:
        case SetVariantAnalysisMessage():
            body: dict[str, Any] = {
                "t": "setVariantAnalysis",
                "variantAnalysis": message.snapshot.to_payload(),
            }
        case SetModeledMethodsMessage():
            body = {
                "t": "setModeledMethods",
                "modeledMethods": {
                    signature: method.to_payload()
                    for signature, method in sorted(message.modeled_methods.items())
                },
                "modifiedSignatures": sorted(message.modified_signatures),
            }
        case SetInProgressMethodsMessage():
            body = {
                "t": "setInProgressMethods",
                "packageName": message.package_name,
                "inProgressMethods": sorted(
                    message.in_progress.methods_for(message.package_name),
                ),
                "allInProgressMethods": message.in_progress.to_payload(),
            }
        case SetViewStateMessage():
            body = {
                "t": "setViewState",
                "mode": message.mode.value,
                "hideModeledApis": message.hide_modeled_apis,
            }
        case SetExternalApiUsagesMessage():
            body = {
                "t": "setExternalApiUsages",
                "externalApiUsages": [usage.to_payload() for usage in message.usages],
                "modeledPercentage": message.modeled_percentage,
            }
        case _:
            assert_never(message)
    body["v"] = PROTOCOL_VERSION
    return body


def _parse_refresh(payload: dict[str, Any]) -> RefreshMessage:
    return RefreshMessage()


def _parse_save(payload: dict[str, Any]) -> SaveMessage:
    signatures = _require_str_list(payload, "signatures")
    raw_methods = payload.get("modeledMethods", {})
    if not isinstance(raw_methods, dict):
        raise TypeError("save.modeledMethods must be an object")
    methods: dict[str, ModeledMethod] = {}
    for signature, raw_method in raw_methods.items():
        if not isinstance(signature, str) or not signature:
            raise ValueError("save.modeledMethods keys must be non-empty strings")
        methods[signature] = ModeledMethod.from_payload(raw_method)
    return SaveMessage(signatures=tuple(dict.fromkeys(signatures)), methods=methods)


def _parse_generate(payload: dict[str, Any]) -> GenerateMessage:
    return GenerateMessage(package_name=_require_str(payload, "packageName"))


def _parse_stop_generate(payload: dict[str, Any]) -> StopGenerateMessage:
    return StopGenerateMessage(package_name=_require_str(payload, "packageName"))


def _parse_switch_mode(payload: dict[str, Any]) -> SwitchModeMessage:
    raw_mode = _require_str(payload, "mode")
    try:
        mode = Mode(raw_mode)
    except ValueError as error:
        raise ValueError(f"switchMode.mode is not a known mode: {raw_mode!r}") from error
    return SwitchModeMessage(mode=mode)


def _parse_toggle_hide_modeled(payload: dict[str, Any]) -> ToggleHideModeledMessage:
    return ToggleHideModeledMessage()


def _parse_open_database(payload: dict[str, Any]) -> OpenDatabaseMessage:
    return OpenDatabaseMessage()


def _parse_open_extension_pack(payload: dict[str, Any]) -> OpenExtensionPackMessage:
    return OpenExtensionPackMessage()


def _parse_set_modeled_method(payload: dict[str, Any]) -> SetModeledMethodMessage:
    return SetModeledMethodMessage(
        signature=_require_str(payload, "signature"),
        method=ModeledMethod.from_payload(payload.get("modeledMethod")),
    )


def _parse_cancel_variant_analysis(payload: dict[str, Any]) -> CancelVariantAnalysisMessage:
    return CancelVariantAnalysisMessage(run_id=_require_str(payload, "runId"))


_INBOUND_PARSERS: dict[str, Callable[[dict[str, Any]], InboundMessage]] = {
    "refresh": _parse_refresh,
    "save": _parse_save,
    "generate": _parse_generate,
    "stopGenerate": _parse_stop_generate,
    "switchMode": _parse_switch_mode,
    "toggleHideModeled": _parse_toggle_hide_modeled,
    "openDatabase": _parse_open_database,
    "openExtensionPack": _parse_open_extension_pack,
    "setModeledMethod": _parse_set_modeled_method,
    "cancelVariantAnalysis": _parse_cancel_variant_analysis,
}


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{payload.get('t')}.{key} must be a non-empty string")
    return value


def _require_str_list(payload: dict[str, Any], key: str) -> list[str]:
    value = payload.get(key)
    if not isinstance(value, list):
        raise TypeError(f"{payload.get('t')}.{key} must be an array")
    for item in value:
        if not isinstance(item, str) or not item:
            raise ValueError(f"{payload.get('t')}.{key} entries must be non-empty strings")
    return value
