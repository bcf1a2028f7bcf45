"""Error taxonomy shared by all session components."""

from __future__ import annotations

from collections.abc import Iterable, Mapping


class VariantSyncError(Exception):
    """Base error for the session engine."""


class ConflictError(VariantSyncError):
    """Signatures are already being generated under another package."""

    def __init__(self, *, package_name: str, conflicts: Mapping[str, str]) -> None:
        self.package_name = package_name
        self.conflicts = dict(conflicts)
        owners = ", ".join(
            f"{signature} -> {owner}" for signature, owner in sorted(self.conflicts.items())
        )
        super().__init__(
            f"Cannot start generation for package {package_name!r}: "
            f"signatures already in progress elsewhere ({owners}).",
        )


class UnknownMessageKind(VariantSyncError):
    """Inbound message does not match any known kind or its declared shape."""

    def __init__(self, kind: object, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"Rejected inbound message kind={kind!r}: {reason}")


class PersistenceFailure(VariantSyncError):
    """Saving modeled methods did not complete; nothing was stored."""

    def __init__(self, message: str, *, signatures: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.signatures = tuple(signatures)


class InvalidRunTransition(VariantSyncError):
    """Requested lifecycle transition is not allowed from the current state."""

    def __init__(self, *, run_id: str, status_from: str, status_to: str) -> None:
        self.run_id = run_id
        self.status_from = status_from
        self.status_to = status_to
        super().__init__(
            f"Variant analysis {run_id} cannot move from status={status_from} "
            f"to status={status_to}",
        )


class JobSourceError(VariantSyncError):
    """Job source call failed, with a retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class TransportError(VariantSyncError):
    """Transport could not deliver an outbound payload."""
