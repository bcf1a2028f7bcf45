"""Per-package tracking of signatures currently being generated."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from variant_sync.errors import ConflictError

logger = logging.getLogger(__name__)

InProgressListener = Callable[[str, "InProgressMethods"], None]


@dataclass(frozen=True, slots=True)
class InProgressMethods:
    """Immutable package -> signatures map; every update returns a new value."""

    packages: Mapping[str, frozenset[str]] = field(default_factory=dict)
    _owners: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        packages = {name: frozenset(sigs) for name, sigs in self.packages.items() if sigs}
        owners: dict[str, str] = {}
        for package_name, signatures in packages.items():
            for signature in signatures:
                owner = owners.setdefault(signature, package_name)
                if owner != package_name:
                    raise ValueError(
                        f"Signature {signature!r} is in progress for both "
                        f"{owner!r} and {package_name!r}",
                    )
        object.__setattr__(self, "packages", MappingProxyType(packages))
        object.__setattr__(self, "_owners", MappingProxyType(owners))

    def has_method(self, signature: str) -> bool:
        return signature in self._owners

    def package_for(self, signature: str) -> str | None:
        return self._owners.get(signature)

    def methods_for(self, package_name: str) -> frozenset[str]:
        return self.packages.get(package_name, frozenset())

    def with_package_methods(
        self,
        package_name: str,
        signatures: Iterable[str],
    ) -> InProgressMethods:
        """Replace the package's set; an empty set removes the package."""

        packages = dict(self.packages)
        packages[package_name] = frozenset(signatures)
        return InProgressMethods(packages)

    def with_methods_added(self, package_name: str, signatures: Iterable[str]) -> InProgressMethods:
        return self.with_package_methods(
            package_name,
            self.methods_for(package_name) | frozenset(signatures),
        )

    def without_package(self, package_name: str) -> InProgressMethods:
        if package_name not in self.packages:
            return self
        packages = dict(self.packages)
        del packages[package_name]
        return InProgressMethods(packages)

    def to_payload(self) -> dict[str, list[str]]:
        return {name: sorted(sigs) for name, sigs in sorted(self.packages.items())}


class InProgressTracker:
    """Session-scoped holder of the current ``InProgressMethods`` value.

    Generation is exclusive per signature across packages. The tracker's view
    is what gates edits; it does not wait for background tasks to acknowledge
    a stop.
    """

    def __init__(self) -> None:
        self._state = InProgressMethods()
        self._listeners: list[InProgressListener] = []

    @property
    def state(self) -> InProgressMethods:
        return self._state

    def subscribe(self, listener: InProgressListener) -> None:
        self._listeners.append(listener)

    def start(self, package_name: str, signatures: Iterable[str]) -> InProgressMethods:
        """Mark signatures in progress for ``package_name``; idempotent."""

        requested = frozenset(signatures)
        conflicts: dict[str, str] = {}
        for signature in requested:
            owner = self._state.package_for(signature)
            if owner is not None and owner != package_name:
                conflicts[signature] = owner
        if conflicts:
            logger.warning(
                "Generation conflict for package %s: %d signatures owned elsewhere",
                package_name,
                len(conflicts),
            )
            raise ConflictError(package_name=package_name, conflicts=conflicts)

        updated = self._state.with_methods_added(package_name, requested)
        if updated == self._state:
            return self._state
        self._state = updated
        logger.info(
            "Generation started for package %s: %d signatures in progress",
            package_name,
            len(updated.methods_for(package_name)),
        )
        self._notify(package_name)
        return self._state

    def stop(self, package_name: str) -> InProgressMethods:
        """Free every signature of ``package_name``; no-op when it has none."""

        updated = self._state.without_package(package_name)
        if updated is self._state:
            return self._state
        self._state = updated
        logger.info("Generation stopped for package %s", package_name)
        self._notify(package_name)
        return self._state

    def is_in_progress(self, signature: str) -> bool:
        return self._state.has_method(signature)

    def _notify(self, package_name: str) -> None:
        for listener in list(self._listeners):
            listener(package_name, self._state)
