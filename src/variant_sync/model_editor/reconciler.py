"""Merge policy between generated models and user edits."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from variant_sync.model_editor.models import ModeledMethod, ModeledMethodType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ModelState:
    """Full view of the modeled-method map and its unsaved signatures."""

    modeled_methods: Mapping[str, ModeledMethod]
    modified_signatures: frozenset[str]


ModelStateListener = Callable[[ModelState], None]


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Which incoming generated models were taken and which were held back."""

    package_name: str
    replaced: tuple[str, ...]
    preserved: tuple[str, ...]

    @property
    def touched(self) -> tuple[str, ...]:
        return self.replaced + self.preserved


class ModelStateReconciler:
    """Owns the modeled-method map and the set of unsaved signatures.

    Only ``load_initial``, ``apply_generated``, ``apply_user_edit`` and
    ``mark_saved`` write either of them, so ``modified_signatures`` always
    stays a subset of the map's keys.

    A generated model replaces an entry only if the entry is missing, of type
    ``none``, or still equal to the last model generated for that signature.
    Anything else was authored by the user (or loaded from disk) and wins.
    """

    def __init__(self) -> None:
        self._methods: dict[str, ModeledMethod] = {}
        self._modified: set[str] = set()
        self._last_generated: dict[str, ModeledMethod] = {}
        self._listeners: list[ModelStateListener] = []

    def subscribe(self, listener: ModelStateListener) -> None:
        self._listeners.append(listener)

    @property
    def modeled_methods(self) -> Mapping[str, ModeledMethod]:
        return MappingProxyType(dict(self._methods))

    @property
    def modified_signatures(self) -> frozenset[str]:
        return frozenset(self._modified)

    def get(self, signature: str) -> ModeledMethod | None:
        return self._methods.get(signature)

    def state(self) -> ModelState:
        return ModelState(
            modeled_methods=self.modeled_methods,
            modified_signatures=self.modified_signatures,
        )

    def load_initial(self, methods: Mapping[str, ModeledMethod]) -> int:
        """Seed the map; entries already present win. Returns how many were added."""

        added = 0
        for signature, method in methods.items():
            if signature in self._methods:
                continue
            self._methods[signature] = method
            added += 1
        if added:
            logger.info("Loaded %d modeled methods", added)
            self._notify()
        return added

    def apply_generated(
        self,
        package_name: str,
        methods: Mapping[str, ModeledMethod],
    ) -> MergeResult:
        """Merge one generated batch; every incoming signature becomes modified."""

        replaced: list[str] = []
        preserved: list[str] = []
        for signature, incoming in methods.items():
            if self._is_replaceable(signature):
                self._methods[signature] = incoming
                self._last_generated[signature] = incoming
                replaced.append(signature)
            else:
                preserved.append(signature)
            self._modified.add(signature)

        if preserved:
            logger.info(
                "Kept %d user-authored models from package %s generation",
                len(preserved),
                package_name,
            )
        if methods:
            self._notify()
        return MergeResult(
            package_name=package_name,
            replaced=tuple(replaced),
            preserved=tuple(preserved),
        )

    def apply_user_edit(self, signature: str, method: ModeledMethod) -> None:
        """Overwrite unconditionally and mark the signature modified."""

        self._methods[signature] = method
        self._last_generated.pop(signature, None)
        self._modified.add(signature)
        self._notify()

    def mark_saved(self, signatures: Iterable[str]) -> frozenset[str]:
        """Clear the given signatures from the modified set after a durable save."""

        cleared = frozenset(signatures) & self._modified
        if cleared:
            self._modified -= cleared
            self._notify()
        return cleared

    def _is_replaceable(self, signature: str) -> bool:
        existing = self._methods.get(signature)
        if existing is None or existing.type is ModeledMethodType.NONE:
            return True
        return self._last_generated.get(signature) == existing

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.state()
        for listener in list(self._listeners):
            listener(state)
