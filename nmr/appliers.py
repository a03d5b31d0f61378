from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .membership import Snapshot


class ApplyFailed(Exception):
    """The downstream artifact could not be converged to the snapshot."""


class ChainOpFailed(ApplyFailed):
    pass


class WriteFailed(ApplyFailed):
    pass


class ReloadFailed(ApplyFailed):
    pass


class RuleApplier(ABC):
    """Turns a membership snapshot into a downstream artifact and commits it.

    ``apply`` must be idempotent: applying the same snapshot twice leaves the
    external system in the same state as applying it once.
    """

    kind: str = "applier"

    @abstractmethod
    def render(self, current: Snapshot) -> list[Any]:
        """Return the artifact for ``current`` without touching anything."""

    @abstractmethod
    def apply(self, current: Snapshot) -> None:
        """Commit the artifact for ``current``. Raises ApplyFailed."""

    def describe(self) -> str:
        return self.kind
