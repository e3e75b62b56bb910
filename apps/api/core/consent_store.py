from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from schemas.consent import Consent, StatusFilter


class StoreState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class StoreSnapshot:
    state: StoreState
    status_filter: StatusFilter
    consents: tuple[Consent, ...] = field(default_factory=tuple)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "filter": self.status_filter.value,
            "consents": [consent.to_wire() for consent in self.consents],
            "error": self.error,
        }


class ConsentStore:
    """Consent list currently on display plus the filter it was fetched with.

    The list is swapped as a whole on every transition so readers never see a
    half-applied update.
    """

    def __init__(self, status_filter: StatusFilter = StatusFilter.ALL) -> None:
        self._snapshot = StoreSnapshot(state=StoreState.IDLE, status_filter=status_filter)

    @property
    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    @property
    def state(self) -> StoreState:
        return self._snapshot.state

    @property
    def status_filter(self) -> StatusFilter:
        return self._snapshot.status_filter

    @property
    def consents(self) -> tuple[Consent, ...]:
        return self._snapshot.consents

    @property
    def error(self) -> str | None:
        return self._snapshot.error

    def begin_loading(self, status_filter: StatusFilter) -> None:
        # The previous list stays visible only while the filter is unchanged.
        keep = self._snapshot.consents if status_filter == self._snapshot.status_filter else ()
        self._snapshot = StoreSnapshot(
            state=StoreState.LOADING,
            status_filter=status_filter,
            consents=keep,
        )

    def loaded(self, status_filter: StatusFilter, consents: list[Consent]) -> None:
        if any(not status_filter.matches(consent.status) for consent in consents):
            raise ValueError("consent list does not satisfy the status filter")
        self._snapshot = StoreSnapshot(
            state=StoreState.LOADED,
            status_filter=status_filter,
            consents=tuple(consents),
        )

    def failed(self, status_filter: StatusFilter, error: str) -> None:
        self._snapshot = StoreSnapshot(
            state=StoreState.FAILED,
            status_filter=status_filter,
            consents=(),
            error=error,
        )

    def find(self, consent_id: str) -> Consent | None:
        for consent in self._snapshot.consents:
            if consent.id == consent_id:
                return consent
        return None
