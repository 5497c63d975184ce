"""Route domain events to the badges that listen for them."""

from __future__ import annotations

from typing import Callable, Dict, List

from .awards import AwardLedger
from .catalog import BadgeCatalog
from .evaluator import evaluate
from .models import BadgeDefinition, DispatchResult, DomainEvent
from .ops import StructuredLogger
from .progress import ProgressStore
from .state import ChildStateReader

AwardListener = Callable[[DomainEvent, BadgeDefinition], None]


class TriggerDispatcher:
    """Evaluate candidate badges for one event and record the outcome.

    A badge with a stored progress record is judged against the target frozen
    on that record, not the catalog's current one.

    Each badge is handled on its own: a badge that fails to evaluate is
    logged and reported in :attr:`DispatchResult.failures` while the
    remaining candidates still run.
    """

    def __init__(
        self,
        catalog: BadgeCatalog,
        reader: ChildStateReader,
        progress: ProgressStore,
        ledger: AwardLedger,
        *,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._catalog = catalog
        self._reader = reader
        self._progress = progress
        self._ledger = ledger
        self._logger = logger or StructuredLogger()
        self._listeners: List[AwardListener] = []

    def register(self, listener: AwardListener) -> None:
        self._listeners.append(listener)

    def unregister(self, listener: AwardListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def dispatch(self, event: DomainEvent) -> DispatchResult:
        result = DispatchResult(event=event)
        candidates = self._catalog.for_trigger(event.kind, at=event.timestamp)
        if not candidates:
            return result
        earned = self._ledger.earned_badge_ids(event.child_id)
        pending = [badge for badge in candidates if badge.badge_id not in earned]
        if not pending:
            return result

        snapshot = self._reader.snapshot(event.child_id, as_of=event.timestamp)
        evaluated: List[str] = []
        awarded: List[str] = []
        failures: Dict[str, str] = {}
        for badge in pending:
            try:
                prior = self._progress.get(event.child_id, badge.badge_id)
                outcome = evaluate(
                    badge.criteria,
                    snapshot,
                    prior.current_progress if prior else None,
                    event=event,
                    target=prior.target_progress if prior else None,
                )
                evaluated.append(badge.code)
                if outcome.earned:
                    context = {**event.payload, "trigger": event.kind.value, "progress": outcome.progress}
                    if self._ledger.try_award(event.child_id, badge, context, earned_at=event.timestamp):
                        awarded.append(badge.code)
                        self._notify(event, badge)
                else:
                    self._progress.record(event.child_id, badge, outcome)
            except Exception as exc:  # noqa: BLE001
                failures[badge.code] = str(exc)
                self._logger.error(
                    "badge_evaluation_failed",
                    child_id=event.child_id,
                    badge=badge.code,
                    trigger=event.kind.value,
                    error=str(exc),
                )

        result.evaluated = tuple(evaluated)
        result.awarded = tuple(awarded)
        result.failures = failures
        return result

    def _notify(self, event: DomainEvent, badge: BadgeDefinition) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, badge)
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "award_listener_failed",
                    child_id=event.child_id,
                    badge=badge.code,
                    error=repr(exc),
                )


__all__ = ["AwardListener", "TriggerDispatcher"]
