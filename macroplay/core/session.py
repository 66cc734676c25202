from __future__ import annotations

import logging
from typing import FrozenSet, Optional

from macroplay.core.ledger import DebitResult, ScoreLedger

logger = logging.getLogger(__name__)


class PlaybackSession:
    """Session-scoped state: the score ledger and the set of completed offers.

    Created when playback starts and dropped when the user leaves. Completed
    instance ids only ever grow; nothing is removed short of :meth:`reset`.
    """

    def __init__(self, ledger: Optional[ScoreLedger] = None) -> None:
        self._ledger = ledger if ledger is not None else ScoreLedger()
        self._completed: set[str] = set()

    @property
    def ledger(self) -> ScoreLedger:
        return self._ledger

    @property
    def completed(self) -> FrozenSet[str]:
        """Snapshot of the completed instance ids."""
        return frozenset(self._completed)

    def balance(self) -> int:
        return self._ledger.balance()

    def is_completed(self, instance_id: str) -> bool:
        return instance_id in self._completed

    def mark_completed(self, instance_id: str) -> bool:
        """Record a success; returns False if it was already recorded."""
        if instance_id in self._completed:
            return False
        self._completed.add(instance_id)
        return True

    def purchase(self, instance_id: str, cost: int) -> DebitResult:
        """Spend *cost* points on an offer slot, completing it only if the debit succeeds."""
        result = self._ledger.debit(cost)
        if result.ok:
            self.mark_completed(instance_id)
        else:
            logger.info(
                "Purchase of %s refused: cost %d, balance %d",
                instance_id,
                cost,
                result.total,
            )
        return result

    def reset(self) -> None:
        """Forget score and completions (from-scratch start only)."""
        self._ledger.reset()
        self._completed.clear()
