"""
Opportunity ledger holding the most recent scan's ranked results.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

from cexdex.errors import OpportunityNotFound
from cexdex.models import Opportunity, now_millis


@dataclass(frozen=True)
class _Snapshot:
    opportunities: Tuple[Opportunity, ...] = ()
    by_id: Dict[str, Opportunity] = field(default_factory=dict)
    updated_at_millis: int = 0


class OpportunityLedger:
    """
    Holds the current ranked opportunity set.

    The whole set is one immutable snapshot behind a single reference, so
    ``replace`` is one assignment and readers never see a mix of old and new
    entries. Readers do not lock; the lock only serializes writers.
    """

    def __init__(self):
        self._snapshot = _Snapshot()
        self._write_lock = threading.Lock()

    def replace(self, opportunities: Iterable[Opportunity]) -> None:
        """Replace (not merge) the ledger contents."""
        ranked = tuple(opportunities)
        snapshot = _Snapshot(
            opportunities=ranked,
            by_id={opp.opportunity_id: opp for opp in ranked},
            updated_at_millis=now_millis(),
        )
        with self._write_lock:
            self._snapshot = snapshot

    def current_snapshot(self) -> Tuple[Opportunity, ...]:
        return self._snapshot.opportunities

    def find_by_identifier(self, opportunity_id: str) -> Opportunity:
        """
        Look up an opportunity in the current snapshot.

        Raises:
            OpportunityNotFound: If the id is not in the current snapshot
        """
        opportunity = self._snapshot.by_id.get(opportunity_id)
        if opportunity is None:
            raise OpportunityNotFound(opportunity_id)
        return opportunity

    @property
    def updated_at_millis(self) -> int:
        return self._snapshot.updated_at_millis

    def __len__(self) -> int:
        return len(self._snapshot.opportunities)
