# SPDX-License-Identifier: Apache-2.0

"""
Switch request aggregation for dashboards.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable

from ..models.entities import SwitchRequest
from ..models.enums import SwitchStatus

PENDING_STATUSES = (SwitchStatus.SUBMITTED, SwitchStatus.UNDER_REVIEW)
IN_FLIGHT_STATUSES = (SwitchStatus.SUBMITTED, SwitchStatus.UNDER_REVIEW, SwitchStatus.ACCEPTED)


def _zero_counts() -> Dict[SwitchStatus, int]:
    return {status: 0 for status in SwitchStatus}


@dataclass(frozen=True)
class RequestStats:
    """Request counts by status. Every status is present, zero included."""
    total: int = 0
    pending: int = 0
    by_status: Dict[SwitchStatus, int] = field(default_factory=_zero_counts)

    @property
    def active(self) -> int:
        return sum(self.by_status[s] for s in IN_FLIGHT_STATUSES)

    @property
    def accepted(self) -> int:
        return self.by_status[SwitchStatus.ACCEPTED]

    @property
    def completed(self) -> int:
        return self.by_status[SwitchStatus.COMPLETED]

    def __add__(self, other: "RequestStats") -> "RequestStats":
        if not isinstance(other, RequestStats):
            return NotImplemented
        return RequestStats(
            total=self.total + other.total,
            pending=self.pending + other.pending,
            by_status={s: self.by_status[s] + other.by_status[s] for s in SwitchStatus},
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "pending": self.pending,
            "active": self.active,
            "accepted": self.accepted,
            "completed": self.completed,
            "by_status": {s.value: n for s, n in self.by_status.items()},
        }


def aggregate(requests: Iterable[SwitchRequest]) -> RequestStats:
    """
    Count requests by status.

    Args:
        requests: Any iterable of switch requests

    Returns:
        RequestStats where ``pending`` counts submitted and under-review requests
    """
    counts = _zero_counts()
    total = 0
    for request in requests:
        counts[SwitchStatus(request.status)] += 1
        total += 1
    return RequestStats(
        total=total,
        pending=sum(counts[s] for s in PENDING_STATUSES),
        by_status=counts,
    )
