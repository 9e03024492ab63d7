"""Member -- a farmer-group participant who contributes produce."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class Member:
    """
    A farmer-group participant.

    Contract:
        Immutable once created except for ``status`` (use ``with_status``).
        ``phone`` is the payout / notification number.
    """

    id: str
    name: str
    phone: str
    group_id: str | None = None
    status: MemberStatus = MemberStatus.ACTIVE

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("Member id is required")

    def with_status(self, status: MemberStatus) -> Member:
        return replace(self, status=MemberStatus(status))

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE
