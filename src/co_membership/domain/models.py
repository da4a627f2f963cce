"""Domain models for co_membership: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Membership:
    id: str
    user_id: str
    games: int        # total entitlement
    games_used: int   # consumed; 0 <= games_used <= games
    status: str       # MembershipStatus value
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def games_remaining(self) -> int:
        return self.games - self.games_used
