"""
MATKA - Profile Directory

Resolves owner ids to the display fields the identity provider keeps for
them (username, mobile, device token).
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from sqlalchemy import select

from matka.core.database import DatabaseManager
from matka.models.models import UserProfile

logger = logging.getLogger(__name__)

UNKNOWN_USERNAME = "Unknown"


@dataclass(frozen=True)
class Profile:
    owner_id: str
    username: str = UNKNOWN_USERNAME
    mobile: Optional[str] = None
    device_token: Optional[str] = None


class ProfileDirectory:
    """Batch lookups over user_profiles; a missing profile is not an error."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def lookup(self, owner_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = sorted({owner_id for owner_id in owner_ids if owner_id})
        if not ids:
            return {}

        async with self.db.session() as session:
            result = await session.execute(select(UserProfile).where(UserProfile.owner_id.in_(ids)))
            rows = {row.owner_id: row for row in result.scalars().all()}

        profiles: Dict[str, Profile] = {}
        for owner_id in ids:
            row = rows.get(owner_id)
            if row is None:
                logger.debug(f"No profile for owner {owner_id}")
                profiles[owner_id] = Profile(owner_id=owner_id)
                continue
            profiles[owner_id] = Profile(
                owner_id=owner_id,
                username=row.username or UNKNOWN_USERNAME,
                mobile=row.mobile,
                device_token=row.device_token,
            )
        return profiles

