from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence, Tuple

LOGGER = logging.getLogger(__name__)

UNKNOWN_INVITER = "Unknown"
DEFAULT_REFRESH_TIMEOUT = 10.0


def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InviteSource(Protocol):
    async def fetch_invites(self, community_id: int) -> Sequence[Any]: ...


@dataclass(frozen=True)
class InviteEntry:
    code: str
    inviter_id: Optional[int]
    inviter_tag: Optional[str]
    uses: int

    @classmethod
    def from_invite(cls, invite: Any) -> "InviteEntry":
        inviter = getattr(invite, "inviter", None)
        return cls(
            code=str(invite.code),
            inviter_id=getattr(inviter, "id", None) if inviter else None,
            inviter_tag=str(inviter) if inviter else None,
            uses=max(int(getattr(invite, "uses", 0) or 0), 0),
        )


@dataclass(frozen=True)
class InviteSnapshot:
    community_id: int
    invites: Tuple[InviteEntry, ...]
    fetched_at: datetime


class InviteAttributionCache:
    """Best-effort guess of which invite a newly joined member used.

    Holds one snapshot of the active invite list per community. Snapshots are
    replaced wholesale on refresh and never merged. The attribution picks the
    first invite in stored order that has been used at least once, so it is
    only reliable when a community has a single actively used invite link; it
    cannot tell which of several used invites was just redeemed, nor separate
    simultaneous joins.
    """

    def __init__(
        self,
        source: InviteSource,
        refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT,
        restrict_to_joining_member: bool = False,
    ):
        self.source = source
        self.refresh_timeout = refresh_timeout
        self.restrict_to_joining_member = restrict_to_joining_member
        self._snapshots: Dict[int, InviteSnapshot] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._known: set[int] = set()

    def _lock_for(self, community_id: int) -> asyncio.Lock:
        lock = self._locks.get(community_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[community_id] = lock
        return lock

    def track(self, community_id: int) -> None:
        self._known.add(community_id)

    def known_communities(self) -> list[int]:
        return sorted(self._known)

    def snapshot(self, community_id: int) -> Optional[InviteSnapshot]:
        return self._snapshots.get(community_id)

    async def refresh(self, community_id: int) -> bool:
        self.track(community_id)
        async with self._lock_for(community_id):
            try:
                invites = await asyncio.wait_for(
                    self.source.fetch_invites(community_id),
                    timeout=self.refresh_timeout,
                )
                entries = tuple(InviteEntry.from_invite(invite) for invite in invites)
            except asyncio.TimeoutError:
                LOGGER.warning(
                    "Invite refresh for community %s timed out after %ss",
                    community_id,
                    self.refresh_timeout,
                )
                return False
            except Exception as exc:
                LOGGER.warning(
                    "Invite refresh failed for community %s: %s", community_id, exc
                )
                return False
            self._snapshots[community_id] = InviteSnapshot(
                community_id=community_id,
                invites=entries,
                fetched_at=utcnow_naive(),
            )
        LOGGER.debug(
            "Cached %s invites for community %s", len(entries), community_id
        )
        return True

    async def refresh_all(self, community_ids: Iterable[int] | None = None) -> int:
        targets = list(community_ids) if community_ids is not None else self.known_communities()
        refreshed = 0
        for community_id in targets:
            if await self.refresh(community_id):
                refreshed += 1
        return refreshed

    async def attribute(self, community_id: int, joining_member: Any) -> str:
        snapshot = self._snapshots.get(community_id)
        if snapshot is None:
            await self.refresh(community_id)
            snapshot = self._snapshots.get(community_id)
        if snapshot is None:
            return UNKNOWN_INVITER
        member_id = getattr(joining_member, "id", None)
        for entry in snapshot.invites:
            if entry.uses <= 0 or entry.inviter_tag is None:
                continue
            if self.restrict_to_joining_member and entry.inviter_id != member_id:
                continue
            return entry.inviter_tag
        return UNKNOWN_INVITER
