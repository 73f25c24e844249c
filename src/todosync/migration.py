"""
Sync identity resolution and one-time migration between identities.

When a device still has an identity stored from an earlier version that differs
from the canonical one, the lists stored remotely under both identities are
merged and the result is written under the canonical identity only.
"""
from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import List, Optional

from .local_store import LocalStore
from .merge import merge_tasks
from .models import Task
from .remote import RemoteStoreClient

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class SyncIdentity:
    """The identity to sync under, plus a stored identity that must be migrated first."""

    user_id: str
    legacy_id: Optional[str] = None


def generate_user_id() -> str:
    """Random identity in the form user_<epoch ms>_<9 random chars>."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


# PUBLIC_INTERFACE
def resolve_sync_identity(local: LocalStore, canonical: Optional[str] = None) -> SyncIdentity:
    """
    Decide which identity this device syncs under.

    Without a canonical identity the stored one is reused, or a new one is
    generated and stored. A canonical identity is stored when nothing is
    stored yet. A differing stored value is reported as legacy_id; it is not
    overwritten here, the migration does that once the data has been folded in.
    """
    stored = local.get_user_id()
    if canonical is None:
        if stored is None:
            stored = generate_user_id()
            local.set_user_id(stored)
            logger.info("Created sync identity %s", stored)
        return SyncIdentity(user_id=stored)

    if stored is None:
        local.set_user_id(canonical)
        return SyncIdentity(user_id=canonical)
    if stored != canonical:
        return SyncIdentity(user_id=canonical, legacy_id=stored)
    return SyncIdentity(user_id=canonical)


# PUBLIC_INTERFACE
class IdentityMigration:
    """Folds the remote data of a legacy identity into the canonical one."""

    def __init__(self, local: LocalStore, remote: RemoteStoreClient) -> None:
        self._local = local
        self._remote = remote

    async def _fetch_or_empty(self, user_id: str) -> List[Task]:
        try:
            tasks = await self._remote.fetch(user_id)
        except Exception:
            logger.exception("Fetching %s during migration failed", user_id)
            return []
        return tasks or []

    async def migrate(self, old_id: Optional[str], new_id: str) -> Optional[List[Task]]:
        """
        Merge the lists stored under old_id and new_id and adopt the result.

        The old list takes the local slot and the new list the remote slot, so the
        new identity wins ties. The merged list is pushed under new_id only and
        written to the local store, then new_id replaces old_id as the stored
        identity. Returns the adopted list, or None when nothing had to migrate.
        """
        if not old_id or old_id == new_id:
            return None

        logger.info("Migrating sync identity %s -> %s", old_id, new_id)
        old_tasks = await self._fetch_or_empty(old_id)
        new_tasks = await self._fetch_or_empty(new_id)

        merged = merge_tasks(old_tasks, new_tasks)
        if merged:
            try:
                pushed = await self._remote.push(new_id, merged)
            except Exception:
                logger.exception("Pushing migrated tasks for %s failed", new_id)
                pushed = False
            if not pushed:
                logger.warning("Migrated list not stored remotely yet; the next sync will push it")
            self._local.save_tasks(merged)
            logger.info(
                "Migrated %d tasks (%d from %s, %d from %s)",
                len(merged),
                len(old_tasks),
                old_id,
                len(new_tasks),
                new_id,
            )
        else:
            logger.info("No remote data to migrate from %s", old_id)

        self._local.set_user_id(new_id)
        return merged
