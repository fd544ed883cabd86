import logging

import config
from exceptions import RemoteRejected, Unavailable

logger = logging.getLogger(__name__)


class Gateway:
    def __init__(self, remote, local):
        self.remote = remote
        self.local = local

    @staticmethod
    def _check_collection(collection, rows_only=True):
        if collection not in config.COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        # Config lives locally as one blob, not rows; ConfigCodec owns it
        if rows_only and collection not in config.STORAGE_KEYS:
            raise ValueError(f"{collection} has no local rows; use ConfigCodec")

    async def probe(self, collection):
        """Remote-only read. Raises ``Unavailable``."""
        self._check_collection(collection, rows_only=False)
        return await self.remote.list(collection)

    async def list(self, collection):
        self._check_collection(collection)
        try:
            return await self.remote.list(collection)
        except Unavailable as e:
            logger.warning("Remote list of %s failed (%s); reading local store", collection, e.reason)
            return await self.local.list(collection)

    async def get_by_id(self, collection, record_id):
        for record in await self.list(collection):
            if record.get("id") == record_id:
                return record
        return None

    async def upsert(self, collection, record):
        """Create or replace ``record`` remotely, deciding the verb by probing.

        Probe and write are not atomic: a concurrent writer in between can
        cause a duplicate create or a lost update. Last write wins on ``id``.

        Returns the name of the store that took the write. On fallback a
        ``RemoteRejected`` is re-raised once the local write is done.
        """
        try:
            existing = await self.probe(collection)
            if any(r.get("id") == record["id"] for r in existing):
                await self.remote.update(collection, record)
            else:
                await self.remote.create(collection, record)
            return self.remote.name
        except Unavailable as e:
            logger.warning("Remote save to %s failed (%s); writing local store", collection, e.reason)
            await self.local.update(collection, record)
            if isinstance(e, RemoteRejected):
                logger.error("Record service rejected %s/%s: %s", collection, record["id"], e.error)
                raise
            return self.local.name

    async def save(self, collection, record):
        self._check_collection(collection)
        if not record.get("id"):
            raise ValueError("Record has no id")
        await self.upsert(collection, record)
        return record

    async def delete(self, collection, record_id):
        self._check_collection(collection)
        try:
            await self.remote.delete(collection, record_id)
        except Unavailable as e:
            logger.warning("Remote delete from %s failed (%s); updating local store", collection, e.reason)
            await self.local.delete(collection, record_id)
