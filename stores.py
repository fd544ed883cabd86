import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime

import httpx
from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.orm import declarative_base, scoped_session, sessionmaker

import config
from exceptions import RemoteRejected, Unavailable
from records import decode_record, encode_record

logger = logging.getLogger(__name__)

Base = declarative_base()


class StoreEntry(Base):
    __tablename__ = 'kv_store'
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class RecordStore(ABC):
    name = "store"

    @abstractmethod
    async def list(self, collection):
        ...

    @abstractmethod
    async def create(self, collection, record):
        ...

    @abstractmethod
    async def update(self, collection, record):
        ...

    @abstractmethod
    async def delete(self, collection, record_id):
        ...


# --- REMOTE ---
class RemoteStore(RecordStore):
    """Client for the record service: ``/records?collection=<name>``.

    Network errors and non-2xx answers raise ``Unavailable``; answers that
    carry a JSON ``error`` field raise ``RemoteRejected``.
    """

    name = "remote"

    def __init__(self, base_url=None, timeout=None, transport=None):
        self.base_url = base_url or config.RECORD_SERVICE_URL
        self.timeout = timeout if timeout is not None else config.RECORD_SERVICE_TIMEOUT
        self.transport = transport

    def _client(self):
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _request(self, method, collection, params=None, body=None):
        query = {"collection": collection}
        if params:
            query.update(params)
        try:
            async with self._client() as client:
                return await client.request(method, "/records", params=query, json=body)
        except httpx.HTTPError as e:
            raise Unavailable(collection, str(e) or type(e).__name__) from e

    def _check(self, collection, response):
        if response.is_success:
            return
        try:
            payload = response.json()
        except ValueError:
            payload = None
        # 5xx is an outage even when the service explains it
        if 400 <= response.status_code < 500 and isinstance(payload, dict) and payload.get("error"):
            raise RemoteRejected(collection, response.status_code, payload["error"])
        reason = f"HTTP {response.status_code}"
        if isinstance(payload, dict) and payload.get("error"):
            reason = f"{reason}: {payload['error']}"
        raise Unavailable(collection, reason)

    async def list(self, collection):
        response = await self._request("GET", collection)
        self._check(collection, response)
        try:
            rows = response.json()
        except ValueError as e:
            raise Unavailable(collection, "response is not JSON") from e
        if not isinstance(rows, list):
            raise Unavailable(collection, "response is not a list")
        return [decode_record(collection, row) for row in rows if isinstance(row, dict)]

    async def create(self, collection, record):
        response = await self._request("POST", collection, body=encode_record(record))
        self._check(collection, response)

    async def update(self, collection, record):
        response = await self._request("PUT", collection, body=encode_record(record))
        self._check(collection, response)

    async def delete(self, collection, record_id):
        response = await self._request("DELETE", collection, params={"id": record_id})
        if response.status_code == 404:
            # Already gone
            return
        self._check(collection, response)


# --- LOCAL ---
class LocalStore(RecordStore):
    name = "local"

    def __init__(self, url=None):
        url = url or config.LOCAL_STORE_URL
        connect_args = {'check_same_thread': False} if url.startswith('sqlite') else {}
        self.engine = create_engine(url, connect_args=connect_args)
        Base.metadata.create_all(self.engine)
        self.Session = scoped_session(sessionmaker(bind=self.engine))

    def get_session(self):
        return self.Session()

    # Raw key access (session entries, config blob)
    def get(self, key, default=None):
        session = self.get_session()
        entry = session.get(StoreEntry, key)
        raw = entry.value if entry else None
        session.close()
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Local entry %s is not valid JSON; ignoring it", key)
            return default

    def put(self, key, value):
        session = self.get_session()
        try:
            payload = json.dumps(value, ensure_ascii=False)
            entry = session.get(StoreEntry, key)
            if entry:
                entry.value = payload
            else:
                session.add(StoreEntry(key=key, value=payload))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def remove(self, key):
        session = self.get_session()
        entry = session.get(StoreEntry, key)
        if entry:
            session.delete(entry)
            session.commit()
        session.close()

    # Collections
    def _key(self, collection):
        try:
            return config.STORAGE_KEYS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    def read_collection(self, collection):
        records = self.get(self._key(collection))
        if not isinstance(records, list):
            if collection == config.COLLECTION_USERS:
                return [dict(config.SEED_ADMIN)]
            return []
        return [r for r in records if isinstance(r, dict)]

    def upsert(self, collection, record):
        records = self.read_collection(collection)
        for index, existing in enumerate(records):
            if existing.get("id") == record["id"]:
                records[index] = record
                break
        else:
            records.append(record)
        self.put(self._key(collection), records)

    async def list(self, collection):
        return self.read_collection(collection)

    async def create(self, collection, record):
        self.upsert(collection, record)

    async def update(self, collection, record):
        self.upsert(collection, record)

    async def delete(self, collection, record_id):
        records = self.read_collection(collection)
        remaining = [r for r in records if r.get("id") != record_id]
        if len(remaining) != len(records):
            self.put(self._key(collection), remaining)
