import json
import logging
import uuid
from typing import Any, Callable, NamedTuple

from pydantic import ValidationError

import config
from exceptions import ConfigWriteError, RemoteRejected, Unavailable
from models import CustomFieldDef, SystemConfig

logger = logging.getLogger(__name__)


class FieldCodec(NamedTuple):
    serialize: Callable[[Any], str]
    deserialize: Callable[[Any], Any]


def _loads(raw):
    """JSON-decode sequences and records; anything else is returned as is."""
    if not isinstance(raw, str):
        return raw
    try:
        value = json.loads(raw)
    except ValueError:
        return raw
    return value if isinstance(value, (list, dict)) else raw


def _dumps(value):
    return json.dumps(value, ensure_ascii=False)


def _text(raw):
    if raw is None:
        return None
    return raw if isinstance(raw, str) else str(raw)


def _string_list(raw):
    value = _loads(raw)
    if not isinstance(value, list):
        return None
    return [str(item) for item in value]


def _field_defs(raw):
    value = _loads(raw)
    if not isinstance(value, list):
        return None
    fields = []
    for item in value:
        try:
            fields.append(CustomFieldDef.model_validate(item).to_record())
        except ValidationError:
            logger.warning("Skipping malformed custom field definition: %r", item)
    return fields


FIELD_CODECS = {
    "schoolName": FieldCodec(str, _text),
    "academicYear": FieldCodec(str, _text),
    "categories": FieldCodec(_dumps, _string_list),
    "customFields": FieldCodec(_dumps, _field_defs),
}


def default_config():
    return SystemConfig(
        school_name=config.DEFAULT_SCHOOL_NAME,
        academic_year=config.DEFAULT_ACADEMIC_YEAR,
        categories=list(config.DEFAULT_CATEGORIES),
        custom_fields=[],
    )


class ConfigCodec:
    def __init__(self, gateway):
        self.gateway = gateway
        self.blob_key = config.CONFIG_BLOB_KEY

    def _overlay(self, values):
        merged = default_config().to_record()
        for key, codec in FIELD_CODECS.items():
            if key not in values:
                continue
            decoded = codec.deserialize(values[key])
            if decoded is None:
                logger.warning("Config value for %s could not be decoded; using default", key)
                continue
            merged[key] = decoded
        try:
            return SystemConfig.model_validate(merged)
        except ValidationError as e:
            logger.warning("Stored config is invalid (%s); using defaults", e.error_count())
            return default_config()

    async def read(self):
        try:
            rows = await self.gateway.probe(config.COLLECTION_CONFIG)
        except Unavailable as e:
            logger.warning("Config rows unavailable (%s); reading local copy", e.reason)
            blob = self.gateway.local.get(self.blob_key)
            return self._overlay(blob if isinstance(blob, dict) else {})

        values = {}
        for row in rows:
            key = row.get("key")
            if key in FIELD_CODECS:
                values[key] = row.get("value")
        return self._overlay(values)

    def _write_blob(self, record):
        self.gateway.local.put(self.blob_key, record)

    async def write(self, system_config):
        system_config.validate_fields()
        record = system_config.to_record()
        remote = self.gateway.remote

        try:
            rows = await self.gateway.probe(config.COLLECTION_CONFIG)
        except Unavailable as e:
            logger.warning("Config rows unavailable (%s); saving local copy", e.reason)
            self._write_blob(record)
            if isinstance(e, RemoteRejected):
                raise
            return

        row_ids = {}
        for row in rows:
            if row.get("key") in FIELD_CODECS and row.get("id"):
                row_ids.setdefault(row["key"], row["id"])

        failures = {}
        for key, codec in FIELD_CODECS.items():
            row = {
                "id": row_ids.get(key) or str(uuid.uuid4()),
                "key": key,
                "value": codec.serialize(record.get(key)),
            }
            try:
                if key in row_ids:
                    await remote.update(config.COLLECTION_CONFIG, row)
                else:
                    await remote.create(config.COLLECTION_CONFIG, row)
            except Unavailable as e:
                logger.warning("Saving config key %s failed: %s", key, e.reason)
                failures[key] = e

        if not failures:
            self.gateway.local.remove(self.blob_key)
            return

        self._write_blob(record)
        total_outage = len(failures) == len(FIELD_CODECS) and not any(
            isinstance(e, RemoteRejected) for e in failures.values()
        )
        if not total_outage:
            raise ConfigWriteError(failures.keys())
