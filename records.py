# records.py
import json
import logging

import config

logger = logging.getLogger(__name__)

# Per collection: field name -> empty structure used when decoding fails
STRUCTURED_FIELDS = {
    config.COLLECTION_DEVICES: {"history": list, "customFields": dict},
}


def encode_record(record):
    encoded = {}
    for key, value in record.items():
        if isinstance(value, (list, dict)):
            encoded[key] = json.dumps(value, ensure_ascii=False)
        else:
            encoded[key] = value
    return encoded


def decode_value(raw, empty):
    """Parse a serialised structure; anything malformed becomes ``empty()``."""
    if isinstance(raw, empty):
        return raw
    if raw is None or raw == "":
        return empty()
    if not isinstance(raw, str):
        return empty()
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Discarding malformed structured value: %.40r", raw)
        return empty()
    return value if isinstance(value, empty) else empty()


def decode_record(collection, row):
    fields = STRUCTURED_FIELDS.get(collection, {})
    decoded = dict(row)
    for key, empty in fields.items():
        decoded[key] = decode_value(row.get(key), empty)
    return decoded
