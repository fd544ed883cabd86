import pytest

import config
from exceptions import ConfigWriteError, ValidationFailed
from models import CustomFieldDef, FieldType, SystemConfig
from system_config import default_config


def sample_config(**overrides):
    data = dict(
        school_name="Riverside High",
        academic_year="2025-2026",
        categories=["Laptop", "Projector"],
        custom_fields=[
            CustomFieldDef(key="serial_no", label="Serial Number", type=FieldType.TEXT, required=True),
            CustomFieldDef(key="warranty", label="Warranty", type=FieldType.SELECT, options=["1y", "3y"]),
        ],
    )
    data.update(overrides)
    return SystemConfig(**data)


async def test_defaults_without_rows(inventory):
    assert await inventory.get_config() == default_config()


async def test_write_then_read(inventory, service):
    cfg = sample_config()
    await inventory.save_config(cfg)
    assert await inventory.get_config() == cfg
    assert sorted(row["key"] for row in service.collections["config"]) == sorted(config.CONFIG_KEYS)


async def test_empty_sequences_round_trip(inventory):
    cfg = sample_config(categories=[], custom_fields=[])
    await inventory.save_config(cfg)
    read = await inventory.get_config()
    assert read.categories == []
    assert read.custom_fields == []
    assert read == cfg


async def test_rows_are_updated_in_place(inventory, service):
    await inventory.save_config(sample_config())
    await inventory.save_config(sample_config(school_name="Hilltop Academy"))
    assert len(service.collections["config"]) == 4
    assert service.writes() == ["POST"] * 4 + ["PUT"] * 4
    assert (await inventory.get_config()).school_name == "Hilltop Academy"


async def test_unknown_and_malformed_rows(inventory, service):
    service.collections["config"] = [
        {"id": "r1", "key": "categories", "value": "not json"},
        {"id": "r2", "key": "theme", "value": "dark"},
        {"id": "r3", "key": "schoolName", "value": "Hill School"},
        {"id": "r4", "key": "academicYear", "value": "2024"},
    ]
    cfg = await inventory.get_config()
    assert cfg.school_name == "Hill School"
    assert cfg.academic_year == "2024"
    assert cfg.categories == config.DEFAULT_CATEGORIES
    assert cfg.custom_fields == []


async def test_offline_write_uses_local_blob(inventory, service, local):
    service.down = True
    cfg = sample_config()
    await inventory.save_config(cfg)
    assert local.get(config.CONFIG_BLOB_KEY) == cfg.to_record()
    assert await inventory.get_config() == cfg

    # Back online: the rows win again
    service.down = False
    assert await inventory.get_config() == default_config()


async def test_partial_failure_is_reported_after_local_copy(inventory, service, local):
    service.collections["config"] = [{"id": "row-school", "key": "schoolName", "value": "Old"}]
    service.reject["PUT"] = "Row locked"
    cfg = sample_config()
    with pytest.raises(ConfigWriteError) as info:
        await inventory.save_config(cfg)
    assert info.value.failed_keys == ["schoolName"]
    assert sorted(r["key"] for r in service.collections["config"]) == sorted(config.CONFIG_KEYS)
    assert local.get(config.CONFIG_BLOB_KEY) == cfg.to_record()


async def test_successful_write_clears_local_blob(inventory, service, local):
    local.put(config.CONFIG_BLOB_KEY, {"schoolName": "Stale"})
    await inventory.save_config(sample_config())
    assert local.get(config.CONFIG_BLOB_KEY) is None


@pytest.mark.parametrize("fields", [
    [CustomFieldDef(key="serial no", label="Serial")],
    [CustomFieldDef(key="room", label="Room"), CustomFieldDef(key="room", label="Room again")],
    [CustomFieldDef(key="size", label="Size", type=FieldType.SELECT)],
])
async def test_invalid_field_definitions_are_rejected_before_saving(inventory, service, fields):
    with pytest.raises(ValidationFailed):
        await inventory.save_config(sample_config(custom_fields=fields))
    assert service.calls == []


async def test_server_errors_on_every_call_save_locally_without_raising(inventory, service, local):
    for method in ("GET", "POST", "PUT"):
        service.outage[method] = "Google Sheet Error: socket hang up"
    cfg = sample_config()
    await inventory.save_config(cfg)
    assert local.get(config.CONFIG_BLOB_KEY) == cfg.to_record()
    assert await inventory.get_config() == cfg


async def test_server_errors_on_writes_only_are_a_total_outage(inventory, service, local):
    service.outage["POST"] = "Google API quota exceeded"
    cfg = sample_config()
    await inventory.save_config(cfg)
    assert service.collections["config"] == []
    assert local.get(config.CONFIG_BLOB_KEY) == cfg.to_record()
