import logging
from collections import Counter

import config
from auth import hash_password
from exceptions import ProtectedRecordError, ValidationFailed
from models import Device, DeviceStatus, FieldType, SystemConfig, User
from system_config import ConfigCodec

logger = logging.getLogger(__name__)


def _load_all(model, records):
    items = []
    for record in records:
        try:
            items.append(model.from_record(record))
        except ValueError as e:
            logger.warning("Skipping unreadable %s record %r: %s", model.__name__, record.get("id"), e)
    return items


class Inventory:
    def __init__(self, gateway):
        self.gateway = gateway
        self.config_codec = ConfigCodec(gateway)

    # --- DEVICES ---
    async def get_devices(self):
        return _load_all(Device, await self.gateway.list(config.COLLECTION_DEVICES))

    async def get_device(self, device_id):
        record = await self.gateway.get_by_id(config.COLLECTION_DEVICES, device_id)
        return Device.from_record(record) if record else None

    def validate_device(self, device, system_config):
        errors = []
        if not device.name:
            errors.append("name")
        if not device.asset_code:
            errors.append("code")
        if system_config.categories and device.category not in system_config.categories:
            raise ValidationFailed(f"Unknown category: {device.category!r}")
        for field in system_config.custom_fields:
            value = device.custom_fields.get(field.key)
            if field.required and value in (None, ""):
                errors.append(field.key)
            elif field.type == FieldType.SELECT and value not in (None, "") and value not in (field.options or []):
                raise ValidationFailed(f"{field.label or field.key}: {value!r} is not an allowed option")
        if errors:
            raise ValidationFailed(f"Missing Required Fields: {', '.join(errors)}")

    async def save_device(self, device, system_config=None):
        if system_config is not None:
            self.validate_device(device, system_config)
        await self.gateway.save(config.COLLECTION_DEVICES, device.to_record())
        return device

    async def delete_device(self, device_id):
        await self.gateway.delete(config.COLLECTION_DEVICES, device_id)

    async def get_stats(self):
        devices = await self.get_devices()
        by_status = Counter(d.status.value for d in devices)
        for status in DeviceStatus:
            by_status.setdefault(status.value, 0)
        return {
            "total": len(devices),
            "by_status": dict(by_status),
            "by_category": dict(Counter(d.category for d in devices if d.category)),
        }

    # --- USERS ---
    async def get_users(self):
        users = _load_all(User, await self.gateway.list(config.COLLECTION_USERS))
        if not any(u.id == config.ADMIN_ID for u in users):
            users.insert(0, User.from_record(config.SEED_ADMIN))
        return users

    async def find_user(self, identifier):
        needle = (identifier or "").strip().lower()
        if not needle:
            return None
        for user in await self.get_users():
            if user.username.lower() == needle or (user.email and user.email.lower() == needle):
                return user
        return None

    async def save_user(self, user, new_password=None):
        """Create or replace a user.

        Supplying ``new_password`` sets it and forces the user to rotate it at
        the next login.
        """
        if not user.username.strip():
            raise ValidationFailed("Username is required")
        for other in await self.get_users():
            if other.id != user.id and other.username.lower() == user.username.lower():
                raise ValidationFailed("Username already exists.")

        if new_password:
            if len(new_password) < config.PASSWORD_MIN_LENGTH:
                raise ValidationFailed(f"Password must be at least {config.PASSWORD_MIN_LENGTH} characters")
            user = user.model_copy(update={
                "password_hash": hash_password(new_password),
                "must_change_password": True,
            })
        await self.gateway.save(config.COLLECTION_USERS, user.to_record())
        return user

    async def delete_user(self, user_id):
        if user_id == config.ADMIN_ID:
            raise ProtectedRecordError("The system administrator cannot be deleted")
        await self.gateway.delete(config.COLLECTION_USERS, user_id)

    # --- CONFIG ---
    async def get_config(self):
        return await self.config_codec.read()

    async def save_config(self, system_config):
        await self.config_codec.write(system_config)
