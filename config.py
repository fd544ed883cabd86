# config.py
import os

APP_VERSION = "1.4.0"
APP_TITLE = "EduEquip"

# Local fallback store (stands in for the browser's persistent storage)
LOCAL_STORE_URL = os.environ.get("LOCAL_STORE_URL", "sqlite:///eduequip_local.db")

# Remote record service
RECORD_SERVICE_URL = os.environ.get("RECORD_SERVICE_URL", "http://localhost:3000/api")
RECORD_SERVICE_TIMEOUT = float(os.environ.get("RECORD_SERVICE_TIMEOUT", "10"))

# Collections
COLLECTION_USERS = "users"
COLLECTION_DEVICES = "data"
COLLECTION_CONFIG = "config"
COLLECTIONS = (COLLECTION_USERS, COLLECTION_DEVICES, COLLECTION_CONFIG)

# Local store keys
STORAGE_KEYS = {
    COLLECTION_USERS: "eduequip_users",
    COLLECTION_DEVICES: "eduequip_devices",
}
CONFIG_BLOB_KEY = "eduequip_config"
AUTH_USER_KEY = "eduequip_auth_user"
AUTH_EXPIRY_KEY = "eduequip_auth_expiry"

# Sessions (milliseconds)
DAY_MS = 24 * 60 * 60 * 1000
SESSION_TTL_MS = 1 * DAY_MS
REMEMBER_ME_TTL_MS = 3 * DAY_MS

PASSWORD_MIN_LENGTH = 6
LEGACY_MASTER_PASSWORD = "admin"

# Seeded admin; never deletable
ADMIN_ID = "1"
SEED_ADMIN = {
    "id": ADMIN_ID,
    "username": "admin",
    "fullName": "System Administrator",
    "email": "admin@school.edu",
    "role": "ADMIN",
    "mustChangePassword": False,
}

# Defaults for the structured system config
DEFAULT_SCHOOL_NAME = "Future High School"
DEFAULT_ACADEMIC_YEAR = "2023-2024"
DEFAULT_CATEGORIES = ["Laptop", "Projector", "Tablet", "Camera", "Audio", "Other"]
CONFIG_KEYS = ("schoolName", "academicYear", "categories", "customFields")
