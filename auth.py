import logging
import time
from dataclasses import dataclass
from typing import Union

import bcrypt

import config
from exceptions import InventoryError, RemoteRejected, ValidationFailed
from models import User

logger = logging.getLogger(__name__)


def hash_password(password):
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(user, password):
    if not user.password_hash:
        # Accounts created before hashing was introduced
        return password == config.LEGACY_MASTER_PASSWORD or password == user.username
    try:
        return bcrypt.checkpw(password.encode('utf-8'), user.password_hash.encode('utf-8'))
    except ValueError:
        logger.warning("Stored password hash for user %s is malformed", user.id)
        return False


def now_ms():
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Session:
    user: User
    expires_at: int


@dataclass(frozen=True)
class Rejected:
    reason: str = "Invalid Credentials"


@dataclass(frozen=True)
class MustRotate:
    user: User


@dataclass(frozen=True)
class Authenticated:
    session: Session


LoginResult = Union[Rejected, MustRotate, Authenticated]


class SessionManager:
    def __init__(self, inventory, local, clock=now_ms):
        self.inventory = inventory
        self.local = local
        self.clock = clock
        self.session = None
        self.pending = None

    @property
    def current_user(self):
        return self.session.user if self.session else None

    @property
    def is_authenticated(self):
        return self.session is not None

    async def login(self, identifier, password, remember=False):
        user = await self.inventory.find_user(identifier)
        if user is None:
            logger.info("Login failed: unknown user %r", identifier)
            return Rejected()
        if not verify_password(user, password or ""):
            logger.info("Login failed: bad password for %s", user.username)
            return Rejected()
        if user.must_change_password:
            logger.info("User %s must rotate their password", user.username)
            self.pending = user
            return MustRotate(user)

        self.pending = None
        user = await self._stamp_login(user)
        return Authenticated(self._establish(user, remember))

    async def _stamp_login(self, user):
        stamped = user.model_copy(update={"last_login": self.clock()})
        try:
            await self.inventory.gateway.save(config.COLLECTION_USERS, stamped.to_record())
        except RemoteRejected as e:
            # Stored locally already; a login is never blocked on this
            logger.warning("Could not record last login for %s: %s", user.username, e.error)
        return stamped

    def _establish(self, user, remember):
        ttl = config.REMEMBER_ME_TTL_MS if remember else config.SESSION_TTL_MS
        session = Session(user=user, expires_at=self.clock() + ttl)
        self.local.put(config.AUTH_USER_KEY, user.public_record())
        self.local.put(config.AUTH_EXPIRY_KEY, session.expires_at)
        self.session = session
        logger.info("User %s logged in until %s", user.username, session.expires_at)
        return session

    async def update_password(self, new_password, confirm_password=None, remember=False):
        """Finish a forced rotation for the pending user and log them in."""
        user = self.pending
        if user is None:
            raise InventoryError("No password change is pending")
        if not new_password or len(new_password) < config.PASSWORD_MIN_LENGTH:
            raise ValidationFailed(f"Password must be at least {config.PASSWORD_MIN_LENGTH} characters")
        if confirm_password is not None and confirm_password != new_password:
            raise ValidationFailed("Passwords do not match")

        rotated = user.model_copy(update={
            "password_hash": hash_password(new_password),
            "must_change_password": False,
        })
        await self.inventory.gateway.save(config.COLLECTION_USERS, rotated.to_record())
        logger.info("User %s rotated their password", user.username)
        self.pending = None
        return await self.login(user.username, new_password, remember)

    def restore(self):
        stored_user = self.local.get(config.AUTH_USER_KEY)
        expiry = self.local.get(config.AUTH_EXPIRY_KEY)
        if stored_user is None and expiry is None:
            return None
        try:
            expires_at = int(expiry)
            user = User.from_record(stored_user)
        except (TypeError, ValueError):
            logger.warning("Stored session is malformed; clearing it")
            self.logout()
            return None
        if expires_at <= self.clock():
            logger.info("Session for %s expired", user.username)
            self.logout()
            return None
        self.session = Session(user=user, expires_at=expires_at)
        return self.session

    def logout(self):
        if self.session:
            logger.info("User %s logged out", self.session.user.username)
        self.session = None
        self.pending = None
        self.local.remove(config.AUTH_USER_KEY)
        self.local.remove(config.AUTH_EXPIRY_KEY)
