import threading
from typing import Dict, List, Mapping, Optional

from loguru import logger

from errors import NotFoundError, ValidationError
from models import User

UPDATABLE_FIELDS = ("name", "email")


class IdAllocator:
    # Pas de verrou ici: UserStore sérialise les appels

    def __init__(self):
        self._next = 1

    def next(self) -> int:
        val = self._next
        self._next += 1
        return val

    def reset(self):
        self._next = 1


class UserStore:
    """Stockage en mémoire des utilisateurs, un seul verrou pour toutes les opérations."""

    def __init__(self, allocator: Optional[IdAllocator] = None):
        self._lock = threading.Lock()
        self._allocator = allocator or IdAllocator()
        # Ordre d'insertion du dict = ordre de création pour list()
        self._users: Dict[int, User] = {}

    def create(self, name: Optional[str], email: Optional[str]) -> User:
        if not name or not email:
            logger.warning("Rejected user creation: missing fields")
            raise ValidationError("Missing fields")
        with self._lock:
            user = User(id=self._allocator.next(), name=name, email=email)
            self._users[user.id] = user
        logger.info(f"User created with ID {user.id}")
        return user.model_copy()

    def list(self) -> List[User]:
        with self._lock:
            return [u.model_copy() for u in self._users.values()]

    def get(self, user_id: int) -> User:
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            logger.warning(f"User {user_id} not found")
            raise NotFoundError("User not found")
        return user.model_copy()

    def update(self, user_id: int, changes: Mapping[str, str]) -> User:
        # Seuls les champs présents sont écrits; chaîne vide acceptée (contrairement à create)
        fields = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                logger.warning(f"User {user_id} not found")
                raise NotFoundError("User not found")
            for key, value in fields.items():
                if not isinstance(value, str):
                    logger.warning(f"Rejected update of user {user_id}: {key} is not a string")
                    raise ValidationError("Invalid fields")
            if fields:
                user = user.model_copy(update=fields)
                self._users[user_id] = user
        logger.info(f"User {user_id} updated", extra={"fields": sorted(fields)})
        return user.model_copy()

    def delete(self, user_id: int):
        with self._lock:
            if self._users.pop(user_id, None) is None:
                logger.warning(f"User {user_id} not found")
                raise NotFoundError("User not found")
        logger.info(f"User {user_id} deleted")

    def reset(self):
        with self._lock:
            count = len(self._users)
            self._users.clear()
            self._allocator.reset()
        logger.info(f"Store reset, {count} users removed")
