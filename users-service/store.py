"""
In-memory user store.

Holds the users in a dict keyed by id; dict iteration order is insertion
order, so listing keeps the order in which users were created.
All operations take the store lock and hand out copies, never the
stored records themselves.
"""
import threading
from typing import Dict, Iterable, List, Optional

from models import SEED_USERS, User


class UserStoreError(Exception):
    """Base class for store errors."""


class UserNotFound(UserStoreError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class UserConflict(UserStoreError):
    def __init__(self, user_id: int):
        super().__init__(f"User id {user_id} is already taken")
        self.user_id = user_id


class UserStore:
    def __init__(self, users: Optional[Iterable[User]] = None):
        self._lock = threading.Lock()
        self._users: Dict[int, User] = {}
        self._next_id = 1
        self.reset(users or [])

    def reset(self, users: Iterable[User] = SEED_USERS) -> None:
        """Replace the whole content of the store, the seed data by default."""
        fresh: Dict[int, User] = {}
        for user in users:
            if user.id in fresh:
                raise UserConflict(user.id)
            fresh[user.id] = user.model_copy()
        with self._lock:
            self._users = fresh
            self._next_id = max(fresh, default=0) + 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def list(self) -> List[User]:
        with self._lock:
            return [u.model_copy() for u in self._users.values()]

    def create(self, name: str, email: str) -> User:
        with self._lock:
            user = User(id=self._next_id, name=name, email=email)
            self._users[user.id] = user
            self._next_id += 1
            return user.model_copy()

    def get(self, user_id: int) -> User:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFound(user_id)
            return user.model_copy()

    def update(self, user_id: int, changes: dict) -> User:
        """
        Overwrite the fields given in `changes` on the user `user_id`.

        `changes` may carry a new `id`: the user keeps its position but is
        re-keyed under the new id. Taking the id of another user raises
        UserConflict and leaves the store untouched.
        """
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                raise UserNotFound(user_id)

            updated = current.model_copy(update=changes)
            if updated.id == user_id:
                self._users[user_id] = updated
                return updated.model_copy()

            if updated.id in self._users:
                raise UserConflict(updated.id)
            # Re-key in place to keep insertion order
            users = {}
            for uid, user in self._users.items():
                if uid == user_id:
                    users[updated.id] = updated
                else:
                    users[uid] = user
            self._users = users
            self._next_id = max(self._next_id, updated.id + 1)
            return updated.model_copy()

    def delete(self, user_id: int) -> None:
        with self._lock:
            if user_id not in self._users:
                raise UserNotFound(user_id)
            del self._users[user_id]


# Stockage en mémoire, partagé par toute l'application
users_store = UserStore(SEED_USERS)
