# Users keyed by external service id; JIT-provisions on first login.
from __future__ import annotations

import copy
import threading
import uuid
from typing import Any, Callable, Dict, Optional, Protocol

from accounts_oidc.app.core.trace import auth_trace
from accounts_oidc.app.models import CreateUserOptions

OnCreateUser = Callable[[CreateUserOptions], Dict[str, Any]]


class UserStore(Protocol):
    def update_or_create_from_external_service(
        self,
        service: str,
        service_data: Dict[str, Any],
        options: CreateUserOptions,
    ) -> Dict[str, Any]: ...


class InMemoryUserStore:
    """
    Dict-backed user store (good enough for tests/dev).

    Users look like {"id": ..., "profile": {...}, "services": {slug: service_data}}.
    """

    def __init__(self, on_create_user: Optional[OnCreateUser] = None):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.on_create_user = on_create_user
        self._lock = threading.Lock()

    def find_by_service_id(self, service: str, service_id: Any) -> Optional[Dict[str, Any]]:
        for user in self.users.values():
            if user.get("services", {}).get(service, {}).get("id") == service_id:
                return user
        return None

    def update_or_create_from_external_service(
        self,
        service: str,
        service_data: Dict[str, Any],
        options: CreateUserOptions,
    ) -> Dict[str, Any]:
        service_id = service_data["id"]
        with self._lock:
            user = self.find_by_service_id(service, service_id)
            if user is not None:
                user["services"][service].update(copy.deepcopy(service_data))
                auth_trace("users.updated", service=service, user_id=user["id"])
                return user

            if self.on_create_user is not None:
                user = dict(self.on_create_user(options))
            else:
                user = {"profile": options.profile}
            user_id = user.get("id") or uuid.uuid4().hex
            user["id"] = user_id
            user.setdefault("services", {})[service] = copy.deepcopy(service_data)
            self.users[user_id] = user
            auth_trace("users.created", service=service, user_id=user_id)
            return user
