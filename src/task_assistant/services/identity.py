"""Resolve the identity provider's user id into an internal owner id."""

from __future__ import annotations

import logging
from collections.abc import Callable

from task_assistant.errors import AuthenticationError, TaskError
from task_assistant.storage.base import UserDirectory

logger = logging.getLogger(__name__)

# Returns the external user id for the current request, or None when anonymous.
IdentityProvider = Callable[[], str | None]


def static_identity(external_id: str | None) -> IdentityProvider:
    return lambda: external_id


class IdentityResolver:
    def __init__(self, directory: UserDirectory, *, auto_provision: bool = False) -> None:
        self.directory = directory
        self.auto_provision = auto_provision

    def resolve(self, external_id: str | None) -> str:
        if external_id is None or not external_id.strip():
            raise AuthenticationError()
        external_id = external_id.strip()
        try:
            owner_id = self.directory.resolve_owner(external_id)
            if owner_id is None and self.auto_provision:
                owner_id = self.directory.upsert_user(external_id).id
                logger.info("identity event=user_provisioned external_id=%s", external_id)
        except TaskError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("identity event=lookup_failed external_id=%s", external_id)
            raise AuthenticationError("Failed to authenticate user") from exc
        if owner_id is None:
            raise AuthenticationError("User not found")
        return owner_id
