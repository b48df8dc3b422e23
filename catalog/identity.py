"""
Links authenticated principals to local user records.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional

from catalog.db import DbClient, UserRecord
from catalog.errors import InvalidIdentityError

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("email", "name", "picture")


def ensure_user(db: DbClient, claims: Optional[Mapping[str, Any]]) -> UserRecord:
    """
    Ensure a user record exists for the given identity claims.

    The user is upserted on the subject id. Profile fields are overwritten
    on every call, so a field missing from `claims` is cleared to None.
    Store errors propagate to the caller.
    """
    if not isinstance(claims, Mapping) or not claims.get("sub"):
        raise InvalidIdentityError()

    sub = str(claims["sub"])
    profile = {key: claims.get(key) or None for key in PROFILE_FIELDS}
    user = db.upsert_user(sub, **profile)
    logger.debug("Reconciled user %s", sub)
    return user
