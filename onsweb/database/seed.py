"""
onsweb.database.seed — Bootstrap Admin Seeder
===============================================

Creates the first administrator from ``ADMIN_EMAIL`` / ``ADMIN_PASSWORD`` so
a fresh deployment has someone who can approve the accounts that
registration leaves inactive.

Idempotent — an existing account with that email is never modified.
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from onsweb.database.models import User, UserRole

logger = logging.getLogger(__name__)


def seed_admin_user(
    engine: Engine,
    email: str | None = None,
    password: str | None = None,
) -> bool:
    """Insert the bootstrap admin if it does not already exist.

    Falls back to the ``ADMIN_EMAIL`` / ``ADMIN_PASSWORD`` environment
    variables.  Returns ``True`` when a row was created.
    """
    from onsweb.services.auth_service import hash_password

    email = (email or os.getenv("ADMIN_EMAIL", "")).strip().lower()
    password = password or os.getenv("ADMIN_PASSWORD", "")
    if not email or not password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set — skipping admin seed.")
        return False

    with Session(engine) as session:
        exists = session.scalar(select(User.id).where(User.email == email))
        if exists is not None:
            return False
        session.add(User(
            email=email,
            name="Administrator",
            password_hash=hash_password(password),
            role=UserRole.ADMIN,
            is_active=True,
            email_verified=True,
        ))
        session.commit()

    logger.info("Seeded bootstrap admin account %s", email)
    return True
