"""
Session context: who is signed in, passed explicitly into the core.

Credentials are verified upstream (gateway / identity provider); this service
only trusts the identity headers it is handed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi import Header

from app.core.errors import SessionRequiredError

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "User"


@dataclass
class SessionContext:
    user_id: str
    display_name: str = DEFAULT_DISPLAY_NAME
    on_sign_out: Optional[Callable[[], None]] = field(default=None, repr=False)
    signed_out: bool = False

    def sign_out(self) -> None:
        if self.signed_out:
            return
        self.signed_out = True
        logger.info("User %s signed out", self.user_id)
        if self.on_sign_out is not None:
            self.on_sign_out()


def build_session(
    user_id: Optional[str],
    email: Optional[str] = None,
    on_sign_out: Optional[Callable[[], None]] = None,
) -> SessionContext:
    user_id = (user_id or "").strip()
    if not user_id:
        raise SessionRequiredError()
    return SessionContext(
        user_id=user_id,
        display_name=(email or "").strip() or DEFAULT_DISPLAY_NAME,
        on_sign_out=on_sign_out,
    )


def get_session(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> SessionContext:
    return build_session(x_user_id, x_user_email)
