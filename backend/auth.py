import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

import models
import storage
from config import get_settings
from database import get_db
from sessions import SessionStore

logger = logging.getLogger(__name__)

SESSION_KEY = "sid"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def authenticate(db: Session, username: str, password: str) -> Optional[models.Account]:
    """Return the account for a matching name/password pair, else None.

    Unknown names and wrong passwords are indistinguishable to the caller.
    """
    account = storage.get_account_by_username(db, username)
    if account is None:
        logger.info(f"[Auth] Login failed, unknown user: {username}")
        return None
    if not verify_password(account.password_hash, password):
        logger.info(f"[Auth] Login failed, bad password for user: {username}")
        return None
    return account


# ----------------- Session handling -----------------
def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def login_session(request: Request, store: SessionStore, account: models.Account) -> str:
    """Bind a fresh session id to ``account``, dropping any previous one."""
    logout_session(request, store)
    sid = store.new_sid()
    store.set(sid, {"account_id": account.id}, ttl=get_settings().session_max_age)
    request.session[SESSION_KEY] = sid
    return sid


def logout_session(request: Request, store: SessionStore) -> None:
    sid = request.session.pop(SESSION_KEY, None)
    if sid:
        store.delete(sid)
    request.session.clear()


def get_current_account(
    request: Request,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> models.Account:
    sid = request.session.get(SESSION_KEY)
    data = store.get(sid) if sid else None
    if not data:
        raise HTTPException(status_code=401, detail="Not authenticated")

    account = storage.get_account(db, data["account_id"])
    if account is None:
        # Account removed after the session was issued.
        logger.info(f"[Auth] Dropping session for missing account {data['account_id']}")
        logout_session(request, store)
        raise HTTPException(status_code=401, detail="Not authenticated")
    return account


def require_admin(account: models.Account = Depends(get_current_account)) -> models.Account:
    if not account.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return account
