# app/billing/credits.py
import logging
from typing import Optional
from sqlalchemy import case, update
from sqlalchemy.orm import Session
from app.models.user import User
from app.models.promo import PromoCodeUsage
from app.billing.plans import DEFAULT_CREDITS

logger = logging.getLogger(__name__)


def ensure_user(db: Session, user_id: str, name: Optional[str] = None, email: Optional[str] = None) -> User:
    """Return the user row, creating it with the default balance on first contact."""
    user = db.get(User, user_id)
    if user is None:
        user = User(id=user_id, name=name or "User", email=email, credits=DEFAULT_CREDITS)
        db.add(user)
        db.flush()
        logger.info(f"Created user {user_id} with {DEFAULT_CREDITS} credits")
    return user


def debit_credits(db: Session, user_id: str, cost: int, require_balance: bool = False) -> bool:
    """Subtract ``cost`` from the balance in a single UPDATE statement.

    By default the balance is floored at zero. With ``require_balance`` the
    row is only updated when it holds at least ``cost`` credits; the return
    value says whether a row was updated.
    """
    stmt = update(User).where(User.id == user_id)
    if require_balance:
        stmt = stmt.where(User.credits >= cost).values(credits=User.credits - cost)
    else:
        stmt = stmt.values(credits=case((User.credits >= cost, User.credits - cost), else_=0))
    result = db.execute(stmt.execution_options(synchronize_session=False))
    db.expire_all()
    return result.rowcount == 1


def add_credits(db: Session, user_id: str, amount: int) -> bool:
    stmt = update(User).where(User.id == user_id).values(credits=User.credits + amount)
    result = db.execute(stmt.execution_options(synchronize_session=False))
    db.expire_all()
    return result.rowcount == 1


def promo_code_used(db: Session, user_id: str, promo_code: str) -> bool:
    return db.query(PromoCodeUsage).filter(
        PromoCodeUsage.user_id == user_id,
        PromoCodeUsage.promo_code == promo_code,
    ).first() is not None


def record_promo_code(db: Session, user_id: str, promo_code: str, credits_added: int, source: Optional[str] = None) -> PromoCodeUsage:
    usage = PromoCodeUsage(
        user_id=user_id,
        promo_code=promo_code,
        credits_added=credits_added,
        source=source or "promo_code",
    )
    db.add(usage)
    return usage
