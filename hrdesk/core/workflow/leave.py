"""Leave balance bookkeeping.

Submitting a leave request reserves its working days (``pending``), a
completed request moves them to ``used`` and a rejected one releases them.
"""

import logging
from datetime import date, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from hrdesk.db.models import LeaveBalance, Holiday

logger = logging.getLogger(__name__)


def calculate_working_days(db: Session, start: date, end: date) -> float:
    """Days between start and end inclusive, skipping weekends and holidays."""
    if end < start:
        return 0
    holidays = {
        h.date for h in db.query(Holiday).filter(Holiday.date >= start, Holiday.date <= end).all()
    }
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5 and current not in holidays:
            days += 1
        current += timedelta(days=1)
    return float(days)


def get_balance(db: Session, user_id: UUID, leave_type: str, year: int, *, lock: bool = False) -> Optional[LeaveBalance]:
    query = db.query(LeaveBalance).filter(
        LeaveBalance.user_id == user_id,
        LeaveBalance.leave_type == leave_type,
        LeaveBalance.year == year,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def get_or_create_balance(db: Session, user_id: UUID, leave_type: str, year: int) -> LeaveBalance:
    balance = get_balance(db, user_id, leave_type, year, lock=True)
    if balance is None:
        balance = LeaveBalance(user_id=user_id, leave_type=leave_type, year=year, entitled=0, used=0, pending=0)
        db.add(balance)
        db.flush()
    return balance


def reserve(db: Session, user_id: UUID, leave_type: str, year: int, days: float) -> bool:
    """Reserve days against the balance. Returns False when not enough is available."""
    balance = get_or_create_balance(db, user_id, leave_type, year)
    if balance.available < days:
        return False
    balance.pending += days
    db.flush()
    logger.info(f"Reserved {days} day(s) of {leave_type}/{year} for user {user_id}")
    return True


def release(db: Session, user_id: UUID, leave_type: str, year: int, days: float) -> None:
    balance = get_or_create_balance(db, user_id, leave_type, year)
    balance.pending = max(0, balance.pending - days)
    db.flush()
    logger.info(f"Released {days} day(s) of {leave_type}/{year} for user {user_id}")


def deduct(db: Session, user_id: UUID, leave_type: str, year: int, days: float) -> None:
    """Move reserved days from pending to used."""
    balance = get_or_create_balance(db, user_id, leave_type, year)
    balance.pending = max(0, balance.pending - days)
    balance.used += days
    db.flush()
    logger.info(f"Deducted {days} day(s) of {leave_type}/{year} for user {user_id}")
