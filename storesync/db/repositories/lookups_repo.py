from __future__ import annotations

from sqlalchemy.orm import Session

from storesync.db.models import LotteryBusinessDay, LotteryGame, User


def find_game(session: Session, game_id: str) -> LotteryGame | None:
    return session.get(LotteryGame, game_id)


def find_user(session: Session, user_id: str) -> User | None:
    return session.get(User, user_id)


def find_business_day(session: Session, day_id: str) -> LotteryBusinessDay | None:
    return session.get(LotteryBusinessDay, day_id)
