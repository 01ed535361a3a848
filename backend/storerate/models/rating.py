from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, func
from typing import Optional
from .authz import Base


class Rating(Base):
    __tablename__ = 'ratings'
    MIN_VALUE = 1
    MAX_VALUE = 5

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    store_id: Mapped[int] = mapped_column(ForeignKey('stores.id', ondelete='CASCADE'), index=True, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'store_id', name='uq_rating_user_store'),
        CheckConstraint('rating BETWEEN 1 AND 5', name='ck_rating_range'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'store_id': self.store_id,
            'rating': self.rating,
            'comment': self.comment,
        }

__all__ = ['Rating']
