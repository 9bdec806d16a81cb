"""Progress model: one row per (user, room, chapter). Upserted on quiz completion."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from app.db.session import Base


class Progress(Base):
    __tablename__ = "progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    chapter_number = Column(Integer, nullable=False)  # 1..7

    status = Column(String(16), nullable=False, default="available")  # locked | available | conquered | contested
    score = Column(Integer, nullable=False, default=0)  # correct answers, 0..5
    completion_time = Column(Integer, nullable=True)  # seconds
    points = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "room_id", "chapter_number", name="uq_progress_user_room_chapter"),
    )
