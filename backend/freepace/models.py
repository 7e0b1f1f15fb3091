from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, CheckConstraint
from .db import Base


class StudentProgress(Base):
	__tablename__ = "student_progress"
	__table_args__ = (
		CheckConstraint("status IN ('not_started', 'in_progress', 'completed')", name="ck_progress_status"),
		CheckConstraint("understanding_level BETWEEN 1 AND 5", name="ck_progress_understanding"),
		CheckConstraint("help_requested_from IN ('ai', 'teacher', 'friend', 'hint')", name="ck_progress_help_from"),
	)
	id = Column(Integer, primary_key=True, autoincrement=True)
	student_id = Column(Integer, nullable=False, index=True)
	curriculum_id = Column(Integer, nullable=False)
	course_id = Column(Integer, nullable=True)
	learning_card_id = Column(Integer, nullable=True)
	# Classroom the student belonged to when the row was written
	class_code = Column(String(64), nullable=True, index=True)
	status = Column(String(16), nullable=False)
	understanding_level = Column(Integer, nullable=True)
	help_requested_from = Column(String(16), nullable=True)
	help_count = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
