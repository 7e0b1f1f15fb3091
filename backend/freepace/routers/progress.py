from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import StudentProgress
from ..realtime import Relay
from .relay import get_relay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])


class ProgressIn(BaseModel):
    student_id: int
    curriculum_id: int
    course_id: Optional[int] = None
    learning_card_id: Optional[int] = None
    class_code: Optional[str] = None
    status: Literal["not_started", "in_progress", "completed"]
    understanding_level: Optional[int] = Field(default=None, ge=1, le=5)
    help_requested_from: Optional[Literal["ai", "teacher", "friend", "hint"]] = None
    help_count: int = Field(default=0, ge=0)


class ProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    curriculum_id: int
    course_id: Optional[int] = None
    learning_card_id: Optional[int] = None
    class_code: Optional[str] = None
    status: str
    understanding_level: Optional[int] = None
    help_requested_from: Optional[str] = None
    help_count: int
    created_at: datetime


class SaveProgressResponse(BaseModel):
    success: bool = True
    id: int
    notified: int = 0


@router.post("", response_model=SaveProgressResponse)
async def save_progress(
    body: ProgressIn,
    db: Session = Depends(get_db),
    relay: Relay = Depends(get_relay),
):
    row = StudentProgress(**body.model_dump())
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Saving progress failed")
        raise HTTPException(status_code=500, detail="Database error")

    notified = 0
    if body.class_code:
        notified = await relay.publish_progress(
            body.class_code,
            {
                "studentId": body.student_id,
                "curriculumId": body.curriculum_id,
                "courseId": body.course_id,
                "cardId": body.learning_card_id,
                "status": body.status,
                "understandingLevel": body.understanding_level,
            },
        )
    return SaveProgressResponse(id=row.id, notified=notified)


@router.get("/class/{class_code}", response_model=List[ProgressOut])
def class_progress(class_code: str, db: Session = Depends(get_db)):
    try:
        return (
            db.query(StudentProgress)
            .filter(StudentProgress.class_code == class_code)
            .order_by(StudentProgress.student_id, StudentProgress.created_at.desc(), StudentProgress.id.desc())
            .all()
        )
    except SQLAlchemyError:
        logger.exception("Loading class progress failed")
        raise HTTPException(status_code=500, detail="Database error")
