"""Pydantic schemas for the study API request and response bodies."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "RegisterBody",
    "LoginBody",
    "AnswerSubmission",
    "AnswerAck",
    "StudyStats",
    "DailyStat",
    "Word",
]


class RegisterBody(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=6, max_length=256)


class LoginBody(BaseModel):
    user_id: str
    password: str


class AnswerSubmission(BaseModel):
    """One answered prompt, sent live or replayed from the offline queue."""

    model_config = ConfigDict(populate_by_name=True)

    word_id: int = Field(alias="wordId", ge=1)
    is_correct: bool = Field(alias="isCorrect", strict=True)
    timestamp: Optional[datetime] = Field(
        default=None,
        description="Client-side answer time. Server time is used when omitted.",
    )
    submission_id: Optional[str] = Field(
        default=None,
        alias="submissionId",
        max_length=64,
        description="Dedup key; a replay with a known key is acknowledged without appending.",
    )


class AnswerAck(BaseModel):
    message: str
    duplicate: bool = False


class StudyStats(BaseModel):
    """Aggregate snapshot served by ``/api/study/stats``."""

    model_config = ConfigDict(populate_by_name=True)

    total_studied: int = Field(alias="totalStudied", ge=0)
    correct_answers: int = Field(alias="correctAnswers", ge=0)
    incorrect_answers: int = Field(alias="incorrectAnswers", ge=0)
    streak: int = Field(ge=0)
    best_streak: int = Field(alias="bestStreak", ge=0)


class DailyStat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    total_studied: int = Field(alias="totalStudied", ge=0)
    correct_answers: int = Field(alias="correctAnswers", ge=0)
    incorrect_answers: int = Field(alias="incorrectAnswers", ge=0)


class Word(BaseModel):
    id: int
    english: str
    japanese: str
    level: str = "basic"
