"""Pydantic schemas for stored records, questions, dashboards and the API.

Stored records (`UserRecord` and its parts, `DirectoryEntry`) are
serialized to JSON by the progress store. Dashboard models are plain
data so any rendering layer can consume `model_dump(mode="json")`.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from .utils.dates import ensure_utc


class QuizMode(str, Enum):
    QUIZ = "quiz"
    MENTOR = "mentor"


class QuestionType(str, Enum):
    CONTEUDISTA = "conteudista"
    RACIOCINIO = "raciocínio"


# --- Stored records ---

class QuestionProgress(BaseModel):
    """Answer counters for one question slot of one module."""
    seen: int = Field(default=0, ge=0)
    correct: int = Field(default=0, ge=0)
    incorrect: int = Field(default=0, ge=0)
    last_seen_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _seen_matches_answers(self):
        if self.seen != self.correct + self.incorrect:
            raise ValueError("seen must equal correct + incorrect")
        return self


class SessionInput(BaseModel):
    """What the coordinator hands to the store when an attempt completes."""
    module_id: str
    mode: QuizMode = QuizMode.QUIZ
    correct_count: int = Field(ge=0)
    incorrect_count: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    time_spent_seconds: int = Field(default=0, ge=0)


class SessionRecord(SessionInput):
    """A completed attempt; never mutated once appended."""
    score: int
    completed_at: datetime

    @field_validator("completed_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class RollingStatistics(BaseModel):
    """Incrementally maintained totals of a user's activity."""
    total_questions: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    total_time: int = 0
    last_activity_at: Optional[datetime] = None
    streak_days: int = 0
    longest_streak: int = 0


class UserRecord(BaseModel):
    user_id: str
    progress: Dict[str, Dict[str, QuestionProgress]] = Field(default_factory=dict)
    sessions: List[SessionRecord] = Field(default_factory=list)
    statistics: RollingStatistics = Field(default_factory=RollingStatistics)
    last_module: Optional[str] = None
    last_question_index: int = 0
    created_at: datetime
    last_updated_at: datetime


class DirectoryEntry(BaseModel):
    """A registered user as listed in the directory (separate from records)."""
    id: str
    username: str
    email: str
    password_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class Position(BaseModel):
    question_index: int = 0
    has_position: bool = False


class ModuleProgress(BaseModel):
    seen: int
    correct: int
    total: int
    seen_percentage: int
    correct_percentage: int


class UserStatisticsSummary(RollingStatistics):
    total_sessions: int
    average_score: int
    recent_activity: int


# --- Questions ---

class Question(BaseModel):
    """A multiple-choice question as delivered by the question provider."""
    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=2)
    correct_index: int = Field(validation_alias=AliasChoices("correct_index", "correctIndex"))
    explanation: str = Field(min_length=1)
    type: Optional[QuestionType] = None
    image: Optional[str] = None

    @model_validator(mode="after")
    def _correct_index_in_range(self):
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError("correct_index out of range")
        return self


class QuestionLoadResult(BaseModel):
    success: bool
    questions: List[Question] = Field(default_factory=list)
    error: Optional[str] = None


# --- Dashboard sections ---

class Overview(BaseModel):
    total_questions: int
    total_correct: int
    total_incorrect: int
    accuracy: int
    total_sessions: int
    total_time_minutes: int
    current_streak: int
    longest_streak: int
    last_activity_at: Optional[datetime] = None


class DailyBucket(BaseModel):
    date: date
    sessions: int = 0
    correct: int = 0
    incorrect: int = 0
    total_time: int = 0


class RecentPerformance(BaseModel):
    total_sessions: int
    daily_data: List[DailyBucket]
    average_score: int


class ModuleStats(BaseModel):
    module_id: str
    module_name: str
    sessions: int = 0
    total_questions: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    total_time: int = 0
    best_score: int = 0
    average_score: int = 0


class TimeAnalysis(BaseModel):
    average_session_time: int = 0
    fastest_session: int = 0
    longest_session: int = 0
    total_time_minutes: int = 0
    average_time_per_question: int = 0


class Streaks(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    total_active_days: int = 0
    streak_history: List[date] = Field(default_factory=list)


class ProblemQuestion(BaseModel):
    module_id: str
    module_name: str
    question_index: int
    seen: int
    correct: int
    incorrect: int
    error_rate: int


class Achievement(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    unlocked_at: Optional[datetime] = None


class EvolutionPoint(BaseModel):
    date: date
    average_score: int
    sessions: int
    questions: int


class TypePerformance(BaseModel):
    correct: int = 0
    incorrect: int = 0
    total: int = 0
    accuracy: int = 0


class Dashboard(BaseModel):
    overview: Overview
    recent_performance: RecentPerformance
    module_breakdown: List[ModuleStats]
    time_analysis: TimeAnalysis
    streaks: Streaks
    problem_questions: List[ProblemQuestion]
    achievements: List[Achievement]


class QuizResult(BaseModel):
    """Summary returned by the coordinator when an attempt finishes."""
    correct_count: int
    incorrect_count: int
    total_questions: int
    time_spent_seconds: int
    score: int


# --- API payloads ---

class RegisterIn(BaseModel):
    """Payload for user registration."""
    username: str
    email: str
    password: str


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    email: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    user_id: str
    username: str
