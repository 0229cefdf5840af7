"""Study statistics aggregation over the append-only outcome log.

Two streak figures are derived with deliberately different horizons:

* ``streak`` (current streak) walks the newest records first and only looks
  at the most recent ``window`` outcomes. When every outcome inside the window
  is correct the reported value equals the window size and is a lower bound
  of the true streak.
* ``best_streak`` walks the whole history oldest first with a single running
  counter, so it is exact and never decreases while the log only grows.

The same increment rules are exposed through :func:`apply_answer` for the
client's optimistic copy of the snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Mapping, Sequence

RECENT_WINDOW = 100


@dataclass(frozen=True)
class StudySnapshot:
    """Aggregate statistics for one learner."""

    total_studied: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    streak: int = 0
    best_streak: int = 0

    def to_payload(self) -> Dict[str, int]:
        """Return the wire representation used by ``/api/study/stats``."""
        return {
            "totalStudied": self.total_studied,
            "correctAnswers": self.correct_answers,
            "incorrectAnswers": self.incorrect_answers,
            "streak": self.streak,
            "bestStreak": self.best_streak,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StudySnapshot":
        def _count(key: str) -> int:
            try:
                return max(0, int(payload.get(key) or 0))
            except (TypeError, ValueError):
                return 0

        return cls(
            total_studied=_count("totalStudied"),
            correct_answers=_count("correctAnswers"),
            incorrect_answers=_count("incorrectAnswers"),
            streak=_count("streak"),
            best_streak=_count("bestStreak"),
        )


def current_streak(newest_first: Iterable[bool], window: int = RECENT_WINDOW) -> int:
    """Count consecutive correct outcomes from the newest one, within ``window``."""
    streak = 0
    for index, correct in enumerate(newest_first):
        if index >= window or not correct:
            break
        streak += 1
    return streak


def best_streak(oldest_first: Iterable[bool]) -> int:
    """Longest run of consecutive correct outcomes across the full history."""
    best = 0
    running = 0
    for correct in oldest_first:
        if correct:
            running += 1
            if running > best:
                best = running
        else:
            running = 0
    return best


def summarize(outcomes: Sequence[bool], window: int = RECENT_WINDOW) -> StudySnapshot:
    """Compute a snapshot from an in-memory log ordered oldest first."""
    correct = sum(1 for outcome in outcomes if outcome)
    return StudySnapshot(
        total_studied=len(outcomes),
        correct_answers=correct,
        incorrect_answers=len(outcomes) - correct,
        streak=current_streak(reversed(outcomes), window),
        best_streak=best_streak(outcomes),
    )


class AggregationEngine:
    """Compute snapshots straight from the persisted outcome log.

    ``log`` is any object exposing ``read_transaction``, ``count_outcomes``,
    ``fetch_recent_outcomes`` and ``iter_outcomes`` with the signatures of the
    :mod:`db` module, which is the default. All reads for one snapshot share a
    single read transaction, so an append landing mid-computation is either
    fully reflected or not at all. The engine only reads, so a single instance
    can serve concurrent requests for different users.
    """

    def __init__(self, log: Any = None, *, window: int = RECENT_WINDOW) -> None:
        if window < 1:
            raise ValueError("window must be a positive integer")
        if log is None:
            import db as log
        self._log = log
        self.window = window

    def snapshot(self, user_id: str) -> StudySnapshot:
        with self._log.read_transaction() as con:
            counts = self._log.count_outcomes(user_id, con=con)
            recent = self._log.fetch_recent_outcomes(user_id, self.window, con=con)
            best = best_streak(self._log.iter_outcomes(user_id, con=con))
        return StudySnapshot(
            total_studied=counts["total"],
            correct_answers=counts["correct"],
            incorrect_answers=counts["incorrect"],
            streak=current_streak(recent, self.window),
            best_streak=best,
        )


def apply_answer(snapshot: StudySnapshot, correct: bool) -> StudySnapshot:
    """Return the optimistic snapshot after one more answer.

    The result is provisional: the next authoritative fetch replaces it.
    """
    streak = snapshot.streak + 1 if correct else 0
    return replace(
        snapshot,
        total_studied=snapshot.total_studied + 1,
        correct_answers=snapshot.correct_answers + (1 if correct else 0),
        incorrect_answers=snapshot.incorrect_answers + (0 if correct else 1),
        streak=streak,
        best_streak=max(snapshot.best_streak, streak),
    )

