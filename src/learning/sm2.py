"""
SM-2 spaced repetition scheduler.

Pure functions over a card's scheduling state. The scheduler never
touches the store; it only proposes the next state and status, and the
card store decides whether the proposal may be committed.

Rules per rating (R = repetitions before the review):
- again: R=0, interval=1, ease drops by 0.2 (floor 1.3)
- hard:  R+1, ease unchanged, interval 1 / 2 / floor(max(1, I*E*0.8))
- good:  R+1, ease unchanged, interval 1 / 3 / floor(I*E)
- easy:  R+1, ease rises by 0.15 (cap 3.0), interval 4 / 6 / floor(I*E*1.3)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from config import get_settings
from src.core.errors import ParseError
from src.learning.card_status import CardStatus


class Rating(str, Enum):
    """Recall quality reported by the learner."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @classmethod
    def parse(cls, value: Rating | str) -> Rating:
        if isinstance(value, Rating):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ParseError(f"invalid rating: '{value}'") from None


@dataclass(frozen=True)
class SM2Config:
    """Scheduler bounds and thresholds."""

    initial_ease: float = 2.5
    min_ease: float = 1.3
    max_ease: float = 3.0
    mastered_repetitions: int = 5
    # Bookmark learning-state thresholds on recomputed mastery
    mastered_threshold: float = 0.9
    learning_threshold: float = 0.7

    @classmethod
    def from_settings(cls) -> SM2Config:
        return cls(**get_settings().get_sm2_config())


@dataclass(frozen=True)
class ReviewOutcome:
    """Proposed scheduling state after one review."""

    interval: int
    ease_factor: float
    repetition: int
    next_review: datetime
    status: CardStatus


class SM2Scheduler:
    """Computes SM-2 review outcomes."""

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def clamp_ease(self, ease: float) -> float:
        return round(min(self.config.max_ease, max(self.config.min_ease, ease)), 4)

    def schedule(
        self,
        interval: int,
        ease_factor: float,
        repetition: int,
        status: CardStatus | str,
        rating: Rating | str,
        now: datetime,
    ) -> ReviewOutcome:
        """
        Compute the next interval, ease, repetition, next review and status.

        Args:
            interval: Current interval in days (values below 1 are treated as 1)
            ease_factor: Current ease factor
            repetition: Successful repetitions so far
            status: Current card status
            rating: Learner's rating
            now: Review time; next review is ``now + interval`` days

        Returns:
            ReviewOutcome with the proposed state
        """
        rating = Rating.parse(rating)
        interval = max(1, int(interval or 1))
        ease = self.clamp_ease(ease_factor if ease_factor else self.config.initial_ease)
        repetition = max(0, int(repetition or 0))

        if rating is Rating.AGAIN:
            new_repetition = 0
            new_interval = 1
            new_ease = self.clamp_ease(ease - 0.2)
        elif rating is Rating.HARD:
            new_repetition = repetition + 1
            new_ease = ease
            if repetition == 0:
                new_interval = 1
            elif repetition == 1:
                new_interval = 2
            else:
                new_interval = math.floor(max(1.0, interval * ease * 0.8))
        elif rating is Rating.GOOD:
            new_repetition = repetition + 1
            new_ease = ease
            if repetition == 0:
                new_interval = 1
            elif repetition == 1:
                new_interval = 3
            else:
                new_interval = math.floor(interval * ease)
        else:
            new_repetition = repetition + 1
            new_ease = self.clamp_ease(ease + 0.15)
            if repetition == 0:
                new_interval = 4
            elif repetition == 1:
                new_interval = 6
            else:
                new_interval = math.floor(interval * ease * 1.3)

        new_interval = max(1, int(new_interval))
        return ReviewOutcome(
            interval=new_interval,
            ease_factor=new_ease,
            repetition=new_repetition,
            next_review=now + timedelta(days=new_interval),
            status=self.propose_status(status, new_repetition),
        )

    def propose_status(self, current: CardStatus | str, repetition: int) -> CardStatus:
        """Status proposed after a review that left the card at ``repetition``."""
        current = CardStatus(current)
        mastered = repetition >= self.config.mastered_repetitions
        if current is CardStatus.NEW:
            return CardStatus.LEARNING
        if current is CardStatus.REVIEWED:
            return CardStatus.MASTERED if mastered else CardStatus.LEARNING
        return CardStatus.MASTERED if mastered else CardStatus.REVIEWED


def compute_mastery(ease_factors: list[float], min_ease: float = 1.3, max_ease: float = 3.0) -> float:
    """Mastery in [0, 1] from the mean ease factor of a bookmark's cards."""
    if not ease_factors:
        return 0.0
    average = sum(ease_factors) / len(ease_factors)
    mastery = (average - min_ease) / (max_ease - min_ease)
    return min(1.0, max(0.0, mastery))
