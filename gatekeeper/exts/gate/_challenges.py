import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

import arrow

from gatekeeper.exts.gate._allow_list import AllowList
from gatekeeper.log import get_logger
from gatekeeper.utils.lock import KeyedLock

log = get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class Question:
    """A verification question and the answer that passes it."""

    prompt: str
    answer: str


QUESTIONS = (
    Question("What is 2 + 3? Reply with the number.", "5"),
    Question("What colour is the sky on a clear day?", "blue"),
    Question("Type the word `discord` backwards.", "drocsid"),
)


def normalise_answer(text: str) -> str:
    """Normalise an answer for comparison: surrounding whitespace is dropped and case is ignored."""
    return text.strip().lower()


@dataclass(frozen=True)
class PendingChallenge:
    """A verification challenge waiting for the user's answer."""

    question: str
    expected_answer: str
    origin_guild_id: int
    expires_at: arrow.Arrow


class StartStatus(Enum):
    """Result of trying to start a challenge."""

    STARTED = "started"
    ALREADY_PENDING = "already_pending"
    ALREADY_VERIFIED = "already_verified"


@dataclass(frozen=True)
class StartResult:
    status: StartStatus
    challenge: PendingChallenge | None = None


class SubmitStatus(Enum):
    """Result of submitting an answer."""

    CORRECT = "correct"
    INCORRECT = "incorrect"
    EXPIRED = "expired"
    NO_CHALLENGE = "no_challenge"


@dataclass(frozen=True)
class SubmitResult:
    status: SubmitStatus
    guild_id: int | None = None


class ChallengeRegistry:
    """
    Pending verification challenges, at most one per user.

    A user's challenge moves from pending to one of three terminal states: answered correctly,
    expired, or cancelled. Wrong answers leave it pending so the user can try again until it expires.
    Expiry is only noticed when the user next submits an answer; nothing sweeps stale challenges.

    Every operation on a user runs under that user's lock, so the check-then-set in `start`
    can't let two challenges through for the same user.
    """

    def __init__(
        self,
        allow_list: AllowList,
        *,
        ttl: timedelta = DEFAULT_TTL,
        questions: Sequence[Question] = QUESTIONS,
        clock: Callable[[], arrow.Arrow] = arrow.utcnow,
    ):
        if not questions:
            raise ValueError("At least one verification question is required.")

        self.allow_list = allow_list
        self.ttl = ttl
        self.questions = tuple(questions)
        self.clock = clock

        self._pending: dict[int, PendingChallenge] = {}
        self._locks = KeyedLock("challenges")

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def get(self, user_id: int) -> PendingChallenge | None:
        """Return the user's pending challenge, if there is one."""
        return self._pending.get(user_id)

    async def start(self, user_id: int, guild_id: int) -> StartResult:
        """Create a challenge for the user unless they are verified or already have one pending."""
        async with self._locks(user_id):
            if str(user_id) in self.allow_list:
                log.trace(f"Not starting a challenge for {user_id}: already verified.")
                return StartResult(StartStatus.ALREADY_VERIFIED)

            if user_id in self._pending:
                log.trace(f"Not starting a challenge for {user_id}: one is already pending.")
                return StartResult(StartStatus.ALREADY_PENDING)

            question = random.choice(self.questions)
            challenge = PendingChallenge(
                question=question.prompt,
                expected_answer=normalise_answer(question.answer),
                origin_guild_id=guild_id,
                expires_at=self.clock() + self.ttl,
            )
            self._pending[user_id] = challenge

            log.debug(f"Started a challenge for {user_id} from guild {guild_id}, expiring at {challenge.expires_at}.")
            return StartResult(StartStatus.STARTED, challenge)

    async def submit(self, user_id: int, answer: str) -> SubmitResult:
        """
        Check `answer` against the user's pending challenge.

        Expiry is checked before the answer, so a late answer is `EXPIRED` even when it is right.
        Correct and expired challenges are removed; incorrect ones stay pending.
        """
        async with self._locks(user_id):
            challenge = self._pending.get(user_id)
            if challenge is None:
                return SubmitResult(SubmitStatus.NO_CHALLENGE)

            if self.clock() > challenge.expires_at:
                del self._pending[user_id]
                log.debug(f"Challenge for {user_id} expired at {challenge.expires_at}.")
                return SubmitResult(SubmitStatus.EXPIRED)

            if normalise_answer(answer) != challenge.expected_answer:
                log.trace(f"Incorrect answer from {user_id}.")
                return SubmitResult(SubmitStatus.INCORRECT)

            del self._pending[user_id]
            log.debug(f"Challenge for {user_id} answered correctly.")
            return SubmitResult(SubmitStatus.CORRECT, challenge.origin_guild_id)

    async def cancel(self, user_id: int) -> None:
        """Drop the user's pending challenge, if any."""
        async with self._locks(user_id):
            if self._pending.pop(user_id, None) is not None:
                log.debug(f"Cancelled the pending challenge for {user_id}.")
