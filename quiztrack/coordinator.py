"""Quiz attempt orchestration.

The coordinator drives one attempt at a module: it loads the questions,
keeps the state container's `quiz`/`session` subtrees current for the UI
and writes every answer and the final session through the progress store.

Persistence failures while answering never interrupt the attempt: they are
logged and the in-memory quiz carries on.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .errors import PersistenceError, ProviderError
from .progress_store import ProgressStore
from .schemas import QuestionProgress, QuizMode, QuizResult, SessionInput
from .state import StateContainer, StatePath
from .utils.dates import utc_now
from .utils.numbers import percent

logger = logging.getLogger("quiztrack.coordinator")


class IntervalTicker:
    """Call `callback` every `interval` seconds on a daemon thread until stopped."""

    def __init__(self, callback: Callable[[], None], interval: float = 1.0):
        self.callback = callback
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.callback()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval * 2)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()


def always_resume(question_index: int) -> bool:
    return True


def format_elapsed(seconds: int) -> str:
    """Render a duration as `MM:SS`."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


class QuizSessionCoordinator:
    """Run quiz attempts against a state container and a progress store.

    `resume_policy(index)` decides whether a saved non-zero position is
    resumed; `ticker_factory(callback)` builds the elapsed-time ticker.
    """

    def __init__(
        self,
        state: StateContainer,
        store: ProgressStore,
        question_provider,
        *,
        clock: Callable[[], datetime] = utc_now,
        resume_policy: Callable[[int], bool] = always_resume,
        ticker_factory: Callable[[Callable[[], None]], IntervalTicker] = IntervalTicker,
    ):
        self.state = state
        self.store = store
        self.question_provider = question_provider
        self.clock = clock
        self.resume_policy = resume_policy
        self.ticker_factory = ticker_factory
        self._ticker = None

    # -------------------------------------------------------------------------
    # Attempt lifecycle
    # -------------------------------------------------------------------------

    def start(self, module_id: str, mode: str = QuizMode.QUIZ.value) -> int:
        """Begin an attempt at `module_id` and return the starting question index.

        Raises ProviderError when the module's questions cannot be loaded.
        """
        mode = QuizMode(mode).value
        result = self.question_provider.load_questions(module_id)
        if not result.success:
            raise ProviderError(result.error or f"module {module_id} unavailable")
        questions = list(result.questions)
        self.stop()

        start_index = 0
        user_id = self.state.get(StatePath.USER_ID)
        if user_id:
            try:
                position = self.store.get_position(user_id, module_id)
            except PersistenceError as exc:
                logger.warning("could not read position user=%s module=%s: %s", user_id, module_id, exc)
                position = None
            if (
                position is not None
                and position.has_position
                and 0 < position.question_index < len(questions)
                and self.resume_policy(position.question_index)
            ):
                start_index = position.question_index

        self.state.reset_quiz_session()
        self.state.update({
            StatePath.SELECTION_MODULE: module_id,
            StatePath.QUIZ_MODE: mode,
            StatePath.QUIZ_QUESTIONS: questions,
            StatePath.QUIZ_CURRENT_INDEX: start_index,
            StatePath.QUIZ_START_TIME: self.clock(),
            StatePath.QUIZ_ELAPSED_SECONDS: 0,
        })
        self._start_ticker()
        logger.info("quiz started module=%s mode=%s start_index=%d questions=%d", module_id, mode, start_index, len(questions))
        return start_index

    def answer(self, question_index: int, selected_option: int, is_correct: bool) -> Optional[QuestionProgress]:
        """Record an answer in the session state and persist it.

        Returns the stored question counters, or None when nothing could be
        persisted (no logged-in user or a store failure).
        """
        answers = dict(self.state.get(StatePath.SESSION_ANSWERS) or {})
        answers[question_index] = selected_option
        self.state.set(StatePath.SESSION_ANSWERS, answers)

        states = dict(self.state.get(StatePath.SESSION_STATES) or {})
        states[question_index] = "answered"
        self.state.set(StatePath.SESSION_STATES, states)

        if self.state.get(StatePath.QUIZ_MODE) == QuizMode.MENTOR.value:
            confirmed = dict(self.state.get(StatePath.SESSION_CONFIRMED) or {})
            confirmed[question_index] = True
            self.state.set(StatePath.SESSION_CONFIRMED, confirmed)

        user_id = self.state.get(StatePath.USER_ID)
        module_id = self.state.get(StatePath.SELECTION_MODULE)
        if not user_id or not module_id:
            logger.warning("answer for question %d not persisted: no active user or module", question_index)
            return None

        progress = None
        try:
            progress = self.store.record_answer(user_id, module_id, question_index, is_correct)
        except PersistenceError as exc:
            logger.warning("could not persist answer user=%s module=%s q=%d: %s", user_id, module_id, question_index, exc)
        try:
            self.store.save_position(user_id, module_id, question_index)
        except PersistenceError as exc:
            logger.warning("could not save position user=%s module=%s q=%d: %s", user_id, module_id, question_index, exc)
        return progress

    def finish(self) -> QuizResult:
        """Close the attempt: score it, store the session and clear the resume point."""
        self.stop()
        questions = self.state.get(StatePath.QUIZ_QUESTIONS) or []
        answers = self.state.get(StatePath.SESSION_ANSWERS) or {}
        start_time = self.state.get(StatePath.QUIZ_START_TIME)

        correct_count = 0
        incorrect_count = 0
        for index, question in enumerate(questions):
            if index not in answers:
                continue
            if answers[index] == question.correct_index:
                correct_count += 1
            else:
                incorrect_count += 1

        time_spent = int((self.clock() - start_time).total_seconds()) if start_time else 0
        time_spent = max(0, time_spent)
        result = QuizResult(
            correct_count=correct_count,
            incorrect_count=incorrect_count,
            total_questions=len(questions),
            time_spent_seconds=time_spent,
            score=percent(correct_count, len(questions)),
        )

        user_id = self.state.get(StatePath.USER_ID)
        module_id = self.state.get(StatePath.SELECTION_MODULE)
        if user_id and module_id:
            try:
                self.store.record_session(user_id, SessionInput(
                    module_id=module_id,
                    mode=self.state.get(StatePath.QUIZ_MODE) or QuizMode.QUIZ.value,
                    correct_count=correct_count,
                    incorrect_count=incorrect_count,
                    total_questions=len(questions),
                    time_spent_seconds=time_spent,
                ))
            except PersistenceError as exc:
                logger.error("could not persist session user=%s module=%s: %s", user_id, module_id, exc)

        self.state.update({
            StatePath.SESSION_CORRECT_COUNT: correct_count,
            StatePath.SESSION_INCORRECT_COUNT: incorrect_count,
        })

        if user_id and module_id:
            try:
                self.store.save_position(user_id, module_id, 0)
            except PersistenceError as exc:
                logger.warning("could not reset position user=%s module=%s: %s", user_id, module_id, exc)
        logger.info("quiz finished module=%s score=%d time=%ds", module_id, result.score, time_spent)
        return result

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def navigate_to(self, index: int) -> bool:
        """Move to question `index`; out-of-range requests are ignored."""
        questions = self.state.get(StatePath.QUIZ_QUESTIONS) or []
        if index < 0 or index >= len(questions):
            return False
        self.state.set(StatePath.QUIZ_CURRENT_INDEX, index)
        return True

    def next_question(self) -> bool:
        return self.navigate_to((self.state.get(StatePath.QUIZ_CURRENT_INDEX) or 0) + 1)

    def previous_question(self) -> bool:
        return self.navigate_to((self.state.get(StatePath.QUIZ_CURRENT_INDEX) or 0) - 1)

    # -------------------------------------------------------------------------
    # Elapsed-time ticker
    # -------------------------------------------------------------------------

    def _tick(self) -> None:
        elapsed = self.state.get(StatePath.QUIZ_ELAPSED_SECONDS) or 0
        self.state.set(StatePath.QUIZ_ELAPSED_SECONDS, elapsed + 1)

    def _start_ticker(self) -> None:
        self._ticker = self.ticker_factory(self._tick)
        self._ticker.start()

    def stop(self) -> None:
        """Cancel the elapsed-time ticker if one is running."""
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
