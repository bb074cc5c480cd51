"""Reactive application state container.

The state is one nested tree of plain dicts addressed by dotted paths
(`"quiz.current_index"`). Every `set` builds a new snapshot by copying only
the dicts along the path, so a reference to an older snapshot (or to any
subtree of it) stays valid and unchanged. After the swap, subscribers of
the path are called with the new value, then subscribers of each ancestor
path, most specific first, with that ancestor's current value.

Values stored in the tree must be treated as read-only by callers: build a
new dict instead of mutating one obtained from `get`.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Tuple, Union

logger = logging.getLogger("quiztrack.state")

Callback = Callable[[Any, str], None]


class StatePath(str, Enum):
    USER = "user"
    USER_ID = "user.id"
    USER_USERNAME = "user.username"
    USER_EMAIL = "user.email"
    USER_AUTHENTICATED = "user.is_authenticated"
    SELECTION = "selection"
    SELECTION_SPECIALTY = "selection.specialty"
    SELECTION_SUBCATEGORY = "selection.subcategory"
    SELECTION_MODULE = "selection.module"
    SELECTION_MODULE_DATA = "selection.module_data"
    QUIZ = "quiz"
    QUIZ_MODE = "quiz.mode"
    QUIZ_QUESTIONS = "quiz.questions"
    QUIZ_CURRENT_INDEX = "quiz.current_index"
    QUIZ_START_TIME = "quiz.start_time"
    QUIZ_ELAPSED_SECONDS = "quiz.elapsed_seconds"
    SESSION = "session"
    SESSION_ANSWERS = "session.answers"
    SESSION_CONFIRMED = "session.confirmed"
    SESSION_STATES = "session.states"
    SESSION_CORRECT_COUNT = "session.correct_count"
    SESSION_INCORRECT_COUNT = "session.incorrect_count"
    NAVIGATION = "navigation"
    NAVIGATION_CURRENT_SCREEN = "navigation.current_screen"
    NAVIGATION_SCROLL_OFFSET = "navigation.scroll_offset"
    NAVIGATION_VISIBLE_BUTTONS = "navigation.visible_buttons_count"


Path = Union[str, StatePath]


def default_state() -> Dict[str, Any]:
    return {
        "user": {
            "id": None,
            "username": "",
            "email": "",
            "is_authenticated": False,
        },
        "selection": {
            "specialty": "",
            "subcategory": "",
            "module": "",
            "module_data": None,
        },
        "quiz": {
            "mode": "quiz",
            "questions": [],
            "current_index": 0,
            "start_time": None,
            "elapsed_seconds": 0,
        },
        "session": {
            "answers": {},
            "confirmed": {},
            "states": {},
            "correct_count": 0,
            "incorrect_count": 0,
        },
        "navigation": {
            "current_screen": "login",
            "scroll_offset": 0,
            "visible_buttons_count": 10,
        },
    }


def _normalize(path: Path) -> str:
    key = path.value if isinstance(path, StatePath) else path
    if not key or not isinstance(key, str):
        raise ValueError(f"invalid state path: {path!r}")
    return key


def _assoc_in(tree: Mapping[str, Any], keys: List[str], value: Any) -> Dict[str, Any]:
    """Return a copy of `tree` with `value` at `keys`, sharing untouched subtrees."""
    head = keys[0]
    new_tree = dict(tree)
    if len(keys) == 1:
        new_tree[head] = value
    else:
        child = tree.get(head)
        new_tree[head] = _assoc_in(child if isinstance(child, Mapping) else {}, keys[1:], value)
    return new_tree


class StateContainer:
    """Single tree of application state with path subscriptions."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._state: Dict[str, Any] = dict(initial) if initial is not None else default_state()
        self._observers: Dict[str, List[Tuple[object, Callback]]] = {}
        self._lock = threading.RLock()
        self._pending: deque = deque()
        self._notifying = False

    @property
    def snapshot(self) -> Dict[str, Any]:
        """The current state tree. Never mutated in place by the container."""
        return self._state

    def get(self, path: Path) -> Any:
        """Return the value at `path`, or None when any segment is absent."""
        try:
            keys = _normalize(path).split(".")
        except ValueError:
            return None
        value: Any = self._state
        for key in keys:
            if not isinstance(value, Mapping):
                return None
            value = value.get(key)
            if value is None:
                return None
        return value

    def set(self, path: Path, value: Any) -> None:
        """Replace the value at `path` and notify subscribers.

        Calls made from inside a subscriber callback are queued and applied
        once the running notification pass has finished.
        """
        key = _normalize(path)
        with self._lock:
            self._pending.append((key, value))
            if self._notifying:
                return
            self._notifying = True
            try:
                while self._pending:
                    next_key, next_value = self._pending.popleft()
                    self._state = _assoc_in(self._state, next_key.split("."), next_value)
                    self._notify(next_key, next_value)
            finally:
                self._notifying = False
                if self._pending:
                    logger.warning("discarded %d queued state writes after a failed notification", len(self._pending))
                    self._pending.clear()

    def update(self, updates: Mapping[Path, Any]) -> None:
        """Apply each entry with `set`, in mapping order."""
        for path, value in updates.items():
            self.set(path, value)

    def subscribe(self, path: Path, callback: Callback) -> Callable[[], None]:
        """Register `callback(value, path)` for `path`; returns an unsubscribe function."""
        key = _normalize(path)
        token = object()
        with self._lock:
            self._observers.setdefault(key, []).append((token, callback))

        def unsubscribe() -> None:
            with self._lock:
                entries = self._observers.get(key, [])
                self._observers[key] = [e for e in entries if e[0] is not token]
                if not self._observers[key]:
                    del self._observers[key]

        return unsubscribe

    def _notify(self, path: str, value: Any) -> None:
        for _, callback in list(self._observers.get(path, ())):
            callback(value, path)
        parts = path.split(".")
        for i in range(len(parts) - 1, 0, -1):
            parent = ".".join(parts[:i])
            observers = list(self._observers.get(parent, ()))
            if observers:
                parent_value = self.get(parent)
                for _, callback in observers:
                    callback(parent_value, parent)

    # -------------------------------------------------------------------------
    # Domain operations
    # -------------------------------------------------------------------------

    def reset_quiz_session(self) -> None:
        self.update({
            StatePath.QUIZ_CURRENT_INDEX: 0,
            StatePath.QUIZ_START_TIME: None,
            StatePath.QUIZ_ELAPSED_SECONDS: 0,
            StatePath.SESSION_ANSWERS: {},
            StatePath.SESSION_CONFIRMED: {},
            StatePath.SESSION_STATES: {},
            StatePath.SESSION_CORRECT_COUNT: 0,
            StatePath.SESSION_INCORRECT_COUNT: 0,
        })

    def reset_selection(self) -> None:
        self.update({
            StatePath.SELECTION_SPECIALTY: "",
            StatePath.SELECTION_SUBCATEGORY: "",
            StatePath.SELECTION_MODULE: "",
            StatePath.SELECTION_MODULE_DATA: None,
        })

    def login(self, user) -> None:
        """Populate the `user` subtree from a directory entry or mapping."""
        data = user.model_dump() if hasattr(user, "model_dump") else dict(user)
        self.update({
            StatePath.USER_ID: data.get("id"),
            StatePath.USER_USERNAME: data.get("username", ""),
            StatePath.USER_EMAIL: data.get("email", ""),
            StatePath.USER_AUTHENTICATED: True,
        })
        logger.info("state login user_id=%s", data.get("id"))

    def logout(self) -> None:
        self.update({
            StatePath.USER_ID: None,
            StatePath.USER_USERNAME: "",
            StatePath.USER_EMAIL: "",
            StatePath.USER_AUTHENTICATED: False,
        })
        self.reset_selection()
        self.reset_quiz_session()
