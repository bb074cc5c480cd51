"""SQLModel data models.

The local persistence medium is a plain key/value table: every per-user
record, the user directory and the active-user marker are stored as JSON
text under a string key.
"""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class StoredValue(SQLModel, table=True):
    """One key/value entry of the local store.

    Fields:
    - `key`: store key (e.g. `quiztrack_user_<id>`, `users_list`)
    - `value`: serialized JSON payload
    """
    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
