"""Records (tasks, notes, journal entries), notebooks and tag filters."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional, Union

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"
UNTAGGED = "[untagged]"


def now_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def today() -> str:
    return date.today().strftime(DATE_FORMAT)


def is_valid_date(text: str) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    try:
        datetime.strptime(text, DATE_FORMAT)
    except (ValueError, TypeError):
        return False
    return len(text) == 10


# ════════════════════════════════════════════════════════════════════════
#  Enums
# ════════════════════════════════════════════════════════════════════════


class Tab(enum.Enum):
    TASKS = "tasks"
    NOTES = "notes"
    JOURNAL = "journal"

    @property
    def label(self) -> str:
        return {"tasks": "Tasks", "notes": "Notes", "journal": "Journal"}[self.value]


class TaskStatus(enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @property
    def label(self) -> str:
        return {"open": "Open", "in_progress": "In progress", "done": "Done"}[self.value]

    def next(self) -> "TaskStatus":
        order = list(TaskStatus)
        return order[(order.index(self) + 1) % len(order)]


class TagLogic(enum.Enum):
    ALL = "all"
    ANY = "any"

    @property
    def label(self) -> str:
        return "All" if self is TagLogic.ALL else "Any"


# ════════════════════════════════════════════════════════════════════════
#  Tags
# ════════════════════════════════════════════════════════════════════════


def parse_tags(text: Optional[str]) -> frozenset[str]:
    """Comma-separated input -> normalised tag set."""
    if not text:
        return frozenset()
    return normalize_tags(text.split(","))


def normalize_tags(tags: Iterable[str]) -> frozenset[str]:
    return frozenset(t.strip().lower() for t in tags if t and t.strip())


def format_tags(tags: Iterable[str]) -> str:
    return ", ".join(sorted(tags))


@dataclass(frozen=True)
class TagFilter:
    """Selected tags plus the logic used to combine them."""
    tags: frozenset[str] = frozenset()
    logic: TagLogic = TagLogic.ALL

    @classmethod
    def from_text(cls, text: str, logic: TagLogic = TagLogic.ALL) -> "TagFilter":
        return cls(tags=parse_tags(text), logic=logic)

    @property
    def is_empty(self) -> bool:
        return not self.tags


# ════════════════════════════════════════════════════════════════════════
#  Records
# ════════════════════════════════════════════════════════════════════════


@dataclass
class _RecordBase:
    id: Optional[int] = None
    title: str = ""
    body: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)
    notebook_id: Optional[int] = None
    archived: bool = False
    order: int = 0
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        self.tags = normalize_tags(self.tags)

    def matches_search(self, query: str) -> bool:
        """Case-insensitive substring match; an empty query matches everything."""
        if not query:
            return True
        q = query.lower()
        return any(q in hay.lower() for hay in _search_haystack(self))

    def matches_tags(self, expr: TagFilter) -> bool:
        return _matches_tag_filter(self.tags, expr)


@dataclass
class Task(_RecordBase):
    status: TaskStatus = TaskStatus.OPEN
    due_date: Optional[str] = None

    @property
    def tab(self) -> Tab:
        return Tab.TASKS


@dataclass
class Note(_RecordBase):
    @property
    def tab(self) -> Tab:
        return Tab.NOTES


@dataclass
class JournalEntry(_RecordBase):
    entry_date: str = field(default_factory=today)

    @property
    def tab(self) -> Tab:
        return Tab.JOURNAL


Record = Union[Task, Note, JournalEntry]


def _search_haystack(record: Record) -> list[str]:
    hay = [record.title, record.body, " ".join(sorted(record.tags))]
    if isinstance(record, Task):
        hay.append(record.status.label)
        hay.append(record.status.value)
    elif isinstance(record, JournalEntry):
        hay.append(record.entry_date)
    return hay


def _matches_tag_filter(record_tags: frozenset[str], expr: TagFilter) -> bool:
    if expr.is_empty:
        return True
    wants_untagged = UNTAGGED in expr.tags
    wanted = expr.tags - {UNTAGGED}
    untagged = not record_tags
    if expr.logic is TagLogic.ALL:
        if wants_untagged:
            # An item cannot be untagged and carry tags at once.
            return untagged and not wanted
        return wanted <= record_tags
    return (wants_untagged and untagged) or bool(wanted & record_tags)


def new_record(tab: Tab, **fields) -> Record:
    """Fresh, unsaved record of the kind shown on ``tab``."""
    if tab is Tab.TASKS:
        return Task(**fields)
    if tab is Tab.NOTES:
        return Note(**fields)
    return JournalEntry(**fields)


def record_key(record: Record) -> tuple[str, Optional[int]]:
    """Identity of a record across reloads."""
    return (record.tab.value, record.id)


# ════════════════════════════════════════════════════════════════════════
#  Notebooks
# ════════════════════════════════════════════════════════════════════════


@dataclass
class Notebook:
    """A named grouping; records point at it by id and may outlive it."""
    id: Optional[int]
    name: str
    created_at: str = ""
    updated_at: str = ""
