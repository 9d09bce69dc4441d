"""Turn the loaded records into the ordered, navigable display list."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Sequence

from jotdeck.models import Notebook, Record, Tab, TagFilter, TaskStatus

UNFILED_LABEL = "Unfiled"


class ArchiveFilter(enum.Enum):
    ACTIVE_ONLY = "active"
    ARCHIVED_ONLY = "archived"
    SHOW_ALL = "all"

    @property
    def label(self) -> str:
        return {"active": "Active", "archived": "Archived", "all": "All"}[self.value]

    def accepts(self, archived: bool) -> bool:
        if self is ArchiveFilter.ACTIVE_ONLY:
            return not archived
        if self is ArchiveFilter.ARCHIVED_ONLY:
            return archived
        return True


class NotebookScope(enum.Enum):
    ALL = "all"
    UNFILED = "unfiled"
    NOTEBOOK = "notebook"


@dataclass(frozen=True)
class FilterCriteria:
    """Every input of the filter engine except the records themselves."""
    tab: Tab = Tab.TASKS
    search: str = ""
    tag_filter: TagFilter = field(default_factory=TagFilter)
    archive: ArchiveFilter = ArchiveFilter.ACTIVE_ONLY
    status: Optional[TaskStatus] = None
    scope: NotebookScope = NotebookScope.ALL
    scope_notebook_id: Optional[int] = None
    group_by_notebook: bool = False


@dataclass(frozen=True)
class DisplayRow:
    """Heading (``record`` is None) or an item row wrapping one record."""
    label: str
    record: Optional[Record] = None
    record_index: Optional[int] = None

    @property
    def is_heading(self) -> bool:
        return self.record is None


@dataclass(frozen=True)
class DisplayList:
    rows: tuple[DisplayRow, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> DisplayRow:
        return self.rows[index]

    @property
    def mapping(self) -> tuple[Optional[int], ...]:
        """display index -> index into the record sequence (None for headings)."""
        return tuple(r.record_index for r in self.rows)

    @property
    def item_positions(self) -> list[int]:
        return [i for i, r in enumerate(self.rows) if not r.is_heading]

    @property
    def item_count(self) -> int:
        return len(self.item_positions)

    def record_at(self, index: Optional[int]) -> Optional[Record]:
        if index is None or not 0 <= index < len(self.rows):
            return None
        return self.rows[index].record

    def position_of(self, key) -> Optional[int]:
        """Display index of the item whose (tab, id) equals ``key``."""
        for i, row in enumerate(self.rows):
            if row.record is not None and (row.record.tab.value, row.record.id) == key:
                return i
        return None

    def first_item(self) -> Optional[int]:
        positions = self.item_positions
        return positions[0] if positions else None

    def last_item(self) -> Optional[int]:
        positions = self.item_positions
        return positions[-1] if positions else None

    def next_item(self, index: Optional[int]) -> Optional[int]:
        """Next item row after ``index``; stays put at the end."""
        if index is None:
            return self.first_item()
        for i in range(index + 1, len(self.rows)):
            if not self.rows[i].is_heading:
                return i
        return self.clamp(index)

    def prev_item(self, index: Optional[int]) -> Optional[int]:
        """Previous item row before ``index``; stays put at the start."""
        if index is None:
            return self.first_item()
        for i in range(min(index, len(self.rows)) - 1, -1, -1):
            if not self.rows[i].is_heading:
                return i
        return self.clamp(index)

    def clamp(self, index: Optional[int]) -> Optional[int]:
        """Nearest valid item row to ``index`` (None when there are no items)."""
        positions = self.item_positions
        if not positions:
            return None
        if index is None:
            return positions[0]
        if index >= len(self.rows):
            return positions[-1]
        index = max(0, index)
        if not self.rows[index].is_heading:
            return index
        after = [p for p in positions if p > index]
        if after:
            return after[0]
        return positions[-1]


def _sort_key(indexed: tuple[int, Record]):
    _, record = indexed
    return (record.order, record.id is None, record.id or 0)


def _scope_accepts(criteria: FilterCriteria, record: Record) -> bool:
    if criteria.scope is NotebookScope.UNFILED:
        return record.notebook_id is None
    if criteria.scope is NotebookScope.NOTEBOOK:
        return record.notebook_id == criteria.scope_notebook_id
    return True


def select_records(records: Sequence[Record], criteria: FilterCriteria) -> list[tuple[int, Record]]:
    """Filtered and sorted (index, record) pairs for the active tab."""
    kept = []
    for index, record in enumerate(records):
        if record.tab is not criteria.tab:
            continue
        if not record.matches_search(criteria.search):
            continue
        if not record.matches_tags(criteria.tag_filter):
            continue
        if not criteria.archive.accepts(record.archived):
            continue
        if criteria.tab is Tab.TASKS and criteria.status is not None:
            if record.status is not criteria.status:
                continue
        if not _scope_accepts(criteria, record):
            continue
        kept.append((index, record))
    kept.sort(key=_sort_key)
    return kept


def build_display(records: Sequence[Record], criteria: FilterCriteria,
                  notebooks: Sequence[Notebook] = ()) -> DisplayList:
    """Filter, sort and optionally group ``records`` into display rows.

    Grouped output lists notebook groups by case-insensitive name, then the
    "Unfiled" group last. Records that point at a notebook that no longer
    exists count as unfiled. Empty groups get no heading.
    """
    kept = select_records(records, criteria)
    if not criteria.group_by_notebook:
        return DisplayList(tuple(
            DisplayRow(label=r.title, record=r, record_index=i) for i, r in kept))

    known = {nb.id: nb for nb in notebooks if nb.id is not None}
    groups: dict[Optional[int], list[tuple[int, Record]]] = {}
    for index, record in kept:
        nb_id = record.notebook_id if record.notebook_id in known else None
        groups.setdefault(nb_id, []).append((index, record))

    ordered = sorted(
        (nb_id for nb_id in groups if nb_id is not None),
        key=lambda nb_id: (known[nb_id].name.casefold(), nb_id),
    )
    if None in groups:
        ordered.append(None)

    rows: list[DisplayRow] = []
    for nb_id in ordered:
        rows.append(DisplayRow(label=known[nb_id].name if nb_id is not None else UNFILED_LABEL))
        for index, record in groups[nb_id]:
            rows.append(DisplayRow(label=record.title, record=record, record_index=index))
    return DisplayList(tuple(rows))


def filter_summary(criteria: FilterCriteria) -> str:
    parts = []
    if not criteria.tag_filter.is_empty:
        parts.append("Tags: " + ", ".join(sorted(criteria.tag_filter.tags)))
        parts.append(f"Logic: {criteria.tag_filter.logic.label}")
    parts.append(f"Archive: {criteria.archive.label}")
    if criteria.tab is Tab.TASKS and criteria.status is not None:
        parts.append(f"Status: {criteria.status.label}")
    if criteria.search:
        parts.append(f"Search: {criteria.search}")
    return " | ".join(parts)
