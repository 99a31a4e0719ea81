"""
Progress aggregation over the assembled tree.

All functions are pure: they take the tree returned by
:func:`thesis_tracker.services.hierarchy.load_structure` and never touch the
store.

Phases are a static partition of week *ordinal positions* (1-based index in
month/week order) into named, possibly overlapping ranges.  They come from
configuration (``THESIS_PHASES``), not from persisted data.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from thesis_tracker.services.hierarchy import MonthNode, WeekNode, ordered_weeks


@dataclass(frozen=True)
class Phase:
    id: int
    name: str
    weeks: tuple[int, ...]

    @classmethod
    def from_config(cls, entry: dict) -> "Phase":
        if "weeks" in entry:
            weeks = tuple(int(w) for w in entry["weeks"])
        else:
            weeks = tuple(range(int(entry["start"]), int(entry["end"]) + 1))
        return cls(id=int(entry["id"]), name=str(entry["name"]), weeks=weeks)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "weeks": list(self.weeks)}


def load_phases(config_entries: Iterable[dict]) -> list[Phase]:
    return [Phase.from_config(entry) for entry in config_entries]


def percent(done: int, total: int) -> int:
    """Integer percent, rounded half up; 0 when *total* is 0."""
    if total <= 0:
        return 0
    return (200 * done + total) // (2 * total)


def _task_counts(weeks: Iterable[WeekNode]) -> tuple[int, int]:
    done = total = 0
    for week in weeks:
        for task in week.iter_tasks():
            total += 1
            if task.completed:
                done += 1
    return done, total


def global_progress(tree: list[MonthNode]) -> int:
    done, total = _task_counts(ordered_weeks(tree))
    return percent(done, total)


def _phase_weeks(tree: list[MonthNode], phase: Phase) -> list[WeekNode]:
    positions = set(phase.weeks)
    return [w for pos, w in enumerate(ordered_weeks(tree), start=1) if pos in positions]


def phase_progress(tree: list[MonthNode], phase: Phase) -> int:
    done, total = _task_counts(_phase_weeks(tree, phase))
    return percent(done, total)


def is_phase_done(tree: list[MonthNode], phase: Phase) -> bool:
    """True when the phase has at least one existing week and all are closed."""
    weeks = _phase_weeks(tree, phase)
    return bool(weeks) and all(w.closed for w in weeks)


def build_dashboard(tree: list[MonthNode], phases: list[Phase]) -> dict:
    """Everything the dashboard page shows, in one dict."""
    weeks = ordered_weeks(tree)
    done, total = _task_counts(weeks)
    current = next(((pos, w) for pos, w in enumerate(weeks, start=1) if not w.closed), None)

    return {
        "global_progress": percent(done, total),
        "completed_tasks": done,
        "total_tasks": total,
        "closed_weeks": sum(1 for w in weeks if w.closed),
        "total_weeks": len(weeks),
        "current_week": (
            {"id": current[1].id, "number": current[1].number,
             "title": current[1].title, "position": current[0]}
            if current else None
        ),
        "phases": [
            {
                **phase.to_dict(),
                "progress": phase_progress(tree, phase),
                "is_done": is_phase_done(tree, phase),
            }
            for phase in phases
        ],
        "months": [
            {
                "id": m.id,
                "number": m.number,
                "name": m.name,
                "is_done": bool(m.weeks) and all(w.closed for w in m.weeks),
            }
            for m in tree
        ],
    }
