"""Print the thesis plan tree with closure state and progress.

Usage:
    APP_ENV=development python scripts/show_plan.py
"""

from thesis_tracker import create_app
from thesis_tracker.services.closure import critical_tasks
from thesis_tracker.services.hierarchy import load_structure, ordered_weeks
from thesis_tracker.services.progress import global_progress

app = create_app()
with app.app_context():
    tree = load_structure()
    positions = {w.id: pos for pos, w in enumerate(ordered_weeks(tree), start=1)}

    for month in tree:
        print(f"\nMonth {month.number} [{month.id}] {month.name}")
        for week in month.weeks:
            state = "closed" if week.closed else "open"
            crit = critical_tasks(week)
            done = sum(1 for t in crit if t.completed)
            print(f"  #{positions[week.id]:>2} Week {week.number} [{week.id}] {week.title} "
                  f"({state}, critical {done}/{len(crit)})")
            for activity in week.activities:
                flag = "*" if activity.is_critical else " "
                print(f"    {flag} {activity.category:<13} {activity.description}")
                for task in activity.tasks:
                    mark = "x" if task.completed else " "
                    print(f"        [{mark}] {task.description} "
                          f"-- {len(task.kpis)} KPIs, {len(task.evidence)} evidence")

    print("\n--- Totals ---")
    print(f"Months: {len(tree)}")
    print(f"Weeks: {len(positions)} (closed={sum(1 for w in ordered_weeks(tree) if w.closed)})")
    print(f"Global progress: {global_progress(tree)}%")
