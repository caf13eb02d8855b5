"""
Event Planner — Entry Point.

`python main.py RULE START [END] [--from DATE] [--to DATE]` validates a
recurrence rule, prints its summary and lists its occurrences in a window.

    python main.py WEEKLY:MON,WED 2025-06-02 2025-06-30
    python main.py MONTHLY:2:TUE 2025-01-01 --to 2025-12-31
"""

import argparse
import logging
import sys
from datetime import date, timedelta

from event_planner.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from event_planner.core.errors import PlannerError  # noqa: E402
from event_planner.core.occurrences import occurrences_in_range  # noqa: E402
from event_planner.core.recurrence import build_rule_from_string  # noqa: E402

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 90


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Expand a recurrence rule into dates.")
    parser.add_argument("rule", help="e.g. DAILY:, WEEKLY:MON,WED or MONTHLY:2:TUE")
    parser.add_argument("start", type=date.fromisoformat, help="series start date")
    parser.add_argument("end", nargs="?", type=date.fromisoformat, help="series end date")
    parser.add_argument("--interval", type=int, default=1)
    parser.add_argument("--from", dest="window_start", type=date.fromisoformat)
    parser.add_argument("--to", dest="window_end", type=date.fromisoformat)
    parser.add_argument("--skip", action="append", type=date.fromisoformat, default=[])
    args = parser.parse_args(argv)

    try:
        rule = build_rule_from_string(args.rule, args.start, args.end, interval=args.interval)
    except PlannerError as exc:
        logger.error("Invalid rule %r: %s", args.rule, exc)
        print(f"{exc.code.value}: {exc}", file=sys.stderr)
        return 2

    window_start = args.window_start or args.start
    window_end = args.window_end or args.end or window_start + timedelta(days=DEFAULT_WINDOW_DAYS)

    print(rule.summary)
    for day in occurrences_in_range(rule, args.start, args.end, args.skip, window_start, window_end):
        print(f"  {day.isoformat()}  {day.strftime('%A')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
