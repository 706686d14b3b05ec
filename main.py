"""
Knotter: Entry Point.

`python main.py [filter tokens...]` lists matching contacts, most urgent
first, e.g. `python main.py #friends due:soon`. Without a filter, annual
dates falling today are listed after the contacts.
"""

import logging
import sys

from knotter.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from knotter.core.contact_service import ContactService
from knotter.core.errors import FilterParseError
from knotter.core.time_utils import format_date_parts

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    service = ContactService()
    try:
        items = service.list_contacts(" ".join(args))
    except FilterParseError as exc:
        print(
            f"invalid filter at token {exc.token_index} ({exc.token!r}): {exc.kind.value}",
            file=sys.stderr,
        )
        return 2

    for item in items:
        tags = " ".join(f"#{tag}" for tag in item.tags)
        print(f"{item.due_state.value:<12} {item.display_name}  {tags}".rstrip())

    # annual dates only on the unfiltered view
    if not args:
        for date_item in service.dates_today():
            when = format_date_parts(date_item.month, date_item.day, date_item.year)
            label = date_item.label or date_item.kind.value
            print(f"{'date':<12} {date_item.display_name}  {label} {when}")
    logger.debug("Listed %d contact(s)", len(items))
    return 0


if __name__ == "__main__":
    sys.exit(main())
