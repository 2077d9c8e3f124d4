import calendar
import logging
import time
from collections.abc import Callable
from datetime import date, datetime, timedelta

from clipstash.models import UNASSIGNED_GROUP, HistoryTimeUnit
from clipstash.preferences import Preferences
from clipstash.query import Filter
from clipstash.storage import StorageManager

logger = logging.getLogger(__name__)


def _subtract_months(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def cutoff_for(unit: HistoryTimeUnit, now: float) -> int | None:
    """Epoch seconds before which unassigned records expire, or None to keep them forever."""
    moment = datetime.fromtimestamp(now)
    if unit.kind == HistoryTimeUnit.DAYS:
        moment -= timedelta(days=unit.count)
    elif unit.kind == HistoryTimeUnit.WEEKS:
        moment -= timedelta(days=7 * unit.count)
    elif unit.kind == HistoryTimeUnit.MONTHS:
        moment = _subtract_months(moment, unit.count)
    elif unit.kind == HistoryTimeUnit.YEAR:
        moment = _subtract_months(moment, 12)
    else:
        return None
    return int(moment.timestamp())


class RetentionPolicy:
    """Deletes expired, unassigned history at most once per calendar day."""

    def __init__(
        self,
        storage: StorageManager,
        preferences: Preferences,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
        on_cleared: Callable[[int], None] | None = None,
    ):
        self._storage = storage
        self._preferences = preferences
        self._clock = clock
        self._today = today
        self._on_cleared = on_cleared

    def clear_expired(self) -> int:
        today = self._today().isoformat()
        if self._preferences.last_clear_date == today:
            return 0
        self._preferences.last_clear_date = today
        return self.clear_data(self._preferences.history_time)

    def clear_data(self, unit: HistoryTimeUnit) -> int:
        cutoff = cutoff_for(unit, self._clock())
        if cutoff is None:
            return 0
        logger.info("Clearing unassigned history older than %d (%s)", cutoff, unit.display_text)
        deleted = self._storage.delete(Filter.group_is(UNASSIGNED_GROUP) & Filter.older_than(cutoff))
        if self._on_cleared is not None:
            self._on_cleared(cutoff)
        return deleted
