"""Holiday calendar: fixed yearly holidays plus one-off dated holidays."""

from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from booking_engine.config import settings

HOLIDAY_NAMES: dict[str, str] = {
    "01-01": "Ano Novo",
    "04-21": "Tiradentes",
    "05-01": "Dia do Trabalho",
    "09-07": "Independência do Brasil",
    "10-12": "Nossa Senhora Aparecida",
    "11-02": "Finados",
    "11-15": "Proclamação da República",
    "11-20": "Dia da Consciência Negra",
    "12-04": "Santa Bárbara",
    "12-25": "Natal",
    "2025-03-03": "Carnaval",
    "2025-03-04": "Carnaval",
    "2025-04-18": "Sexta-feira Santa",
    "2025-06-19": "Corpus Christi",
}


class HolidayCalendar:
    """Advisory holiday lookup.

    A holiday removes the default weekday grid for that date; explicit
    extra slots from a day override still apply.
    """

    def __init__(
        self,
        fixed: Optional[Iterable[str]] = None,
        dated: Optional[Iterable[str]] = None,
        names: Optional[Mapping[str, str]] = None,
    ) -> None:
        fixed = settings.schedule.fixed_holidays if fixed is None else fixed
        dated = settings.schedule.dated_holidays if dated is None else dated
        for value in fixed:
            datetime.strptime(f"2000-{value}", "%Y-%m-%d")
        self._fixed = frozenset(fixed)
        self._dated = frozenset(
            datetime.strptime(value, "%Y-%m-%d").date() for value in dated
        )
        self._names = dict(HOLIDAY_NAMES if names is None else names)

    def is_holiday(self, day: date) -> bool:
        return day in self._dated or day.strftime("%m-%d") in self._fixed

    def holiday_name(self, day: date) -> Optional[str]:
        if not self.is_holiday(day):
            return None
        return (
            self._names.get(day.isoformat())
            or self._names.get(day.strftime("%m-%d"))
            or "Feriado"
        )
