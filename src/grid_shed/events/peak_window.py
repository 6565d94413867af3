import re
from dataclasses import dataclass
from datetime import time

_WINDOW_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


@dataclass(frozen=True)
class PeakWindow:
    """A daily peak-hour window such as ``18:00-22:00``.

    A window whose end is earlier than its start crosses midnight.
    """

    start: time
    end: time

    @classmethod
    def parse(cls, window: str) -> "PeakWindow":
        """Parses an ``HH:MM-HH:MM`` string.

        Raises:
            ValueError: If the string is malformed, a time is out of range or the
                        window is empty (start equals end).
        """
        match = _WINDOW_PATTERN.match(window)
        if match is None:
            raise ValueError(f"invalid peak window '{window}', expected HH:MM-HH:MM")
        start_h, start_m, end_h, end_m = (int(part) for part in match.groups())
        try:
            start = time(start_h, start_m)
            end = time(end_h, end_m)
        except ValueError as e:
            raise ValueError(f"invalid peak window '{window}': {e}") from e
        if start == end:
            raise ValueError(f"invalid peak window '{window}': start equals end")
        return cls(start, end)

    @property
    def crosses_midnight(self) -> bool:
        return self.end < self.start

    def contains(self, moment: time) -> bool:
        if self.crosses_midnight:
            return moment >= self.start or moment < self.end
        return self.start <= moment < self.end
