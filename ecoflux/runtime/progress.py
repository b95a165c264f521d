"""Console progress bar for the simulated-day loop."""

from __future__ import annotations

import math
import sys
import time
from typing import Optional, TextIO

# Smoothing of the seconds-per-day estimate
ETA_ALPHA = 0.1
# Days observed before an ETA is shown
ETA_WARMUP_DAYS = 3


def _eta_text(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0.0:
        return "ETA ?"
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"ETA {hours}h{minutes:02d}m"
    if minutes:
        return f"ETA {minutes}m{secs:02d}s"
    return f"ETA {secs}s"


class ProgressReporter:
    """Progress over every simulated day of every iteration.

    The bar is redrawn in place on a terminal and printed one line per
    redraw otherwise; redraws happen when the completed fraction moves by
    at least 0.1%.
    """

    def __init__(
        self,
        total_days: int,
        *,
        iterations: int = 1,
        enabled: bool = False,
        width: int = 30,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.iterations = max(int(iterations), 1)
        self.total = max(int(total_days), 0) * self.iterations
        self.enabled = bool(enabled) and self.total > 0
        self.width = width
        self.stream = stream if stream is not None else sys.stdout
        self._inplace = bool(getattr(self.stream, "isatty", lambda: False)())
        self._drawn_permille = -1
        self._seconds_per_day: Optional[float] = None
        self._observed = 0
        self._last: Optional[tuple] = None
        self._done = False

    def update(self, step_no: int, year: int, doy: int, iteration: int = 0, *, force: bool = False) -> None:
        """Record that ``step_no`` (0-based over the whole run) is complete."""

        if not self.enabled or self._done:
            return
        self._observe(step_no, time.monotonic())
        completed = min(step_no + 1, self.total)
        permille = completed * 1000 // self.total
        last = completed >= self.total
        if permille == self._drawn_permille and not (force or last):
            return
        self._drawn_permille = permille
        self._draw(completed, year, doy, iteration, last)

    def finish(self, step_no: int, year: int, doy: int, iteration: int = 0) -> None:
        if self.enabled:
            self.update(step_no, year, doy, iteration, force=True)

    def _observe(self, step_no: int, now: float) -> None:
        if self._last is not None:
            prev_step, prev_time = self._last
            if step_no > prev_step and now > prev_time:
                sample = (now - prev_time) / (step_no - prev_step)
                if self._seconds_per_day is None:
                    self._seconds_per_day = sample
                else:
                    self._seconds_per_day += ETA_ALPHA * (sample - self._seconds_per_day)
                self._observed += 1
        self._last = (step_no, now)

    def _draw(self, completed: int, year: int, doy: int, iteration: int, last: bool) -> None:
        frac = completed / self.total
        filled = int(round(self.width * frac))
        remaining = float("nan")
        if self._seconds_per_day is not None and self._observed >= ETA_WARMUP_DAYS:
            remaining = self._seconds_per_day * (self.total - completed)
        run = f" run {iteration + 1}/{self.iterations}" if self.iterations > 1 else ""
        line = (
            f"[{'=' * filled}{' ' * (self.width - filled)}] {frac:6.1%} "
            f"{year}-{doy:03d}{run} {_eta_text(remaining)}"
        )
        if self._inplace:
            self.stream.write("\r\033[2K" + line + ("\n" if last else ""))
        else:
            self.stream.write(line + "\n")
        self.stream.flush()
        if last:
            self._done = True


__all__ = ["ProgressReporter"]
