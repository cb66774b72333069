"""Wall-clock timing of the solver stages."""
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, NamedTuple, Optional

import numpy as np
from loguru import logger


class TimerStats(NamedTuple):
    """Statistics for a timed section."""
    total_time: float = 0.0
    mean_time: float = 0.0
    std_time: float = 0.0
    min_time: float = 0.0
    max_time: float = 0.0
    num_calls: int = 0
    percent_total: float = 0.0
    percent_parent: float = 0.0
    parent: str = ""
    depth: int = 0


class SimulationTimer:
    """Accumulates durations of named, possibly nested, sections."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Drop all timing data."""
        self._timings = defaultdict(list)
        self._start_times = {}
        self._nested_calls = defaultdict(int)
        self._parents = {}
        self._current_stack = []

    def start(self, section: str):
        """Start timing a section; the innermost running section becomes its parent."""
        if self._current_stack and self._current_stack[-1] != section:
            self._parents[section] = self._current_stack[-1]

        self._nested_calls[section] += 1
        if self._nested_calls[section] == 1:
            self._start_times[section] = time.perf_counter()
            self._current_stack.append(section)

    def stop(self, section: str):
        """Stop timing a section and record the duration."""
        if self._nested_calls.get(section, 0) <= 0:
            logger.warning(f"Stopping timer '{section}' that was never started")
            return

        self._nested_calls[section] -= 1
        if self._nested_calls[section] == 0:
            self._timings[section].append(time.perf_counter() - self._start_times.pop(section))
            if self._current_stack and self._current_stack[-1] == section:
                self._current_stack.pop()

    @contextmanager
    def section(self, name: str):
        """Time the body of a with statement."""
        self.start(name)
        try:
            yield self
        finally:
            self.stop(name)

    def get_section_time(self, section: str) -> float:
        """Total time spent in a section."""
        return sum(self._timings.get(section, []))

    def get_statistics(self) -> Dict[str, TimerStats]:
        """Calculate timing statistics for each section."""
        totals = {section: sum(times) for section, times in self._timings.items()}
        roots = set(self._timings) - set(self._parents)
        total_root_time = sum(totals[section] for section in roots) if roots else 1.0

        def depth(section):
            level = 0
            while section in self._parents:
                section = self._parents[section]
                level += 1
            return level

        stats = {}
        for section, times in self._timings.items():
            parent = self._parents.get(section, "")
            parent_percent = 0.0
            if parent and totals.get(parent, 0.0) > 0:
                parent_percent = totals[section] / totals[parent] * 100
            stats[section] = TimerStats(
                total_time=totals[section],
                mean_time=float(np.mean(times)),
                std_time=float(np.std(times)) if len(times) > 1 else 0.0,
                min_time=min(times),
                max_time=max(times),
                num_calls=len(times),
                percent_total=totals[section] / total_root_time * 100 if total_root_time > 0 else 0.0,
                percent_parent=parent_percent,
                parent=parent,
                depth=depth(section),
            )
        return stats

    def log_summary(self, top_n: Optional[int] = None):
        """Log a tree of all sections, children below their parent, longest first."""
        stats = self.get_statistics()
        if not stats:
            logger.info("No timing data recorded")
            return

        children = defaultdict(list)
        for section, timing in stats.items():
            if timing.parent:
                children[timing.parent].append(section)
        roots = sorted((s for s, t in stats.items() if not t.parent), key=lambda s: -stats[s].total_time)
        if top_n:
            roots = roots[:top_n]

        logger.info("Timing summary")
        logger.info("=" * 84)
        logger.info(f"{'Section':<40} {'Total(s)':>10} {'%Parent':>8} {'Calls':>8} {'Mean(ms)':>12}")
        logger.info("-" * 84)

        def log_section(section):
            timing = stats[section]
            name = "  " * timing.depth + section
            percent = timing.percent_parent if timing.parent else timing.percent_total
            logger.info(
                f"{name:<40} {timing.total_time:>10.3f} {percent:>7.1f}% "
                f"{timing.num_calls:>8d} {timing.mean_time * 1000:>12.2f}"
            )
            for child in sorted(children[section], key=lambda s: -stats[s].total_time):
                log_section(child)

        for root in roots:
            log_section(root)
        logger.info("-" * 84)
        logger.info(f"{'Total':<40} {sum(stats[root].total_time for root in roots):>10.3f}")
