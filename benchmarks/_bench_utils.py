"""Timing plus allocation and kernel-cache accounting for the fusion benchmarks."""

from __future__ import annotations

import math
import os
import platform
import statistics
import time
from dataclasses import dataclass
from typing import Any, Callable

import jax
import numpy as np

from seqexpr import allocation_stats, lower_cache_stats
from seqexpr.sequence import GROWTH_FACTOR
from seqexpr.values import DEFAULT_ELEMENT_TYPE


@dataclass(frozen=True)
class Profile:
    samples: int
    warmup: int
    target_sample_ms: float
    min_repeats: int
    cv_target_pct: float
    max_samples: int
    max_repeats: int = 100_000


@dataclass(frozen=True)
class Measurement:
    """Per-call timings for one runner, with what a single call allocates and compiles."""

    per_call_ms: tuple[float, ...]
    repeats: int
    buffers_per_call: int
    elements_per_call: int
    donations_per_call: int
    kernel_hits_per_call: int
    kernel_misses_per_call: int

    @property
    def mean_ms(self) -> float:
        return statistics.fmean(self.per_call_ms)

    @property
    def stdev_ms(self) -> float:
        return statistics.stdev(self.per_call_ms) if len(self.per_call_ms) > 1 else 0.0

    def quantile_ms(self, q: float) -> float:
        if len(self.per_call_ms) == 1:
            return self.per_call_ms[0]
        cuts = statistics.quantiles(self.per_call_ms, n=100, method="inclusive")
        return cuts[min(98, max(0, round(q * 100) - 1))]


def _settle(value: object) -> None:
    # Lowered kernels dispatch asynchronously.
    if hasattr(value, "block_until_ready"):
        value.block_until_ready()


def _counted_call(run: Callable[[], object]) -> dict[str, int]:
    allocation_stats(reset=True)
    lower_cache_stats(reset=True)
    _settle(run())
    buffers = allocation_stats(reset=True)
    kernels = lower_cache_stats(reset=True)
    return {
        "buffers": buffers["buffers"],
        "elements": buffers["elements"],
        "donations": buffers["donations"],
        "hits": int(kernels["hits"]),
        "misses": int(kernels["misses"]),
    }


def _repeats_for(run: Callable[[], object], profile: Profile) -> int:
    trial = max(2, profile.min_repeats // 4)
    start_ns = time.perf_counter_ns()
    for _ in range(trial):
        _settle(run())
    per_call_ns = max((time.perf_counter_ns() - start_ns) / trial, 1_000.0)
    wanted = math.ceil(max(profile.target_sample_ms, 1.0) * 1e6 / per_call_ns)
    return max(profile.min_repeats, min(wanted, profile.max_repeats))


def measure(run: Callable[[], object], profile: Profile) -> Measurement:
    """Time `run` until the spread settles below `profile.cv_target_pct`.

    The first call after warmup is counted: its allocation and kernel cache
    deltas become the per-call figures, since every later call does the same work.
    """
    for _ in range(profile.warmup):
        _settle(run())
    counted = _counted_call(run)
    repeats = _repeats_for(run, profile)

    rows: list[float] = []
    while len(rows) < profile.max_samples:
        start_ns = time.perf_counter_ns()
        for _ in range(repeats):
            _settle(run())
        rows.append((time.perf_counter_ns() - start_ns) / repeats / 1e6)
        if len(rows) < profile.samples:
            continue
        spread = statistics.stdev(rows) if len(rows) > 1 else 0.0
        if spread <= 0 or spread / statistics.fmean(rows) * 100.0 <= profile.cv_target_pct:
            break

    return Measurement(
        per_call_ms=tuple(rows),
        repeats=repeats,
        buffers_per_call=counted["buffers"],
        elements_per_call=counted["elements"],
        donations_per_call=counted["donations"],
        kernel_hits_per_call=counted["hits"],
        kernel_misses_per_call=counted["misses"],
    )


def host_metadata() -> dict[str, Any]:
    return {
        "platform": platform.platform(),
        "python": platform.python_version(),
        "numpy": np.__version__,
        "jax": getattr(jax, "__version__", "unknown"),
        "backend": jax.default_backend(),
        "x64": bool(jax.config.jax_enable_x64),
        "cpu_count": os.cpu_count(),
        "seqexpr": {
            "default_element_type": DEFAULT_ELEMENT_TYPE,
            "growth_factor": GROWTH_FACTOR,
            "lower_cache_max": lower_cache_stats()["max_size"],
        },
    }
