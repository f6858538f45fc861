"""Benchmark fused, stepwise, and JAX-lowered evaluation of sequence expressions."""

from __future__ import annotations

import argparse
import json
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable

from seqexpr import Sequence, lower_to_jax, materialize_with_jax, owned
from _bench_utils import Profile, host_metadata, measure


PROFILES: dict[str, Profile] = {
    "quick": Profile(samples=3, warmup=1, target_sample_ms=10.0, min_repeats=2, cv_target_pct=25.0, max_samples=5),
    "full": Profile(samples=7, warmup=2, target_sample_ms=40.0, min_repeats=4, cv_target_pct=15.0, max_samples=11),
}
SECTIONS = ("fused", "stepwise", "donated", "jax", "jax_materialize")


@dataclass(frozen=True)
class BenchCase:
    section: str
    name: str
    expression: str
    runner_builder: Callable[[int], Callable[[], object]]


@dataclass(frozen=True)
class BenchRow:
    section: str
    name: str
    expression: str
    n: int
    status: str
    buffers_per_call: int | None
    donations_per_call: int | None
    kernel_misses_per_call: int | None
    mean_ms: float | None
    stdev_ms: float | None
    p50_ms: float | None
    p95_ms: float | None
    repeats: int
    samples: int
    error: str | None


def _sizes_from_arg(raw: str) -> tuple[int, ...]:
    out = tuple(int(part) for part in raw.split(",") if part.strip())
    if not out:
        raise ValueError("at least one size must be provided")
    return out


def _operands(n: int) -> tuple[Sequence, Sequence]:
    a = Sequence([2.0] * n)
    b = Sequence([3.0] * n)
    return a, b


def _fused(n: int) -> Callable[[], object]:
    a, b = _operands(n)
    return lambda: Sequence(a * a * a / b)


def _stepwise(n: int) -> Callable[[], object]:
    a, b = _operands(n)

    def run() -> Sequence:
        squared = Sequence(a * a)
        cubed = Sequence(squared * a)
        return Sequence(cubed / b)

    return run


def _donated(n: int) -> Callable[[], object]:
    a, b = _operands(n)

    def run() -> Sequence:
        squared = Sequence(a * a)
        cubed = Sequence(owned(squared) * a)
        return Sequence(owned(cubed) / b)

    return run


def _lowered(n: int) -> Callable[[], object]:
    a, b = _operands(n)
    return lower_to_jax(a * a * a / b)


def _jax_materialized(n: int) -> Callable[[], object]:
    a, b = _operands(n)
    return lambda: materialize_with_jax(a * a * a / b)


def _all_cases() -> list[BenchCase]:
    expression = "a * a * a / b"
    return [
        BenchCase("fused", "cube_over", expression, _fused),
        BenchCase("stepwise", "cube_over", expression, _stepwise),
        BenchCase("donated", "cube_over", expression, _donated),
        BenchCase("jax", "cube_over", expression, _lowered),
        BenchCase("jax_materialize", "cube_over", expression, _jax_materialized),
    ]


def _run_case(case: BenchCase, n: int, profile: Profile) -> BenchRow:
    try:
        result = measure(case.runner_builder(n), profile)
    except Exception as err:  # pragma: no cover - benchmark resilience
        return BenchRow(
            section=case.section,
            name=case.name,
            expression=case.expression,
            n=n,
            status="error",
            buffers_per_call=None,
            donations_per_call=None,
            kernel_misses_per_call=None,
            mean_ms=None,
            stdev_ms=None,
            p50_ms=None,
            p95_ms=None,
            repeats=0,
            samples=0,
            error=str(err),
        )
    return BenchRow(
        section=case.section,
        name=case.name,
        expression=case.expression,
        n=n,
        status="ok",
        buffers_per_call=result.buffers_per_call,
        donations_per_call=result.donations_per_call,
        kernel_misses_per_call=result.kernel_misses_per_call,
        mean_ms=result.mean_ms,
        stdev_ms=result.stdev_ms,
        p50_ms=result.quantile_ms(0.50),
        p95_ms=result.quantile_ms(0.95),
        repeats=result.repeats,
        samples=len(result.per_call_ms),
        error=None,
    )


def _count_text(value: int | None) -> str:
    return "-" if value is None else str(value)


def _print_summary(rows: list[BenchRow]) -> None:
    print("fusion benchmark summary")
    print("section          case          n        buffers  donated  compiles  mean(ms)    p95(ms)    status")
    print("---------------  -----------   -------  -------  -------  --------  ----------  ---------  ------")
    for row in rows:
        mean_text = "-" if row.mean_ms is None else f"{row.mean_ms:10.4f}"
        p95_text = "-" if row.p95_ms is None else f"{row.p95_ms:9.4f}"
        print(
            f"{row.section:16} {row.name:12} {row.n:8d}  {_count_text(row.buffers_per_call):>7}"
            f"  {_count_text(row.donations_per_call):>7}  {_count_text(row.kernel_misses_per_call):>8}"
            f"  {mean_text:>10}  {p95_text:>9}  {row.status}"
        )
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--profile", choices=sorted(PROFILES), default="quick", help="fixed benchmark profile presets")
    parser.add_argument("--ns", default="10,1000,100000", help="comma-separated sequence lengths")
    parser.add_argument("--sections", default=",".join(SECTIONS), help="comma-separated subset of sections")
    parser.add_argument("--json-out", default="", help="optional path for machine-readable output")
    args = parser.parse_args()

    profile = PROFILES[args.profile]
    ns = _sizes_from_arg(args.ns)
    wanted_sections = {part.strip() for part in args.sections.split(",") if part.strip()}
    unknown = wanted_sections - set(SECTIONS)
    if unknown:
        raise SystemExit(f"Unknown sections: {sorted(unknown)}")

    cases = [case for case in _all_cases() if case.section in wanted_sections]
    rows: list[BenchRow] = []
    print(f"sizes: {ns}")
    print(f"profile: {args.profile} {profile}")
    print()

    for n in ns:
        started = time.perf_counter()
        for case in cases:
            rows.append(_run_case(case, n, profile))
        print(f"completed n={n} ({len(cases)} cases, {time.perf_counter() - started:.2f}s)")

    print()
    _print_summary(rows)

    if args.json_out:
        outpath = Path(args.json_out)
        outpath.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "timestamp_utc": datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ"),
            "sizes": list(ns),
            "profile": args.profile,
            "sections": sorted(wanted_sections),
            "host": host_metadata(),
            "rows": [asdict(row) for row in rows],
        }
        outpath.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print(f"Wrote JSON: {outpath}")


if __name__ == "__main__":
    main()
