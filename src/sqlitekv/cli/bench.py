"""Benchmark command.

Times the basic operations against a throwaway table and prints throughput
and latency per operation.
"""

import asyncio
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from sqlitekv.config import StoreConfig
from sqlitekv.store import SQLiteKV

console = Console()

Operation = Callable[[str, str], Awaitable[Any]]


@dataclass
class BenchmarkResult:
    """Timing of one benchmarked operation.

    Attributes:
        operation: Operation name (SET, GET, ...)
        count: Number of calls
        duration_ms: Wall time for all calls
        avg_latency_ms: Mean time per call
    """

    operation: str
    count: int
    duration_ms: float
    avg_latency_ms: float

    @property
    def qps(self) -> int:
        if self.duration_ms <= 0:
            return 0
        return int(self.count / (self.duration_ms / 1000))


def generate_data(count: int, value_size: int = 0) -> list[tuple[str, str]]:
    """Random key/value pairs; values are ``value_size`` bytes when set."""
    return [
        (secrets.token_hex(8), "X" * value_size if value_size else secrets.token_hex(8))
        for _ in range(count)
    ]


async def time_sequential(name: str, operation: Operation, data: list[tuple[str, str]]) -> BenchmarkResult:
    start = time.perf_counter()
    total_latency = 0.0
    for key, value in data:
        op_start = time.perf_counter()
        await operation(key, value)
        total_latency += time.perf_counter() - op_start
    duration = time.perf_counter() - start
    return BenchmarkResult(
        operation=name,
        count=len(data),
        duration_ms=duration * 1000,
        avg_latency_ms=(total_latency / len(data)) * 1000 if data else 0.0,
    )


async def time_concurrent(name: str, operation: Operation, data: list[tuple[str, str]]) -> BenchmarkResult:
    start = time.perf_counter()
    await asyncio.gather(*(operation(key, value) for key, value in data))
    duration = time.perf_counter() - start
    return BenchmarkResult(
        operation=name,
        count=len(data),
        duration_ms=duration * 1000,
        avg_latency_ms=(duration / len(data)) * 1000 if data else 0.0,
    )


async def run_benchmarks(kv: SQLiteKV, count: int, concurrent: bool) -> list[BenchmarkResult]:
    """Run the benchmark suite against an initialized store.

    Args:
        kv: Store to benchmark (its table is cleared before and after)
        count: Number of operations per benchmark
        concurrent: Also run concurrent SET/GET rounds

    Returns:
        One result per benchmarked operation
    """
    data = generate_data(count)
    large = generate_data(max(1, min(10, count // 10)), value_size=1024 * 1024)

    await kv.clear()
    results = [
        await time_sequential("SET", lambda k, v: kv.set(k, v), data),
        await time_sequential("GET", lambda k, v: kv.get(k), data),
        await time_sequential("EXISTS", lambda k, v: kv.exists(k), data),
        await time_sequential("DELETE", lambda k, v: kv.delete(k), data),
        await time_sequential("SETEX", lambda k, v: kv.setex(k, 60, v), data),
        await time_sequential("TTL", lambda k, v: kv.ttl(k), data),
        await time_sequential("SET (1MB)", lambda k, v: kv.set(k, v), large),
        await time_sequential("GET (1MB)", lambda k, v: kv.get(k), large),
    ]
    if concurrent:
        await kv.clear()
        results.append(await time_concurrent("SET (concurrent)", lambda k, v: kv.set(k, v), data))
        results.append(await time_concurrent("GET (concurrent)", lambda k, v: kv.get(k), data))
    await kv.clear()
    return results


def render_results(results: list[BenchmarkResult]) -> Table:
    table = Table(title="Benchmark Results")
    table.add_column("Operation", style="cyan", no_wrap=True)
    table.add_column("Count", justify="right")
    table.add_column("Duration (ms)", justify="right")
    table.add_column("QPS", justify="right", style="green")
    table.add_column("Avg latency (ms)", justify="right", style="yellow")
    for result in results:
        table.add_row(
            result.operation,
            str(result.count),
            f"{result.duration_ms:.2f}",
            str(result.qps),
            f"{result.avg_latency_ms:.3f}",
        )
    return table


@click.command(name="bench")
@click.option("--count", type=click.IntRange(min=1), default=100, show_default=True, help="Operations per benchmark")
@click.option("--concurrent", is_flag=True, help="Also run concurrent SET/GET rounds")
@click.option("--table", "bench_table", default="kv_benchmark", show_default=True, help="Table used for the run")
@click.pass_context
def bench(ctx: click.Context, count: int, concurrent: bool, bench_table: str) -> None:
    """Benchmark basic operations.

    The benchmark table is cleared before and after the run.

    Examples:
        sqlitekv bench --count 1000
        sqlitekv --mode memory bench --concurrent
    """
    base: StoreConfig = ctx.obj["config"]
    config = StoreConfig(**{**base.model_dump(), "table_name": bench_table})

    async def _bench() -> list[BenchmarkResult]:
        async with SQLiteKV(config=config) as kv:
            return await run_benchmarks(kv, count, concurrent)

    console.print(f"[blue]Running {count} operations per benchmark...[/blue]")
    results = asyncio.run(_bench())
    console.print(render_results(results))
