# topk/job.py
from __future__ import annotations

"""
Local runtime: read -> split -> select per partition -> combine -> one final merge.

This is the thin driver around the core. Partitions are contiguous chunks
of ``partition_size`` input lines, read lazily; selectors run in a process
pool when ``workers > 1``.
The final merge always runs once, in this process.
"""

import argparse
import sys
from concurrent.futures import FIRST_COMPLETED, Executor, ProcessPoolExecutor, as_completed, wait
from functools import partial
from itertools import chain, islice
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Union

import pandas as pd
from loguru import logger
from pydantic import ValidationError

from . import config
from .config import JobSettings, settings_from_env
from .errors import InputSourceError
from .merger import combine_tree, merge_top_k
from .pipeline_types import Candidate, IdentifierKey, Result, TiePolicy, lexicographic
from .records import make_parser
from .selector import select_partition
from .sources import read_lines

RESULT_COLUMNS = ["score", "identifier"]

# ---------- splitting ----------

def iter_partitions(lines: Iterable[str], size: int) -> Iterator[List[str]]:
    """
    Lazily cut ``lines`` into contiguous, non-empty chunks of at most
    ``size`` lines. Only one chunk is materialised at a time.
    """
    if size < 1:
        raise ValueError(f"Partition size must be >= 1, got {size}")
    it = iter(lines)
    while True:
        chunk = list(islice(it, size))
        if not chunk:
            return
        yield chunk

# ---------- job ----------

def _select_all(
    chunks: Iterable[List[str]],
    select: Callable[[List[str]], Result],
    executor: Optional[Executor],
    max_in_flight: int,
) -> List[Result]:
    """Run ``select`` over every chunk; at most ``max_in_flight`` chunks are queued on the pool."""
    if executor is None:
        return [select(chunk) for chunk in chunks]
    partials: List[Result] = []
    pending = set()
    for chunk in chunks:
        pending.add(executor.submit(select, chunk))
        if len(pending) >= max_in_flight:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            partials.extend(f.result() for f in done)
    partials.extend(f.result() for f in as_completed(pending))
    return partials


def _run_stages(
    chunks: Iterable[List[str]],
    settings: JobSettings,
    identifier_key: IdentifierKey,
    executor: Optional[Executor],
) -> Result:
    parser = make_parser(settings.input_format, settings.id_field, settings.score_field)
    tie = TiePolicy(settings.tie_policy)
    select = partial(
        select_partition,
        k=settings.k,
        parser=parser,
        tie_policy=tie,
        identifier_key=identifier_key,
        keep_payload=settings.keep_payload,
    )
    map_fn = executor.map if executor is not None else map

    partials = _select_all(chunks, select, executor, max_in_flight=2 * settings.workers)
    logger.info(
        "Selected {} candidates from {} partitions",
        sum(len(p) for p in partials), len(partials),
    )

    survivors = combine_tree(partials, settings.k, settings.fanin, tie, identifier_key, map_fn=map_fn)
    if len(survivors) != len(partials):
        logger.info("Combiner reduced {} lists to {}", len(partials), len(survivors))

    # single final reducer
    result = merge_top_k(survivors, settings.k, tie, identifier_key)
    logger.info("Final top-{}: {} results", settings.k, len(result))
    return result


def run_job(
    sources: Iterable[Union[str, Path]],
    settings: Optional[JobSettings] = None,
    identifier_key: IdentifierKey = lexicographic,
) -> Result:
    """
    Compute the global top-K over all lines of ``sources``.

    Input is streamed partition by partition, so memory is bounded by the
    partition size, not the dataset. ``identifier_key`` orders identifiers
    with equal scores; it must be picklable (a module-level function) when
    ``workers > 1``.
    """
    settings = settings or JobSettings()
    lines = chain.from_iterable(read_lines(s) for s in sources)
    chunks = iter_partitions(lines, settings.partition_size)
    logger.info(
        "Streaming input in partitions of {} lines; k={}, workers={}",
        settings.partition_size, settings.k, settings.workers,
    )
    if settings.workers > 1:
        with ProcessPoolExecutor(max_workers=settings.workers) as pool:
            return _run_stages(chunks, settings, identifier_key, pool)
    return _run_stages(chunks, settings, identifier_key, None)

# ---------- output ----------

def result_frame(result: Sequence[Candidate], include_payload: bool = False) -> pd.DataFrame:
    columns = RESULT_COLUMNS + (["payload"] if include_payload else [])
    rows = []
    for c in result:
        row = {"score": c.score, "identifier": c.identifier}
        if include_payload:
            row["payload"] = c.payload or ""
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def write_result(result: Sequence[Candidate], path: Path, include_payload: bool = False) -> None:
    """
    Writes CSV with header: score,identifier[,payload]
    Rows keep the Result order (descending).
    """
    df = result_frame(result, include_payload)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8")


def read_result(path: Path) -> Result:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    df = pd.read_csv(path, encoding="utf-8", dtype={"identifier": str}, keep_default_na=False)
    missing = [c for c in RESULT_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Expected columns {RESULT_COLUMNS}. Found: {list(df.columns)}")
    has_payload = "payload" in df.columns
    return tuple(
        Candidate(
            score=int(row["score"]),
            identifier=str(row["identifier"]),
            payload=(str(row["payload"]) or None) if has_payload else None,
        )
        for _, row in df.iterrows()
    )

# ---------- CLI ----------

def configure_logging(level: str, log_file: Optional[Path] = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
    if log_file is not None:
        logger.add(log_file, level="DEBUG", rotation="10 MB")


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="topk", description="Distributed top-K selection over record dumps")
    ap.add_argument("inputs", nargs="+", help="Input files or http(s) URLs")
    ap.add_argument("--output", type=Path, default=None,
                    help="CSV output path (default: print to stdout)")
    # unset numeric options fall back to the TOPK_* environment defaults
    ap.add_argument("--k", type=int, default=None)
    ap.add_argument("--partition-size", type=int, default=None, help="Lines per partition")
    ap.add_argument("--workers", type=int, default=None)
    ap.add_argument("--fanin", type=int, default=None)
    ap.add_argument("--tie-policy", choices=list(config.TIE_POLICIES), default=None)
    ap.add_argument("--format", dest="input_format", choices=list(config.INPUT_FORMATS),
                    default=config.DEFAULT_INPUT_FORMAT)
    ap.add_argument("--id-field", default=config.DEFAULT_ID_FIELD)
    ap.add_argument("--score-field", default=config.DEFAULT_SCORE_FIELD)
    ap.add_argument("--with-payload", action="store_true",
                    help="Carry the raw source line of each winner into the output")
    ap.add_argument("--log-level", default=config.LOG_LEVEL)
    ap.add_argument("--log-file", type=Path, default=None,
                    help="Also write a DEBUG-level log to this file")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        settings = settings_from_env(
            k=args.k,
            tie_policy=args.tie_policy,
            partition_size=args.partition_size,
            workers=args.workers,
            fanin=args.fanin,
            input_format=args.input_format,
            id_field=args.id_field,
            score_field=args.score_field,
            keep_payload=args.with_payload,
        )
    except ValidationError as e:
        logger.error("Invalid settings: {}", e)
        return 1

    try:
        result = run_job(args.inputs, settings)
    except InputSourceError as e:
        logger.error("{}", e)
        return 1

    if args.output is not None:
        write_result(result, args.output, include_payload=args.with_payload)
        logger.info("Wrote {} rows to {}", len(result), args.output)
    else:
        for c in result:
            print(f"{c.score}\t{c.identifier}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
