#!/usr/bin/env python3
"""Run a similarity analysis over a directory of submissions.

Each immediate subdirectory of ``ROOT`` is one submission. Prints a JSON
report (closest pairs, rare shared fragments, skipped files) to stdout;
progress goes to stderr.

Usage::

    python3 scripts/run_analysis.py submissions/ --top 20
    python3 scripts/run_analysis.py submissions/ --filter AND e:java NOT Test END
    python3 scripts/run_analysis.py submissions/ --config analysis.json --db results.duckdb
"""
from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from sourcesim.analysis import Analysis
from sourcesim.config import AnalysisConfig, ConfigurationError, config_to_dict, load_config
from sourcesim.file_filters import describe_filter
from sourcesim.io_utils import dumps_json, read_submission_tree
from sourcesim.result_store import ResultStore
from sourcesim.submission import submission_from_mapping

log = logging.getLogger("run_analysis")


def dump_json(obj: object) -> None:
    sys.stdout.buffer.write(dumps_json(obj))
    sys.stdout.buffer.write(b"\n")


def _build_config(args: argparse.Namespace) -> AnalysisConfig:
    cfg = load_config(Path(args.config)) if args.config else AnalysisConfig()
    overrides: dict[str, object] = {}
    if args.compressor:
        overrides["compressor"] = args.compressor
    if args.measure:
        overrides["measure"] = args.measure
    if args.workers:
        overrides["workers"] = args.workers
    if args.language:
        overrides["language"] = args.language
    if args.filter:
        overrides["filter_tokens"] = tuple(args.filter)
    if args.rare:
        overrides["rare_min"], overrides["rare_max"] = args.rare
    return dataclasses.replace(cfg, **overrides) if overrides else cfg


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Find likely copied submissions by compression distance.",
    )
    parser.add_argument("root", help="Directory holding one subdirectory per submission")
    parser.add_argument("--config", help="JSON analysis configuration")
    parser.add_argument("--compressor", help="zlib | bz2 | lzma")
    parser.add_argument("--measure", help="ncd | raw_ncd | comment_ncd | token_histogram")
    parser.add_argument("--language", help="Pin a tokenizer instead of voting")
    parser.add_argument("--workers", type=int, default=0, help="Worker pool size")
    parser.add_argument(
        "--filter", nargs="+", metavar="TOKEN",
        help="File filter tokens, e.g. AND e:java NOT Test END",
    )
    parser.add_argument(
        "--rare", nargs=2, type=int, metavar=("MIN", "MAX"),
        help="Report fragments shared by MIN..MAX submissions",
    )
    parser.add_argument("--no-fragments", action="store_true", help="Skip the substring index")
    parser.add_argument("--top", type=int, default=25, help="Closest pairs to report (default: 25)")
    parser.add_argument("--db", help="Also write the run to this DuckDB file")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    t0 = time.perf_counter()
    try:
        cfg = _build_config(args)
        analysis = Analysis(cfg)
    except ConfigurationError as exc:
        log.error("Configuration error: %s", exc)
        sys.exit(2)

    if analysis.file_filter is not None:
        log.info("File filter: %s", describe_filter(analysis.file_filter))

    tree = read_submission_tree(Path(args.root))
    analysis.load(submission_from_mapping(sid, files) for sid, files in tree.items())
    try:
        analysis.tokenize()
    except ConfigurationError as exc:
        log.error("Configuration error: %s", exc)
        sys.exit(2)
    report = analysis.run()
    fragments = [] if args.no_fragments else list(analysis.rare_fragments().fragments)

    run_id = None
    if args.db:
        with ResultStore(Path(args.db)) as store:
            run_id = store.save_run(
                report,
                tokenizer=analysis.tokenizer.name if analysis.tokenizer else "",
                config=config_to_dict(cfg),
                fragments=fragments,
                warnings=analysis.warnings,
            )
        log.info("Run %s written to %s", run_id, args.db)

    dump_json({
        "run_id": run_id,
        "measure": report.measure,
        "tokenizer": analysis.tokenizer.name if analysis.tokenizer else None,
        "complete": report.complete,
        "submissions": list(report.submission_ids),
        "excluded": analysis.excluded,
        "closest_pairs": [
            {"a": r.a, "b": r.b, "distance": round(r.distance, 6)}
            for r in report.top(args.top)
        ],
        "rare_fragments": [
            {
                "text": f.text,
                "length": f.length,
                "submissions": list(f.submission_ids),
                "occurrences": [list(o) for o in f.occurrences],
            }
            for f in fragments
        ],
        "warnings": [dataclasses.asdict(w) for w in analysis.warnings],
    })
    log.info("Done in %.1fs", time.perf_counter() - t0)


if __name__ == "__main__":
    main()
