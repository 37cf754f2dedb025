"""Command-line interface for activity_timeline.

Run:
    python -m activity_timeline segment --samples samples.csv --places places.csv \
        --start "2026-01-29 08:00:00" --end "2026-01-29 20:00:00"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from time import perf_counter

from activity_timeline.activity import describe_activity
from activity_timeline.cache import JsonDiskCache
from activity_timeline.csv_io import (
    CsvSegmentSink,
    CsvTimelineSources,
    load_app_usage,
    load_category_overrides,
    load_hourly_rows,
    load_location_samples,
    load_user_places,
    write_inferred_places_csv,
    write_location_blocks_csv,
    write_location_segments_csv,
)
from activity_timeline.gap_fill import GapFillParams, build_location_blocks, fill_location_gaps
from activity_timeline.geocode import (
    DEFAULT_NAME_TTL_MS,
    NominatimBatchLookup,
    NominatimConfig,
    PlaceNameResolver,
    fill_missing_place_names,
)
from activity_timeline.intent import classify_intent
from activity_timeline.models import DEFAULT_TZ, HourlySummary
from activity_timeline.pipeline import (
    PipelineParams,
    WindowEvidence,
    build_activity_segments,
    fetch_window_evidence,
    reprocess_window,
)
from activity_timeline.place_inference import (
    PlaceInferenceParams,
    format_inference_summary,
    hourly_rows_from_samples,
    infer_places_from_history,
)
from activity_timeline.segmentation import segment_title
from activity_timeline.timeutils import dt_from_epoch_ms, floor_to_hour_ms, parse_timestamp_ms, require_window

logger = logging.getLogger(__name__)


def _window(args: argparse.Namespace) -> tuple[int, int]:
    start_ms = parse_timestamp_ms(args.start, args.tz)
    end_ms = parse_timestamp_ms(args.end, args.tz)
    require_window(start_ms, end_ms)
    return start_ms, end_ms


def _clock(epoch_ms: int, tz_name: str) -> str:
    return dt_from_epoch_ms(epoch_ms, tz_name).strftime("%H:%M")


def _build_resolver(args: argparse.Namespace) -> tuple[PlaceNameResolver, JsonDiskCache] | None:
    if not args.geocode:
        return None
    cache = JsonDiskCache(args.geocode_cache, ttl_ms=DEFAULT_NAME_TTL_MS)
    cfg = NominatimConfig(
        accept_language=args.geocode_lang,
        min_interval_seconds=args.geocode_min_interval,
        user_agent=args.geocode_user_agent,
        timeout_seconds=args.geocode_timeout_seconds,
    )
    resolver = PlaceNameResolver(
        NominatimBatchLookup(cfg),
        cache,
        precision=args.geocode_precision,
        batch_size=args.geocode_batch_size,
    )
    return resolver, cache


def _cmd_segment(args: argparse.Namespace) -> int:
    start_ms, end_ms = _window(args)
    samples, summary = load_location_samples(args.samples, args.tz)
    places = load_user_places(args.places)[0] if args.places else []
    print(f"samples: total_rows={summary.rows_total}, parsed={summary.rows_parsed}, skipped={summary.rows_skipped}")

    evidence = WindowEvidence(
        samples=tuple(s for s in samples if start_ms <= s.recorded_at_ms < end_ms),
        places=tuple(places),
    )
    params = PipelineParams(tz_name=args.tz, merge_gap_ms=int(args.merge_gap_seconds * 1000))
    result = build_activity_segments(args.user, evidence, start_ms, end_ms, params)

    for seg in result.location_segments:
        line = f"{_clock(seg.start_ms, args.tz)}-{_clock(seg.end_ms, args.tz)}  {segment_title(seg)}"
        line += f"  samples={seg.sample_count} confidence={seg.confidence:.2f}"
        annotation = seg.meta.get("travel_annotation")
        if annotation:
            line += f"  ({annotation})"
        print(line)

    if args.out:
        n = write_location_segments_csv(result.location_segments, args.out, args.tz)
        print(f"Exported {n} segments: {args.out}")
    return 0


def _cmd_timeline(args: argparse.Namespace) -> int:
    start_ms, end_ms = _window(args)
    sources = CsvTimelineSources(
        samples_path=args.samples,
        sessions_path=args.sessions,
        workouts_path=args.workouts,
        places_path=args.places,
        overrides_path=args.overrides,
        tz_name=args.tz,
    )
    params = PipelineParams(
        tz_name=args.tz,
        fetch_timeout_s=args.fetch_timeout_seconds,
        merge_gap_ms=int(args.merge_gap_seconds * 1000),
    )

    started = perf_counter()
    evidence = fetch_window_evidence(sources, args.user, start_ms, end_ms, params.fetch_timeout_s)
    if evidence.failed_sources:
        print(f"Warning: sources unavailable: {', '.join(evidence.failed_sources)}", file=sys.stderr)
    result = build_activity_segments(args.user, evidence, start_ms, end_ms, params)
    logger.info("Processed window in %.2fs", perf_counter() - started)

    for seg in result.activity_segments:
        print(f"{_clock(seg.started_at_ms, args.tz)}-{_clock(seg.ended_at_ms, args.tz)}  {describe_activity(seg)}")

    if args.out:
        n = reprocess_window(CsvSegmentSink(args.out), args.user, start_ms, end_ms, result.activity_segments)
        print(f"Stored {n} activity segments: {args.out}")

    if args.blocks_out:
        resolved = _build_resolver(args)
        resolver = resolved[0] if resolved else None
        blocks = build_location_blocks(result.activity_segments, result.location_segments, resolver)
        if args.fill_gaps:
            hourly: dict[int, int] = {}
            for seg in result.activity_segments:
                bucket = floor_to_hour_ms(seg.started_at_ms)
                hourly[bucket] = hourly.get(bucket, 0) + seg.total_screen_seconds
            summaries = [HourlySummary(hour_start_ms=h, total_screen_seconds=s) for h, s in sorted(hourly.items())]
            blocks = fill_location_gaps(blocks, summaries, GapFillParams())
        if resolved:
            resolved[1].flush()
        n = write_location_blocks_csv(blocks, args.blocks_out, args.tz)
        print(f"Exported {n} blocks: {args.blocks_out}")
    return 0


def _cmd_infer_places(args: argparse.Namespace) -> int:
    params = PlaceInferenceParams(days_back=args.days_back)
    if args.hourly:
        rows, summary = load_hourly_rows(args.hourly, args.tz)
    elif args.samples:
        samples, summary = load_location_samples(args.samples, args.tz)
        places = load_user_places(args.places)[0] if args.places else []
        rows = hourly_rows_from_samples(samples, places, params.cell_precision)
    else:
        print("Error: one of --hourly or --samples is required", file=sys.stderr)
        return 2
    print(f"input: total_rows={summary.rows_total}, parsed={summary.rows_parsed}, skipped={summary.rows_skipped}")

    resolved = _build_resolver(args)
    if resolved:
        resolver, cache = resolved
        rows = fill_missing_place_names(rows, resolver, max_lookups=args.geocode_max_lookups)
        cache.flush()

    now_ms = parse_timestamp_ms(args.now, args.tz) if args.now else None
    result = infer_places_from_history(rows, args.tz, params, now_ms=now_ms)
    print(format_inference_summary(result))

    if args.out:
        n = write_inferred_places_csv(result.inferred_places, args.out)
        print(f"Exported {n} places: {args.out}")
    if args.json:
        print(json.dumps([asdict(p) for p in result.inferred_places], ensure_ascii=False, indent=2))
    return 0


def _cmd_classify_intent(args: argparse.Namespace) -> int:
    usage, _ = load_app_usage(args.usage)
    overrides = load_category_overrides(args.overrides) if args.overrides else None
    result = classify_intent(usage, overrides)

    print(f"intent={result.intent}")
    print(result.reasoning)
    if args.json:
        print(json.dumps(asdict(result), ensure_ascii=False, indent=2))
    return 0


def _add_window_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--start", type=str, required=True, help="Window start (ISO text or epoch ms)")
    p.add_argument("--end", type=str, required=True, help="Window end, exclusive")
    p.add_argument("--tz", type=str, default=DEFAULT_TZ, help="Time zone (IANA), e.g. Europe/London")
    p.add_argument("--user", type=str, default="local", help="User id stored on the segments")
    p.add_argument(
        "--merge-gap-seconds",
        type=float,
        default=300.0,
        help="Merge same-place segments separated by at most this many seconds",
    )


def _add_geocode_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--geocode", action="store_true", help="Resolve names for unlabeled locations via Nominatim")
    p.add_argument("--geocode-cache", type=str, default="place_names.json", help="Place-name cache file")
    p.add_argument("--geocode-lang", type=str, default="en", help="Preferred language for names")
    p.add_argument(
        "--geocode-precision",
        type=int,
        default=4,
        help="Coordinate decimals used for the cache key (4 is ~11m of latitude)",
    )
    p.add_argument("--geocode-batch-size", type=int, default=20, help="Points per lookup batch")
    p.add_argument(
        "--geocode-min-interval",
        type=float,
        default=1.0,
        help="Minimum seconds between requests (public Nominatim asks for >= 1.0)",
    )
    p.add_argument("--geocode-timeout-seconds", type=float, default=10.0, help="Per-request timeout (seconds)")
    p.add_argument(
        "--geocode-user-agent",
        type=str,
        default="activity-timeline/0.1.0 (place-names; set your own UA)",
        help="HTTP User-Agent (use your own identifier to avoid being blocked)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="activity_timeline")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v for info logs, -vv for debug")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_seg = sub.add_parser("segment", help="Group GPS samples into place segments and commutes")
    p_seg.add_argument("--samples", type=str, required=True, help="Location samples CSV")
    p_seg.add_argument("--places", type=str, default=None, help="User places CSV")
    p_seg.add_argument("--out", type=str, default=None, help="Output segments CSV")
    _add_window_args(p_seg)
    p_seg.set_defaults(func=_cmd_segment)

    p_tl = sub.add_parser("timeline", help="Build activity segments for a window and store them")
    p_tl.add_argument("--samples", type=str, default=None, help="Location samples CSV")
    p_tl.add_argument("--sessions", type=str, default=None, help="App sessions CSV")
    p_tl.add_argument("--workouts", type=str, default=None, help="Workouts / sleep CSV")
    p_tl.add_argument("--places", type=str, default=None, help="User places CSV")
    p_tl.add_argument("--overrides", type=str, default=None, help="App category overrides CSV")
    p_tl.add_argument("--out", type=str, default=None, help="Activity segments CSV (window rows are replaced)")
    p_tl.add_argument("--blocks-out", type=str, default=None, help="Output location blocks CSV")
    p_tl.add_argument("--fill-gaps", action="store_true", help="Carry locations forward across silent gaps")
    p_tl.add_argument(
        "--fetch-timeout-seconds",
        type=float,
        default=10.0,
        help="Sources that take longer are treated as empty",
    )
    _add_window_args(p_tl)
    _add_geocode_args(p_tl)
    p_tl.set_defaults(func=_cmd_timeline)

    p_inf = sub.add_parser("infer-places", help="Suggest home/work/frequent places from history")
    p_inf.add_argument("--hourly", type=str, default=None, help="Hourly location rows CSV")
    p_inf.add_argument("--samples", type=str, default=None, help="Raw samples CSV (aggregated per hour)")
    p_inf.add_argument("--places", type=str, default=None, help="User places CSV (labels rows from --samples)")
    p_inf.add_argument("--tz", type=str, default=DEFAULT_TZ, help="Time zone (IANA)")
    p_inf.add_argument("--days-back", type=int, default=14, help="History length used with --now")
    p_inf.add_argument("--now", type=str, default=None, help="Reference time; only the trailing --days-back days are used")
    p_inf.add_argument("--geocode-max-lookups", type=int, default=20, help="Distinct locations resolved per run")
    p_inf.add_argument("--out", type=str, default=None, help="Output inferred places CSV")
    p_inf.add_argument("--json", action="store_true", help="Also print JSON")
    _add_geocode_args(p_inf)
    p_inf.set_defaults(func=_cmd_infer_places)

    p_int = sub.add_parser("classify-intent", help="Label an app-usage summary as work/leisure/...")
    p_int.add_argument("--usage", type=str, required=True, help="App usage CSV (app_id, seconds[, category])")
    p_int.add_argument("--overrides", type=str, default=None, help="App category overrides CSV")
    p_int.add_argument("--json", action="store_true", help="Also print JSON")
    p_int.set_defaults(func=_cmd_classify_intent)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
