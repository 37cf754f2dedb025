from pathlib import Path

import pytest

from activity_timeline.cli import build_parser, main
from activity_timeline.csv_io import read_activity_rows_csv

T0 = 1769464800000  # 2026-01-26 22:00 UTC
MIN = 60_000
WINDOW = ["--start", "2026-01-26 22:00:00", "--end", "2026-01-26 23:00:00", "--tz", "UTC"]


def _inputs(tmp_path: Path) -> dict[str, Path]:
    samples = tmp_path / "samples.csv"
    lines = ["recorded_at,latitude,longitude"]
    for i in range(10):
        lines.append(f"{T0 + i * 6 * MIN},{51.5 + (i % 3) * 0.0003},-0.1")
    lines.append(f"{T0 + 60 * MIN},51.5,-0.1")
    samples.write_text("\n".join(lines) + "\n", encoding="utf-8")

    places = tmp_path / "places.csv"
    places.write_text("id,label,category,latitude,longitude,radius_m\nhome,Home,home,51.5,-0.1,150\n", encoding="utf-8")

    sessions = tmp_path / "sessions.csv"
    sessions.write_text(
        f"id,app_id,start,end\ns1,Slack,{T0 + 10 * MIN},{T0 + 40 * MIN}\n",
        encoding="utf-8",
    )
    return {"samples": samples, "places": places, "sessions": sessions}


def test_segment_prints_and_exports(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    files = _inputs(tmp_path)
    out = tmp_path / "segments.csv"

    code = main(["segment", "--samples", str(files["samples"]), "--places", str(files["places"]), "--out", str(out), *WINDOW])

    assert code == 0
    text = capsys.readouterr().out
    assert "samples: total_rows=11, parsed=11, skipped=0" in text
    assert "22:00-22:54  At Home  samples=10" in text
    assert f"Exported 1 segments: {out}" in text
    assert out.read_text(encoding="utf-8").splitlines()[0].startswith("source_id,title")


def test_segment_rejects_inverted_window(tmp_path: Path) -> None:
    files = _inputs(tmp_path)
    with pytest.raises(ValueError):
        main(["segment", "--samples", str(files["samples"]), "--start", "2026-01-26 23:00:00", "--end", "2026-01-26 22:00:00"])


def test_timeline_stores_segments_idempotently(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    files = _inputs(tmp_path)
    out = tmp_path / "activity.csv"
    blocks = tmp_path / "blocks.csv"
    argv = [
        "timeline",
        "--samples",
        str(files["samples"]),
        "--sessions",
        str(files["sessions"]),
        "--places",
        str(files["places"]),
        "--out",
        str(out),
        "--blocks-out",
        str(blocks),
        "--fill-gaps",
        *WINDOW,
    ]

    assert main(argv) == 0
    assert main(argv) == 0

    text = capsys.readouterr().out
    assert "22:00-22:54  At Home - " in text
    assert f"Stored 1 activity segments: {out}" in text
    rows = read_activity_rows_csv(out)
    assert len(rows) == 1
    assert rows[0]["place_label"] == "Home"
    assert rows[0]["total_screen_seconds"] == "1800"
    assert len(blocks.read_text(encoding="utf-8").splitlines()) == 2


def test_timeline_without_sources_prints_nothing(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["timeline", *WINDOW]) == 0
    assert capsys.readouterr().out == ""


def test_classify_intent(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    usage = tmp_path / "usage.csv"
    usage.write_text("app_id,seconds\nslack,1800\nfigma,1200\ninstagram,600\n", encoding="utf-8")

    assert main(["classify-intent", "--usage", str(usage)]) == 0

    text = capsys.readouterr().out
    assert text.splitlines()[:2] == ["intent=work", "Classified as Work: 83% work apps"]


def test_infer_places_needs_input(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["infer-places"]) == 2
    assert "--hourly or --samples" in capsys.readouterr().err


def test_infer_places_from_samples(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    files = _inputs(tmp_path)
    out = tmp_path / "inferred.csv"

    assert main(["infer-places", "--samples", str(files["samples"]), "--places", str(files["places"]), "--tz", "UTC", "--out", str(out)]) == 0

    text = capsys.readouterr().out
    assert "input: total_rows=11" in text
    assert "Place inference results" in text
    assert out.exists()


def test_parser_requires_subcommand() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
