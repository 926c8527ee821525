import json
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from bracketchart.cli import _slugify, main
from bracketchart.exceptions import ExtractionEmpty, FetchError
from bracketchart.extraction.payload import ingest

CHART = "VERSE 1\n[G]Amazing [G7]grace how [C]sweet the [G]sound\n"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _invoke(args, **kwargs):
    # Keep the user's own config file and environment out of the run
    return CliRunner().invoke(main, ["--config", "/nonexistent/config.json", *args], env={
        "BRACKETCHART_ENDPOINT": None,
        "BRACKETCHART_PREFERENCE": None,
        "BRACKETCHART_TIMEOUT": None,
        "BRACKETCHART_CHAR_WIDTH": None,
    }, **kwargs)


def _mock_source(chart=None) -> MagicMock:
    source = MagicMock()
    source.extract.return_value = chart or ingest({"title": "Dark Star", "bracketNotation": "VERSE 1\n[A]Dark star [G]crashes"})
    return source


# ---------------------------------------------------------------------------
# _slugify
# ---------------------------------------------------------------------------


def test_slugify_basic():
    assert _slugify("Amazing Grace") == "amazing-grace"


def test_slugify_apostrophe():
    assert _slugify("Blowin' in the Wind") == "blowin-in-the-wind"


# ---------------------------------------------------------------------------
# --help
# ---------------------------------------------------------------------------


def test_help_output():
    result = _invoke(["--help"])
    assert result.exit_code == 0
    assert "bracket notation" in result.output
    for command in ("check", "transpose", "format", "import"):
        assert command in result.output


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


def test_check_valid_file(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text(CHART, encoding="utf-8")
    result = _invoke(["check", str(path)])
    assert result.exit_code == 0
    assert "OK: 1 section(s), 4 chord(s)" in result.output


def test_check_counts_bar_line_chords(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text("INTRO\n||:C |G x2 :||\n\n" + CHART, encoding="utf-8")
    result = _invoke(["check", str(path)])
    assert result.exit_code == 0
    assert "OK: 2 section(s), 6 chord(s)" in result.output


def test_check_invalid_file(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text("VERSE 1\n[G Amazing grace\n", encoding="utf-8")
    result = _invoke(["check", str(path)])
    assert result.exit_code == 1
    assert "Error: Line 2" in result.output


def test_check_lenient_reports_confidence(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text("VERSE 1\n[G]Amazing [grace\n", encoding="utf-8")
    result = _invoke(["check", "--lenient", str(path)])
    assert result.exit_code == 0
    assert "Line 2: stray bracket kept as text" in result.output
    assert "Confidence: 50%" in result.output


# ---------------------------------------------------------------------------
# transpose
# ---------------------------------------------------------------------------


def test_transpose_to_stdout(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text(CHART, encoding="utf-8")
    result = _invoke(["transpose", str(path), "-s", "2", "--prefer", "sharp"])
    assert result.exit_code == 0
    assert "[A]Amazing [A7]grace how [D]sweet the [A]sound" in result.output


def test_transpose_follows_key(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text(CHART, encoding="utf-8")
    result = _invoke(["transpose", str(path), "-s", "3", "--key", "G"])
    assert result.exit_code == 0
    assert "[Bb]Amazing [Bb7]grace how [Eb]sweet the [Bb]sound" in result.output
    assert "New key: Bb" in result.output


def test_transpose_negative_semitones_to_file(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text(CHART, encoding="utf-8")
    dest = tmp_path / "out.txt"
    result = _invoke(["transpose", str(path), "--semitones=-2", "--prefer", "flat", "-o", str(dest)])
    assert result.exit_code == 0
    assert f"Written to {dest}" in result.output
    assert dest.read_text(encoding="utf-8") == "VERSE 1\n[F]Amazing [F7]grace how [Bb]sweet the [F]sound\n"


def test_transpose_bad_file(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text("]oops\n", encoding="utf-8")
    result = _invoke(["transpose", str(path), "-s", "1"])
    assert result.exit_code == 1
    assert "Error:" in result.output


# ---------------------------------------------------------------------------
# format
# ---------------------------------------------------------------------------


def test_format_cleans_loose_notation(tmp_path):
    path = tmp_path / "chart.txt"
    path.write_text("My Song\n\n[Verse 1]\n[G]Hi [C-7]there\n\n\nChorus:\n[D]Yo\n", encoding="utf-8")
    result = _invoke(["format", str(path)])
    assert result.exit_code == 0
    assert result.output == "Verse 1\n[G]Hi [Cm7]there\n\nChorus\n[D]Yo\n"


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------


def test_import_stdout():
    with patch("bracketchart.cli.get_source", return_value=_mock_source()):
        result = _invoke(["import", "--stdout", "scan.png", "--endpoint", "http://x"])
    assert result.exit_code == 0
    assert "[A]Dark star [G]crashes" in result.output


def test_import_writes_default_filename(tmp_path):
    with patch("bracketchart.cli.get_source", return_value=_mock_source()):
        with CliRunner().isolated_filesystem(temp_dir=tmp_path) as fs:
            result = CliRunner().invoke(main, ["--config", "/nonexistent/config.json", "import", "chart.json"])
            assert result.exit_code == 0
            assert "Written to dark-star.txt" in result.output
            with open(f"{fs}/dark-star.txt", encoding="utf-8") as fh:
                assert fh.read() == "VERSE 1\n[A]Dark star [G]crashes\n"


def test_import_json_payload_end_to_end(tmp_path):
    path = tmp_path / "payload.json"
    path.write_text(json.dumps({"title": "Hi", "bracketNotation": "CHORUS\n[C]Hi"}), encoding="utf-8")
    result = _invoke(["import", "--stdout", str(path)])
    assert result.exit_code == 0
    assert result.output == "CHORUS\n[C]Hi\n"


def test_import_scan_without_endpoint():
    result = _invoke(["import", "scan.png"])
    assert result.exit_code == 1
    assert "No extraction source found for: scan.png" in result.output
    assert "--endpoint" in result.output


def test_import_fetch_error():
    source = MagicMock()
    source.extract.side_effect = FetchError("http://x/api", 502)
    with patch("bracketchart.cli.get_source", return_value=source):
        result = _invoke(["import", "scan.png", "--endpoint", "http://x/api"])
    assert result.exit_code == 1
    assert "Error: Could not reach http://x/api (HTTP 502)" in result.output


def test_import_nothing_extracted():
    source = MagicMock()
    source.extract.side_effect = ExtractionEmpty()
    with patch("bracketchart.cli.get_source", return_value=source):
        result = _invoke(["import", "--stdout", "chart.json"])
    assert result.exit_code == 1
    assert "Error: No chord chart content could be extracted" in result.output


def test_import_warns_on_low_confidence():
    chart = ingest({"bracketNotation": "VERSE 1\n[G]Hi [there\n[]Oops"})
    with patch("bracketchart.cli.get_source", return_value=_mock_source(chart)):
        result = _invoke(["import", "--stdout", "chart.json"])
    assert result.exit_code == 0
    assert "low confidence" in result.output


def test_import_warns_when_metadata_missing():
    chart = ingest({"bracketNotation": "VERSE 1\n[G]Hi"})
    with patch("bracketchart.cli.get_source", return_value=_mock_source(chart)):
        result = _invoke(["import", "--stdout", "chart.json"])
    assert result.exit_code == 0
    assert "no song metadata found" in result.output


def test_import_quiet_when_metadata_present():
    with patch("bracketchart.cli.get_source", return_value=_mock_source()):
        result = _invoke(["import", "--stdout", "chart.json"])
    assert "no song metadata found" not in result.output
