import pytest

from bracketchart.exceptions import ParseError
from bracketchart.models import BarNotationLine, ChordLyricsLine, Document, Section
from bracketchart.notation import (
    LineType,
    classify_line,
    clean_label,
    is_bar_line,
    parse,
    parse_lenient,
    parse_sections,
    render_line,
    scan_brackets,
    serialize,
    strip_code_fences,
)

AMAZING = "[G]Amazing [G7]grace how [C]sweet the [G]sound"

CHART = """\
INTRO
||:C |C |C |C :||

VERSE 1
[G]Amazing [G7]grace how [C]sweet the [G]sound
That [G]saved a wretch like [D]me

CHORUS
[C]I once was [G]lost
"""

# ---------------------------------------------------------------------------
# classify_line
# ---------------------------------------------------------------------------


def test_classify_blank():
    assert classify_line("") == LineType.BLANK
    assert classify_line("   ") == LineType.BLANK


def test_classify_strict_headers():
    assert classify_line("VERSE 1") == LineType.SECTION
    assert classify_line("Pre-Chorus") == LineType.SECTION
    assert classify_line("[Solo]") == LineType.LYRIC
    assert classify_line("SPONTANEOUS") == LineType.LYRIC


def test_classify_lenient_headers():
    assert classify_line("[Solo]", lenient=True) == LineType.SECTION
    assert classify_line("<Tag>", lenient=True) == LineType.SECTION
    assert classify_line("Chorus 2:", lenient=True) == LineType.SECTION
    assert classify_line("SPONTANEOUS", lenient=True) == LineType.SECTION


def test_classify_lenient_chord_only_line_is_not_a_label():
    assert classify_line("[G]", lenient=True) != LineType.SECTION
    assert classify_line("G  D  C", lenient=True) != LineType.SECTION


def test_classify_bar_and_lyric():
    assert classify_line("||:C |G |Am |F :||") == LineType.BAR
    assert classify_line(AMAZING) == LineType.LYRIC


def test_is_bar_line():
    assert is_bar_line("| G | D | x2")
    assert is_bar_line("| [G] [D/F#] | N.C. |")
    assert not is_bar_line("Love | hate")
    assert not is_bar_line("G D C")


def test_clean_label():
    assert clean_label("[Verse 1]") == "Verse 1"
    assert clean_label("<Tag>:") == "Tag"
    assert clean_label("Chorus:") == "Chorus"


def test_strip_code_fences():
    assert strip_code_fences("```text\nVERSE 1\n[G]Hi\n```") == "VERSE 1\n[G]Hi"
    assert strip_code_fences("VERSE 1") == "VERSE 1"


# ---------------------------------------------------------------------------
# scan_brackets
# ---------------------------------------------------------------------------


def test_scan_brackets_indexes_precede_syllables():
    lyric, chords, repaired = scan_brackets(AMAZING)
    assert lyric == "Amazing grace how sweet the sound"
    assert chords == [(0, "G"), (8, "G7"), (18, "C"), (28, "G")]
    assert not repaired


def test_scan_brackets_stacked_chords_share_a_slot():
    lyric, chords, _ = scan_brackets("[G][D]Hold")
    assert lyric == "Hold"
    assert chords == [(0, "G"), (0, "D")]


def test_scan_brackets_trailing_chord():
    _, chords, _ = scan_brackets("sound[G]")
    assert chords == [(5, "G")]


@pytest.mark.parametrize("line, reason", [("[G Amazing", "unmatched '['"), ("Amaz]ing", "unmatched ']'"), ("[]Amazing", "empty")])
def test_scan_brackets_strict_errors(line, reason):
    with pytest.raises(ParseError) as exc_info:
        scan_brackets(line, line_number=7)
    assert exc_info.value.line_number == 7
    assert reason in exc_info.value.reason


def test_scan_brackets_lenient_keeps_stray_bracket():
    lyric, chords, repaired = scan_brackets("[G]Amazing [grace", strict=False)
    assert lyric == "Amazing [grace"
    assert chords == [(0, "G")]
    assert repaired


def test_scan_brackets_lenient_keeps_bracketed_prose():
    lyric, chords, repaired = scan_brackets("[G]Amen [repeat twice]", strict=False)
    assert lyric == "Amen [repeat twice]"
    assert chords == [(0, "G")]
    assert not repaired


def test_scan_brackets_escaped_brackets_are_lyric_text():
    for strict in (True, False):
        lyric, chords, repaired = scan_brackets(r"[G]Amen \[x2\] back\\slash [D]end", strict=strict)
        assert lyric == "Amen [x2] back\\slash end"
        assert chords == [(0, "G"), (21, "D")]
        assert not repaired


# ---------------------------------------------------------------------------
# Strict parse
# ---------------------------------------------------------------------------


def test_parse_amazing_grace_line():
    document = parse(AMAZING + "\n")
    section = document.sections[0]
    assert section.header == ""
    line = section.lines[0]
    assert line.lyric_text == "Amazing grace how sweet the sound"
    assert [p.char_index for p in line.placements] == [0, 8, 18, 28]
    assert [p.text for p in line.placements] == ["G", "G7", "C", "G"]


def test_parse_sections_and_bar_lines():
    document = parse(CHART)
    assert [s.header for s in document.sections] == ["INTRO", "VERSE 1", "CHORUS"]
    intro = document.sections[0].lines
    assert intro == [BarNotationLine("||:C |C |C |C :||")]
    assert len(document.sections[1].lines) == 2


def test_parse_keeps_inner_blank_lines():
    document = parse("VERSE 1\n[G]One\n\n[D]Two\n")
    lines = document.sections[0].lines
    assert len(lines) == 3
    assert lines[1] == ChordLyricsLine()


def test_parse_reports_line_number():
    with pytest.raises(ParseError) as exc_info:
        parse("VERSE 1\n[G]Fine\n[G Broken\n")
    assert exc_info.value.line_number == 3


def test_parse_unsupported_chord_is_opaque_not_error():
    document = parse("[N.C.]Silence\n")
    assert document.sections[0].lines[0].placements[0].text == "N.C."


def test_parse_empty_text():
    assert parse("") == Document()


def test_parse_leading_blank_lines_open_no_section():
    document = parse("\n\nVERSE 1\n[G]One\n")
    assert [s.header for s in document.sections] == ["VERSE 1"]
    assert serialize(document) == "VERSE 1\n[G]One\n"
    assert parse(serialize(document)) == document


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


def test_render_line():
    line = parse(AMAZING + "\n").sections[0].lines[0]
    assert render_line(line) == AMAZING


def test_render_line_with_preference():
    line = parse("[Bb]Hi [Eb]there\n").sections[0].lines[0]
    assert render_line(line, "sharp") == "[A#]Hi [D#]there"


def test_serialize_layout():
    document = Document(
        sections=[
            Section(header="INTRO", lines=[BarNotationLine("| G | D |")]),
            Section(header="VERSE 1", lines=[ChordLyricsLine(lyric_text="Hello")]),
        ]
    )
    assert serialize(document) == "INTRO\n| G | D |\n\nVERSE 1\nHello\n"


def test_serialize_empty_document():
    assert serialize(Document()) == ""


def test_serialize_skips_empty_unlabelled_section():
    document = Document(sections=[Section(header=""), Section(header="VERSE 1", lines=[ChordLyricsLine(lyric_text="Hi")])])
    assert serialize(document) == "VERSE 1\nHi\n"


def test_render_line_escapes_literal_brackets():
    line = ChordLyricsLine(lyric_text="Hello [ world")
    assert render_line(line) == r"Hello \[ world"


def test_serialize_canonical_chord_tokens():
    assert serialize(parse("[C-7]Hi\n")) == "[Cm7]Hi\n"


@pytest.mark.parametrize(
    "text",
    [
        CHART,
        AMAZING + "\n",
        "[G][D]Stacked\n",
        "Lead-in line\n\nVERSE 1\n[G]One\n\n[D]Two\n",
        "BRIDGE\n[N.C.]Spoken [Gsus4]bit[C/E]\n",
        "VERSE 1\n[G]Hello \\[ world\\]\n",
    ],
)
def test_round_trip(text):
    document = parse(text)
    assert serialize(document) == text
    assert parse(serialize(document)) == document


# ---------------------------------------------------------------------------
# Lenient parse
# ---------------------------------------------------------------------------


def test_lenient_drops_leaked_title():
    result = parse_lenient("My Number One\nINTRO\n||:C |C |C |C :||")
    assert result.dropped_title == "My Number One"
    assert [s.header for s in result.document.sections] == ["INTRO"]
    assert result.document.sections[0].lines == [BarNotationLine("||:C |C |C |C :||")]


def test_lenient_drops_given_title_even_with_chords_below():
    result = parse_lenient("Amazing Grace\n\n[G]Amazing grace", title="Amazing Grace")
    assert result.dropped_title == "Amazing Grace"
    assert result.document.sections[0].lines[0].lyric_text == "Amazing grace"


def test_lenient_drops_caps_title_above_header():
    result = parse_lenient("GOODNESS OF GOD\nVERSE 1\n[A]I love you Lord")
    assert result.dropped_title == "GOODNESS OF GOD"
    assert [s.header for s in result.document.sections] == ["VERSE 1"]


def test_lenient_drops_caps_title_above_lyrics():
    result = parse_lenient("AMAZING GRACE\n[G]Amazing [G7]grace\n[C]how sweet")
    assert result.dropped_title == "AMAZING GRACE"
    assert [s.header for s in result.document.sections] == [""]
    assert len(result.document.sections[0].lines) == 2


def test_lenient_keeps_chord_only_first_line():
    result = parse_lenient("G  D  C\n[G]Amazing grace")
    assert result.dropped_title is None
    assert result.document.sections[0].lines[0].lyric_text == "G  D  C"


def test_lenient_keeps_first_line_with_chords():
    result = parse_lenient("[G]Amazing grace\n[D]how sweet")
    assert result.dropped_title is None
    assert len(result.document.sections[0].lines) == 2


def test_lenient_stray_bracket_is_literal_text():
    result = parse_lenient("VERSE 1\n[G]Amazing [grace how sweet")
    line = result.document.sections[0].lines[0]
    assert line.lyric_text == "Amazing [grace how sweet"
    assert [p.text for p in line.placements] == ["G"]
    assert result.issues[0].line_number == 2
    assert result.confidence == 0.5


@pytest.mark.parametrize("text", ["VERSE 1\n[G]Hello [ world", "VERSE 1\n[G]Hello world [repeat twice]", "VERSE 1\n[G]Hello ] world"])
def test_lenient_output_survives_strict_round_trip(text):
    document = parse_lenient(text).document
    assert parse(serialize(document)) == document


def test_lenient_accepts_loose_headers():
    result = parse_lenient("[Verse 1]\n[G]One\n\nChorus:\n[C]Two\n\n<Tag>\n[D]Three\n\nSPONTANEOUS\n[E]Four")
    assert [s.header for s in result.document.sections] == ["Verse 1", "Chorus", "Tag", "SPONTANEOUS"]
    assert result.confidence == 1.0


def test_lenient_strips_fences_and_trailing_blanks():
    result = parse_lenient("```\nVERSE 1\n[G]One\n\n\n```")
    lines = result.document.sections[0].lines
    assert len(lines) == 1
    assert lines[0].lyric_text == "One"


def test_lenient_empty_input():
    result = parse_lenient("")
    assert result.document.sections == []
    assert result.confidence == 0.0


def test_lenient_never_raises_on_junk():
    result = parse_lenient("]]][[[\n[]\n|||")
    assert isinstance(result.document, Document)


# ---------------------------------------------------------------------------
# parse_sections
# ---------------------------------------------------------------------------


def test_parse_sections_builds_document():
    result = parse_sections(
        [
            {"header": "INTRO", "isBarNotation": True, "content": "||:C |C |C |C :||"},
            {"header": "VERSE 1", "isBarNotation": False, "content": "[G]First line\n[D]Second line"},
        ]
    )
    document = result.document
    assert [s.header for s in document.sections] == ["INTRO", "VERSE 1"]
    assert isinstance(document.sections[0].lines[0], BarNotationLine)
    assert [ln.lyric_text for ln in document.sections[1].lines] == ["First line", "Second line"]
    assert result.confidence == 1.0


def test_parse_sections_headerless_entry_continues_previous():
    result = parse_sections(
        [
            {"header": "VERSE 1", "content": "[G]One"},
            {"header": "", "content": "[D]Two"},
        ]
    )
    assert len(result.document.sections) == 1
    assert [ln.lyric_text for ln in result.document.sections[0].lines] == ["One", "", "Two"]


def test_parse_sections_drops_title_line():
    result = parse_sections([{"header": "", "content": "My Number One"}, {"header": "INTRO", "content": "| C |"}], title="My Number One")
    assert result.dropped_title == "My Number One"
    assert [s.header for s in result.document.sections] == ["INTRO"]


def test_parse_sections_reports_bad_entries():
    result = parse_sections(["junk", {"header": "CHORUS", "content": "[C]Hi"}])
    assert [s.header for s in result.document.sections] == ["CHORUS"]
    assert result.issues[0].reason == "section entry is not an object"
    assert result.confidence < 1.0
