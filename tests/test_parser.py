"""Tests for the heuristic log line parser."""

import sys
from datetime import datetime, timedelta, timezone

import pytest

from logpeek.parser import (
    detect_level,
    detect_timestamp,
    normalize_level,
    parse_epoch,
    parse_iso_timestamp,
    parse_line,
    parse_structured,
    parse_text,
)


class TestStructuredParsing:
    def test_known_fields_extracted(self):
        entry = parse_line('{"level":"err","msg":"disk full","ts":1700000000}')
        parsed = entry.parsed
        assert parsed.level == "ERROR"
        assert parsed.message == "disk full"
        assert parsed.time == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert parsed.fields == {}

    def test_remaining_fields_kept(self):
        parsed = parse_structured('{"level":"info","msg":"hi","user":"bob","attempt":3}')
        assert parsed.fields == {"user": "bob", "attempt": 3}

    def test_key_priority_first_match_wins(self):
        parsed = parse_structured('{"msg":"first","message":"second"}')
        assert parsed.message == "first"
        assert parsed.fields == {"message": "second"}

    def test_synonyms(self):
        parsed = parse_structured(
            '{"severity":"WARNING","text":"slow","@timestamp":"2024-01-15T10:30:00Z","component":"db"}'
        )
        assert parsed.level == "WARN"
        assert parsed.message == "slow"
        assert parsed.source == "db"
        assert parsed.time == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_dotted_level_key(self):
        parsed = parse_structured('{"log.level":"trace","msg":"x"}')
        assert parsed.level == "DEBUG"

    def test_non_string_level_tries_next_key(self):
        parsed = parse_structured('{"level":30,"lvl":"info","msg":"x"}')
        assert parsed.level == "INFO"
        assert parsed.fields == {"level": 30}

    def test_epoch_milliseconds(self):
        parsed = parse_structured('{"msg":"x","time":1700000000123}')
        expected = datetime.fromtimestamp(1700000000.123, tz=timezone.utc)
        assert abs(parsed.time - expected) < timedelta(milliseconds=1)

    def test_invalid_time_left_unset_other_fields_kept(self):
        parsed = parse_structured('{"level":"error","msg":"boom","time":"not a time","logger":"api"}')
        assert parsed.time is None
        assert parsed.level == "ERROR"
        assert parsed.source == "api"
        assert "time" not in parsed.fields

    def test_boolean_time_ignored(self):
        parsed = parse_structured('{"msg":"x","ts":true}')
        assert parsed.time is None

    def test_iso_with_offset(self):
        parsed = parse_structured('{"msg":"x","timestamp":"2024-01-15T12:30:00+02:00"}')
        assert parsed.time == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_unknown_level_passes_through(self):
        parsed = parse_structured('{"level":"notice","msg":"x"}')
        assert parsed.level == "NOTICE"

    def test_invalid_json_falls_back_to_text(self):
        entry = parse_line("{not json ERROR")
        assert entry.parsed.level == "ERROR"
        assert entry.parsed.message == "{not json ERROR"

    def test_non_object_is_not_structured(self):
        assert parse_structured("[1, 2, 3]") is None
        assert parse_structured("plain text") is None

    def test_leading_whitespace_allowed(self):
        parsed = parse_structured('   {"msg":"indented"}')
        assert parsed.message == "indented"

    def test_huge_epoch_leaves_time_unset(self):
        entry = parse_line('{"msg":"x","ts":' + "9" * 400 + "}")
        assert entry.parsed.time is None
        assert entry.parsed.message == "x"
        assert entry.parsed.format == "json"

    @pytest.mark.skipif(not hasattr(sys, "get_int_max_str_digits"),
                        reason="interpreter has no integer string length limit")
    def test_integer_too_long_to_decode_falls_back_to_text(self):
        line = '{"msg":"x","n":' + "1" * 5000 + "}"
        assert parse_structured(line) is None
        entry = parse_line(line)
        assert entry.parsed.format == "text"
        assert entry.parsed.message == line
        assert entry.parsed.level == ""


class TestTextParsing:
    def test_level_and_iso_timestamp(self):
        entry = parse_line("2024-01-15T10:30:00Z ERROR connection refused")
        assert entry.parsed.level == "ERROR"
        assert entry.parsed.time == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_plain_text_has_no_metadata(self):
        entry = parse_line("just some text")
        assert entry.parsed.level == ""
        assert entry.parsed.time is None
        assert entry.parsed.message == "just some text"

    def test_message_is_full_line(self):
        line = "2024-01-15 10:30:00 WARN cache miss"
        assert parse_text(line).message == line

    def test_most_severe_level_wins(self):
        assert detect_level("INFO retrying after ERROR") == "ERROR"
        assert detect_level("debug: panic averted") == "FATAL"

    def test_level_aliases(self):
        assert detect_level("[WRN] low memory") == "WARN"
        assert detect_level("dbg tick") == "DEBUG"
        assert detect_level("critical failure") == "FATAL"

    def test_word_boundary_required(self):
        assert detect_level("information overload") == ""
        assert detect_level("errors were found") == ""

    def test_trace_not_a_text_level(self):
        assert detect_level("TRACE entering handler") == ""

    def test_space_separated_timestamp_with_fraction(self):
        ts = detect_timestamp("2024-01-15 10:30:00.250 started")
        assert ts == datetime(2024, 1, 15, 10, 30, 0, 250000, tzinfo=timezone.utc)

    def test_combined_log_format(self):
        line = '127.0.0.1 - - [10/Oct/2023:13:55:36 -0700] "GET / HTTP/1.1" 200 2326'
        assert detect_timestamp(line) == datetime(2023, 10, 10, 13, 55, 36, tzinfo=timezone.utc)

    def test_syslog_uses_current_year(self):
        ts = detect_timestamp("Jan  5 14:30:01 host sshd[42]: accepted")
        assert ts.year == datetime.now(timezone.utc).year
        assert (ts.month, ts.day, ts.hour, ts.minute, ts.second) == (1, 5, 14, 30, 1)

    def test_iso_pattern_takes_priority(self):
        line = "Jan  5 14:30:01 seen at 2024-01-15T10:30:00Z"
        assert detect_timestamp(line) == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_first_matching_pattern_only(self):
        # Syslog-shaped text that is not a real date stops the search.
        assert detect_timestamp("abc 12 10:00:00 nothing else") is None

    def test_long_fraction_truncated(self):
        ts = detect_timestamp("2024-01-15T10:30:00.123456789Z")
        assert ts.microsecond == 123456


class TestParseLine:
    def test_raw_preserved(self):
        line = '  {"msg":"x"}  '
        assert parse_line(line).raw == line

    def test_id_unassigned(self):
        assert parse_line("hello").id == 0

    def test_ingestion_timestamp_is_now(self):
        before = datetime.now(timezone.utc)
        entry = parse_line("2001-01-01T00:00:00Z INFO old line")
        after = datetime.now(timezone.utc)
        assert before <= entry.timestamp <= after

    def test_empty_line(self):
        entry = parse_line("")
        assert entry.parsed is not None
        assert entry.parsed.message == ""


class TestHelpers:
    def test_normalize_level(self):
        assert normalize_level(" err ") == "ERROR"
        assert normalize_level("Information") == "INFO"
        assert normalize_level("PANIC") == "FATAL"
        assert normalize_level("warn") == "WARN"

    def test_parse_iso_timestamp_naive_is_utc(self):
        assert parse_iso_timestamp("2024-01-15T10:30:00") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_parse_iso_timestamp_invalid(self):
        assert parse_iso_timestamp("yesterday") is None

    def test_parse_epoch_out_of_range(self):
        assert parse_epoch(float("inf")) is None
        assert parse_epoch(int("9" * 400)) is None
        assert parse_epoch(-int("9" * 400)) is None
