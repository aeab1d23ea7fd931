"""Tests for the checkpoint record text format."""
import sys, os

import gmpy2
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rieselprime.record import (COMPLETE_LINE, CheckpointRecord, RecordFormatError,
                                Timeval, format_record, parse_assignments, parse_record,
                                parse_value, read_record)
from rieselprime.stats import StatsSnapshot


def _record(**kw):
    rec = CheckpointRecord(h=3, n=100, i=42, v1=5, u_term=gmpy2.mpz(0xDEADBEEF),
                           hostname='box "one"', cwd='/tmp/a\\b', checkpoint_dir='/tmp/chk',
                           pid=1234, ppid=1)
    rec.stats = {"total": StatsSnapshot(now=1_588_888_888_123_456, ru_utime=2_500_000,
                                        wall_clock=7_000_001, ru_maxrss=2048, ru_nvcsw=9)}
    for k, v in kw.items():
        setattr(rec, k, v)
    return rec


class TestFormat:
    def test_layout(self):
        text = format_record(_record())
        lines = text.splitlines()
        assert lines[0] == "version = 2 ;"
        assert lines[6] == "n = 100 ;"
        assert lines[7] == "h = 3 ;"
        assert lines[-2] == "u_term = 0xdeadbeef ;"
        assert lines[-1] == COMPLETE_LINE
        assert "total_ru_utime = 2.500000 ;" in lines
        assert "total_wall_clock = 7.000001 ;" in lines
        assert "total_timestamp = 1588888888.123456 ;" in lines
        assert 'total_date_time = "2020-05-07 22:01:28 UTC" ;' in lines

    def test_parse_back(self):
        rec = parse_record(format_record(_record()))
        assert rec.complete
        assert (rec.h, rec.n, rec.i, rec.v1) == (3, 100, 42, 5)
        assert rec.u_term == 0xDEADBEEF
        assert rec.hostname == 'box "one"'
        assert rec.cwd == '/tmp/a\\b'
        total = rec.stats["total"]
        assert total.ru_utime == 2_500_000
        assert total.wall_clock == 7_000_001
        assert total.now == 1_588_888_888_123_456
        assert total.ru_nvcsw == 9

    def test_line_breaks_in_strings(self):
        rec = _record(cwd="/tmp/odd\nname", checkpoint_dir="/tmp/a\rb\\n")
        text = format_record(rec)
        assert len(text.splitlines()) == len(format_record(_record()).splitlines())
        back = parse_record(text)
        assert back.complete
        assert back.cwd == "/tmp/odd\nname"
        assert back.checkpoint_dir == "/tmp/a\rb\\n"


class TestParse:
    def test_values(self):
        assert parse_value('"x"') == "x"
        assert parse_value("17") == 17
        assert parse_value("0x1f") == 31
        assert parse_value("3.000004") == Timeval(3_000_004)
        with pytest.raises(RecordFormatError):
            parse_value("seventeen")

    def test_incomplete(self):
        text = format_record(_record())
        truncated = text.replace(COMPLETE_LINE + "\n", "")
        assert not parse_record(truncated).complete

    def test_complete_must_be_last(self):
        lines = format_record(_record()).splitlines()
        lines.insert(3, lines.pop())
        assert not parse_record("\n".join(lines)).complete

    def test_duplicate(self):
        with pytest.raises(RecordFormatError):
            parse_assignments("h = 3 ;\nh = 5 ;\n")

    def test_malformed_line(self):
        with pytest.raises(RecordFormatError):
            parse_assignments("h = 3\n")

    def test_missing_field(self):
        text = format_record(_record()).replace("v1 = 5 ;\n", "")
        with pytest.raises(RecordFormatError):
            parse_record(text)

    def test_wrong_type(self):
        text = format_record(_record()).replace("i = 42 ;", 'i = "42" ;')
        with pytest.raises(RecordFormatError):
            parse_record(text)

    def test_read_file(self, tmp_path):
        path = tmp_path / "chk.cur.pt"
        path.write_text(format_record(_record(i=7)))
        assert read_record(str(path)).i == 7
