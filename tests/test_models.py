"""Tests for rbspy data models."""

from datetime import timedelta
from pathlib import Path

import pytest

from rbspy.errors import UnknownFormatError
from rbspy.models import (
    OutputFormat,
    PidTarget,
    Record,
    Report,
    Snapshot,
    SubprocessTarget,
)


def make_record(**overrides) -> Record:
    fields = {
        "target": PidTarget((42,)),
        "out_path": Path("out.svg"),
        "raw_path": Path("raw.gz"),
        "sample_rate": 100,
        "duration": timedelta(seconds=10),
        "format": OutputFormat.FLAMEGRAPH,
    }
    fields.update(overrides)
    return Record(**fields)


class TestOutputFormat:
    """Tests for OutputFormat tokens."""

    @pytest.mark.parametrize(
        "token",
        ["flamegraph", "callgrind", "speedscope", "summary", "summary_by_line"],
    )
    def test_token_round_trip(self, token):
        """Test every canonical token maps to a format and back."""
        assert OutputFormat.from_token(token).value == token

    def test_members(self):
        """Test OutputFormat has exactly the five formats."""
        assert len(list(OutputFormat)) == 5
        assert OutputFormat.from_token("summary_by_line") is OutputFormat.SUMMARY_BY_LINE

    @pytest.mark.parametrize("token", ["json", "Flamegraph", "", "summary-by-line"])
    def test_unknown_token(self, token):
        """Test tokens outside the fixed set are rejected, not defaulted."""
        with pytest.raises(UnknownFormatError) as excinfo:
            OutputFormat.from_token(token)
        assert excinfo.value.field == "format"
        assert excinfo.value.token == token


class TestTarget:
    """Tests for the two target variants."""

    def test_pid_target(self):
        """Test PidTarget keeps pids in order."""
        target = PidTarget((3, 1, 2))
        assert target.pids == (3, 1, 2)

    def test_pid_target_requires_pid(self):
        """Test PidTarget cannot be empty."""
        with pytest.raises(ValueError):
            PidTarget(())

    @pytest.mark.parametrize("pid", [0, -1, 2**31])
    def test_pid_target_range(self, pid):
        """Test PidTarget rejects pids outside pid_t's positive range."""
        with pytest.raises(ValueError):
            PidTarget((pid,))

    def test_subprocess_target(self):
        """Test SubprocessTarget defaults to no arguments."""
        target = SubprocessTarget("ruby")
        assert target.prog == "ruby"
        assert target.args == ()

    def test_subprocess_target_requires_program(self):
        """Test SubprocessTarget needs a program name."""
        with pytest.raises(ValueError):
            SubprocessTarget("", ("script.rb",))


class TestCommands:
    """Tests for the command dataclasses."""

    def test_record_flag_defaults(self):
        """Test the three record switches default to False."""
        record = make_record()
        assert record.no_drop_root is False
        assert record.with_subprocesses is False
        assert record.silent is False

    def test_record_is_frozen(self):
        """Test Record is immutable."""
        record = make_record()
        with pytest.raises(AttributeError):
            record.sample_rate = 1

    def test_commands_use_slots(self):
        """Test command dataclasses don't have __dict__."""
        assert not hasattr(Snapshot(pid=1), "__dict__")
        assert not hasattr(make_record(), "__dict__")

    def test_structural_equality(self):
        """Test equal fields give equal commands."""
        assert make_record() == make_record()
        assert make_record() != make_record(silent=True)
        assert Report(OutputFormat.SUMMARY, Path("a"), Path("b")) == Report(
            OutputFormat.SUMMARY, Path("a"), Path("b")
        )
