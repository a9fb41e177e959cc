import io
import json
import logging

import pytest

import config
import main as entry_point
from config import get_settings
from main import EXIT_DATA_ERROR, EXIT_IO_ERROR, EXIT_OK, EXIT_USAGE, configure_logging, main, run


@pytest.fixture(autouse=True)
def testing_environment(monkeypatch):
    """Run the CLI with the testing profile and a fresh settings cache."""
    monkeypatch.setenv("PAYMENTS_ENV", "testing")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    # Detach from streams captured for this test.
    configure_logging(config.TestingSettings(), stream=io.StringIO())


@pytest.fixture
def write_input(tmp_path):
    def _write(text, name="transactions.csv"):
        path = tmp_path / name
        path.write_text(text)
        return str(path)
    return _write


class TestCommandLine:
    """Test the command line entry point."""

    def test_processes_file(self, write_input, capsys):
        path = write_input(
            "type, client, tx, amount\n"
            "deposit, 1, 1, 1.0\n"
            "deposit, 2, 2, 2.0\n"
            "deposit, 1, 3, 2.0\n"
            "withdrawal, 1, 4, 1.5\n"
            "withdrawal, 2, 5, 3.0\n"
        )

        assert main([path]) == EXIT_OK

        out = capsys.readouterr().out
        assert out == (
            "client,available,held,total,locked\n"
            "1,1.5000,0.0000,1.5000,false\n"
            "2,2.0000,0.0000,2.0000,false\n"
        )

    def test_dispute_lifecycle(self, write_input, capsys):
        path = write_input(
            "type,client,tx,amount\n"
            "deposit,1,0,5.0\n"
            "deposit,1,1,5.0\n"
            "dispute,1,0,\n"
            "chargeback,1,0,\n"
            "deposit,2,2,10\n"
            "dispute,2,2,\n"
            "resolve,2,2,\n"
            "dispute,3,0,\n"
        )

        assert main([path]) == EXIT_OK

        lines = capsys.readouterr().out.splitlines()
        assert lines[1:] == [
            "1,5.0000,0.0000,5.0000,true",
            "2,10.0000,0.0000,10.0000,false",
            "3,0.0000,0.0000,0.0000,false",
        ]

    def test_rejected_records_are_logged_not_printed(self, write_input, capsys):
        path = write_input(
            "type,client,tx,amount\n"
            "withdrawal,1,1,5.0\n"
            "deposit,1,2,\n"
            "deposit,1,3,-1\n"
        )

        assert main([path]) == EXIT_OK

        captured = capsys.readouterr()
        assert captured.out == (
            "client,available,held,total,locked\n"
            "1,0.0000,0.0000,0.0000,false\n"
        )
        assert "insufficient_balance" in captured.err
        assert "missing_amount" in captured.err
        assert "incorrect_amount" in captured.err

    @pytest.mark.parametrize("argv", [[], ["a.csv", "b.csv"]])
    def test_wrong_argument_count(self, argv, capsys):
        assert main(argv) == EXIT_USAGE

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "usage" in captured.err

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.csv")]) == EXIT_IO_ERROR

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Unable to read input file" in captured.err

    def test_malformed_record_produces_no_output(self, write_input, capsys):
        path = write_input(
            "type,client,tx,amount\n"
            "deposit,1,1,1.0\n"
            "deposit,1,2\n"
        )

        assert main([path]) == EXIT_DATA_ERROR

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Malformed input record" in captured.err

    def test_oversized_amount_produces_no_output(self, write_input, capsys):
        """An amount beyond the accepted digits aborts the run before any output."""
        path = write_input(
            "type,client,tx,amount\n"
            "deposit,1,1,5\n"
            "deposit,1,2,1000000000000000000000000\n"
        )

        assert main([path]) == EXIT_DATA_ERROR

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Malformed input record" in captured.err

    def test_byte_order_mark_is_ignored(self, tmp_path, capsys):
        path = tmp_path / "bom.csv"
        path.write_bytes(b"\xef\xbb\xbftype,client,tx,amount\ndeposit,1,1,1\n")

        assert main([str(path)]) == EXIT_OK
        assert "1,1.0000,0.0000,1.0000,false" in capsys.readouterr().out


class TestRun:
    """Test run() with explicit settings."""

    def test_lock_policy(self, write_input):
        path = write_input(
            "type,client,tx,amount\n"
            "deposit,1,1,5\n"
            "dispute,1,1,\n"
            "chargeback,1,1,\n"
            "deposit,1,2,5\n"
        )

        default_out = io.StringIO()
        assert run(path, config.TestingSettings(), out=default_out) == EXIT_OK
        assert "1,5.0000,0.0000,5.0000,true" in default_out.getvalue()

        strict_out = io.StringIO()
        strict = config.TestingSettings(reject_locked_account_transactions=True)
        assert run(path, strict, out=strict_out) == EXIT_OK
        assert "1,0.0000,0.0000,0.0000,true" in strict_out.getvalue()

    def test_unsorted_output(self, write_input):
        path = write_input(
            "type,client,tx,amount\n"
            "deposit,9,1,1\n"
            "deposit,3,2,1\n"
        )
        out = io.StringIO()

        run(path, config.TestingSettings(sort_output=False), out=out)

        clients = [line.split(",")[0] for line in out.getvalue().splitlines()[1:]]
        assert clients == ["9", "3"]

    def test_precision(self, write_input):
        path = write_input("type,client,tx,amount\ndeposit,1,1,1.23456\n")
        out = io.StringIO()

        run(path, config.TestingSettings(output_precision=2), out=out)

        assert "1,1.23,0.00,1.23,false" in out.getvalue()


class TestLogging:
    """Test logging configuration."""

    def test_json_lines_on_stream(self, write_input):
        stream = io.StringIO()
        configure_logging(config.TestingSettings(log_format="json", log_level="ERROR"), stream=stream)

        path = write_input("type,client,tx,amount\nwithdrawal,4,1,1\n")
        run(path, config.TestingSettings(), out=io.StringIO())

        entries = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert len(entries) == 1
        assert entries[0]["event"] == "Failed transaction"
        assert entries[0]["level"] == "error"
        assert entries[0]["transaction"]["client"] == 4

    def test_run_keeps_logs_off_stdout(self, write_input, capsys):
        """run() without prior configuration logs to stderr, never into the account output."""
        logging.getLogger().removeHandler(entry_point._log_handler)
        entry_point._log_handler = None

        path = write_input("type,client,tx,amount\ndeposit,1,1,1\n")
        assert run(path, config.TestingSettings(log_level="INFO")) == EXIT_OK

        captured = capsys.readouterr()
        assert captured.out == (
            "client,available,held,total,locked\n"
            "1,1.0000,0.0000,1.0000,false\n"
        )
        assert "Processing started" in captured.err
        assert "1.0.0" in captured.err

    def test_level_is_applied(self):
        configure_logging(config.TestingSettings(log_level="DEBUG"), stream=io.StringIO())

        assert logging.getLogger().level == logging.DEBUG
