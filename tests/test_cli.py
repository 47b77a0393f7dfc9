from datetime import datetime

import pytest

from tools.run_speedtest import build_argparser, check_args, main, parse_start_at, settings_from_args


def test_bad_count_exits_before_any_prompt(capsys):
    assert main(["-r", "-q", "-c", "0"]) == 2
    assert "between 1 and 254" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [["-r", "--leave", "--pbl"], ["--pbl"]])
def test_conflicting_flags(argv):
    ap = build_argparser()
    with pytest.raises(SystemExit):
        check_args(ap, ap.parse_args(argv))


def test_args_map_onto_settings():
    ap = build_argparser()
    args = ap.parse_args(["-r", "--leave", "-l", "10.0.0.6", "-n", "231.1.2.10", "-c", "5", "-t", "9"])
    s = settings_from_args(args)
    assert s.include_leave and s.timeout_s == 9
    assert s.groups() == [f"231.1.2.{i}" for i in range(10, 15)]


def test_parse_start_at_accepts_time_of_day():
    dt = parse_start_at("23:59:30")
    assert (dt.hour, dt.minute, dt.second) == (23, 59, 30)
    assert dt.date() == datetime.now().date()
    assert parse_start_at("2030-01-02T03:04:05") == datetime(2030, 1, 2, 3, 4, 5)


def test_setup_logger_is_idempotent(tmp_path):
    from igmpspeed.logger_config import setup_logger

    log_file = tmp_path / "run.log"
    a = setup_logger("igmpspeed.test", log_file=str(log_file))
    b = setup_logger("igmpspeed.test", log_file=str(log_file))
    assert a is b
    assert len(a.handlers) == 2
    a.info("hello")
    for h in a.handlers:
        h.flush()
    assert "[INFO] hello" in log_file.read_text()


def test_pause_before_leave_prompt_can_be_interrupted(monkeypatch):
    import signal

    import tools.run_speedtest as cli
    from igmpspeed.schemas import ResultsSnapshot

    class StubEngine:
        def __init__(self, settings):
            self.settings = settings

        def abort(self):
            pass

        def run(self, before_close=None):
            # while measuring, ^C is routed to abort()
            assert signal.getsignal(signal.SIGINT) is not signal.default_int_handler
            snap = ResultsSnapshot(join_time={"230.8.97.1": 900}, has_results=True, is_complete=True,
                                   fastest_join=900.0, average_join=900.0, slowest_join=900.0)
            before_close(snap)
            return snap

    handlers_at_prompt = []
    monkeypatch.setattr(cli, "MeasurementEngine", StubEngine)
    monkeypatch.setattr("builtins.input", lambda prompt="": handlers_at_prompt.append(
        signal.getsignal(signal.SIGINT)))

    ap = build_argparser()
    args = ap.parse_args(["-r", "--pbl", "-q"])
    original = signal.getsignal(signal.SIGINT)
    try:
        assert cli.run_receiver(args, settings_from_args(args)) == 0
    finally:
        signal.signal(signal.SIGINT, original)

    assert handlers_at_prompt == [signal.default_int_handler]
