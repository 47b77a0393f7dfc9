# tools/run_speedtest.py
# Usage examples:
#   python3 -m tools.run_speedtest -l 10.0.0.5 -n 230.8.97.1 -c 20 -t 10          (emit)
#   python3 -m tools.run_speedtest -r -l 10.0.0.6 -n 230.8.97.1 -c 20 -t 10       (receive, JOIN)
#   python3 -m tools.run_speedtest -r --leave -l 10.0.0.6 -c 20 -q --json         (JOIN + LEAVE)
#
# Notes:
# - Emitter and receiver must run on different hosts; multicast loopback skews results.
# - --leave captures in promiscuous mode (libpcap via scapy), so it needs root / CAP_NET_RAW.

import argparse
import logging
import signal
import sys
from datetime import datetime, time as dtime

from igmpspeed.brain.controller import MeasurementEngine
from igmpspeed.clock import MonotonicClock
from igmpspeed.config import ConfigError, Settings
from igmpspeed.emitter import Emitter
from igmpspeed.logger_config import setup_logger
from igmpspeed.report import render_json, render_text
from igmpspeed.source.base import TransportError

log = logging.getLogger("igmpspeed")


def parse_start_at(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.combine(datetime.now().date(), dtime.fromisoformat(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Cannot parse start time: {value}") from None


def build_argparser():
    ap = argparse.ArgumentParser(description="Multicast JOIN/LEAVE speed test")
    ap.add_argument("-l", "--local", default="127.0.0.1", help="IP address of local NIC to use")
    ap.add_argument("-n", "--network", default="230.8.97.1", help="Starting multicast group address")
    ap.add_argument("-c", "--count", type=int, default=1, help="Number of multicast streams to test")
    ap.add_argument("--leave", action="store_true", help="Include LEAVE tests (needs packet capture)")
    ap.add_argument("-r", "--receiver", action="store_true",
                    help="This instance will JOIN the streams instead of emitting them")
    ap.add_argument("-t", "--timeout", type=int, default=5,
                    help="Seconds to wait for data to arrive on multicast before quitting")
    ap.add_argument("--ttl", type=int, default=32, help="Time to live for emitted packets")
    ap.add_argument("--port", type=int, default=1234, help="UDP port of the streams")
    ap.add_argument("--rate", type=float, default=0.0, help="Emitter rounds per second (0 = flat out)")
    ap.add_argument("-q", "--quiet", action="store_true", help="Just do it, dont ask")
    ap.add_argument("--json", action="store_true", help="Output results in JSON")
    ap.add_argument("--pbl", action="store_true", help="Pause before issuing LEAVE messages")
    ap.add_argument("--startat", type=parse_start_at, default=None, help="Time to start (ISO format)")
    ap.add_argument("--log-file", default=None, help="Also write log lines here")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def check_args(ap, args):
    if args.pbl and args.leave:
        ap.error("Cannot select both --leave and --pbl")
    if args.pbl and not args.receiver:
        ap.error("Pause Before Leave (--pbl) only applies when running in receiver (-r) mode")


def settings_from_args(args) -> Settings:
    return Settings(
        local_ip=args.local,
        first_group=args.network,
        count=args.count,
        timeout_s=args.timeout,
        ttl=args.ttl,
        include_leave=args.leave,
        port=args.port,
        quiet=args.quiet,
        start_at=args.startat,
        rate_hz=args.rate,
    )


def wait_for_start(s: Settings, receiver: bool, clock=None):
    groups = s.groups()
    if not s.quiet:
        span = groups[0] + (f" - {groups[-1]}" if len(groups) > 1 else "")
        noun = "stream" if len(groups) == 1 else "streams"
        print(f"Prepared to {'receive' if receiver else 'emit'} {len(groups)} {noun}: {span}")
        if s.start_at is None:
            input("Press ENTER to continue or ^C to abort...")

    if s.start_at is not None:
        remaining = (s.start_at - datetime.now()).total_seconds()
        if not s.quiet:
            print(f"Will start automatically in {remaining:.1f}s (at {s.start_at})")
        if remaining > 0:
            (clock or MonotonicClock()).sleep(remaining)


def run_receiver(args, s: Settings) -> int:
    engine = MeasurementEngine(s)
    signal.signal(signal.SIGINT, lambda *_: engine.abort())

    def pause_before_leave(snapshot):
        print(render_json(snapshot) if args.json else render_text(
            snapshot, include_leave=False, quiet=args.quiet, groups=s.groups()))
        # measuring is over; ^C must be able to leave the prompt again
        signal.signal(signal.SIGINT, signal.default_int_handler)
        input("Press ENTER to issue LEAVE messages then quit...")

    if args.pbl:
        engine.run(before_close=pause_before_leave)
        return 0

    snapshot = engine.run()
    if args.json:
        print(render_json(snapshot))
    else:
        print(render_text(snapshot, include_leave=s.include_leave, quiet=args.quiet, groups=s.groups()))
    return 0


def run_emitter(s: Settings) -> int:
    emitter = Emitter(s)
    if not s.quiet:
        print(f"Timing measurements accurate within {MonotonicClock.resolution_ns():.0f} nanoseconds")
        print("Emitting.  Press ^C to quit.")
    signal.signal(signal.SIGINT, lambda *_: emitter.stop())
    summary = emitter.run()
    if not s.quiet:
        print(f"Exiting after timeout period.  Each stream received {summary['packets_per_stream']} packets.")
    return 0


def main(argv=None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)
    check_args(ap, args)

    setup_logger("igmpspeed", log_file=args.log_file,
                 level=logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO)

    s = settings_from_args(args)
    try:
        s.validate(check_start=True)
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 2

    try:
        wait_for_start(s, args.receiver)
        return run_receiver(args, s) if args.receiver else run_emitter(s)
    except TransportError as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
