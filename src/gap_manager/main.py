#!/usr/bin/env python3
"""
gap-manager: Live race order and gap estimation

Main entry point. This service:
1. Reads telemetry snapshots, one JSON object per line (file or stdin)
2. Tracks per-car checkpoint history
3. Estimates corrected positions, gap to car ahead and gap to leader
4. Publishes each report to a file (atomic) and/or stdout
5. Optionally serves status and the latest report over HTTP

Usage:
    # Pipe live telemetry from the ingest bridge
    telemetry-bridge | gap-manager --input - --report-path /dev/shm/gap_report.json

    # Replay a recorded session
    gap-manager --input session.jsonl --stdout --no-report

Input line format:
    {"CarIdxLap": [...], "CarIdxLapCompleted": [...],
     "CarIdxLapDistPct": [...], "CarIdxPosition": [...], "SessionTime": 123.4}
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, IO, Optional

# Set up logging before imports that use it
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('gap-manager')

from .config import GapEngineConfig, load_config
from .engine.live_gap_engine import LiveGapEngine
from .interfaces.position_report import PositionReport
from .output.report_writer import LAYOUT_KEYED, LAYOUT_TELEMETRY, ReportWriter


def run_stream(
    engine: LiveGapEngine,
    stream: IO[str],
    writer: Optional[ReportWriter] = None,
    echo: Optional[IO[str]] = None
) -> int:
    """
    Process a stream of JSON-lines snapshots, one tick per line.

    Args:
        engine: Engine to feed
        stream: Text stream of JSON objects
        writer: Optional report file writer
        echo: Optional text stream to print each report to (telemetry layout)

    Returns:
        Number of reports produced
    """
    produced = 0
    for line_no, line in enumerate(stream, 1):
        line = line.strip()
        if not line:
            continue

        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            engine.record_rejected(f"line {line_no}: invalid JSON ({e})")
            continue

        if not isinstance(data, dict):
            engine.record_rejected(f"line {line_no}: expected a JSON object, got {type(data).__name__}")
            continue

        report = engine.process_telemetry(data)
        if report is None:
            continue

        produced += 1
        publish(report, engine.config, writer, echo)

    return produced


def publish(
    report: PositionReport,
    config: GapEngineConfig,
    writer: Optional[ReportWriter] = None,
    echo: Optional[IO[str]] = None
):
    """Send one report to the configured sinks."""
    if writer:
        writer.write(report)
    if echo:
        echo.write(json.dumps(report.to_telemetry(config.num_slots)) + '\n')
        echo.flush()


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command-line overrides to a loaded config dict."""
    engine_cfg = config.setdefault('engine', {})
    output_cfg = config.setdefault('output', {})

    if args.default_lap_time is not None:
        engine_cfg['default_lap_time_s'] = args.default_lap_time
    if args.num_slots is not None:
        output_cfg['num_slots'] = args.num_slots
    if args.report_path:
        output_cfg['report_path'] = args.report_path
    if args.health_port is not None:
        output_cfg['health_port'] = args.health_port
    if args.layout:
        output_cfg['layout'] = args.layout

    return config


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='gap-manager: Live race order and gap estimation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Read snapshots from stdin, write reports to the default file
    gap-manager --input -

    # Replay a recording and print reports
    gap-manager --input session.jsonl --stdout --no-report

    # Serve status on port 8080 while processing
    gap-manager --config /etc/gap-manager/config.toml --input - --health-port 8080
        """
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to TOML configuration file'
    )
    parser.add_argument(
        '--input', '-i',
        default='-',
        help='JSON-lines snapshot file, "-" for stdin (default: -)'
    )
    parser.add_argument(
        '--report-path',
        help='Report output file (overrides config)'
    )
    parser.add_argument(
        '--no-report',
        action='store_true',
        help='Do not write the report file'
    )
    parser.add_argument(
        '--layout',
        choices=[LAYOUT_KEYED, LAYOUT_TELEMETRY],
        help='Report file layout (default: keyed)'
    )
    parser.add_argument(
        '--stdout',
        action='store_true',
        help='Print each report as a JSON line on stdout'
    )
    parser.add_argument(
        '--num-slots',
        type=int,
        help='CarIdx array length in telemetry output (default: 64)'
    )
    parser.add_argument(
        '--default-lap-time',
        type=float,
        help='Lap time (s) assumed before a car records one (default: 90)'
    )
    parser.add_argument(
        '--health-port',
        type=int,
        help='HTTP port for health monitoring endpoint (0 to disable)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = apply_overrides(load_config(args.config), args)

    try:
        engine_config = GapEngineConfig.from_dict(config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    engine = LiveGapEngine(engine_config)
    output_cfg = config.get('output', {})

    writer = None
    if not args.no_report:
        writer = ReportWriter(
            output_cfg.get('report_path'),
            layout=output_cfg.get('layout', LAYOUT_KEYED),
            num_slots=engine_config.num_slots
        )

    health_server = None
    health_port = output_cfg.get('health_port', 0)
    if health_port and health_port > 0:
        from .output.health_server import HealthServer
        health_server = HealthServer(port=health_port, num_slots=engine_config.num_slots)
        health_server.set_engine(engine)
        health_server.start()

    echo = sys.stdout if args.stdout else None

    try:
        if args.input == '-':
            produced = run_stream(engine, sys.stdin, writer, echo)
        else:
            with open(args.input, 'r') as f:
                produced = run_stream(engine, f, writer, echo)
    except FileNotFoundError:
        logger.error(f"Input file not found: {args.input}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        produced = engine.stats['ticks']
    finally:
        if health_server:
            health_server.stop()

    logger.info(f"Produced {produced} reports")
    engine.log_summary()
    return 0


if __name__ == '__main__':
    sys.exit(main())
