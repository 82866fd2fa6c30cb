from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="asyncreq",
        description="Asynchronous request lifecycle server and simulator.",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: ASYNCREQ_LOG_LEVEL or INFO).")
    parser.add_argument("--env-file", default=None, help="Load environment variables from this file first.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP server.")
    serve.add_argument("--host", default=None, help="Host to bind to (default: ASYNCREQ_HOST).")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on (default: ASYNCREQ_PORT).")

    simulate = sub.add_parser("simulate", help="Run concurrent requests in-process and check outcomes.")
    simulate.add_argument("--requests", type=int, default=100, help="Concurrent requests.")
    simulate.add_argument("--timeout", type=float, default=8.0, help="Deadline in checkpoint units.")
    simulate.add_argument("--low", type=int, default=5, help="Shortest task, in checkpoint units.")
    simulate.add_argument("--high", type=int, default=11, help="Longest task, in checkpoint units.")
    simulate.add_argument("--fault-probability", type=float, default=0.5, help="Chance a task fails.")
    # Keep the default at 1s so the simulation matches the server's timing.
    simulate.add_argument("--checkpoint", type=float, default=1.0, help="Seconds per checkpoint unit.")
    simulate.add_argument("--seed", type=int, default=None, help="Random seed.")
    simulate.add_argument("--json", action="store_true", help="Print the report as JSON.")
    return parser.parse_args(argv)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from asyncreq.server.app import create_app
    from asyncreq.server.config import get_settings

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=(args.log_level or settings.log_level).lower(),
    )
    return 0


def _simulate(args: argparse.Namespace) -> int:
    from asyncreq.simulation import format_report, run_simulation

    report = run_simulation(
        requests=args.requests,
        timeout=args.timeout,
        low=args.low,
        high=args.high,
        fault_probability=args.fault_probability,
        checkpoint_interval=args.checkpoint,
        seed=args.seed,
    )
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report))
    return 0 if report.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    from asyncreq.server.config import get_settings

    _configure_logging(args.log_level or get_settings().log_level)

    if args.command == "serve":
        return _serve(args)
    return _simulate(args)


if __name__ == "__main__":
    sys.exit(main())
