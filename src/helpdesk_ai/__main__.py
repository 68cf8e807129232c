"""
Helpdesk AI command line
========================

    python -m helpdesk_ai serve                 # run the escalation scheduler until stopped
    python -m helpdesk_ai triage TICKET [...]   # triage tickets now
    python -m helpdesk_ai reindex               # rebuild all article embeddings
    python -m helpdesk_ai sweep                 # run one escalation sweep
    python -m helpdesk_ai metrics               # print suggestion and escalation metrics
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import timedelta
from typing import List, Optional

from helpdesk_ai.main import Services, application


async def _serve(services: Services, args: argparse.Namespace) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await stop.wait()
    return 0


async def _triage(services: Services, args: argparse.Namespace) -> int:
    results = await services.workflow.process_batch(args.ticket_ids, batch_size=args.batch_size)
    for result in results:
        print(json.dumps({
            "ticket_id": result.ticket_id,
            "trace_id": result.trace_id,
            "state": result.state,
            "auto_closed": result.auto_closed,
            "assigned_to": result.assigned_to,
            "escalations": result.escalations,
            "error": result.error,
        }))
    return 0 if all(result.succeeded for result in results) else 1


async def _reindex(services: Services, args: argparse.Namespace) -> int:
    summary = await services.store.generate_all()
    print(json.dumps(summary))
    return 0 if summary["errors"] == 0 else 1


async def _sweep(services: Services, args: argparse.Namespace) -> int:
    result = await services.escalation.run_periodic_sweep()
    print(result.model_dump_json())
    return 0


async def _metrics(services: Services, args: argparse.Namespace) -> int:
    timeframe = timedelta(hours=args.hours) if args.hours else None
    suggestion_metrics = await services.suggestions.metrics(timeframe)
    escalation_metrics = await services.escalation.metrics()
    print(json.dumps({
        "suggestions": suggestion_metrics.model_dump(mode="json"),
        "escalation": escalation_metrics.model_dump(mode="json"),
    }, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="helpdesk_ai", description="AI-assisted helpdesk triage")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("serve", help="Run the escalation scheduler until interrupted").set_defaults(
        handler=_serve, scheduler=True
    )

    triage = commands.add_parser("triage", help="Triage tickets")
    triage.add_argument("ticket_ids", nargs="+")
    triage.add_argument("--batch-size", type=int, default=None)
    triage.set_defaults(handler=_triage, scheduler=False)

    commands.add_parser("reindex", help="Rebuild article embeddings").set_defaults(
        handler=_reindex, scheduler=False
    )
    commands.add_parser("sweep", help="Run one escalation sweep").set_defaults(
        handler=_sweep, scheduler=False
    )

    metrics = commands.add_parser("metrics", help="Print metrics")
    metrics.add_argument("--hours", type=float, default=None, help="Only suggestions from the last N hours")
    metrics.set_defaults(handler=_metrics, scheduler=False)
    return parser


async def _main(args: argparse.Namespace) -> int:
    async with application(start_scheduler=args.scheduler) as services:
        return await args.handler(services, args)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
