"""Command line runner for the cover traffic job.

Usage:
    python -m keyupload cover-traffic --once
    python -m keyupload cover-traffic
"""

from __future__ import annotations

import argparse
import asyncio

from keyupload.config import get_settings
from keyupload.controller import build_upload_controller
from keyupload.core.logging import configure_logging, get_logger
from keyupload.cover_traffic import CoverTrafficWorker, StaticExposureApiStatus, schedule_cover_traffic
from keyupload.jobs import AsyncioJobScheduler, JobResult


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="keyupload", description="Diagnosis key upload engine")
    subparsers = parser.add_subparsers(dest="command", required=True)
    cover = subparsers.add_parser("cover-traffic", help="Generate cover traffic")
    cover.add_argument("--once", action="store_true", help="Run a single tick and exit")
    return parser


async def run_cover_traffic(once: bool) -> int:
    settings = get_settings()
    logger = get_logger(__name__)
    controller = build_upload_controller(settings)
    scheduler = AsyncioJobScheduler(connectivity=controller.connectivity, executors=controller.executors)
    worker = CoverTrafficWorker(
        controller=controller,
        exposure_api=StaticExposureApiStatus(settings.exposure_api_enabled),
        job_scheduler=scheduler,
        executors=controller.executors,
        settings=settings,
    )
    try:
        if once:
            result = await worker.run()
            logger.info("cli.cover_traffic_tick", result=result.value, state=worker.last_state.value)
            return 0 if result == JobResult.SUCCESS else 1
        record = schedule_cover_traffic(scheduler, worker)
        await record.task
        return 0
    finally:
        await scheduler.shutdown()
        controller.executors.shutdown(wait=False)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json_output)
    if args.command == "cover-traffic":
        return asyncio.run(run_cover_traffic(args.once))
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
