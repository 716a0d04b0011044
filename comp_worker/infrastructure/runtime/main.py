"""Main entrypoint: run one calculation batch over a file store."""

import argparse
import asyncio
import sys

import structlog

from comp_worker.infrastructure.config.settings import Settings
from comp_worker.infrastructure.runtime.bootstrap import build_file_service

logger = structlog.get_logger()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a variable pay calculation batch")
    parser.add_argument("--root", required=True, help="File store root directory")
    parser.add_argument("--tenant", required=True)
    parser.add_argument("--period", required=True)
    parser.add_argument("--rule-set", required=True, dest="rule_set_id")
    parser.add_argument("--batch-id", default=None)
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    """Run the batch and print the result as JSON."""
    service = build_file_service(args.root, Settings())
    try:
        result = await service.run_calculation(
            args.tenant,
            args.period,
            args.rule_set_id,
            batch_id=args.batch_id,
        )
    except Exception as e:
        logger.error("worker_run_failed", error=str(e))
        return 1

    print(result.model_dump_json(by_alias=True, indent=2))
    return 0


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    sys.exit(asyncio.run(main_async(_parse_args(argv))))


if __name__ == "__main__":
    main()
