# Explanation:
# Command line entry point that issues one logical call against the platform
# API using the configured credential, then prints the decoded response body.

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional, Sequence

from config.config import settings
from integration.platform_api_client import OutboundRequest, create_platform_api_client
from integration.platform_errors import decode_body
from utils import observability


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Call the platform API once")
    parser.add_argument("method", help="HTTP method, e.g. GET or POST")
    parser.add_argument("path", help="Request path relative to PLATFORM_API_URL")
    parser.add_argument("--data", help="JSON request body", default=None)
    parser.add_argument(
        "--timeout", type=float, default=None, help="Base timeout in seconds"
    )
    parser.add_argument(
        "--max-retries", type=int, default=None, help="Override the retry budget"
    )
    return parser.parse_args(list(argv) if argv is not None else None)


async def _run_once(args: argparse.Namespace) -> int:
    body: Any = json.loads(args.data) if args.data else None
    async with create_platform_api_client(
        settings, timeout=args.timeout, max_retries=args.max_retries
    ) as client:
        outcome = await client.call(
            OutboundRequest(method=args.method, path=args.path, body=body)
        )

    if outcome.ok:
        payload = outcome.json()
        print(json.dumps(payload, indent=2) if payload is not None else "")
        return 0

    error = outcome.error
    logging.getLogger(__name__).error(
        "Call failed (kind=%s, status=%s, attempts=%d)",
        outcome.kind.value if outcome.kind else "unknown",
        outcome.status_code,
        outcome.attempts,
    )
    if error is not None and error.response is not None:
        print(json.dumps(decode_body(error.response), indent=2), file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    observability.init_logging(settings.log_level)
    args = _parse_args(argv)
    return asyncio.run(_run_once(args))


if __name__ == "__main__":
    sys.exit(main())
