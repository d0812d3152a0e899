"""
ProspectOS - company research from the command line.

Usage:
    python main.py "Acme Corp" jane@acme.io
    python main.py "Acme Corp" jane@acme.io --sources site jobs --no-summaries
    python main.py --status job-0123456789ab
    python main.py --cancel job-0123456789ab
"""

import argparse
import json
import sys
from concurrent.futures import TimeoutError as WaitTimeout

from dotenv import load_dotenv

from backend import create_service
from backend.utils.logger import configure_engine_logging
from config.settings import get_settings
from src.intelligence.errors import InvalidRequest
from src.intelligence.models.content import SourceKey

# Load environment variables
load_dotenv()


def main(argv=None):
    parser = argparse.ArgumentParser(description="ProspectOS Company Research")
    parser.add_argument("company", nargs="?", help="Company name")
    parser.add_argument("email", nargs="?", help="Contact email at the company")
    parser.add_argument(
        "--sources",
        nargs="+",
        choices=[s.value for s in SourceKey],
        help="Sources to research (default: all)",
    )
    parser.add_argument(
        "--no-summaries",
        action="store_true",
        help="Skip AI summaries",
    )
    parser.add_argument(
        "--requester",
        help="Who asked for the research",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Seconds to wait for the report",
    )
    parser.add_argument(
        "--output",
        help="Write the status JSON to this file instead of stdout",
    )
    parser.add_argument("--status", metavar="JOB_ID", help="Show a stored job")
    parser.add_argument("--cancel", metavar="JOB_ID", help="Cancel a job")

    args = parser.parse_args(argv)

    settings = get_settings()
    if args.no_summaries:
        settings.include_summaries = False

    configure_engine_logging(settings.log_dir, settings.log_level)

    # Lookups and cancellation must not resume other unfinished jobs
    service = create_service(settings, recover=not (args.status or args.cancel))
    try:
        if args.status:
            result = service.get_job_status(args.status)
            if result is None:
                print(f"Job not found: {args.status}", file=sys.stderr)
                return 1
        elif args.cancel:
            cancelled = service.cancel_job(args.cancel)
            print("cancelled" if cancelled else "not cancelled (unknown or already finished)")
            return 0 if cancelled else 1
        else:
            if not args.company or not args.email:
                parser.error("company and email are required")
            try:
                job_id = service.start_research(args.company, args.email, args.sources, args.requester)
            except InvalidRequest as e:
                print(f"Invalid request: {e}", file=sys.stderr)
                return 2
            try:
                result = service.wait_for_job(job_id, timeout=args.timeout)
            except WaitTimeout:
                status = service.get_job_status(job_id) or {}
                print(
                    f"Timed out after {args.timeout}s waiting for {job_id} (state: {status.get('state', 'unknown')}); "
                    f"check again with --status {job_id}",
                    file=sys.stderr,
                )
                return 3
    finally:
        service.shutdown()

    output = json.dumps(result, indent=2, sort_keys=True)
    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
    else:
        print(output)
    return 0 if result["state"] in ("complete", "partial") else 1


if __name__ == "__main__":
    sys.exit(main())
