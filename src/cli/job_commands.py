"""CLI commands for the media analysis service.

Provides commands for:
- Running the web API
- Processing a single URL in the foreground
- Checking that the external tools are installed
"""

import argparse
import importlib.util
import json
import logging
import os
import shutil
import sys

from ..config import Config
from ..workflow.config import QueueConfig
from ..workflow.factory import create_job_queue
from ..workflow.models import JobOptions, JobPayload, JobStatus

# Set up logging
logging.basicConfig(
    level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def serve(args, config: Config) -> int:
    """Run the web API under uvicorn until interrupted."""
    import uvicorn

    from ..web.app import create_app

    host = args.host or config.WEB_HOST
    port = args.port or config.WEB_PORT
    logger.info(f"Serving on {host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port)
    return 0


def process_url(args, config: Config) -> int:
    """
    Run one URL through a fresh job queue and print the job as JSON.

    Parameters:
        args: CLI arguments with url, no_transcript, no_analysis,
            webhook_url, max_attempts, timeout and output.
        config (Config): Application configuration.

    Returns:
        0 if the job completed, 1 otherwise.
    """
    queue_config = QueueConfig(
        concurrency_limit=1,
        max_attempts=args.max_attempts,
        max_queue_size=1,
    )
    job_queue = create_job_queue(config, queue_config)
    payload = JobPayload(
        url=args.url,
        options=JobOptions(
            include_transcript=not args.no_transcript,
            include_analysis=not args.no_analysis,
            webhook_url=args.webhook_url,
        ),
    )

    with job_queue:
        receipt = job_queue.submit(payload)
        print(f"Processing {args.url} (job {receipt.job_id})...", file=sys.stderr)
        job = job_queue.wait_for(receipt.job_id, timeout=args.timeout)
        if not job.status.is_terminal:
            job_queue.cancel(receipt.job_id, "Timed out waiting for completion")
            job = job_queue.wait_for(receipt.job_id)

    output = json.dumps(job.to_dict(), indent=2, default=str)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        print(f"Wrote result to {args.output}", file=sys.stderr)
    else:
        print(output)

    if job.status != JobStatus.COMPLETED:
        print(f"Job failed: {job.last_error}", file=sys.stderr)
        return 1
    return 0


def check_tools(args, config: Config) -> int:
    """Report whether every external executable the pipeline needs is on PATH.

    Returns:
        0 if all required tools were found, 1 otherwise.
    """
    missing = []
    for name, command in config.tool_paths().items():
        resolved = shutil.which(command)
        if resolved:
            print(f"  [ok]      {name}: {resolved}")
        else:
            print(f"  [missing] {name}: {command}")
            missing.append(name)

    if config.TRANSCRIPTION_BACKEND == "faster-whisper":
        if importlib.util.find_spec("faster_whisper") is not None:
            print("  [ok]      faster-whisper: installed")
        else:
            print("  [missing] faster-whisper: pip install faster-whisper")
            missing.append("faster-whisper")

    analysis = "configured" if config.analysis_configured else "not configured (analysis disabled)"
    print(f"  [info]    analysis: {analysis}")

    if missing:
        print(f"\nMissing: {', '.join(missing)}")
        return 1
    print("\nAll tools available")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="Media analysis service CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--env-file",
        help="Path to .env file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the web API",
    )
    serve_parser.add_argument("--host", help="Bind address (default: HOST or 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port (default: PORT or 8080)")

    # process command
    process_parser = subparsers.add_parser(
        "process",
        help="Process one media URL and print the result",
    )
    process_parser.add_argument("url", help="Media URL")
    process_parser.add_argument(
        "--no-transcript",
        action="store_true",
        help="Skip audio extraction and transcription",
    )
    process_parser.add_argument(
        "--no-analysis",
        action="store_true",
        help="Skip AI content analysis",
    )
    process_parser.add_argument(
        "--webhook-url",
        help="URL notified when the result is ready",
    )
    process_parser.add_argument(
        "--max-attempts",
        type=int,
        default=1,
        help="Attempts before giving up (default: 1)",
    )
    process_parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait before cancelling the job",
    )
    process_parser.add_argument(
        "--output",
        "-o",
        help="Write the JSON result to this file instead of stdout",
    )

    # check-tools command
    subparsers.add_parser(
        "check-tools",
        help="Verify that yt-dlp, ffmpeg and the transcription backend are available",
    )

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load configuration
    config = Config(env_file=args.env_file)

    # Route to appropriate command
    commands = {
        "serve": serve,
        "process": process_url,
        "check-tools": check_tools,
    }

    command_func = commands.get(args.command)
    if command_func:
        sys.exit(command_func(args, config))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
