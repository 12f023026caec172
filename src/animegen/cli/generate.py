"""CLI command for submitting a generation job and waiting for the result.

Usage:
    python -m animegen.cli.generate PROMPT [OPTIONS]

Examples:
    # Anonymous fast generation against a local server
    python -m animegen.cli.generate "anime girl with blue hair"

    # Authenticated quality generation, portrait
    python -m animegen.cli.generate "silver-haired knight" --user-id 3f2a... \\
        --quality quality --aspect-ratio 9:16

    # Submit only, do not wait
    python -m animegen.cli.generate "chibi cat" --no-wait
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from animegen.client.status_poller import AnimegenAPIError, AnimegenClient, StatusPoller
from animegen.core.config import Settings, configure_logging

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Submit an anime image generation job")

    parser.add_argument("prompt", help="Generation prompt (1-1000 characters)")
    parser.add_argument("--negative-prompt", help="What to avoid in the image")
    parser.add_argument("--quality", choices=["fast", "quality"], default="fast")
    parser.add_argument(
        "--aspect-ratio", choices=["1:1", "16:9", "9:16", "4:3", "3:4"], default="1:1"
    )
    parser.add_argument("--guidance", type=float, default=7.5, help="1-30 (default: 7.5)")
    parser.add_argument("--steps", type=int, default=20, help="1-50 (default: 20)")
    parser.add_argument("--seed", type=int, help="Deterministic seed")
    parser.add_argument("--tag", action="append", dest="tags", help="Tag (repeatable)")
    parser.add_argument("--private", action="store_true", help="Hide from other users")
    parser.add_argument(
        "--base-url",
        help="API origin (default: PUBLIC_BASE_URL or http://HOST:PORT)",
    )
    parser.add_argument("--user-id", help="Identity sent as X-User-Id (default: anonymous)")
    parser.add_argument("--no-wait", action="store_true", help="Print the job id and exit")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def build_payload(args: Namespace) -> dict:
    """Translate CLI arguments into a camelCase request body."""
    payload = {
        "prompt": args.prompt,
        "quality": args.quality,
        "aspectRatio": args.aspect_ratio,
        "guidance": args.guidance,
        "steps": args.steps,
        "isPrivate": args.private,
    }
    if args.negative_prompt:
        payload["negativePrompt"] = args.negative_prompt
    if args.seed is not None:
        payload["seed"] = args.seed
    if args.tags:
        payload["tags"] = args.tags
    return payload


def default_base_url(settings: Settings) -> str:
    if settings.public_base_url:
        return settings.public_base_url
    host = "localhost" if settings.host in ("0.0.0.0", "") else settings.host
    return f"http://{host}:{settings.port}"


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (completed or submitted), 1 (failed or API error),
        2 (timed out), 130 (interrupted)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    base_url = args.base_url or default_base_url(settings)

    async with AnimegenClient(base_url, user_id=args.user_id) as client:
        try:
            submitted = await client.submit(build_payload(args))
            job_id = submitted["jobId"]
            print(f"Job submitted: {job_id}")

            if args.no_wait:
                return 0

            poller = StatusPoller(
                client,
                interval=settings.poll_interval_seconds,
                max_wait=settings.poll_timeout_seconds,
            )

            def report(payload: dict) -> None:
                logger.debug("cli.status", job_id=job_id, status=payload.get("status"))

            result = await poller.wait(job_id, on_update=report)

        except AnimegenAPIError as e:
            logger.error("cli.api_error", status_code=e.status_code, payload=e.payload)
            print(f"\nError: {e}", file=sys.stderr)
            if e.status_code == 429 and "resetTime" in e.payload:
                print(f"Rate limit resets at {e.payload['resetTime']} (epoch ms)", file=sys.stderr)
            return 1

        except KeyboardInterrupt:
            logger.info("cli.interrupted")
            print("\nInterrupted by user", file=sys.stderr)
            return 130

    if result.timed_out:
        print(f"\n{result.error}", file=sys.stderr)
        return 2

    if not result.succeeded:
        print(f"\nGeneration failed: {result.error or 'Unknown error'}", file=sys.stderr)
        return 1

    image = result.image or {}
    print("\n" + "=" * 60)
    print("Generation Complete")
    print("=" * 60)
    print(f"Image id: {image.get('id')}")
    print(f"URL: {image.get('url')}")
    print(f"Size: {image.get('width')}x{image.get('height')} ({image.get('aspectRatio')})")
    print("=" * 60 + "\n")
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
