"""Command-line entrypoint for the newsroom pipeline.

Subcommands:
1) ``init-db``: create the schema
2) ``load-sources``: upsert the feed registry from YAML
3) ``run``: one guarded pipeline run (same path as the cron endpoint)
4) ``serve``: start the HTTP API with uvicorn
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Optional, Sequence

from .utils.logging import configure_logging, get_logger


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Newsroom: fetch, cluster and enrich multilingual news feeds")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (defaults to LOG_LEVEL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the pipeline once")
    run.add_argument("--force", action="store_true", help="Bypass the minimum run interval")

    serve = sub.add_parser("serve", help="Serve the cron trigger and read API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    load = sub.add_parser("load-sources", help="Upsert feed sources from a YAML file")
    load.add_argument(
        "--config",
        default="config/sources.yaml",
        help="Path to sources configuration file (YAML)",
    )

    sub.add_parser("init-db", help="Create database tables")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    from dotenv import load_dotenv

    load_dotenv(override=False)
    args = parse_args(argv)
    configure_logging(level=args.log_level)
    logger = get_logger("newsroom.main")

    from .context import build_context

    if args.command == "serve":
        import uvicorn

        from .api import create_app

        uvicorn.run(create_app(build_context()), host=args.host, port=args.port)
        return 0

    try:
        ctx = build_context()
    except Exception as exc:  # noqa: BLE001 - top-level entrypoint guard
        logger.exception("Failed to initialise: %s", exc)
        return 1

    if args.command == "init-db":
        logger.info("Schema ready")
        return 0

    if args.command == "load-sources":
        from .utils.config_loader import ConfigError, load_sources_config

        config_path = Path(args.config)
        logger.info("Loading sources configuration from %s", config_path)
        try:
            sources = load_sources_config(config_path)
        except (ConfigError, OSError) as exc:
            logger.error("Failed to load configuration: %s", exc)
            return 1
        count = ctx.store.upsert_sources(sources)
        logger.info("Upserted %d source(s)", count)
        return 0

    result = ctx.new_trigger().trigger(force=args.force)
    print(json.dumps(result.body, indent=2, default=str))
    return 0 if result.status_code < 400 else 1


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    raise SystemExit(main())
