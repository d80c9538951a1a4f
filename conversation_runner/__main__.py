"""
Command line entry point.

    python -m conversation_runner out --phone +15551234567
    python -m conversation_runner in --forward sip:desk@example.com
    python -m conversation_runner serve --concurrency 4
"""

import argparse
import asyncio
import sys

from .config import DEFAULT_CONFIG_PATH, load_config, validate_config
from .core.shutdown import ExitCode
from .logging_config import configure_logging, get_logger
from .runner import Runner

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="conversation-runner",
                                     description="Run conversation jobs against a conversation engine")
    parser.add_argument("--config-file", default=DEFAULT_CONFIG_PATH, help="YAML configuration file")
    sub = parser.add_subparsers(dest="mode", required=True)

    out = sub.add_parser("out", help="place one outbound call and exit")
    out.add_argument("-p", "--phone", required=True, help="phone or SIP URI to call to")
    out.add_argument("-c", "--config", dest="sip_config", default="default", help="SIP config name")
    out.add_argument("-f", "--forward", help="phone or SIP URI to forward the call to")
    out.add_argument("-v", "--verbose", action="store_true", help="show engine debug logs")

    inbound = sub.add_parser("in", help="wait for inbound SIP calls")
    inbound.add_argument("-f", "--forward", help="phone or SIP URI to forward the call to")
    inbound.add_argument("-v", "--verbose", action="store_true", help="show engine debug logs")

    serve = sub.add_parser("serve", help="accept conversation requests over HTTP")
    serve.add_argument("-n", "--concurrency", type=int, help="maximum simultaneous conversations")
    serve.add_argument("-v", "--verbose", action="store_true", help="show engine debug logs")

    return parser.parse_args(argv)


def build_runner(args: argparse.Namespace) -> Runner:
    config = load_config(args.config_file)
    configure_logging(log_level="DEBUG" if args.verbose else config.logging.level)

    if args.verbose:
        config.observers.verbose = True
    if args.mode == "out":
        config.session.sip_config = args.sip_config
    elif args.mode == "in" and not config.session.sip_config:
        config.session.sip_config = "default"
    elif args.mode == "serve" and args.concurrency:
        config.queue.concurrency = args.concurrency

    errors, warnings = validate_config(config)
    if errors:
        logger.error("Configuration validation failed", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)

    return Runner(config, args.mode, phone=getattr(args, "phone", None), forward=args.forward if args.mode != "serve" else None)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        runner = build_runner(args)
        return asyncio.run(runner.run())
    except Exception as exc:
        logger.error("App encountered an error - uncaught exception", error=str(exc), exc_info=True)
        return int(ExitCode.FATAL)


if __name__ == "__main__":
    sys.exit(main())
