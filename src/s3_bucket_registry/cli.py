"""
Command line access to the bucket registry.

Usage:
    s3-bucket-registry -C registry.conf list
    s3-bucket-registry -C registry.conf list --endpoint ceph-a
    s3-bucket-registry -C registry.conf grouped
    s3-bucket-registry -C registry.conf info ceph-a logs
    s3-bucket-registry -C registry.conf watch
"""

from s3_bucket_registry.config import build_registry
from s3_bucket_registry.config import build_scheduler
from s3_bucket_registry.config import ConfigurationError
from s3_bucket_registry.config import load_config

import argparse
import json
import logging
import signal
import sys
import threading


logger = logging.getLogger(__name__)


def cmd_list(registry, args):
    if args.endpoint:
        names = registry.get_buckets_by_endpoint(args.endpoint)
    else:
        names = registry.get_all_buckets()
    for name in names:
        print(name)
    return 0


def cmd_grouped(registry, args):
    print(json.dumps(registry.get_grouped_buckets(), indent=2, sort_keys=True))
    return 0


def cmd_info(registry, args):
    details = registry.get_bucket_info(args.endpoint, args.bucket)
    if details is None:
        print(f"Bucket {args.bucket} not found on {args.endpoint}", file=sys.stderr)
        return 1
    print(json.dumps(details.to_dict(), indent=2, default=str))
    return 0


def cmd_watch(registry, config):
    if config.refresh_interval is None:
        print("watch needs refresh-interval in the configuration", file=sys.stderr)
        return 2
    scheduler = build_scheduler(config, registry)
    stopped = threading.Event()

    def _signal_handler(signum, frame):
        logger.info("Shutdown signal received, stopping scheduler")
        stopped.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    scheduler.start()
    logger.info(
        "Refreshing every %ss, press Ctrl+C to stop", config.refresh_interval
    )
    stopped.wait()
    scheduler.stop()
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="s3-bucket-registry",
        description="Aggregated metadata of buckets on S3-compatible endpoints",
    )
    parser.add_argument(
        "-C", "--config", required=True, help="ZConfig configuration file"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_p = subparsers.add_parser("list", help="List bucket names")
    list_p.add_argument("--endpoint", help="Only buckets of this endpoint URL or name")
    list_p.set_defaults(func=cmd_list)

    grouped_p = subparsers.add_parser("grouped", help="Bucket names per endpoint")
    grouped_p.set_defaults(func=cmd_grouped)

    info_p = subparsers.add_parser("info", help="Details of one bucket")
    info_p.add_argument("endpoint", help="Endpoint URL or name")
    info_p.add_argument("bucket", help="Bucket name")
    info_p.set_defaults(func=cmd_info)

    watch_p = subparsers.add_parser("watch", help="Refresh periodically until stopped")
    watch_p.set_defaults(func=None)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        config = load_config(args.config)
        registry = build_registry(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    if args.command == "watch":
        return cmd_watch(registry, config)

    if not registry.refresh():
        print("Could not refresh bucket data, see the log", file=sys.stderr)
        return 1
    return args.func(registry, args)


if __name__ == "__main__":
    sys.exit(main())
