#!/usr/bin/env python3
"""
ResourceQuota Autoscaler - Entry Point

A CRD-based Kubernetes controller that watches ManagedResourceQuota objects
and keeps a ResourceQuota per object whose hard limits scale with the
number of nodes in the cluster.

Usage:
    python run.py [--namespace NAMESPACE] [--dry-run] [--in-cluster] [--workers N]
"""

import argparse
import logging
import sys

from kubernetes import config

from resourcequota_autoscaler.config import DEFAULT_WORKERS, RESYNC_INTERVAL_SECONDS
from resourcequota_autoscaler.controller import ResourceQuotaAutoscaler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="ResourceQuota Autoscaler - Scale ResourceQuotas with the cluster's node count"
    )
    parser.add_argument(
        "--namespace", "-n",
        default="",
        help="Namespace to watch (default: all namespaces)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run in dry-run mode (no changes persisted)"
    )
    parser.add_argument(
        "--in-cluster",
        action="store_true",
        help="Use in-cluster config (for running inside Kubernetes)"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Number of reconcile workers (default: {DEFAULT_WORKERS})"
    )
    parser.add_argument(
        "--resync-interval",
        type=float,
        default=RESYNC_INTERVAL_SECONDS,
        help=f"Seconds between full resyncs (default: {RESYNC_INTERVAL_SECONDS})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    # Set log level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load Kubernetes configuration
    try:
        if args.in_cluster:
            config.load_incluster_config()
            logger.info("Loaded in-cluster configuration")
        else:
            config.load_kube_config()
            logger.info("Loaded kubeconfig from default location")
    except Exception as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        sys.exit(1)

    # Create and run controller
    controller = ResourceQuotaAutoscaler(
        namespace=args.namespace,
        dry_run=args.dry_run,
        workers=args.workers,
        resync_interval=args.resync_interval
    )

    try:
        controller.run()
    except KeyboardInterrupt:
        controller.stop()
        logger.info("Controller stopped")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Controller error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
