#!/usr/bin/env python3
# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
NodeNetworkConfig Reconciler - Entry Point

Parses command-line arguments, initializes CNS from the node's
NodeNetworkConfig and runs the reconcile loop(s) until SIGINT/SIGTERM.
"""

import argparse
import logging
import signal
import sys
import threading

import constants
from cns_client import CNSClient
from errors import ConfigurationError
from multitenant_controller import new_multitenant_controller
from request_controller import new_request_controller

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s [%(levelname)s] %(message)s',
                    handlers=[logging.StreamHandler(sys.stdout)])
logger = logging.getLogger(__name__)

# Delay between cold start attempts when the API server is unreachable
INIT_RETRY_DELAY: float = 10.0  # seconds


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=
        "Keep the local CNS service in sync with this node's NodeNetworkConfig "
        "(and optionally MultiTenantNetworkContainer) custom resources")
    parser.add_argument('--log-level',
                        default='info',
                        choices=[
                            'debug', 'info', 'warning', 'error', 'DEBUG',
                            'INFO', 'WARNING', 'ERROR'
                        ],
                        help='Log level (default: info)')
    parser.add_argument(
        '--kubeconfig',
        default=None,
        help='Path to a kubeconfig file. Default: ~/.kube/config, then '
        'in-cluster service account')
    parser.add_argument('--cns-url',
                        default=constants.CNS_URL,
                        help=f'Local CNS base URL (default: {constants.CNS_URL})')
    parser.add_argument(
        '--enable-multitenancy',
        action='store_true',
        help='Also reconcile MultiTenantNetworkContainer resources')
    parser.add_argument(
        '--init-only',
        action='store_true',
        help='Initialize CNS from the NodeNetworkConfig and exit')
    return parser.parse_args(argv)


def initialize(controller, stop_event: threading.Event) -> bool:
    """Run the cold start, retrying until it succeeds or we are stopped."""
    while not stop_event.is_set():
        try:
            controller.init()
            return True
        except Exception as e:
            logger.error(
                f"[INIT] Cold start failed: {e}. Retrying in {INIT_RETRY_DELAY}s..."
            )
            stop_event.wait(INIT_RETRY_DELAY)
    return False


def run_multitenant(controller, stop_event: threading.Event,
                    result: dict) -> None:
    """Run the multi-tenant controller; any exit stops the whole process."""
    try:
        controller.start(stop_event)
    except SystemExit as e:
        result["exit_code"] = e.code
        stop_event.set()
    except Exception as e:
        logger.error(f"[MT] Reconcile loop failed: {e}", exc_info=True)
        result["exit_code"] = 1
        stop_event.set()


def main(argv=None) -> int:
    """Main entry point for the NodeNetworkConfig reconciler."""
    args = parse_args(argv)

    # Set log level from argument (convert to uppercase for Python logging module)
    logging.getLogger().setLevel(getattr(logging, args.log_level.upper()))

    # Suppress verbose Kubernetes client logs
    logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    controller_log = logging.getLogger('nnc.controller')
    sink = CNSClient(base_url=args.cns_url)

    try:
        request_controller = new_request_controller(
            sink, controller_log, kubeconfig=args.kubeconfig)
        mt_controller = None
        if args.enable_multitenancy:
            mt_controller = new_multitenant_controller(
                sink, logging.getLogger('nnc.multitenant'),
                kubeconfig=args.kubeconfig)
    except ConfigurationError as e:
        logger.error(f"[INIT] {e}")
        return constants.EXIT_FATAL

    logger.info(f"[INIT] Node: {request_controller.node_name}")
    logger.info(f"[INIT] CNS URL: {args.cns_url}")

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"[SHUTDOWN] Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    if not initialize(request_controller, stop_event):
        return 0
    if args.init_only:
        logger.info("[INIT] CNS initialized, exiting (--init-only)")
        return 0

    mt_result = {}
    if mt_controller is not None:
        mt_thread = threading.Thread(target=run_multitenant,
                                     args=(mt_controller, stop_event,
                                           mt_result),
                                     name='multitenant-controller',
                                     daemon=True)
        mt_thread.start()

    try:
        request_controller.start(stop_event)
    except Exception as e:
        logger.error(f"[SHUTDOWN] Reconcile loop failed: {e}", exc_info=True)
        stop_event.set()
        return 1

    logger.info("[SHUTDOWN] Stopped")
    return mt_result.get("exit_code") or 0


if __name__ == "__main__":
    sys.exit(main())
