#!/usr/bin/env python3
"""
SlickNAT control-plane daemon (slnatcd)

Answers IPv6 NAT translation queries from a table of prefix-rewrite rules.

Features:
- Reads the rule table from the kernel mapping file (/proc/net/slick_nat_mappings)
- Re-reads the table every few seconds, keeping the last good table if the file disappears
- Listens on one or more IPv6 addresses (YAML config, default [::1]:7001)
- Translates internal -> public and public -> internal addresses
- Finds the global unicast (2000::/3) address of an internal address
"""

import argparse
import logging
import os
import signal
import sys
from typing import List, Optional

from .config import (
    DEFAULT_CONFIG_PATH,
    DaemonConfig,
    apply_env_overrides,
    load_config_or_default,
)
from .errors import SourceUnavailableError
from .listener import ConnectionListener, ShutdownContext
from .logutil import set_level, setup_logging
from .resolver import Resolver
from .store import MappingStore, Refresher


class SlickNatDaemon:
    """Wires the mapping store, the refresher and the listeners together."""

    def __init__(self, config: DaemonConfig, shutdown: Optional[ShutdownContext] = None):
        self.config = config
        self.shutdown = shutdown or ShutdownContext()
        self.store = MappingStore()
        self.refresher = Refresher(self.store, config.mapping_path, config.refresh_interval)
        self.resolver = Resolver(self.store)
        self.listeners: List[ConnectionListener] = []
        self.logger = logging.getLogger(__name__)

    def load_initial_mappings(self):
        """First refresh pass; an unreadable source leaves the table empty."""
        try:
            self.refresher.refresh()
        except SourceUnavailableError:
            self.logger.info("Starting with an empty mapping table")

    def bind_listeners(self) -> List[ConnectionListener]:
        """
        Bind every configured address.

        An address that cannot be bound is logged and skipped; the others
        keep serving.
        """
        for entry in self.config.listen:
            listener = ConnectionListener(entry.address, entry.port, self.resolver, self.shutdown)
            try:
                listener.bind()
            except OSError as e:
                self.logger.error(f"Failed to create socket for {entry}: {e}")
                continue
            self.listeners.append(listener)
        return self.listeners

    def start(self) -> bool:
        """
        Serve until ``stop`` is called.

        Returns:
            False if no listener could be bound, True after a clean stop.
        """
        self.load_initial_mappings()

        if not self.bind_listeners():
            self.logger.error("No listen address could be bound")
            self.stop()
            return False

        self.logger.info(
            f"SlickNat daemon started, listening on {len(self.listeners)} addresses"
        )

        self.refresher.start(self.shutdown.stop_event)
        threads = [listener.start() for listener in self.listeners]
        for thread in threads:
            thread.join()

        return True

    def stop(self):
        self.shutdown.shutdown()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='SlickNAT daemon: answers IPv6 NAT mapping queries',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  SLNAT_CONFIG_FILE    Configuration file (default: /etc/slnatcd/config.yaml)
  SLNAT_MAPPING_PATH   Mapping source (default: /proc/net/slick_nat_mappings)
  SLNAT_LOG_LEVEL      Log level: error, warning, info, debug

Config file options (YAML):
  listen:              List of {address, port} to listen on
  mapping_path:        Mapping source path
  log_level:           error, warning, info, debug
  refresh_interval:    Seconds between mapping reloads (default: 5)

Examples:
  %(prog)s
  %(prog)s --config /etc/slnatcd/config.yaml
  %(prog)s --proc /tmp/mappings -v
        """
    )
    parser.add_argument(
        '--config',
        help=f'Configuration file path (default: from SLNAT_CONFIG_FILE or "{DEFAULT_CONFIG_PATH}")'
    )
    parser.add_argument(
        '--proc',
        help='Mapping source path (overrides the config file)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger = logging.getLogger(__name__)

    config_path = args.config or os.environ.get('SLNAT_CONFIG_FILE', DEFAULT_CONFIG_PATH)
    config = apply_env_overrides(load_config_or_default(config_path))
    if args.proc:
        config.mapping_path = args.proc
    if args.verbose:
        config.log_level = 'debug'
    set_level(config.level)

    daemon = SlickNatDaemon(config)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        daemon.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not daemon.start():
            logger.error("Failed to start daemon")
            sys.exit(1)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        daemon.stop()
        sys.exit(1)

    sys.exit(0)


if __name__ == '__main__':
    main()
