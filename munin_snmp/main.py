#!/usr/bin/env python3
"""
munin-snmp agent

Serves metrics fetched from a munin-node as an SNMP subtree (GET / GETNEXT).

Usage:
    munin-snmp-agent -c /etc/munin-snmp/agent.conf
    munin-snmp-agent --munin-host 10.0.0.5 --munin-plugins load,cpu:user --snmp-port 1161
"""

import argparse
import logging
import signal
import sys
from typing import Dict, List, Optional

from pysnmp.error import PySnmpError

from . import __version__
from .cache import BackgroundRefresher, MetricCache
from .collector import MuninClient
from .config import BridgeConfig, load_config
from .errors import ConfigError, PidFileError, RegistrationError
from .handler import QueryHandler
from .logger_config import ROOT_LOGGER, setup_logger
from .pidfile import PidFile
from .snmp import SnmpAgent, format_oid

logger = logging.getLogger(ROOT_LOGGER)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# CLI option dest -> configuration key
OVERRIDE_KEYS = {
    "munin_host": "munin_host",
    "munin_port": "munin_port",
    "munin_plugins": "munin_plugins",
    "base_oid": "base_oid",
    "pidfile": "pidfile",
    "cache_ttl": "cache_ttl",
    "refresh_mode": "refresh_mode",
    "snmp_host": "snmp_host",
    "snmp_port": "snmp_port",
    "community": "community",
    "log_file": "log_file",
}


class AgentShutdown(KeyboardInterrupt):
    """
    Raised by the signal handler to unwind the dispatcher loop.

    A KeyboardInterrupt subclass: both the asyncio loop and the pysnmp
    dispatcher re-raise it unchanged instead of wrapping or logging it.
    """


def _request_shutdown(signum, frame):
    raise AgentShutdown(signal.Signals(signum).name)


def install_signal_handlers() -> None:
    for sig in SHUTDOWN_SIGNALS:
        signal.signal(sig, _request_shutdown)


def restore_signal_handlers() -> None:
    signal.signal(signal.SIGINT, signal.default_int_handler)
    signal.signal(signal.SIGTERM, signal.SIG_DFL)


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="munin-snmp-agent",
        description="Expose munin-node metrics as an SNMP subtree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  munin-snmp-agent -c /etc/munin-snmp/agent.conf
  munin-snmp-agent --munin-host 10.0.0.5 --munin-plugins load,cpu:user
  munin-snmp-agent --base-oid .1.3.6.1.4.1.123456.100.1.1 --snmp-port 1161 -v

Command line options override the configuration file.
        """,
    )

    parser.add_argument("-c", "--config", metavar="PATH",
                        help="Configuration file (key=value)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    munin_group = parser.add_argument_group("munin-node")
    munin_group.add_argument("--munin-host", metavar="HOST", help="munin-node host")
    munin_group.add_argument("--munin-port", metavar="PORT", type=int,
                             help="munin-node port (default: 4949)")
    munin_group.add_argument("--munin-plugins", metavar="LIST",
                             help="Comma separated plugins, plugin[:field]")

    snmp_group = parser.add_argument_group("snmp")
    snmp_group.add_argument("--base-oid", metavar="OID", help="Subtree root OID")
    snmp_group.add_argument("--snmp-host", metavar="HOST", help="Listen address")
    snmp_group.add_argument("--snmp-port", metavar="PORT", type=int, help="Listen port")
    snmp_group.add_argument("--community", metavar="NAME", help="Read community")

    agent_group = parser.add_argument_group("agent")
    agent_group.add_argument("--pidfile", metavar="PATH", help="Pid file path")
    agent_group.add_argument("--cache-ttl", metavar="SECONDS", type=float,
                             help="Cache time to live")
    agent_group.add_argument("--refresh-mode", choices=("lazy", "background"),
                             help="Refresh on query (lazy) or in a background thread")
    agent_group.add_argument("--log-file", metavar="PATH", help="Also log to this file")
    agent_group.add_argument("-v", "--verbose", action="store_true",
                             help="Enable debug logging")

    return parser


def build_overrides(args: argparse.Namespace) -> Dict[str, Optional[str]]:
    """Configuration values given on the command line."""
    overrides = {}
    for dest, key in OVERRIDE_KEYS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[key] = str(value)
    return overrides


def serve(config: BridgeConfig) -> int:
    """
    Register the subtree and block until a shutdown signal.

    Returns:
        Process exit code
    """
    pidfile = PidFile(config.pidfile)
    try:
        pidfile.acquire()
    except PidFileError as e:
        logger.error(f"Startup failed: {e}")
        return 1

    agent = None
    refresher = None
    try:
        client = MuninClient(config.munin_host, config.munin_port, timeout=config.munin_timeout)
        cache = MetricCache(
            client,
            config.sources,
            config.base_oid,
            ttl=config.cache_ttl,
            max_missed_refreshes=config.max_missed_refreshes,
        )
        background = config.refresh_mode == "background"
        handler = QueryHandler(cache, config.base_oid, lazy_refresh=not background)

        agent = SnmpAgent(
            handler,
            config.base_oid,
            host=config.snmp_host,
            port=config.snmp_port,
            community=config.community,
        )
        agent.register()

        install_signal_handlers()

        if background:
            cache.refresh()
            refresher = BackgroundRefresher(cache)
            refresher.start()

        agent.run()
    except (RegistrationError, PySnmpError, OSError) as e:
        logger.error(f"SNMP agent failed: {e}")
        return 1
    except (AgentShutdown, KeyboardInterrupt) as e:
        logger.info(f"Shutdown requested ({str(e) or 'SIGINT'})")
    finally:
        restore_signal_handlers()
        if refresher is not None:
            refresher.stop(timeout=config.munin_timeout)
        if agent is not None:
            agent.close()
        pidfile.release()

    logger.info("Agent stopped")
    return 0


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, load configuration and serve."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logger(ROOT_LOGGER, "DEBUG" if args.verbose else "INFO")

    try:
        config = load_config(args.config, build_overrides(args))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    setup_logger(
        ROOT_LOGGER,
        "DEBUG" if args.verbose else config.log_level,
        config.log_file,
    )
    logger.info(f"munin-snmp agent {__version__} starting: {config!r}")
    logger.debug(f"Serving subtree {format_oid(config.base_oid)}")

    return serve(config)


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
