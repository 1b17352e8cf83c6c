#!/usr/bin/env python3
"""
Main entry point for BTK Check
Runs the HTTP API with hot-reloaded configuration, or a single check
"""

import argparse
import errno
import json
import logging
import logging.handlers
import os
import sys

from btk_check.constants import ENV_PORT, MAX_PORT_NUMBER, MIN_PORT_NUMBER


def setup_logging(log_file=None, log_level="INFO", syslog=False):
    """Setup logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create formatter
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Add console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Add file handler if specified
    if log_file and log_file.lower() != "none":
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, mode=0o755)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=10 * 1024 * 1024, backupCount=5
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        except OSError as e:
            print(f"Warning: Could not setup file logging to {log_file}: {e}", file=sys.stderr)

    # Add syslog handler if enabled
    if syslog:
        try:
            syslog_handler = logging.handlers.SysLogHandler(address="/dev/log")
            syslog_formatter = logging.Formatter(
                "btk-check[%(process)d]: %(levelname)s - %(message)s"
            )
            syslog_handler.setFormatter(syslog_formatter)
            root_logger.addHandler(syslog_handler)
        except OSError as e:
            print(f"Warning: Could not setup syslog: {e}", file=sys.stderr)


def _validate_port(value):
    """Validate port number is in valid range"""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {value}")
    if port < MIN_PORT_NUMBER or port > MAX_PORT_NUMBER:
        raise argparse.ArgumentTypeError(
            f"Port must be between {MIN_PORT_NUMBER} and {MAX_PORT_NUMBER}"
        )
    return port


def _parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Checks whether domains are blocked by resolving them through "
        "the BTK DNS servers and looking for block-page addresses.",
        epilog="Resolvers, blocked IPs and location are read from the .env file "
        "(BTK_DNS_SERVERS, BTK_BLOCKED_IPS, SERVER_LOCATION) and reloaded when it changes.",
    )
    parser.add_argument(
        "-c", "--config", default="/etc/btk-check/btk-check.cfg", help="Settings file path"
    )
    parser.add_argument("-e", "--env-file", help=".env file path (overrides settings)")
    parser.add_argument("-l", "--logfile", help="Log file path (overrides settings)")
    parser.add_argument(
        "-L", "--loglevel", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level"
    )
    parser.add_argument(
        "-p", "--port", type=_validate_port, help="Listen port (overrides settings and PORT)"
    )
    parser.add_argument("-a", "--address", help="Listen address (overrides settings)")
    parser.add_argument(
        "--once", metavar="DOMAIN", help="Check a single domain, print the JSON result and exit"
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version")

    return parser.parse_args(argv)


def _handle_version_check(args):
    """Handle version check and exit if requested"""
    if args.version:
        from btk_check import __version__

        print(f"BTK Check version {__version__}")
        sys.exit(0)


def _get_logging_config(settings, args):
    """Get logging configuration from settings and args"""
    log_file = args.logfile or settings.get("log-file", "log-file")
    log_level = args.loglevel or settings.get("log-file", "debug-level", "INFO")
    syslog = settings.getboolean("log-file", "syslog", False)

    return log_file, log_level, syslog


def _get_listen_config(settings, args, environ=None):
    """Listen port and address; command line beats PORT beats the settings file"""
    environ = os.environ if environ is None else environ

    listen_port = settings.listen_port
    env_port = environ.get(ENV_PORT)
    if env_port:
        try:
            listen_port = _validate_port(env_port)
        except argparse.ArgumentTypeError as e:
            logging.getLogger("btk_check").warning(f"Ignoring {ENV_PORT}={env_port!r}: {e}")
    if args.port:
        listen_port = args.port

    listen_address = args.address or settings.listen_address
    return listen_port, listen_address


def _build_components(settings, args):
    """Create store, loader, watcher and engine wired together"""
    from btk_check.config import ConfigurationStore
    from btk_check.engine import CheckEngine
    from btk_check.loader import ConfigWatcher, EnvConfigLoader
    from btk_check.lookup import LookupOrchestrator
    from btk_check.metrics import init_metrics

    metrics = init_metrics(settings.metrics_enabled and not args.once)

    store = ConfigurationStore()
    loader = EnvConfigLoader(args.env_file or settings.env_file)
    watcher = ConfigWatcher(store, loader, interval=settings.poll_interval, metrics=metrics)

    # First load; defaults stay active if the source is rejected
    watcher.apply()

    orchestrator = LookupOrchestrator(store, timeout=settings.query_timeout, metrics=metrics)
    engine = CheckEngine(store, orchestrator, metrics=metrics)

    return store, loader, watcher, engine, metrics


def _handle_bind_error(error, port, address, logger):
    """Handle port binding errors with helpful messages"""
    error_msg = str(error)
    os_error = getattr(error, "socketError", error)
    code = getattr(os_error, "errno", None)

    if "Address already in use" in error_msg or code == errno.EADDRINUSE:
        logger.error(f"Port {port} is already in use on {address}")
        logger.error("Please check if another instance is running or use a different port")
    elif "Permission denied" in error_msg or code == errno.EACCES:
        logger.error(f"Permission denied to bind to port {port}")
        if port < 1024:
            logger.error("Ports below 1024 require root privileges")
    else:
        logger.error(f"Failed to bind to {address}:{port}: {error}")

    sys.exit(1)


def run_once(engine, domain):
    """Run one check on a fresh reactor and exit with 0 on success, 1 otherwise"""
    from twisted.internet import task

    def _print_result(result):
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        if not result.success:
            raise SystemExit(1)

    def _check(reactor):
        return engine.check(domain).addCallback(_print_result)

    task.react(_check)


def start_api_server(settings, args, logger, components):
    """Start the HTTP API and the configuration watcher"""
    from twisted.internet import reactor
    from twisted.internet.error import CannotListenError

    from btk_check.api import build_site
    from btk_check.version import __version__

    store, loader, watcher, engine, metrics = components
    listen_port, listen_address = _get_listen_config(settings, args)

    site = build_site(
        engine,
        store,
        metrics=metrics,
        env_file=loader.env_file,
        reload_interval=watcher.interval,
    )

    try:
        port = reactor.listenTCP(listen_port, site, interface=listen_address)
    except CannotListenError as e:
        _handle_bind_error(e, listen_port, listen_address, logger)

    actual_port = port.getHost().port
    metrics.set_info(__version__, store.snapshot().location)

    reactor.callWhenRunning(watcher.start)
    reactor.addSystemEventTrigger("before", "shutdown", watcher.stop)

    logger.info(f"BTK Check API listening on http://{listen_address}:{actual_port}")
    logger.info("Endpoint: GET /check?domain=example.com")
    logger.info(f"Hot-reload: watching {loader.env_file} every {watcher.interval}s")
    reactor.run()  # type: ignore[attr-defined]  # Twisted reactor

    logger.info("BTK Check stopped")


def main(argv=None):
    """Main entry point"""
    args = _parse_arguments(argv)

    _handle_version_check(args)

    try:
        from btk_check.settings import ServiceSettings

        settings = ServiceSettings(args.config)

        log_file, log_level, syslog = _get_logging_config(settings, args)
        setup_logging(log_file, log_level, syslog)
        logger = logging.getLogger("btk_check")

        components = _build_components(settings, args)

        if args.once is not None:
            run_once(components[3], args.once)
            return

        logger.info("Starting BTK Check API")
        start_api_server(settings, args, logger, components)

    except Exception as e:
        print(f"Error starting BTK Check: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
