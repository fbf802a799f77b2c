# logger.py
import logging
import sys
import os

import colorlog

from .. import constants


def setup_logger(debug: bool = False, module_levels: dict | None = None, log_file: str | None = None):
    """
    Configures the root logger for a host embedding the reconciler.

    Registry traffic is logged by httpx at INFO for every request, so the HTTP
    libraries are held at WARNING unless `debug` is set. Explicit module
    levels (argument or CACHEPROBE_LOG_LEVELS) are applied last and win.

    Args:
        debug: Enable debug logging level
        module_levels: Per-module log levels
        log_file: Optional path to log file. If provided, logs will be written to this file.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    # Calling again only adjusts levels
    if not root.handlers:
        root.addHandler(_console_handler())
        if log_file:
            _add_file_handler(root, log_file)

    _hold_library_loggers(debug)
    _apply_module_levels(module_levels)


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.NOTSET)
    # Respect NO_COLOR env var (https://no-color.org/)
    if sys.stderr.isatty() and not os.environ.get("NO_COLOR"):
        handler.setFormatter(colorlog.ColoredFormatter(
            '%(log_color)s[%(levelname).4s]%(reset)s %(cyan)s%(name)s%(reset)s: %(message)s',
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            },
            reset=True,
        ))
    else:
        handler.setFormatter(logging.Formatter('[%(levelname).4s] %(name)s: %(message)s'))
    return handler


def _add_file_handler(root: logging.Logger, log_file: str):
    try:
        handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    except OSError as e:
        root.error(f"Failed to create log file handler for '{log_file}': {e}")
        return
    handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname).4s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root.addHandler(handler)
    root.info(f"Logging to file: {log_file}")


def _hold_library_loggers(debug: bool):
    level = logging.NOTSET if debug else logging.WARNING
    for name in constants.CHATTY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def parse_module_levels(value: str) -> dict:
    """Parse 'name=LEVEL,name=LEVEL' into a mapping, skipping malformed pairs."""
    module_levels = {}
    for pair in value.split(','):
        name, sep, lvl = pair.partition('=')
        if sep and name.strip():
            module_levels[name.strip()] = lvl.strip().upper()
    return module_levels


def _apply_module_levels(module_levels: dict | None):
    """Apply per-module logger levels from mapping or env var CACHEPROBE_LOG_LEVELS.

    module_levels format: {"cacheprobe.options.override": "DEBUG", "reg": "INFO"}
    Env var example: CACHEPROBE_LOG_LEVELS="ovr=DEBUG,httpx=INFO"
    """
    if module_levels is None:
        module_levels = parse_module_levels(os.environ.get(constants.LOG_LEVELS_ENV, ""))

    for name, lvl_str in module_levels.items():
        lvl = logging.getLevelName(str(lvl_str).upper())
        if isinstance(lvl, int):
            logging.getLogger(normalize_module_name(name)).setLevel(lvl)


def normalize_module_name(name: str) -> str:
    """Expand an alias, drop a trailing '.*', and prefix known cacheprobe modules."""
    if name in constants.LOG_ALIAS_MAP:
        return constants.LOG_ALIAS_MAP[name]
    name = name.removesuffix('.*')
    if not name.startswith('cacheprobe.') and name.split('.', 1)[0] in constants.KNOWN_TOP_MODULES:
        name = f'cacheprobe.{name}'
    return name
