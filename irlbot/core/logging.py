import logging

try:
    from rich.console import Console
    from rich.logging import RichHandler

    RICH_AVAILABLE = True
except ImportError:
    RICH_AVAILABLE = False

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# (normal level, debug level) for chatty third-party loggers
THIRD_PARTY_LEVELS: dict[str, tuple[int, int]] = {
    "twitchio": (logging.INFO, logging.DEBUG),
    "twitchio.websocket": (logging.WARNING, logging.DEBUG),
    "httpx": (logging.WARNING, logging.INFO),
    "obsws_python": (logging.WARNING, logging.INFO),
    "websocket": (logging.WARNING, logging.WARNING),
    "aiohttp": (logging.WARNING, logging.WARNING),
    "asyncio": (logging.ERROR, logging.ERROR),
}


def _rich_handler() -> logging.Handler:
    handler = RichHandler(
        console=Console(force_terminal=True, width=120),
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        tracebacks_width=120,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%Y-%m-%d %H:%M:%S]"))
    return handler


def _plain(level: int) -> None:
    logging.basicConfig(level=level, format=PLAIN_FORMAT, datefmt=PLAIN_DATEFMT, force=True)


def setup_logging(log_level: str = "INFO") -> None:
    """Configure root logging once per process; safe to call again with a new level."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger = logging.getLogger("Bot")

    if not RICH_AVAILABLE:
        _plain(level)
        logger.debug("Standard logging enabled (install 'rich' for better output)")
    else:
        try:
            logging.basicConfig(level=level, handlers=[_rich_handler()], force=True)
        except Exception as e:
            _plain(level)
            logger.warning(f"Failed to setup Rich logging: {e}, using standard logging")

    debug = level == logging.DEBUG
    for name, (normal, verbose) in THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(verbose if debug else normal)
