from __future__ import annotations

import logging

TRACE_LEVEL = 5

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _trace(self: logging.Logger, message: str, *args: object, **kwargs: object) -> None:
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


def install_trace_level() -> None:
    """Register the TRACE level name and ``Logger.trace`` helper."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    setattr(logging.Logger, "trace", _trace)


def _build_handler(color: bool) -> logging.Handler:
    handler = logging.StreamHandler()
    if color:
        try:
            from colorlog import ColoredFormatter  # type: ignore

            handler.setFormatter(
                ColoredFormatter(
                    "%(log_color)s" + LOG_FORMAT,
                    log_colors={
                        "TRACE": "cyan",
                        "DEBUG": "blue",
                        "INFO": "green",
                        "WARNING": "yellow",
                        "ERROR": "red",
                        "CRITICAL": "red,bg_white",
                    },
                )
            )
            return handler
        except ImportError:
            pass
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(level: int, color: bool = True) -> None:
    install_trace_level()
    logging.basicConfig(level=level, handlers=[_build_handler(color)], force=True)


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    level = logging.getLevelName(fallback.upper())
    return level if isinstance(level, int) else logging.INFO
