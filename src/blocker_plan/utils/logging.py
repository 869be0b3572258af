import sys
from pathlib import Path

from loguru import logger

from blocker_plan.settings import settings

# Block decisions get their own level so they can be routed to an audit file
# without turning on DEBUG everywhere.
VERDICT_LEVEL = "VERDICT"
VERDICT_LEVEL_NO = 15

LOG_FORMAT_CONSOLE = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)
LOG_FORMAT_APP = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"
LOG_FORMAT_VERDICT = "{time:YYYY-MM-DD HH:mm:ss} | {message}"
APP_LOG_NAME = "blocker_plan.log"
VERDICT_LOG_NAME = "verdicts.log"
LOG_ROTATION = "10 MB"
LOG_RETENTION = "10 days"
LOG_COMPRESSION = "zip"


def _register_verdict_level() -> None:
    try:
        logger.level(VERDICT_LEVEL)
    except ValueError:
        logger.level(VERDICT_LEVEL, no=VERDICT_LEVEL_NO, color="<magenta>")


_register_verdict_level()


def _is_verdict(record) -> bool:
    return record["level"].name == VERDICT_LEVEL


def _not_verdict(record) -> bool:
    return record["level"].name != VERDICT_LEVEL


def log_verdict(app_id: str, message: str) -> None:
    """Emits a block decision at the VERDICT level."""
    logger.log(VERDICT_LEVEL, f"{app_id} | {message}")


def setup_logging(verbose: bool = False, log_dir: Path | None = None) -> Path:
    """
    Configure loguru sinks for the CLI.

    Three sinks are installed: stderr and the rotating application log share
    one level (DEBUG with `verbose` or `settings.debug`, else INFO), and
    verdicts.log receives only block decisions when `settings.log_verdicts`
    is on. Verdicts never reach the console.

    Args:
        verbose (bool): If True, enables DEBUG level logging.
        log_dir (Path): Overrides `settings.log_dir`.

    Returns:
        The directory the log files are written to.
    """
    logger.remove()
    target = log_dir or settings.log_dir
    level = "DEBUG" if verbose or settings.debug else "INFO"

    logger.add(sys.stderr, level=level, format=LOG_FORMAT_CONSOLE, filter=_not_verdict)

    target.mkdir(parents=True, exist_ok=True)
    logger.add(
        target / APP_LOG_NAME,
        level=level,
        format=LOG_FORMAT_APP,
        filter=_not_verdict,
        rotation=LOG_ROTATION,
        retention=LOG_RETENTION,
        compression=LOG_COMPRESSION,
    )
    if settings.log_verdicts:
        logger.add(
            target / VERDICT_LOG_NAME,
            level=VERDICT_LEVEL,
            format=LOG_FORMAT_VERDICT,
            filter=_is_verdict,
            rotation=LOG_ROTATION,
            retention=LOG_RETENTION,
        )

    logger.debug(f"Logging initialized. Logs saved to: {target}")
    return target
