import sys
from loguru import logger

_TIME = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
_SOURCE = "<level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - "


def _console_format(show_time):
    """
    Progress lines (records bound with progress=True) are printed bare so
    they line up as a table; everything else carries level and origin.
    """
    prefix = _TIME if show_time else ""

    def fmt(record):
        if record["extra"].get("progress"):
            return prefix + "<level>{message}</level>\n"
        return prefix + _SOURCE + "<level>{message}</level>\n{exception}"

    return fmt


def setup_logging(level="INFO", show_time=True, log_file=None):
    """Configure loguru for a simulation run.

    Parameters
    ----------
    level : str
        Logging level (DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL)
    show_time : bool
        Whether to show timestamps in the console output.
    log_file : str or Path, optional
        Also append every record at `level` or above to this file,
        without colour and always timestamped.
    """
    logger.remove()
    logger.add(sys.stderr, format=_console_format(show_time), level=level, colorize=True)

    if log_file is not None:
        logger.add(str(log_file), format=_console_format(True), level=level, colorize=False)

    return logger

# Default setup
setup_logging()
