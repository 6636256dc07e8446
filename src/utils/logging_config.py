import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Clients that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level="INFO") -> None:
    """Root logging setup shared by the command-line entry points."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
