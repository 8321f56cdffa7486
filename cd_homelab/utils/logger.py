import logging
import sys

# Client libraries that log every HTTP request at DEBUG
QUIET_LOGGERS = ('urllib3', 'kubernetes')


def setup_logger(debug: bool = False):
    """Configure logging for the homelab CLI.

    Recipes print listings straight to the terminal, so log records share
    stdout with them and stay in order.

    Args:
        debug: Also show the command lines and resolved tool paths
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
