"""
Logging setup for command-line entry points.

Library modules only create module loggers; handlers are installed here.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name. Falls back to LOG_LEVEL from the environment,
               then INFO.
    """
    level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)

    # requests/urllib3 are noisy at DEBUG
    if level != 'DEBUG':
        logging.getLogger('urllib3').setLevel(logging.WARNING)
