#!/usr/bin/env python3
"""
POS Monitor - watch a receipt printer's serial line and save every receipt
"""

import logging
import os
import sys

from pos_monitor.commands import build_dispatcher
from pos_monitor.errors import ConfigurationError
from pos_monitor.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    setup_logging(level=logging.DEBUG if os.environ.get('POSMON_DEBUG') else logging.INFO)
    dispatcher = build_dispatcher()
    dispatcher.on_error(lambda err: logger.error(
        "Command failed: %s", err, exc_info=None if isinstance(err, ConfigurationError) else err,
    ))
    return dispatcher.run(argv)


if __name__ == '__main__':
    sys.exit(main())
