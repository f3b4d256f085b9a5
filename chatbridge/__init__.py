"""Chat Bridge Package Initialisation."""

__version__ = "2.0.0"

import logging

logger = logging.getLogger(__name__)
