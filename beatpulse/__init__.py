"""Tempo, beat and predominant local pulse analysis."""

import logging

__version__ = "0.1.0"

# Diagnostics stay silent unless the host application configures logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())
