"""Ordering bounded context: Orders, Product stock and bulk shipment jobs.

Handles order composition and checkout against product stock, and long-running
bulk shipment jobs whose progress is committed independently of the work they
track.
"""

import os

from protean.domain import Domain

from ordering.utils.logging import configure_logging

# Configure logging for the application
configure_logging(log_dir=os.getenv("ORDERING_LOG_DIR"))

ordering = Domain(name="ordering")
