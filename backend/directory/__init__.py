"""Device directory: slug routing and fail-soft reads over a device store."""

import logging

logger = logging.getLogger("directory")
if not logger.handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


__all__ = ["logger"]
