"""Entry point for the attachment downloader.

Usage::

    python -m imap_attachments

All settings come from environment variables (see :mod:`.config`).
"""

from __future__ import annotations

import asyncio
import sys

import structlog
from pydantic import ValidationError

from .config import Settings
from .logging import setup_logging
from .pipeline import EXIT_FAILURE, PipelineDriver

logger = structlog.get_logger()


def main() -> int:
    try:
        settings = Settings()
    except ValidationError as exc:
        setup_logging()
        logger.error(
            "invalid_configuration",
            errors=[
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ],
        )
        return EXIT_FAILURE

    setup_logging(json=settings.log_json, level=settings.log_level)

    try:
        settings.output_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("output_dir_not_created", path=str(settings.output_dir), error=str(exc))
        return EXIT_FAILURE

    driver = PipelineDriver(settings)
    return asyncio.run(driver.run())


if __name__ == "__main__":
    sys.exit(main())
