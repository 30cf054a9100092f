"""
Script to run the import job once, or a single configuration on demand
"""

import argparse
import asyncio
import sys
import os
import logging
from uuid import UUID

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine
from core.exceptions import ImportPipelineError
from core.logging import setup_logging
from ingestion.job import ImportJobDriver

setup_logging()
logger = logging.getLogger(__name__)


async def run_imports(config_id: UUID = None) -> int:
    """Returns a process exit code."""
    driver = ImportJobDriver()

    try:
        if config_id is None:
            summary = await driver.execute()
            print(summary)
            return 1 if summary.startswith("Job failed") else 0

        try:
            result = await driver.run_manual(config_id)
        except ImportPipelineError as e:
            logger.error(f"Manual import failed: {e}", extra={"error_context": e.to_dict()})
            return 1

        print(result.model_dump_json(indent=2))
        return 0 if result.success else 1

    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run due imports, or one configuration by id")
    parser.add_argument("--config-id", type=UUID, default=None, help="Run this configuration now")
    args = parser.parse_args()

    sys.exit(asyncio.run(run_imports(args.config_id)))
