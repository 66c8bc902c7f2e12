#!/usr/bin/env python3
"""Standalone deconstruction script - processes one file and exits."""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    """Main deconstruction function."""
    # Import here to avoid issues if running from different context
    from deconstructor.config import get_env_config
    from deconstructor.errors import DeconstructorError
    from deconstructor.llm.providers import create_provider
    from deconstructor.partition.extractor import sanitize_filename
    from deconstructor.partition.grammars import JAVASCRIPT
    from deconstructor.pipeline import DeconstructionPipeline

    config = get_env_config()
    source_path = os.getenv("SOURCE_PATH") or (sys.argv[1] if len(sys.argv) > 1 else None)

    if not source_path:
        logger.error("Set SOURCE_PATH or pass the JavaScript file as the first argument")
        sys.exit(1)

    source = Path(source_path)
    if not JAVASCRIPT.is_supported_file(source):
        logger.error(f"Unsupported file type: {source_path} (expected one of {', '.join(JAVASCRIPT.extensions)})")
        sys.exit(1)
    if not source.is_file():
        logger.error(f"Source file does not exist: {source_path}")
        sys.exit(1)

    output_dir = config["output_dir"] / sanitize_filename(os.getenv("RUN_NAME") or source.stem)

    logger.info(f"Deconstructing: {source}")
    logger.info(f"Output directory: {output_dir}")
    logger.info(f"LLM provider: {config['llm_provider']}")

    provider = create_provider(config)
    async with provider:
        if not await provider.health_check():
            logger.warning(f"{provider.name} health check failed; analysis will use fallback content")

        pipeline = DeconstructionPipeline.from_config(config, provider)

        try:
            result = await pipeline.run(source, output_dir)
        except (DeconstructorError, OSError) as e:
            logger.error(f"Deconstruction failed: {e}")
            sys.exit(1)

    summary = result.to_dict()
    logger.info("=" * 60)
    logger.info("DECONSTRUCTION COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Lines: {summary['line_count']}")
    logger.info(f"Units: {summary['units']} {summary['units_by_kind']}")
    logger.info(f"Dependency edges: {summary['edges']} ({summary['distinct_edges']} distinct)")
    if summary["analysis_timed_out"]:
        logger.warning("Analysis timed out; a placeholder report was written")
    elif summary["fallback_categories"]:
        logger.warning(f"Fallback content used for: {', '.join(summary['fallback_categories'])}")
    logger.info(f"Analysis: {summary['analysis']}")
    logger.info("=" * 60)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Deconstruction interrupted")
        sys.exit(1)
