"""FastMCP server for deconstructing and analyzing JavaScript bundles."""

import asyncio
import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import get_env_config
from .llm.base import LLMProvider
from .llm.providers import create_provider
from .pipeline import DeconstructionPipeline
from .tools.deconstruct_tool import DeconstructTool

config = get_env_config()

# Configure logging
formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

console_handler = logging.StreamHandler()
console_handler.setLevel(config["log_level"])
console_handler.setFormatter(formatter)

file_handler = logging.FileHandler(config["log_file"])
file_handler.setLevel(config["log_level"])
file_handler.setFormatter(formatter)

root_logger = logging.getLogger()
root_logger.setLevel(config["log_level"])
root_logger.addHandler(console_handler)
root_logger.addHandler(file_handler)

logger = logging.getLogger(__name__)

mcp = FastMCP("js-deconstructor")

# Global components (initialized on startup)
provider: Optional[LLMProvider] = None
deconstruct_tool: Optional[DeconstructTool] = None


async def initialize_components():
    """Initialize all components on startup."""
    global provider, deconstruct_tool

    logger.info("Initializing JS deconstructor...")

    try:
        provider = create_provider(config)

        if not await provider.health_check():
            logger.warning(
                f"{provider.name} health check failed. Analysis will fall back to "
                "statistical content until the backend is reachable."
            )

        pipeline = DeconstructionPipeline.from_config(config, provider)
        deconstruct_tool = DeconstructTool(pipeline, config["output_dir"])

        logger.info(f"Writing deconstruction output under {config['output_dir']}")
        logger.info("All components initialized successfully!")

    except Exception as e:
        logger.error(f"Error during initialization: {e}")
        raise


@mcp.tool()
async def health_check() -> dict:
    """Check health status of the server and the language-model backend.

    Returns:
        Dictionary with health status of each component
    """
    if not provider:
        return {"success": False, "error": "Server not initialized"}

    return {
        "success": True,
        "provider": provider.name,
        "components": {"server": True, "llm": await provider.health_check()},
    }


@mcp.tool()
async def deconstruct_file(
    source_path: str,
    run_name: Optional[str] = None,
    wait: bool = False,
) -> dict:
    """Split a JavaScript file into units, map their dependencies and analyze them.

    Writes one file per unit under 3_tree_sitter/, plus sourcemap.json,
    dependency_graph.json and llm_analysis.md, into OUTPUT_DIR/<run_name>.

    Args:
        source_path: Path to an already formatted and deobfuscated JavaScript file
        run_name: Output directory name (defaults to the file name)
        wait: Run in the foreground and return the results instead of a job id

    Returns:
        Dictionary with the results, or job information for tracking progress
    """
    if not deconstruct_tool:
        return {"success": False, "error": "Server not initialized"}

    if wait:
        return await deconstruct_tool.deconstruct_file(source_path, run_name)
    return await deconstruct_tool.start_deconstruction(source_path, run_name)


@mcp.tool()
def get_job_status(job_id: str) -> dict:
    """Get the status and progress of a deconstruction job.

    Args:
        job_id: Job identifier returned from deconstruct_file

    Returns:
        Dictionary with job status and progress information
    """
    if not deconstruct_tool:
        return {"success": False, "error": "Server not initialized"}

    job = deconstruct_tool.job_manager.get_job(job_id)
    if not job:
        return {"success": False, "error": f"Job {job_id} not found"}

    return {
        "success": True,
        **deconstruct_tool.job_manager.get_status_dict(job),
    }


@mcp.tool()
def list_jobs() -> dict:
    """List all deconstruction jobs (past and present).

    Returns:
        Dictionary with list of all jobs and their statuses
    """
    if not deconstruct_tool:
        return {"success": False, "error": "Server not initialized"}

    jobs = deconstruct_tool.job_manager.list_jobs()
    job_list = [deconstruct_tool.job_manager.get_status_dict(job) for job in jobs]

    return {
        "success": True,
        "total_jobs": len(job_list),
        "jobs": job_list,
    }


@mcp.tool()
async def cancel_job(job_id: str) -> dict:
    """Cancel a running deconstruction job.

    Args:
        job_id: Job identifier to cancel

    Returns:
        Dictionary indicating success or failure
    """
    if not deconstruct_tool:
        return {"success": False, "error": "Server not initialized"}

    if await deconstruct_tool.job_manager.cancel_job(job_id):
        return {"success": True, "message": f"Job {job_id} cancelled successfully"}
    return {"success": False, "error": f"Job {job_id} not found or already completed"}


@mcp.tool()
async def get_units(job_id: str, kind: Optional[str] = None) -> dict:
    """List the units a job extracted, with their original line ranges.

    Args:
        job_id: Job identifier returned from deconstruct_file
        kind: Only list units of this kind (function, method, arrow_function,
            class, variable, constant, import, export, base)

    Returns:
        Dictionary with one entry per unit
    """
    if not deconstruct_tool:
        return {"success": False, "error": "Server not initialized"}

    return await deconstruct_tool.get_units(job_id, kind)


@mcp.tool()
async def summarize_units(job_id: str, kind: str = "function") -> dict:
    """Summarize every unit file of one kind from a finished job.

    Args:
        job_id: Job identifier returned from deconstruct_file
        kind: Unit kind to summarize (defaults to function)

    Returns:
        Dictionary with the summary text
    """
    if not deconstruct_tool:
        return {"success": False, "error": "Server not initialized"}

    return await deconstruct_tool.summarize_units(job_id, kind)


if __name__ == "__main__":
    logger.info("Starting JS deconstructor MCP Server...")

    asyncio.run(initialize_components())

    logger.info("Server ready!")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server interrupted")
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise
