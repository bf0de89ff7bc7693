"""
Hardware probes used to pick sensible LM Studio offload settings.
"""

import shutil
import subprocess

import psutil

from .logging_setup import get_logger

logger = get_logger(__name__)

# 4 GiB of video memory is the minimum for GPU offload to pay off
REQUIRED_GPU_MEMORY_MB = 4 * 1024


def get_number_of_cpu_cores() -> int:
    """
    Logical core estimate: physical cores times two.

    Falls back to the logical count reported by the OS when the physical
    count is unavailable.
    """
    physical = psutil.cpu_count(logical=False)
    if not physical:
        logical = psutil.cpu_count(logical=True) or 1
        logger.debug(f"Physical core count unavailable, using {logical} logical cores")
        return logical
    logger.debug(f"Found {physical} physical cores")
    return physical * 2


def has_capable_gpu(required_memory_mb: int = REQUIRED_GPU_MEMORY_MB) -> bool:
    """
    True when at least one GPU reports ``required_memory_mb`` or more memory.

    Uses ``nvidia-smi``; systems without it report no capable GPU.
    """
    nvidia_smi = shutil.which("nvidia-smi")
    if not nvidia_smi:
        logger.debug("nvidia-smi not found, assuming no capable GPU")
        return False

    try:
        completed = subprocess.run(
            [nvidia_smi, "--query-gpu=memory.total", "--format=csv,noheader,nounits"],
            capture_output=True,
            text=True,
            timeout=15,
            check=True
        )
    except (subprocess.SubprocessError, OSError) as e:
        logger.warning(f"GPU query failed: {str(e)}")
        return False

    capable = 0
    for line in completed.stdout.splitlines():
        try:
            if int(float(line.strip())) >= required_memory_mb:
                capable += 1
        except ValueError:
            continue

    logger.debug(f"Detected {capable} GPUs with {required_memory_mb} MB or more")
    return capable > 0
