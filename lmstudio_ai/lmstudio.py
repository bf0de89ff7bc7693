"""
Helpers for the locally installed LM Studio application and its ``lms`` CLI.
"""

import base64
import json
import os
import subprocess
import sys
import time
import webbrowser
from typing import Any, Dict, List, Optional

import psutil

from .logging_setup import get_logger

logger = get_logger(__name__)

DEFAULT_MCP_SERVER_NAME = "lmstudio-ai"
DEFAULT_MCP_URL = "http://localhost:2175/mcp"
DEFAULT_SERVER_PORT = 1234

_cached_paths: Dict[str, Optional[str]] = {}


def _candidate_paths() -> Dict[str, List[str]]:
    home = os.path.expanduser("~")
    if sys.platform == "win32":
        local_app_data = os.environ.get("LOCALAPPDATA", os.path.join(home, "AppData", "Local"))
        return {
            "LMStudioExe": [
                os.path.join(local_app_data, "LM-Studio", "lm studio.exe"),
                os.path.join(local_app_data, "Programs", "LM-Studio", "lm studio.exe"),
                os.path.join(local_app_data, "Programs", "LM Studio", "lm studio.exe"),
            ],
            "LMSExe": [
                os.path.join(home, ".lmstudio", "bin", "lms.exe"),
                os.path.join(home, ".cache", "lm-studio", "bin", "lms.exe"),
                os.path.join(local_app_data, "LM-Studio", "lms.exe"),
                os.path.join(local_app_data, "Programs", "LM-Studio", "lms.exe"),
                os.path.join(local_app_data, "Programs", "LM Studio", "lms.exe"),
                os.path.join(local_app_data, "Programs", "LM Studio", "resources", "app", ".webpack", "lms.exe"),
            ],
        }
    if sys.platform == "darwin":
        app_paths = ["/Applications/LM Studio.app/Contents/MacOS/LM Studio"]
    else:
        app_paths = [
            os.path.join(home, "Applications", "LM-Studio.AppImage"),
            os.path.join(home, ".local", "bin", "lm-studio"),
            "/opt/lm-studio/lm-studio",
            "/usr/bin/lm-studio",
        ]
    return {
        "LMStudioExe": app_paths,
        "LMSExe": [
            os.path.join(home, ".lmstudio", "bin", "lms"),
            os.path.join(home, ".cache", "lm-studio", "bin", "lms"),
        ],
    }


def _first_existing(paths: List[str]) -> Optional[str]:
    for path in paths:
        if os.path.isfile(path):
            return path
    return None


def get_lmstudio_paths(refresh: bool = False) -> Dict[str, Optional[str]]:
    """
    Locate the LM Studio application and the ``lms`` CLI.

    Results are cached for the life of the process once both are found.

    Args:
        refresh: Search again even if cached

    Returns:
        Dictionary with ``LMStudioExe`` and ``LMSExe`` (None when not found)
    """
    if refresh or not _cached_paths.get("LMStudioExe") or not _cached_paths.get("LMSExe"):
        logger.debug("Searching for LM Studio executables...")
        for key, candidates in _candidate_paths().items():
            _cached_paths[key] = _first_existing(candidates)
        logger.debug(f"Found LM Studio: {_cached_paths.get('LMStudioExe')}")
        logger.debug(f"Found LMS: {_cached_paths.get('LMSExe')}")
    return dict(_cached_paths)


def is_lmstudio_installed() -> bool:
    """True when both the application and the ``lms`` CLI exist."""
    paths = get_lmstudio_paths()
    return bool(paths.get("LMSExe")) and bool(paths.get("LMStudioExe"))


def is_lmstudio_running() -> bool:
    """True when an LM Studio process is running."""
    for proc in psutil.process_iter(["name"]):
        try:
            name = (proc.info.get("name") or "").lower()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if name.startswith("lm studio") or name.startswith("lm-studio"):
            return True
    return False


def _run_lms(args: List[str], timeout: int = 60) -> str:
    """
    Run the ``lms`` CLI and return its standard output.

    Raises:
        RuntimeError: If LM Studio is not installed or the command fails
    """
    lms_exe = get_lmstudio_paths().get("LMSExe")
    if not lms_exe:
        raise RuntimeError("LM Studio is not installed or not found in expected location")

    logger.debug(f"Running: {lms_exe} {' '.join(args)}")
    try:
        completed = subprocess.run(
            [lms_exe] + args,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True
        )
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"lms {' '.join(args)} failed: {e.stderr.strip() if e.stderr else e}") from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(f"lms {' '.join(args)} timed out after {timeout} seconds") from e
    return completed.stdout


def _run_lms_json(args: List[str]) -> List[Dict[str, Any]]:
    output = _run_lms(args + ["--json"])
    try:
        result = json.loads(output) if output.strip() else []
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse lms output: {str(e)}") from e
    return result if isinstance(result, list) else [result]


def get_lmstudio_model_list() -> List[Dict[str, Any]]:
    """Models installed in LM Studio (``lms ls --json``)."""
    return _run_lms_json(["ls"])


def get_lmstudio_loaded_model_list() -> List[Dict[str, Any]]:
    """Models currently loaded in LM Studio (``lms ps --json``)."""
    return _run_lms_json(["ps"])


def load_model(model: str, gpu: float = -1, ttl: int = -1, context_length: Optional[int] = None) -> None:
    """
    Load a model through the ``lms`` CLI.

    Args:
        model: Model key or path
        gpu: Offload ratio between 0 (CPU only) and 1 (max); negative leaves it to LM Studio
        ttl: Idle seconds before LM Studio unloads the model; negative means never
        context_length: Optional context window size
    """
    args = ["load", model, "--yes"]
    if gpu is not None and gpu >= 0:
        args += ["--gpu", "max" if gpu >= 1 else "off" if gpu == 0 else str(gpu)]
    if ttl is not None and ttl > 0:
        args += ["--ttl", str(ttl)]
    if context_length:
        args += ["--context-length", str(context_length)]

    logger.info(f"Loading model {model} in LM Studio")
    _run_lms(args, timeout=600)


def start_lmstudio(port: int = DEFAULT_SERVER_PORT, timeout: int = 30, poll_interval: float = 1.0) -> bool:
    """
    Start the LM Studio API server and application unless already running.

    The server is started with ``lms server start``, then the application is
    launched detached and the process list is polled until it shows up.

    Args:
        port: Port for the API server
        timeout: Seconds to wait for the application process
        poll_interval: Seconds between process checks

    Returns:
        True if LM Studio had to be started, False if it was already running

    Raises:
        RuntimeError: If LM Studio is not installed or the server fails to start
        TimeoutError: If the application does not appear within ``timeout``
    """
    if is_lmstudio_running():
        logger.debug("LM Studio is already running")
        return False

    app_exe = get_lmstudio_paths().get("LMStudioExe")
    if not app_exe:
        raise RuntimeError("LM Studio executable could not be located")

    logger.info(f"Starting LM Studio server on port {port}")
    _run_lms(["server", "start", "--port", str(port)])

    logger.info(f"Launching {app_exe}")
    try:
        subprocess.Popen(
            [app_exe],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True
        )
    except OSError as e:
        raise RuntimeError(f"Failed to launch LM Studio: {str(e)}") from e

    deadline = time.monotonic() + timeout
    while not is_lmstudio_running():
        if time.monotonic() >= deadline:
            raise TimeoutError(f"LM Studio failed to start within {timeout} seconds")
        time.sleep(poll_interval)

    logger.info("LM Studio is running")
    return True


def get_mcp_server_deeplink(server_name: str = DEFAULT_MCP_SERVER_NAME, url: str = DEFAULT_MCP_URL) -> str:
    """Deeplink that asks LM Studio to register an HTTP MCP server."""
    mcp_config = {"servers": {server_name: {"type": "http", "url": url}}}
    encoded = base64.b64encode(json.dumps(mcp_config, indent=4).encode("utf-8")).decode("ascii")
    return f"lmstudio://mcp?config={encoded}"


def add_mcp_server_to_lmstudio(server_name: str = DEFAULT_MCP_SERVER_NAME, url: str = DEFAULT_MCP_URL) -> str:
    """
    Open the MCP registration deeplink so LM Studio adds the server.

    Returns:
        The deeplink that was opened
    """
    deeplink = get_mcp_server_deeplink(server_name, url)
    logger.debug(f"Constructed LM Studio deeplink: {deeplink}")
    if not webbrowser.open(deeplink):
        raise RuntimeError("No handler available to open the LM Studio deeplink")
    logger.info(f"Launched LM Studio with deeplink to add MCP server '{server_name}'")
    return deeplink
