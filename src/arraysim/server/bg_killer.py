"""Registry of running simulator servers.

Each server writes a pid file under ~/.arraysim/running_servers when it
starts and removes it on a clean exit. `list_running_servers` and
`kill_arraysim_servers` work from those files, so stale entries left by a
crashed server are detected through psutil and cleaned up.
"""

import json
import os
from datetime import datetime
from pathlib import Path

import psutil
from loguru import logger

from arraysim.util import defaults


def get_servers_dir() -> Path:
    """Get the directory for storing server PID files."""
    servers_dir = defaults.ARRAYSIM_DIR / "running_servers"
    servers_dir.mkdir(parents=True, exist_ok=True)
    return servers_dir


def register_server(host: str, port: int) -> Path:
    """Register the current process as a running server."""
    pid = os.getpid()
    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")

    server_info = {
        "pid": pid,
        "timestamp": timestamp,
        "host": host,
        "port": port,
    }

    pid_file = get_servers_dir() / f"server_{pid}.json"
    with pid_file.open("w") as f:
        json.dump(server_info, f, indent=2)
    logger.debug("Registered server in {}", pid_file)
    return pid_file


def unregister_server(pid_file: Path) -> None:
    if pid_file.exists():
        pid_file.unlink()
        logger.debug("Removed {}", pid_file)


def _read_pid_file(pid_file: Path) -> dict | None:
    try:
        with pid_file.open() as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Unreadable server file {}: {}", pid_file, e)
        return None


def list_running_servers() -> list[dict]:
    """Get info about all registered servers, with a `running` flag each."""
    servers = []
    for pid_file in sorted(get_servers_dir().glob("server_*.json")):
        server_info = _read_pid_file(pid_file)
        if server_info is None:
            continue
        server_info["running"] = psutil.pid_exists(server_info["pid"])
        servers.append(server_info)
    return servers


def kill_arraysim_servers() -> int:
    """Kill every registered server process other than this one."""
    killed = 0
    own_pid = os.getpid()

    for pid_file in get_servers_dir().glob("server_*.json"):
        server_info = _read_pid_file(pid_file)
        if server_info is None:
            pid_file.unlink(missing_ok=True)
            continue

        pid = server_info["pid"]
        if pid == own_pid:
            continue
        try:
            proc = psutil.Process(pid)
            logger.info(
                "Killing server PID {} started at {}", pid, server_info["timestamp"]
            )
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            logger.debug("Server PID {} no longer exists", pid)
        except psutil.AccessDenied:
            logger.error("Not allowed to kill server PID {}", pid)
            continue

        # stale either way now
        pid_file.unlink(missing_ok=True)

    return killed


def cleanup_stale_servers() -> int:
    """Remove PID files for servers that no longer exist."""
    removed = 0
    for pid_file in get_servers_dir().glob("server_*.json"):
        server_info = _read_pid_file(pid_file)
        if server_info is None or not psutil.pid_exists(server_info["pid"]):
            pid_file.unlink(missing_ok=True)
            removed += 1
    return removed


if __name__ == "__main__":
    killed = kill_arraysim_servers()
    logger.info("Killed {} arraysim server processes", killed)
