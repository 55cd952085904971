"""Host facts shown after a run: disk, power, macOS version and uptime."""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Callable

logger = logging.getLogger(__name__)

_COMMAND_TIMEOUT_SECONDS = 5.0
_BATTERY_PERCENT_RE = re.compile(r"(\d+)%")

CommandReader = Callable[[list[str]], str | None]


def read_command(args: list[str]) -> str | None:
    try:
        completed = subprocess.run(  # noqa: S603
            args,
            check=False,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=_COMMAND_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired) as error:
        logger.debug("%s unavailable: %s", args[0], error)
        return None
    if completed.returncode != 0:
        return None
    return completed.stdout


def parse_disk_usage(output: str) -> str | None:
    lines = output.splitlines()
    if len(lines) < 2:
        return None
    parts = lines[1].split()
    if len(parts) < 5:
        return None
    return f"{parts[2]} used of {parts[1]} ({parts[4]})"


def parse_battery(output: str) -> str | None:
    lines = output.splitlines()
    if len(lines) < 2:
        return None
    line = lines[1]
    match = _BATTERY_PERCENT_RE.search(line)
    if match is None:
        return None
    if "discharging" in line:
        state = "battery 🔋"
    elif "charging" in line:
        state = "charging ⚡"
    elif "charged" in line:
        state = "charged ✅"
    else:
        state = "battery 🔋"
    return f"{match.group(1)}% {state}"


def parse_uptime(output: str) -> str | None:
    position = output.find("up ")
    if position < 0:
        return None
    rest = output[position + 3 :]
    comma = rest.find(",")
    if comma < 0:
        return None
    return rest[:comma].strip()


def collect_system_info_lines(reader: CommandReader = read_command) -> list[str]:
    """Render whatever host facts are available; missing tools are skipped."""

    lines = ["", "📊 System Information", "─" * 60]
    disk = reader(["df", "-h", "/"])
    if disk and (value := parse_disk_usage(disk)):
        lines.append(f"  💾 Disk: {value}")
    battery = reader(["pmset", "-g", "batt"])
    if battery and (value := parse_battery(battery)):
        lines.append(f"  🔋 Power: {value}")
    version = reader(["sw_vers", "-productVersion"])
    if version and version.strip():
        lines.append(f"  🍎 macOS: {version.strip()}")
    uptime = reader(["uptime"])
    if uptime and (value := parse_uptime(uptime)):
        lines.append(f"  ⏱️  Uptime: {value}")
    return lines
