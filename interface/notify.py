# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
RunAlert Notifications
Send desktop notifications to get the user's attention.
Works on macOS (osascript), native Linux (notify-send) and WSL (via PowerShell).
"""

import asyncio
import functools
import logging
import re
import subprocess
import sys
from typing import Optional

logger = logging.getLogger("runalert.interface.notify")

CHANNEL_DESKTOP = "desktop"


def is_wsl() -> bool:
    """Check if running in WSL."""
    try:
        with open('/proc/version', 'r') as f:
            return 'microsoft' in f.read().lower()
    except OSError:
        return False


def _with_link(message: str, open_url: Optional[str]) -> str:
    return f"{message}\n{open_url}" if open_url else message


def notify_wsl(title: str, message: str, duration: int = 5000) -> bool:
    """Send notification via Windows PowerShell (for WSL)."""
    try:
        # Strip shell metacharacters, then escape quotes
        safe_title = re.sub(r"[;|&`$\{\}]", "", title)[:100]
        safe_message = re.sub(r"[;|&`$\{\}]", "", message)[:500]
        safe_title = safe_title.replace("'", "''").replace('"', '""')
        safe_message = safe_message.replace("'", "''").replace('"', '""')

        ps_script = f"""
        Add-Type -AssemblyName System.Windows.Forms
        [System.Windows.Forms.MessageBox]::Show('{safe_message}', '{safe_title}', 'OK', 'Information')
        """

        # Full path so it works under pm2/systemd too
        ps_path = '/mnt/c/Windows/System32/WindowsPowerShell/v1.0/powershell.exe'
        subprocess.Popen(
            [ps_path, '-WindowStyle', 'Hidden', '-Command', ps_script],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL
        )
        return True
    except (OSError, subprocess.SubprocessError) as e:
        logger.error("WSL notification failed: %s", e)
        return False


def notify_linux(title: str, message: str, duration: int = 5000) -> bool:
    """Send notification via notify-send (native Linux)."""
    try:
        result = subprocess.run(
            ['notify-send', '-t', str(duration), title, message],
            capture_output=True,
            timeout=5
        )
        return result.returncode == 0
    except FileNotFoundError:
        logger.warning("notify-send not found. Install libnotify-bin.")
        return False
    except (OSError, subprocess.SubprocessError) as e:
        logger.error("Linux notification failed: %s", e)
        return False


def notify_macos(title: str, message: str) -> bool:
    """Send notification via osascript (Notification Center)."""
    def _q(s: str) -> str:
        return s.replace("\\", "\\\\").replace('"', '\\"')

    script = f'display notification "{_q(message)}" with title "{_q(title)}"'
    try:
        result = subprocess.run(
            ['osascript', '-e', script],
            capture_output=True,
            timeout=5
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError) as e:
        logger.error("macOS notification failed: %s", e)
        return False


def notify(title: str, message: str, open_url: Optional[str] = None, duration: int = 5000) -> bool:
    """
    Send a desktop notification.
    Picks macOS / WSL / native Linux automatically.
    """
    body = _with_link(message, open_url)
    if sys.platform == "darwin":
        return notify_macos(title, body)
    if is_wsl():
        return notify_wsl(title, body, duration)
    return notify_linux(title, body, duration)


async def send(title: str, message: str, channel: str = CHANNEL_DESKTOP, open_url: Optional[str] = None) -> bool:
    """
    Route a notification to a channel without blocking the event loop.
    Only "desktop" exists today.
    """
    if channel != CHANNEL_DESKTOP:
        logger.error("Unknown notification channel: %s", channel)
        return False
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, functools.partial(notify, title, message, open_url=open_url)
    )
