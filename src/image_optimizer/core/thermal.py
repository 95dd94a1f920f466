"""Thermal cool-down between images for long sequential batches."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from collections.abc import Callable

LOG = logging.getLogger(__name__)

# CPU usage thresholds (percentage)
CPU_HIGH = 90
CPU_ELEVATED = 80

# Temperature thresholds (Celsius)
TEMP_HIGH = 80
TEMP_MODERATE = 70

# Cooling delays (seconds)
COOLDOWN_EXTENDED = 5.0
COOLDOWN_LONG = 2.0
COOLDOWN_MODERATE = 1.0
COOLDOWN_BRIEF = 0.5


def _get_max_temperature() -> float:
    """Get maximum current temperature from all available sensors."""
    if not hasattr(psutil, "sensors_temperatures"):
        return 0.0

    temps = psutil.sensors_temperatures()
    if not temps:
        return 0.0

    max_temp = 0.0
    for entries in temps.values():
        for entry in entries:
            if entry.current and entry.current > max_temp:
                max_temp = entry.current
    return max_temp


def cooldown_seconds(cpu_percent: float, max_temp: float) -> float:
    """Pick the cooling delay for the observed load and temperature."""
    delay = 0.0
    if cpu_percent > CPU_HIGH:
        delay = COOLDOWN_LONG
    elif cpu_percent > CPU_ELEVATED:
        delay = COOLDOWN_BRIEF

    if max_temp > TEMP_HIGH:
        delay = max(delay, COOLDOWN_EXTENDED)
    elif max_temp > TEMP_MODERATE:
        delay = max(delay, COOLDOWN_MODERATE)
    return delay


def check_thermal_throttling(sleep: Callable[[float], None] = time.sleep) -> float:
    """
    Pause briefly when the system is under thermal stress.

    Returns:
        The number of seconds slept

    """
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        max_temp = _get_max_temperature()
    except (OSError, AttributeError):
        LOG.debug("Could not check thermal throttling")
        return 0.0

    delay = cooldown_seconds(cpu_percent, max_temp)
    if delay:
        LOG.warning(
            "High system load (CPU %.1f%%, %.1f°C), cooling down for %.1fs",
            cpu_percent,
            max_temp,
            delay,
        )
        sleep(delay)
    return delay
