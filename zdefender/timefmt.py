"""Human-readable ages of timestamps."""

from __future__ import annotations

import time
from typing import Optional


def format_elapsed(moment: float, now: Optional[float] = None) -> str:
    """Describe how long ago ``moment`` (epoch seconds) was."""
    now = time.time() if now is None else now
    elapsed = now - moment
    if elapsed < 0:
        return "temps inconnu"
    secs = int(elapsed)
    if secs < 60:
        return f"il y a {secs} secondes"
    if secs < 3600:
        return f"il y a {secs // 60} minutes"
    if secs < 86400:
        return f"il y a {secs // 3600} heures"
    return f"il y a {secs // 86400} jours"