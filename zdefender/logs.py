"""Reading the defender's log file, optionally filtered by level and tail length."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

from zdefender.commands import Command, CommandKind, parse_command
from zdefender.models import LogMode, Settings

JOURNAL_NOTICE = (
    "Le mode de journalisation est systemd-journal. "
    "Utilisez 'journalctl -u zdefender' pour voir les logs."
)


class LogReadError(OSError):
    """The log file could not be read for a ``logs`` command."""


def _split_lines(content: str) -> List[str]:
    """Split on newlines, dropping a final empty line and trailing carriage returns."""
    if not content:
        return []
    parts = content.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


def read_logs(
    path,
    lines: Optional[int] = None,
    level: Optional[str] = None,
    log_mode: LogMode = LogMode.FILE,
) -> str:
    """Return the log file's lines, keeping only ``[LEVEL]`` ones and the last ``lines``.

    In journal mode the file is not read and a hint to use journalctl is
    returned instead.
    """
    if log_mode is LogMode.SYSTEMD_JOURNAL:
        return JOURNAL_NOTICE

    log_path = Path(path)
    if not log_path.exists():
        raise FileNotFoundError(f"Fichier de log non trouvé: {path}")

    try:
        content = log_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise OSError(f"Erreur lors de la lecture du fichier de log: {exc}") from exc

    selected = _split_lines(content)
    if level is not None:
        marker = f"[{level.upper()}]"
        selected = [line for line in selected if marker in line]

    if lines is not None and len(selected) > lines:
        selected = selected[len(selected) - lines:]

    return "\n".join(selected)


def logs_response(command: Union[str, Command], settings: Settings) -> str:
    """Answer a ``logs [lines=N] [level=LEVEL]`` command from the configured log."""
    parsed = parse_command(command) if isinstance(command, str) else command
    if parsed.kind is not CommandKind.LOGS:
        raise ValueError(f"Not a logs command: {command}")
    try:
        return read_logs(settings.log_file, parsed.lines, parsed.level, settings.log_mode)
    except OSError as exc:
        raise LogReadError(f"Erreur lors de la lecture des logs: {exc}") from exc