"""Notification channels for newly created alerts."""
import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger("slamonitor.alerts.channels")


@runtime_checkable
class AlertChannel(Protocol):
    def send(self, alert) -> None: ...


class ConsoleChannel:
    """Print new alerts to the terminal with rich formatting."""

    def __init__(self, console=None):
        self._console = console

    def send(self, alert):
        from rich.console import Console
        console = self._console or Console()

        severity_styles = {
            "critical": "bold white on red",
            "warning": "bold yellow",
            "info": "bold blue",
        }
        style = severity_styles.get(alert.severity, "")
        console.print(
            f"[{style}] [{alert.severity.upper()}] [{alert.tipo_monitoramento}] "
            f"{alert.identificador_item}: {alert.alert_type} "
            f"({alert.percentual_atual:.2f}%)[/]"
        )


class FileChannel:
    """Append new alerts to a JSON lines log file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = log_path

    def send(self, alert):
        entry = alert.to_dict()
        try:
            Path(self.log_path).parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write alert to file: {e}")
