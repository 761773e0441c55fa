__all__ = ["ALERT_MESSAGES", "DisplayAlert", "get_alert_display"]

from src.modules.telemetry.entity_models import Alert, AlertSeverity
from src.pydantic_base import BaseSchema

ALERT_MESSAGES: dict[str, tuple[str, str]] = {
    "cartridgeLow": ("Ink low", "Order replacement cartridge"),
    "cartridgeEmpty": ("Ink empty", "Replace cartridge to continue"),
    "cartridgeMissing": ("Ink cartridge missing", "Install cartridge"),
    "mediaEmpty": ("Paper tray empty", "Load paper to continue"),
    "mediaJam": ("Paper jam", "Clear jam and press OK on printer"),
    "doorOpen": ("Cover open", "Close the cover"),
    "spoolAreaFull": ("Print queue full", "Wait for jobs to complete or cancel"),
    "scannerError": ("Scanner error", "Check scanner glass and try again"),
    "inkSystemFailure": ("Ink system problem", "Restart printer or contact support"),
    "servicePending": ("Service required", "Contact HP support"),
}
"Alert id -> (title, description)"


class DisplayAlert(BaseSchema):
    id: str
    severity: AlertSeverity
    title: str
    description: str
    color: str | None = None


def get_alert_display(alert: Alert) -> DisplayAlert:
    title, description = ALERT_MESSAGES.get(alert.id, (alert.id, "Check printer for details"))
    if alert.color and title.startswith("Ink"):
        # "Ink low" -> "Cyan low"
        title = alert.color + title.removeprefix("Ink")
    return DisplayAlert(
        id=alert.id, severity=alert.severity, title=title, description=description, color=alert.color
    )
