from enum import StrEnum
from typing import Literal

from pydantic import Field

from src.pydantic_base import BaseSchema


class JobState(StrEnum):
    """Canonical job state shared by the job list and the IPP print driver"""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELED = "canceled"
    ABORTED = "aborted"

    @classmethod
    def from_str(cls, value: str | None) -> "JobState":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.PENDING


class JobCategory(StrEnum):
    PRINT = "print"
    SCAN = "scan"
    COPY = "copy"
    FAX = "fax"

    @classmethod
    def from_str(cls, value: str | None) -> "JobCategory":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.PRINT


class AlertSeverity(StrEnum):
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"

    @classmethod
    def from_str(cls, value: str | None) -> "AlertSeverity":
        lower = (value or "").lower()
        for severity in cls:
            if severity.value.lower() == lower:
                return severity
        return cls.INFO


class PrinterState(StrEnum):
    READY = "ready"
    PROCESSING = "processing"
    IN_POWER_SAVE = "inPowerSave"
    ERROR = "error"


class Alert(BaseSchema):
    id: str = "unknown"
    "ProductStatusAlertID, e.g. `cartridgeLow` or `mediaJam`"
    severity: AlertSeverity = AlertSeverity.INFO
    color: str | None = None
    "Marker color for consumable alerts (e.g. `Cyan`)"


class PrinterStatus(BaseSchema):
    state: PrinterState = PrinterState.READY
    alerts: list[Alert] = []


class InkState(StrEnum):
    OK = "ok"
    LOW = "low"
    USED = "used"
    EMPTY = "empty"
    MISSING = "missing"


InkColor = Literal["K", "C", "M", "Y"]
INK_COLOR_NAMES: dict[str, str] = {"K": "Black", "C": "Cyan", "M": "Magenta", "Y": "Yellow"}
INK_ORDER: list[str] = ["K", "C", "M", "Y"]


class InkLevel(BaseSchema):
    color: InkColor
    color_name: str
    percent_remaining: int = 0
    state: InkState = InkState.OK
    cartridge_model: str = "Unknown"
    "Selectibility number printed on the cartridge box"
    is_genuine: bool = False
    "Brand reported by the cartridge chip is the printer vendor"
    install_date: str | None = None


class PaperState(StrEnum):
    READY = "ready"
    MISSING = "missing"
    JAM = "jam"


MEDIA_SIZE_LABELS: dict[str, str] = {
    "na_letter_8.5x11in": "Letter",
    "na_legal_8.5x14in": "Legal",
    "iso_a4_210x297mm": "A4",
    "na_index-4x6_4x6in": "4x6 Photo",
    "na_5x7_5x7in": "5x7 Photo",
}


class PaperTray(BaseSchema):
    id: str = "Tray1"
    media_type: str = "plain"
    media_size: str = "na_letter_8.5x11in"
    "PWG media size name"
    state: PaperState = PaperState.READY
    supports_duplex: bool = False

    @property
    def media_size_label(self) -> str:
        return MEDIA_SIZE_LABELS.get(self.media_size, self.media_size)


class ScannerState(StrEnum):
    IDLE = "Idle"
    PROCESSING = "Processing"
    STOPPED = "Stopped"

    @classmethod
    def from_str(cls, value: str | None) -> "ScannerState":
        lower = (value or "").lower()
        for state in cls:
            if state.value.lower() == lower:
                return state
        return cls.IDLE


class AdfState(StrEnum):
    EMPTY = "Empty"
    LOADED = "Loaded"
    JAM = "Jam"

    @classmethod
    def from_str(cls, value: str | None) -> "AdfState":
        # eSCL reports e.g. ScannerAdfLoaded, ScannerAdfEmpty, ScannerAdfJam
        if value and "Loaded" in value:
            return cls.LOADED
        if value and "Jam" in value:
            return cls.JAM
        return cls.EMPTY


class ScannerStatus(BaseSchema):
    state: ScannerState = ScannerState.IDLE
    adf_state: AdfState = AdfState.EMPTY


class Firmware(BaseSchema):
    version: str = "Unknown"
    date: str = "Unknown"


class Capabilities(BaseSchema):
    duplex: bool = False
    fax: bool = False


class Memory(BaseSchema):
    total_kb: int = 0
    available_kb: int = 0


class DeviceInfo(BaseSchema):
    model: str = "Unknown"
    serial_number: str = "Unknown"
    product_number: str = "Unknown"
    uuid: str = "Unknown"
    firmware: Firmware = Firmware()
    manufactured_date: str = "Unknown"
    capabilities: Capabilities = Capabilities()
    memory: Memory = Memory()
    language: str = "en"
    region: str = "Unknown"


def format_memory(kb: int) -> str:
    if kb >= 1024 * 1024:
        return f"{kb / 1024 / 1024:.1f} GB"
    if kb >= 1024:
        return f"{round(kb / 1024)} MB"
    return f"{kb} KB"


class AdapterType(StrEnum):
    ETHERNET = "ethernet"
    WIFI = "wifi"
    USB = "usb"
    ACCESS_POINT = "accessPoint"


class WifiInfo(BaseSchema):
    ssid: str = "Unknown"
    channel: int = 0
    signal_strength: int = 0
    "Signal bars as reported by the device"
    signal_dbm: int = 0
    encryption: str = "Unknown"


class NetworkAdapter(BaseSchema):
    name: str = "Unknown"
    type: AdapterType = AdapterType.ETHERNET
    mac_address: str = ""
    is_connected: bool = False
    wifi: WifiInfo | None = None
    "Present only for a connected Wi-Fi adapter"


class NetworkInfo(BaseSchema):
    hostname: str = "Unknown"
    domain_name: str = "Unknown"
    adapters: list[NetworkAdapter] = []


class UsageStats(BaseSchema):
    total_impressions: int = 0
    monochrome_impressions: int = 0
    color_impressions: int = 0
    duplex_sheets: int = 0
    jam_events: int = 0
    ink_used_ml: float = 0.0


class EwsJob(BaseSchema):
    """Entry of the device job list (print, scan, copy and fax jobs alike)"""

    id: str
    "Last path segment of the job url"
    url: str
    category: JobCategory = JobCategory.PRINT
    state: JobState = JobState.PENDING
    source: str = ""


class DashboardData(BaseSchema):
    device: DeviceInfo
    network: NetworkInfo
    ink: list[InkLevel] = Field(default_factory=list)
    usage: UsageStats
    paper: PaperTray
    status: PrinterStatus
    scanner: ScannerStatus
