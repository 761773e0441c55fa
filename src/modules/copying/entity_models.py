from typing import Any, Literal

from pydantic import Field

from src.modules.printing.entity_models import PrintSettings
from src.modules.scanning.entity_models import SCAN_SIZES, ScanColorMode, ScanFormat, ScanIntent, ScanSettings, ScanSource
from src.pydantic_base import BaseSchema, FrozenSchema

CopyPhase = Literal["scan", "print"]


class CopySettings(FrozenSchema):
    source: ScanSource = ScanSource.PLATEN
    color_mode: Literal["color", "bw"] = "color"
    duplex: bool = False
    quality: Literal["draft", "normal", "best"] = "normal"


QUALITY_TO_RESOLUTION: dict[str, int] = {"draft": 150, "normal": 300, "best": 600}
COLOR_TO_SCAN: dict[str, ScanColorMode] = {"color": ScanColorMode.COLOR, "bw": ScanColorMode.GRAYSCALE}


def map_copy_to_scan_settings(options: CopySettings) -> ScanSettings:
    width, height = SCAN_SIZES["letter"]
    return ScanSettings(
        intent=ScanIntent.DOCUMENT,
        source=options.source,
        color_mode=COLOR_TO_SCAN[options.color_mode],
        resolution=QUALITY_TO_RESOLUTION[options.quality],
        # JPEG prints without conversion
        format=ScanFormat.JPEG,
        width=width,
        height=height,
    )


def map_copy_to_print_settings(options: CopySettings, copies: int) -> PrintSettings:
    return PrintSettings(
        copies=copies,
        color_mode=options.color_mode,
        duplex=options.duplex,
        quality=options.quality,
        paper_size="letter",
        paper_type="plain",
    )


class CopyIdle(FrozenSchema):
    status: Literal["idle"] = "idle"


class CopyScanning(FrozenSchema):
    status: Literal["scanning"] = "scanning"
    progress: str
    "Last scanner state, e.g. `Processing`"


class CopyPrinting(FrozenSchema):
    status: Literal["printing"] = "printing"
    current_copy: int
    total_copies: int


class CopyComplete(FrozenSchema):
    status: Literal["complete"] = "complete"
    copies: int


class CopyError(FrozenSchema):
    status: Literal["error"] = "error"
    message: str
    phase: CopyPhase


CopyState = CopyIdle | CopyScanning | CopyPrinting | CopyComplete | CopyError


class PhaseResult(BaseSchema):
    """Outcome of one copy phase, tagged with the phase it belongs to"""

    phase: CopyPhase
    value: Any = None
    error: str | None = None
    cancelled: bool = False


class CopyRequest(BaseSchema):
    copies: int = Field(default=1, ge=1, le=99)
    settings: CopySettings = CopySettings()
