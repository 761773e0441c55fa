from enum import StrEnum
from typing import Literal

from pydantic import PositiveInt, field_validator

from src.pydantic_base import FrozenSchema


class ScanIntent(StrEnum):
    DOCUMENT = "Document"
    PHOTO = "Photo"
    PREVIEW = "Preview"
    TEXT_AND_GRAPHIC = "TextAndGraphic"


class ScanSource(StrEnum):
    PLATEN = "Platen"
    "Flatbed glass"
    ADF = "Adf"
    "Automatic document feeder"


class ScanColorMode(StrEnum):
    BLACK_AND_WHITE = "BlackAndWhite1"
    GRAYSCALE = "Grayscale8"
    COLOR = "RGB24"


class ScanFormat(StrEnum):
    PDF = "application/pdf"
    JPEG = "image/jpeg"


RESOLUTIONS: list[int] = [75, 100, 150, 200, 300, 400, 600, 1200]

ScanSizeKey = Literal["letter", "legal", "a4", "photo4x6", "photo5x7"]

SCAN_SIZES: dict[str, tuple[int, int]] = {
    "letter": (2550, 3300),
    "legal": (2550, 4200),
    "a4": (2480, 3508),
    "photo4x6": (1200, 1800),
    "photo5x7": (1500, 2100),
}
"(width, height) in 1/300 inch"


class ScanSettings(FrozenSchema):
    intent: ScanIntent = ScanIntent.DOCUMENT
    source: ScanSource = ScanSource.PLATEN
    color_mode: ScanColorMode = ScanColorMode.COLOR
    resolution: int = 300
    "DPI, one of 75, 100, 150, 200, 300, 400, 600, 1200"
    format: ScanFormat = ScanFormat.PDF
    width: PositiveInt = SCAN_SIZES["letter"][0]
    "Width of the scan region in 1/300 inch"
    height: PositiveInt = SCAN_SIZES["letter"][1]
    "Height of the scan region in 1/300 inch"

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, v: int) -> int:
        if v not in RESOLUTIONS:
            raise ValueError(f"Resolution must be one of {RESOLUTIONS}")
        return v

    @classmethod
    def with_size(cls, size: ScanSizeKey, **kwargs) -> "ScanSettings":
        width, height = SCAN_SIZES[size]
        return cls(width=width, height=height, **kwargs)

    @property
    def size_key(self) -> str:
        """Named size matching the region, `letter` when the region is custom"""
        for key, (width, height) in SCAN_SIZES.items():
            if (self.width, self.height) == (width, height):
                return key
        return "letter"

    @property
    def preset(self) -> Literal["document", "photo", "custom"]:
        for name, preset in SCAN_PRESETS.items():
            if (self.format, self.resolution, self.color_mode, self.intent) == (
                preset.format,
                preset.resolution,
                preset.color_mode,
                preset.intent,
            ):
                return name
        return "custom"


DEFAULT_SCAN_SETTINGS = ScanSettings()

SCAN_PRESETS: dict[str, ScanSettings] = {
    "document": ScanSettings.with_size(
        "letter",
        format=ScanFormat.PDF,
        resolution=300,
        color_mode=ScanColorMode.COLOR,
        intent=ScanIntent.DOCUMENT,
    ),
    "photo": ScanSettings.with_size(
        "photo4x6",
        format=ScanFormat.JPEG,
        resolution=600,
        color_mode=ScanColorMode.COLOR,
        intent=ScanIntent.PHOTO,
    ),
}
