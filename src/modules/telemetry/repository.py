__all__ = ["TelemetryRepository", "telemetry_repository"]

import asyncio
import re
from urllib.parse import unquote

import bs4
import httpx
from cachetools import TTLCache

from src.api.logging_ import logger
from src.config import settings
from src.modules.errors import DeviceReportedError, translate_transport_errors
from src.modules.telemetry.entity_models import (
    INK_COLOR_NAMES,
    INK_ORDER,
    AdapterType,
    AdfState,
    Alert,
    AlertSeverity,
    Capabilities,
    DashboardData,
    DeviceInfo,
    EwsJob,
    Firmware,
    InkLevel,
    InkState,
    JobCategory,
    JobState,
    Memory,
    NetworkAdapter,
    NetworkInfo,
    PaperState,
    PaperTray,
    PrinterState,
    PrinterStatus,
    ScannerState,
    ScannerStatus,
    UsageStats,
    WifiInfo,
)
from src.modules.telemetry.xml_tools import child_text, fetch_xml, find_all, find_text, parse_float, parse_int

PRODUCT_STATUS_PATH = "/DevMgmt/ProductStatusDyn.xml"
CONSUMABLES_PATH = "/DevMgmt/ConsumableConfigDyn.xml"
MEDIA_HANDLING_PATH = "/DevMgmt/MediaHandlingDyn.xml"
PRODUCT_CONFIG_PATH = "/DevMgmt/ProductConfigDyn.xml"
PRODUCT_USAGE_PATH = "/DevMgmt/ProductUsageDyn.xml"
ADAPTERS_PATH = "/IoMgmt/Adapters"
IO_CONFIG_PATH = "/IoMgmt/IoConfig.xml"
NET_APPS_PATH = "/DevMgmt/NetAppsDyn.xml"
JOB_LIST_PATH = "/Jobs/JobList"

CANCEL_JOB_TEMPLATE = (
    '<j:Job xmlns:j="http://www.hp.com/schemas/imaging/con/ledm/jobs/2009/04/30">'
    "<j:JobState>Canceled</j:JobState>"
    "</j:Job>"
)


def parse_printer_status(soup: bs4.BeautifulSoup) -> PrinterStatus:
    category = find_text(soup, "StatusCategory") or "ready"
    if category == "processing":
        state = PrinterState.PROCESSING
    elif category == "inPowerSave":
        state = PrinterState.IN_POWER_SAVE
    elif "error" in category.lower():
        state = PrinterState.ERROR
    else:
        state = PrinterState.READY

    alerts = [
        Alert(
            id=child_text(alert, "ProductStatusAlertID") or "unknown",
            severity=AlertSeverity.from_str(child_text(alert, "Severity")),
            color=child_text(alert, "AlertDetailsMarkerColor") or None,
        )
        for alert in find_all(soup, "Alert")
    ]
    return PrinterStatus(state=state, alerts=alerts)


def parse_ink_levels(soup: bs4.BeautifulSoup) -> list[InkLevel]:
    levels: list[InkLevel] = []
    for consumable in find_all(soup, "ConsumableInfo"):
        label = child_text(consumable, "ConsumableLabelCode")
        if child_text(consumable, "ConsumableTypeEnum") != "ink" or label not in INK_COLOR_NAMES:
            continue
        try:
            state = InkState(child_text(consumable, "ConsumableState") or "ok")
        except ValueError:
            state = InkState.OK
        installation = consumable.find("Installation") or consumable
        levels.append(
            InkLevel(
                color=label,
                color_name=INK_COLOR_NAMES[label],
                percent_remaining=parse_int(child_text(consumable, "ConsumablePercentageLevelRemaining")),
                state=state,
                cartridge_model=child_text(consumable, "ConsumableSelectibilityNumber") or "Unknown",
                is_genuine=child_text(consumable, "Brand") == "HP",
                install_date=child_text(installation, "Date"),
            )
        )
    return sorted(levels, key=lambda level: INK_ORDER.index(level.color))


def parse_paper_tray(soup: bs4.BeautifulSoup) -> PaperTray:
    try:
        state = PaperState(find_text(soup, "MediaState") or "ready")
    except ValueError:
        state = PaperState.READY
    return PaperTray(
        id=find_text(soup, "InputBin") or "Tray1",
        media_type=find_text(soup, "MediaType") or "plain",
        media_size=find_text(soup, "MediaSizeName") or "na_letter_8.5x11in",
        state=state,
        supports_duplex=find_text(soup, "Plex") == "Duplex",
    )


def parse_scanner_status(soup: bs4.BeautifulSoup) -> ScannerStatus:
    return ScannerStatus(
        state=ScannerState.from_str(find_text(soup, "State")),
        adf_state=AdfState.from_str(find_text(soup, "AdfState")),
    )


def parse_device_info(soup: bs4.BeautifulSoup) -> DeviceInfo:
    manufacturer = soup.find("Manufacturer")
    return DeviceInfo(
        model=find_text(soup, "MakeAndModel") or "Unknown",
        serial_number=find_text(soup, "SerialNumber") or "Unknown",
        product_number=find_text(soup, "ProductNumber") or "Unknown",
        uuid=find_text(soup, "UUID") or "Unknown",
        firmware=Firmware(
            version=find_text(soup, "Revision") or "Unknown",
            date=find_text(soup, "Date") or "Unknown",
        ),
        manufactured_date=(manufacturer is not None and child_text(manufacturer, "Date")) or "Unknown",
        capabilities=Capabilities(
            duplex=find_text(soup, "DuplexUnit") == "Installed",
            fax=find_text(soup, "Fax") == "Yes",
        ),
        memory=Memory(
            total_kb=parse_int(find_text(soup, "TotalMemory")),
            available_kb=parse_int(find_text(soup, "AvailableMemory")),
        ),
        language=find_text(soup, "DeviceLanguage") or "en",
        region=find_text(soup, "CountryAndRegionName") or "Unknown",
    )


def format_mac_address(raw: str) -> str:
    """`a0b1c2d3e4f5` -> `A0:B1:C2:D3:E4:F5`"""
    pairs = re.findall(r".{1,2}", raw)
    return ":".join(pairs).upper() if pairs else raw


def decode_ssid(hex_ssid: str) -> str:
    if not hex_ssid:
        return "Unknown"
    return unquote("".join(f"%{pair}" for pair in re.findall(r".{1,2}", hex_ssid)))


def parse_network_info(
    adapters: bs4.BeautifulSoup, io_config: bs4.BeautifulSoup, net_apps: bs4.BeautifulSoup
) -> NetworkInfo:
    result: list[NetworkAdapter] = []
    for adapter in find_all(adapters, "Adapter"):
        port_type = child_text(adapter, "DeviceConnectivityPortType")
        if port_type == "wifiEmbedded":
            if child_text(adapter, "IoMgmtResourceType") == "AccessPointAdapter":
                type_ = AdapterType.ACCESS_POINT
            else:
                type_ = AdapterType.WIFI
        elif port_type == "usb":
            type_ = AdapterType.USB
        else:
            type_ = AdapterType.ETHERNET

        is_connected = child_text(adapter, "IsConnected") == "true"
        wifi = None
        if type_ == AdapterType.WIFI and is_connected:
            wifi = WifiInfo(
                ssid=decode_ssid(child_text(adapter, "SSID") or ""),
                channel=parse_int(child_text(adapter, "Channel")),
                signal_strength=parse_int(child_text(adapter, "SignalStrength")),
                signal_dbm=parse_int(child_text(adapter, "dBm")),
                encryption=child_text(adapter, "EncryptionType") or "Unknown",
            )
        result.append(
            NetworkAdapter(
                name=child_text(adapter, "Name") or "Unknown",
                type=type_,
                mac_address=format_mac_address(child_text(adapter, "MacAddress") or ""),
                is_connected=is_connected,
                wifi=wifi,
            )
        )

    domain_name = find_text(net_apps, "DomainName")
    return NetworkInfo(
        hostname=find_text(io_config, "Hostname") or "Unknown",
        domain_name=(domain_name and domain_name.removesuffix(".")) or "Unknown",
        adapters=result,
    )


def parse_usage_stats(soup: bs4.BeautifulSoup) -> UsageStats:
    return UsageStats(
        total_impressions=parse_int(find_text(soup, "TotalImpressions")),
        monochrome_impressions=parse_int(find_text(soup, "MonochromeImpressions")),
        color_impressions=parse_int(find_text(soup, "ColorImpressions")),
        duplex_sheets=parse_int(find_text(soup, "DuplexSheets")),
        jam_events=parse_int(find_text(soup, "JamEvents")),
        ink_used_ml=parse_float(find_text(soup, "ValueFloat")),
    )


def parse_job_list(soup: bs4.BeautifulSoup) -> list[EwsJob]:
    jobs = []
    for job in find_all(soup, "Job"):
        url = child_text(job, "JobUrl") or ""
        jobs.append(
            EwsJob(
                id=url.rstrip("/").rsplit("/", 1)[-1],
                url=url,
                category=JobCategory.from_str(child_text(job, "JobCategory")),
                state=JobState.from_str(child_text(job, "JobState")),
                source=child_text(job, "JobSource") or "",
            )
        )
    return jobs


class TelemetryRepository:
    """Read-only views of the printer's embedded web server, plus job list cancellation"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        escl_path: str = "/eSCL",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.escl_path = escl_path
        self.timeout = timeout
        self._transport = transport
        # Model, serial number and firmware practically never change
        self._device_info_cache: TTLCache[str, DeviceInfo] = TTLCache(maxsize=1, ttl=60 * 60)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self._transport)

    async def _fetch(self, path: str) -> bs4.BeautifulSoup:
        async with self._client() as client:
            return await fetch_xml(client, path, self.timeout)

    async def fetch_printer_status(self) -> PrinterStatus:
        return parse_printer_status(await self._fetch(PRODUCT_STATUS_PATH))

    async def fetch_ink_levels(self) -> list[InkLevel]:
        return parse_ink_levels(await self._fetch(CONSUMABLES_PATH))

    async def fetch_paper_tray(self) -> PaperTray:
        return parse_paper_tray(await self._fetch(MEDIA_HANDLING_PATH))

    async def fetch_scanner_status(self) -> ScannerStatus:
        return parse_scanner_status(await self._fetch(f"{self.escl_path}/ScannerStatus"))

    async def fetch_device_info(self, use_cache: bool = True) -> DeviceInfo:
        cached = self._device_info_cache.get(self.base_url)
        if cached is not None and use_cache:
            return cached
        device_info = parse_device_info(await self._fetch(PRODUCT_CONFIG_PATH))
        self._device_info_cache[self.base_url] = device_info
        return device_info

    async def fetch_network_info(self) -> NetworkInfo:
        adapters, io_config, net_apps = await asyncio.gather(
            self._fetch(ADAPTERS_PATH), self._fetch(IO_CONFIG_PATH), self._fetch(NET_APPS_PATH)
        )
        return parse_network_info(adapters, io_config, net_apps)

    async def fetch_usage_stats(self) -> UsageStats:
        return parse_usage_stats(await self._fetch(PRODUCT_USAGE_PATH))

    async def fetch_job_list(self) -> list[EwsJob]:
        return parse_job_list(await self._fetch(JOB_LIST_PATH))

    async def fetch_active_jobs(self) -> list[EwsJob]:
        return [job for job in await self.fetch_job_list() if job.state in (JobState.PENDING, JobState.PROCESSING)]

    async def fetch_current_job(self) -> EwsJob | None:
        for job in await self.fetch_job_list():
            if job.state == JobState.PROCESSING:
                return job
        return None

    async def cancel_job(self, job_id: str) -> None:
        """Ask the device to cancel a job from its job list (works for scan and copy jobs too)"""
        logger.info(f"Cancelling device job {job_id}")
        async with self._client() as client:
            with translate_transport_errors(f"cancel job {job_id}"):
                async with asyncio.timeout(self.timeout):
                    response = await client.put(
                        f"{JOB_LIST_PATH}/{job_id}",
                        headers={"Content-Type": "text/xml"},
                        content=CANCEL_JOB_TEMPLATE,
                    )
        if not response.is_success:
            logger.warning(f"Cancel of device job {job_id} failed: {response.status_code}")
            raise DeviceReportedError(f"Failed to cancel job: {response.status_code}", reason=str(response.status_code))

    async def fetch_all(self) -> DashboardData:
        device, network, ink, usage, paper, status, scanner = await asyncio.gather(
            self.fetch_device_info(),
            self.fetch_network_info(),
            self.fetch_ink_levels(),
            self.fetch_usage_stats(),
            self.fetch_paper_tray(),
            self.fetch_printer_status(),
            self.fetch_scanner_status(),
        )
        return DashboardData(
            device=device, network=network, ink=ink, usage=usage, paper=paper, status=status, scanner=scanner
        )


telemetry_repository: TelemetryRepository = TelemetryRepository(
    settings.device.ews_url, timeout=settings.device.request_timeout, escl_path=settings.device.escl_path
)
