from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field


class SettingBaseModel(BaseModel):
    model_config = ConfigDict(use_attribute_docstrings=True, extra="forbid")


class Device(SettingBaseModel):
    host: str = Field("192.168.1.62", examples=["192.168.1.62", "printer.local", "host.docker.internal"])
    "Hostname or IP address of the multifunction printer"
    ews_scheme: str = "http"
    "Scheme of the embedded web server (telemetry and eSCL)"
    ipp_port: int = 631
    "IPP port of the printer"
    ipp_path: str = "/ipp/print"
    "Path of the IPP print service"
    escl_path: str = "/eSCL"
    "Path of the eSCL scan service on the embedded web server"
    request_timeout: float = 5.0
    "Timeout in seconds for every single telemetry request"
    requesting_user_name: str = "hp-printer-app"
    "Value of the IPP requesting-user-name attribute"

    @property
    def ews_url(self) -> str:
        return f"{self.ews_scheme}://{self.host}"

    @property
    def escl_url(self) -> str:
        return f"{self.ews_url}{self.escl_path}"

    @property
    def printer_uri(self) -> str:
        return f"ipp://{self.host}:{self.ipp_port}{self.ipp_path}"


class Polling(SettingBaseModel):
    """Polling cadences in seconds"""

    status_active: float = 2.0
    "Printer status while a job is running"
    status_expanded: float = 5.0
    "Printer status while idle with the status drawer expanded"
    status_collapsed: float = 10.0
    "Printer status while idle with the status drawer collapsed"
    ink_expanded: float = 30.0
    "Ink levels with the status drawer expanded"
    ink_collapsed: float = 60.0
    "Ink levels with the status drawer collapsed"
    paper_expanded: float = 10.0
    "Paper tray with the status drawer expanded"
    paper_collapsed: float = 20.0
    "Paper tray with the status drawer collapsed"
    job_active: float = 1.0
    "Job list while a job is running"
    scanner_screen_open: float = 3.0
    "Scanner status while a scan or copy screen is open"
    scan_poll_interval: float = 0.5
    "Scanner state polling while waiting for a scan job"
    scan_max_wait: float = 60.0
    "Maximum time to wait for a scan job to finish"
    print_poll_interval: float = 1.0
    "Print job progress polling"
    copy_print_max_wait: float = 300.0
    "Maximum time a copy waits for its print job to finish"


class ApiSettings(SettingBaseModel):
    app_root_path: str = ""
    'Prefix for the API path (e.g. "/api/v0")'
    cors_allow_origin_regex: str = ".*"
    "Allowed origins for CORS: from which domains requests to the API are allowed. Specify as a regex: `https://.*.example.com`"


class Settings(SettingBaseModel):
    """Settings for the application."""

    schema_: str | None = Field(None, alias="$schema")
    device: Device = Device()
    polling: Polling = Polling()
    api: ApiSettings = ApiSettings()

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        with open(path) as f:
            yaml_config = yaml.safe_load(f)

        return cls.model_validate(yaml_config or {})

    @classmethod
    def save_schema(cls, path: Path) -> None:
        with open(path, "w") as f:
            schema = {"$schema": "https://json-schema.org/draft-07/schema", **cls.model_json_schema()}
            yaml.dump(schema, f, sort_keys=False)
