"""
Helpers for the vendor XML (LEDM) documents served by the embedded web server.

Every document mixes several namespaces (`dd:`, `pwg:`, `scan:`, ...), and the
prefixes differ between firmware versions, so elements are always looked up by
their local name.
"""

__all__ = ["parse_xml", "find_text", "find_all", "child_text", "parse_int", "parse_float", "fetch_xml"]

import asyncio

import bs4
import httpx

from src.api.logging_ import logger
from src.modules.errors import DeviceReportedError, MalformedResponseError, translate_transport_errors

Node = bs4.BeautifulSoup | bs4.Tag


def parse_xml(text: str | bytes) -> bs4.BeautifulSoup:
    if not text or not text.strip():
        raise MalformedResponseError("Printer returned an empty document")
    soup = bs4.BeautifulSoup(text, "xml")
    if soup.find() is None:
        raise MalformedResponseError("Printer returned a document without a root element")
    return soup


def find_all(node: Node, name: str) -> list[bs4.Tag]:
    # bs4 matches both `prefix:name` and the bare local name
    return node.find_all(name)


def find_text(node: Node, name: str) -> str | None:
    """Text content of the first element in the whole tree with the given local name"""
    element = node.find(name)
    if element is None:
        return None
    return element.get_text().strip()


def child_text(parent: bs4.Tag, name: str) -> str | None:
    """Text content of the first element with the given local name below `parent`"""
    return find_text(parent, name)


def parse_int(value: str | None, default: int = 0) -> int:
    if not value:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def parse_float(value: str | None, default: float = 0.0) -> float:
    if not value:
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


async def fetch_xml(client: httpx.AsyncClient, path: str, timeout: float = 5.0) -> bs4.BeautifulSoup:
    """GET a telemetry document and parse it. The whole request is bounded by `timeout` seconds."""
    with translate_transport_errors(path):
        async with asyncio.timeout(timeout):
            response = await client.get(path)
    if not response.is_success:
        logger.warning(f"Printer returned {response.status_code} for {path}")
        raise DeviceReportedError(f"Printer returned {response.status_code}", reason=str(response.status_code))
    return parse_xml(response.content)
