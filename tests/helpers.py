import httpx

EWS_URL = "http://printer.test"
ESCL_URL = "http://printer.test/eSCL"
IPP_HOST = "printer.test"
PRINTER_URI = "ipp://printer.test:631/ipp/print"


def xml_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=body.encode(), headers={"Content-Type": "text/xml"})


class RequestLog:
    """Collects every request seen by a MockTransport handler"""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> None:
        self.requests.append(request)

    def urls(self, method: str) -> list[str]:
        return [str(request.url) for request in self.requests if request.method == method]


class FakeIppClient:
    """
    Stands in for pyipp.IPP: records every executed operation and answers with
    parsed responses in the shape pyipp.IPP.execute returns them.

    Each answer is a response dict or an exception to raise. The last answer is
    repeated once the list runs out. The instance is its own client factory.
    """

    def __init__(self, *answers):
        self.answers = list(answers) or [ipp_response()]
        self.calls: list[tuple] = []

    def __call__(self) -> "FakeIppClient":
        return self

    async def __aenter__(self) -> "FakeIppClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def execute(self, operation, message=None) -> dict:
        self.calls.append((operation, message))
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


def ipp_response(status_code: int = 0x0000, **job) -> dict:
    """Parsed IPP response, with one job group when job attributes are given"""
    return {
        "version": (2, 0),
        "status-code": status_code,
        "request-id": 1,
        "operation-attributes": {"attributes-charset": "utf-8", "attributes-natural-language": "en-us"},
        "jobs": [{name.replace("_", "-"): value for name, value in job.items()}] if job else [],
        "printers": [],
        "data": b"",
    }


def broken_gzip_response(request: httpx.Request) -> httpx.Response:
    """Answer that claims a gzip body which is not gzip"""
    return httpx.Response(200, content=b"not gzip", headers={"Content-Encoding": "gzip"})
