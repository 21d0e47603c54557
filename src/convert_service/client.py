import argparse
import asyncio
import logging
import mimetypes
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from convert_service.conversion.errors import ConvertServiceError, ConversionFailed, PollCancelled, PollTimeout
from convert_service.conversion.polling import CancellationToken, poll_until_terminal

logger = logging.getLogger(__name__)

API_BASE = os.getenv("CONVERT_SERVICE_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")


class ClientError(ConvertServiceError):
    code = "client_error"


@dataclass(frozen=True)
class JobView:
    job_id: str
    status: str
    result_url: str | None = None
    filename: str | None = None
    error_message: str | None = None


class ConvertClient:
    """Talks to the conversion service over HTTP and polls job status."""

    def __init__(self, api_base: str = API_BASE, *, timeout: float = 60.0, session: requests.Session | None = None) -> None:
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _call(self, method: str, path: str, what: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self._session.request(method, f"{self._api_base}{path}", timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise ClientError(f"{what} failed: {e}") from e
        if resp.status_code not in (200, 201, 202):
            raise ClientError(f"{what} failed: {resp.status_code} {resp.text}")
        return resp.json()

    def upload(self, path: str | Path, content_type: str | None = None) -> dict[str, Any]:
        p = Path(path)
        ct = content_type or mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        with p.open("rb") as f:
            return self._call("POST", "/upload", "upload", files={"file": (p.name, f.read(), ct)})

    def convert(self, file_id: str, target_format: str, options: dict[str, Any] | None = None) -> str:
        body: dict[str, Any] = {"fileId": file_id, "targetFormat": target_format}
        if options:
            body["options"] = options
        return str(self._call("POST", "/convert", "conversion request", json=body)["jobId"])

    def status(self, job_id: str) -> JobView:
        data = self._call("GET", "/convert", "status check", params={"jobId": job_id})
        return JobView(
            job_id=str(data.get("jobId", job_id)),
            status=str(data.get("status", "")),
            result_url=data.get("resultUrl"),
            filename=data.get("filename"),
            error_message=data.get("error"),
        )

    async def wait(
        self,
        job_id: str,
        *,
        interval: float = 1.0,
        max_attempts: int = 60,
        cancel: CancellationToken | None = None,
    ) -> JobView:
        async def fetch() -> JobView:
            return await asyncio.to_thread(self.status, job_id)

        return await poll_until_terminal(fetch, interval=interval, max_attempts=max_attempts, cancel=cancel)

    def resolve_url(self, url: str) -> str:
        return url if "://" in url else f"{self._api_base}{url}"


async def _convert(args: argparse.Namespace) -> int:
    client = ConvertClient(args.api)
    uploaded = await asyncio.to_thread(client.upload, args.file)
    logger.info("Uploaded %s as %s", uploaded["name"], uploaded["id"])
    job_id = await asyncio.to_thread(client.convert, uploaded["id"], args.to)
    logger.info("Conversion job %s started", job_id)
    job = await client.wait(job_id, interval=args.interval, max_attempts=args.max_attempts)
    print(f"{job.filename}\t{client.resolve_url(job.result_url or '')}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="convert-client", description="Upload a file and wait for its conversion.")
    parser.add_argument("file", help="file to convert")
    parser.add_argument("--to", required=True, help="target format or conversion type, e.g. pdf or pdf-to-word")
    parser.add_argument("--api", default=API_BASE, help="service base URL")
    parser.add_argument("--interval", type=float, default=1.0, help="seconds between status checks")
    parser.add_argument("--max-attempts", type=int, default=60)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        return asyncio.run(_convert(args))
    except (ConversionFailed, PollTimeout, PollCancelled, ClientError) as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
