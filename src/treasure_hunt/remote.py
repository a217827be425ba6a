"""
HTTP client for the treasure server.

The server stores marker images and serves the configuration document the AR
client reads. Endpoints (relative to the configured base URL):

  GET  /config                 current configuration document
  POST /upload-treasure-image  multipart marker upload
  POST /upload-web-config      replace the configuration document
  POST /delete-image           remove a stored marker image
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .config import ServerConfig
from .errors import (
    RemoteConfigUnavailable,
    RemoteError,
    RemoteNotConfigured,
    UploadRejected,
    UploadUnreachable,
)
from .records import TreasureConfiguration

logger = logging.getLogger(__name__)

CONFIG_PATH = '/config'
UPLOAD_IMAGE_PATH = '/upload-treasure-image'
UPLOAD_CONFIG_PATH = '/upload-web-config'
DELETE_IMAGE_PATH = '/delete-image'
IMAGES_PATH = '/images'


@dataclass
class AssetReference:
    """Where an uploaded marker image can be fetched from."""

    url: str
    file_name: str
    from_server: bool = True   # False when derived from the endpoint + file name


@dataclass
class ConnectionReport:
    server_reachable: bool
    server_result: str
    upload_result: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'serverReachable': self.server_reachable,
            'serverResult': self.server_result,
            'uploadResult': self.upload_result,
        }


class TreasureServerClient:
    """Thin wrapper over ``requests.Session`` with the configured headers."""

    def __init__(self, config: Optional[ServerConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or ServerConfig()
        self.session = session or requests.Session()
        self.session.headers.update(self.config.headers)

    @property
    def configured(self) -> bool:
        return bool(self.config.base_url)

    def url(self, path: str = '') -> str:
        if not self.configured:
            raise RemoteNotConfigured("No treasure server base URL configured")
        return f"{self.config.base_url}{path}"

    def image_url(self, file_name: str) -> str:
        if not self.configured:
            return f"{IMAGES_PATH}/{file_name}"
        return self.url(f"{IMAGES_PATH}/{file_name}")

    # ── Marker upload ────────────────────────────────────────────────────────

    def upload_marker(
        self,
        png_bytes: bytes,
        image_name: str,
        file_name: str,
        latitude: float,
        longitude: float,
        validation_score: int,
    ) -> AssetReference:
        """
        Upload a validated marker image.

        Raises:
            UploadUnreachable: connection failure or timeout
            UploadRejected: the server answered with a non-2xx status
        """
        endpoint = self.url(UPLOAD_IMAGE_PATH)
        files = {'image': (file_name, png_bytes, 'image/png')}
        data = {
            'imageName': image_name,
            'latitude': str(latitude),
            'longitude': str(longitude),
            'validationScore': str(validation_score),
        }
        logger.info(f"Uploading marker '{image_name}' ({len(png_bytes)} bytes) to {endpoint}")

        try:
            resp = self.session.post(endpoint, files=files, data=data, timeout=self.config.timeout_seconds)
        except requests.RequestException as exc:
            logger.error(f"Marker upload failed: {exc}")
            raise UploadUnreachable(f"Could not reach treasure server: {exc}") from exc

        if not resp.ok:
            logger.error(f"Marker upload rejected: {resp.status_code} {resp.text[:200]}")
            raise UploadRejected(
                f"Treasure server rejected the upload ({resp.status_code})",
                status=resp.status_code,
                body=resp.text,
            )

        fallback = self.url(f"{IMAGES_PATH}/{file_name}")
        try:
            body = resp.json()
        except ValueError:
            logger.debug(f"Upload response was not JSON: {resp.text[:200]!r}")
            return AssetReference(url=fallback, file_name=file_name, from_server=False)

        url = body.get('url') if isinstance(body, dict) else None
        if not url:
            return AssetReference(url=fallback, file_name=file_name, from_server=False)
        return AssetReference(url=url, file_name=file_name)

    # ── Configuration document ───────────────────────────────────────────────

    def fetch_config(self) -> TreasureConfiguration:
        """Fetch the authoritative configuration from the server."""
        endpoint = self.url(CONFIG_PATH)
        try:
            resp = self.session.get(endpoint, timeout=self.config.timeout_seconds)
        except requests.RequestException as exc:
            raise RemoteConfigUnavailable(f"Could not reach treasure server: {exc}") from exc

        if not resp.ok:
            raise RemoteConfigUnavailable(
                f"Treasure server returned {resp.status_code} for {CONFIG_PATH}",
                payload={'status': resp.status_code},
            )
        try:
            return TreasureConfiguration.from_wire(resp.json())
        except ValueError as exc:
            raise RemoteConfigUnavailable(f"Malformed configuration from server: {exc}") from exc

    def push_config(self, document: TreasureConfiguration) -> None:
        endpoint = self.url(UPLOAD_CONFIG_PATH)
        self._post_json(endpoint, document.to_wire())
        logger.info(f"Pushed configuration with {document.total_treasures} treasure(s)")

    def delete_image(self, file_name: str) -> None:
        endpoint = self.url(DELETE_IMAGE_PATH)
        self._post_json(endpoint, {'fileName': file_name})
        logger.info(f"Deleted image {file_name} on server")

    def _post_json(self, endpoint: str, payload: Dict[str, Any]) -> requests.Response:
        try:
            resp = self.session.post(endpoint, json=payload, timeout=self.config.timeout_seconds)
        except requests.RequestException as exc:
            raise RemoteError(f"Could not reach treasure server: {exc}") from exc
        if not resp.ok:
            raise RemoteError(
                f"Treasure server returned {resp.status_code} for {endpoint}",
                payload={'status': resp.status_code},
            )
        return resp

    # ── Diagnostics ──────────────────────────────────────────────────────────

    def check_connection(self) -> ConnectionReport:
        """Probe the base URL and the upload endpoint, reporting each separately."""
        base = self.url()
        reachable = False
        try:
            resp = self.session.get(base, timeout=self.config.timeout_seconds)
            reachable = True
            server_result = f"Server responded with status: {resp.status_code}"
        except requests.RequestException as exc:
            server_result = f"Server connection failed: {exc}"
        logger.info(server_result)

        data = {'test': 'true', 'imageName': 'test-image', 'latitude': '0', 'longitude': '0'}
        try:
            resp = self.session.post(
                self.url(UPLOAD_IMAGE_PATH),
                data=data,
                timeout=self.config.timeout_seconds,
            )
            upload_result = f"Upload endpoint responded with status: {resp.status_code}"
            if not resp.ok:
                upload_result += f" - Error: {resp.text[:200]}"
        except requests.RequestException as exc:
            upload_result = f"Upload endpoint test failed: {exc}"
        logger.info(upload_result)

        return ConnectionReport(reachable, server_result, upload_result)
