import logging
import threading
from typing import Any, Dict, Optional

import requests as http_requests

from .orchestrator import CancellationToken

logger = logging.getLogger(__name__)


class AnalysisRequestError(Exception):
    """The analyze endpoint answered with a non-success status."""


class NdaCheckerClient:
    """
    HTTP transport for ComparisonSession, talking to this service's API.

    No timeout is set on the calls; whatever requests does by default applies.
    Cancelling an upload does not abort the request already on the wire: the
    server still finishes parsing the file, and the token is checked again
    when the response comes back.

    Each thread gets its own requests.Session unless one is passed in, so the
    two upload slots can run concurrently.
    """

    def __init__(self, base_url: str, session: Optional[http_requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self._session = session
        self._local = threading.local()

    @property
    def http(self) -> http_requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, 'session', None)
        if session is None:
            session = http_requests.Session()
            self._local.session = session
        return session

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    def upload(self, file_name: str, stream, document_type: str,
               cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """
        POST one file to the upload endpoint and return its JSON payload.
        Error payloads (400/500) are returned too; they carry success=false.
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        response = self.http.post(
            self._url('upload/'),
            files={'file': (file_name, stream)},
            data={'type': document_type},
        )

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            return response.json()
        except ValueError:
            return {
                'success': False,
                'message': 'Upload failed',
                'fileName': file_name,
                'documentType': document_type,
                'error': f'Unexpected response from upload endpoint: {response.status_code}',
            }

    def analyze(self, reference_text: str, customer_text: str) -> Dict[str, Any]:
        response = self.http.post(
            self._url('analyze/'),
            json={
                'referenceText': reference_text,
                'customerText': customer_text,
            },
        )
        if not response.ok:
            raise AnalysisRequestError(f"Analysis failed: {response.status_code}")
        return response.json()

    def store_comparison(self, payload: Dict[str, Any]) -> None:
        response = self.http.post(self._url('comparison/'), json=payload)
        response.raise_for_status()

    def fetch_comparison(self, search: str = '', section_filter: str = 'all') -> Optional[Dict[str, Any]]:
        """Rendered tabs of the stored comparison, or None when nothing is stored."""
        response = self.http.get(self._url('comparison/'), params={'search': search, 'filter': section_filter})
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def clear_comparison(self) -> None:
        response = self.http.delete(self._url('comparison/'))
        response.raise_for_status()

    def download_report(self) -> bytes:
        response = self.http.get(self._url('comparison/report/'))
        response.raise_for_status()
        return response.content
