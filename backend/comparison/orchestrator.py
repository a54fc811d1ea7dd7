"""
Client-side orchestration of an NDA comparison.

A ComparisonSession holds everything one user's comparison needs: two upload
slots (reference and customer), the analysis state and the last result. It is
created when a comparison starts and cleared by new_comparison().

Each upload gets its own CancellationToken which travels with the request.
A slot only accepts a response whose token is still live, so a response that
resolves after the user cancelled is dropped instead of overwriting the
'cancelled' state.
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

REFERENCE_NDA = 'referenceNda'
CUSTOMER_NDA = 'customerNda'
DOCUMENT_TYPES = (REFERENCE_NDA, CUSTOMER_NDA)

PROGRESS_PREPARING = "Preparing documents for analysis..."
PROGRESS_SENDING = "Sending documents to SolarLLM for analysis..."
PROGRESS_PROCESSING = "Processing analysis results..."
PROGRESS_COMPLETE = "Analysis complete!"


class UploadCancelled(Exception):
    """Raised inside an upload once its token has been cancelled."""


class ComparisonNotReady(Exception):
    """compare() was called while the Compare action is disabled."""


class CancellationToken:
    """Cancellation flag scoped to a single upload request."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise UploadCancelled("Upload was cancelled by user")


class SlotState(str, Enum):
    IDLE = 'idle'
    UPLOADING = 'uploading'
    SUCCESS = 'success'
    ERROR = 'error'
    CANCELLED = 'cancelled'


class AnalysisState(str, Enum):
    IDLE = 'idle'
    ANALYZING = 'analyzing'
    RESULT = 'result'
    ERROR = 'error'


@dataclass(frozen=True)
class ParsedContent:
    text: str = ''
    html: str = ''
    elements: List[Dict[str, Any]] = field(default_factory=list)
    pages: int = 0


@dataclass(frozen=True)
class UploadedDocument:
    file_name: str
    document_type: str
    parsed_content: ParsedContent

    @property
    def text(self) -> str:
        """Text handed to the analysis: plain text, or HTML when there is none."""
        return self.parsed_content.text or self.parsed_content.html

    @classmethod
    def from_upload_result(cls, result: Dict[str, Any]) -> "UploadedDocument":
        parsed = result.get('parsedContent') or {}
        return cls(
            file_name=result.get('fileName', ''),
            document_type=result.get('documentType', ''),
            parsed_content=ParsedContent(
                text=parsed.get('text') or '',
                html=parsed.get('html') or '',
                elements=list(parsed.get('elements') or []),
                pages=int(parsed.get('pages') or 0),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fileName': self.file_name,
            'documentType': self.document_type,
            'parsedContent': {
                'text': self.parsed_content.text,
                'html': self.parsed_content.html,
                'elements': list(self.parsed_content.elements),
                'pages': self.parsed_content.pages,
            },
        }


class UploadSlot:
    """
    Upload state for one document role.

    idle -> uploading -> success | error | cancelled, and back to idle via
    reset(). Every transition happens under the slot lock.
    """

    def __init__(self, document_type: str):
        if document_type not in DOCUMENT_TYPES:
            raise ValueError(f"Invalid document type: {document_type}")
        self.document_type = document_type
        self.state = SlotState.IDLE
        self.file_name: Optional[str] = None
        self.file_size: Optional[int] = None
        self.result: Optional[Dict[str, Any]] = None
        self.document: Optional[UploadedDocument] = None
        self._token: Optional[CancellationToken] = None
        self._lock = threading.Lock()

    @property
    def uploading(self) -> bool:
        return self.state == SlotState.UPLOADING

    def start(self, file_name: str, file_size: Optional[int] = None) -> CancellationToken:
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            token = CancellationToken()
            self._token = token
            self.state = SlotState.UPLOADING
            self.file_name = file_name
            self.file_size = file_size
            self.result = None
            self.document = None
            return token

    def _owns(self, token: CancellationToken) -> bool:
        return self._token is token and not token.cancelled

    def complete(self, token: CancellationToken, result: Dict[str, Any]) -> bool:
        """Apply an upload response. Returns False if the response was discarded."""
        with self._lock:
            if not self._owns(token):
                logger.info(f"Discarding upload response for {self.document_type}: request was cancelled")
                return False
            self._token = None
            try:
                succeeded = bool(result.get('success') and result.get('parsedContent'))
                document = UploadedDocument.from_upload_result(result) if succeeded else None
            except (AttributeError, TypeError, ValueError) as exc:
                logger.error(f"Malformed upload response for {self.document_type}: {exc}")
                self.state = SlotState.ERROR
                self.result = self._local_result("Upload failed", f"Unexpected upload response: {exc}")
                return True

            self.result = result
            self.document = document
            self.state = SlotState.SUCCESS if succeeded else SlotState.ERROR
            return True

    def fail(self, token: CancellationToken, message: str) -> bool:
        with self._lock:
            if not self._owns(token):
                return False
            self._token = None
            self.state = SlotState.ERROR
            self.result = self._local_result("Upload failed", message)
            return True

    def cancel(self) -> bool:
        """Cancel the in-flight upload, if any."""
        with self._lock:
            if not self.uploading or self._token is None:
                return False
            self._token.cancel()
            self._token = None
            self.state = SlotState.CANCELLED
            self.result = self._local_result("Upload cancelled", "Upload was cancelled by user")
            return True

    def reset(self):
        """'Change file' / 'Try again': cancel anything in flight and clear the slot."""
        with self._lock:
            if self._token is not None:
                self._token.cancel()
                self._token = None
            self.state = SlotState.IDLE
            self.file_name = None
            self.file_size = None
            self.result = None
            self.document = None

    def _local_result(self, message: str, error: str) -> Dict[str, Any]:
        return {
            'success': False,
            'message': message,
            'fileName': self.file_name,
            'fileSize': self.file_size,
            'documentType': self.document_type,
            'error': error,
        }


class ComparisonSession:
    """
    Session-scoped context for one comparison.

    transport must provide upload(file_name, stream, document_type,
    cancel_token=...) returning the upload endpoint payload, and
    analyze(reference_text, customer_text) returning the AnalysisResult.
    NdaCheckerClient is the HTTP implementation.
    """

    def __init__(
        self,
        transport,
        executor: Optional[ThreadPoolExecutor] = None,
        progress_delay: float = 0.5,
        on_progress: Optional[Callable[[str], None]] = None,
    ):
        self.transport = transport
        self.progress_delay = progress_delay
        self.on_progress = on_progress
        self._executor = executor
        self._owns_executor = executor is None
        self.slots = {document_type: UploadSlot(document_type) for document_type in DOCUMENT_TYPES}
        self.analysis_state = AnalysisState.IDLE
        self.analysis_result: Optional[Dict[str, Any]] = None
        self.analysis_error: Optional[str] = None
        self.analysis_step = ""
        self._analysis_lock = threading.Lock()

    @property
    def reference(self) -> UploadSlot:
        return self.slots[REFERENCE_NDA]

    @property
    def customer(self) -> UploadSlot:
        return self.slots[CUSTOMER_NDA]

    def slot(self, document_type: str) -> UploadSlot:
        try:
            return self.slots[document_type]
        except KeyError:
            raise ValueError(f"Invalid document type: {document_type}") from None

    # ---------------------------------------------------------------- uploads

    def upload(self, document_type: str, file_name: str, stream, file_size: Optional[int] = None) -> SlotState:
        """Upload one file into its slot and return the slot's resulting state."""
        slot = self.slot(document_type)
        token = slot.start(file_name, file_size)
        try:
            result = self.transport.upload(file_name, stream, document_type, cancel_token=token)
        except UploadCancelled:
            logger.info(f"Upload of {file_name} ({document_type}) cancelled")
        except Exception as exc:
            logger.error(f"Upload of {file_name} ({document_type}) failed: {exc}")
            slot.fail(token, str(exc) or "Unknown error")
        else:
            slot.complete(token, result)
        return slot.state

    def upload_async(self, document_type: str, file_name: str, stream, file_size: Optional[int] = None) -> Future:
        """Start an upload in the background; both slots may upload at once."""
        return self._get_executor().submit(self.upload, document_type, file_name, stream, file_size)

    def cancel_upload(self, document_type: str) -> bool:
        return self.slot(document_type).cancel()

    def change_file(self, document_type: str):
        self.slot(document_type).reset()

    # --------------------------------------------------------------- analysis

    @property
    def analyzing(self) -> bool:
        return self.analysis_state == AnalysisState.ANALYZING

    @property
    def can_compare(self) -> bool:
        return (
            self.reference.state == SlotState.SUCCESS
            and self.customer.state == SlotState.SUCCESS
            and not self.analyzing
        )

    @property
    def missing_documents_hint(self) -> Optional[str]:
        """Prompt shown under the disabled Compare button, None when comparing is possible."""
        if self.can_compare or self.analyzing:
            return None
        reference_ready = self.reference.state == SlotState.SUCCESS
        customer_ready = self.customer.state == SlotState.SUCCESS
        if not reference_ready and not customer_ready:
            return "Please upload both documents to enable comparison"
        if not reference_ready:
            return "Please upload the reference NDA"
        return "Please upload the customer NDA"

    def compare(self) -> Optional[Dict[str, Any]]:
        """
        Run the analysis for the two uploaded documents.

        Returns the AnalysisResult, or None when the request failed (the
        message is kept in analysis_error). The call itself is not cancellable.
        """
        with self._analysis_lock:
            if not self.can_compare:
                raise ComparisonNotReady(self.missing_documents_hint or "Analysis already in progress")
            self.analysis_state = AnalysisState.ANALYZING
            self.analysis_result = None
            self.analysis_error = None

        reference_text = self.reference.document.text
        customer_text = self.customer.document.text

        try:
            self._report_progress(PROGRESS_PREPARING)
            if self.progress_delay:
                time.sleep(self.progress_delay)

            self._report_progress(PROGRESS_SENDING)
            result = self.transport.analyze(reference_text, customer_text)
            if not isinstance(result, dict):
                raise ValueError(f"Unexpected analysis response: {type(result).__name__}")

            self._report_progress(PROGRESS_PROCESSING)
            if result.get('error'):
                logger.warning(f"Analysis returned a fallback result: {result['error']}")
            self.analysis_result = result
            self.analysis_state = AnalysisState.RESULT
            self._report_progress(PROGRESS_COMPLETE)
        except Exception as exc:
            logger.error(f"Analysis failed: {exc}")
            self.analysis_result = None
            self.analysis_error = str(exc) or "Analysis failed"
            self.analysis_state = AnalysisState.ERROR
        finally:
            self.analysis_step = ""

        return self.analysis_result

    def reset_analysis(self):
        with self._analysis_lock:
            self.analysis_state = AnalysisState.IDLE
            self.analysis_result = None
            self.analysis_error = None
            self.analysis_step = ""

    def new_comparison(self):
        """Discard both documents and the result."""
        for slot in self.slots.values():
            slot.reset()
        self.reset_analysis()

    def _report_progress(self, step: str):
        self.analysis_step = step
        if self.on_progress:
            self.on_progress(step)

    # ---------------------------------------------------------------- storage

    def to_storage(self) -> Dict[str, Any]:
        """Payload kept in session storage to hand the result to the comparison page."""
        if self.analysis_result is None or self.reference.document is None or self.customer.document is None:
            raise ComparisonNotReady("No completed comparison to store")
        return {
            'analysisResult': self.analysis_result,
            'referenceNda': self.reference.document.to_dict(),
            'customerNda': self.customer.document.to_dict(),
        }

    @classmethod
    def from_storage(cls, payload: Dict[str, Any], transport=None, **kwargs) -> "ComparisonSession":
        session = cls(transport, **kwargs)
        for document_type, key in ((REFERENCE_NDA, 'referenceNda'), (CUSTOMER_NDA, 'customerNda')):
            stored = dict(payload[key])
            stored.setdefault('documentType', document_type)
            slot = session.slot(document_type)
            token = slot.start(stored.get('fileName', ''))
            slot.complete(token, {'success': True, **stored})
        session.analysis_result = payload['analysisResult']
        session.analysis_state = AnalysisState.RESULT
        return session

    # --------------------------------------------------------------- shutdown

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=len(DOCUMENT_TYPES))
        return self._executor

    def close(self):
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
