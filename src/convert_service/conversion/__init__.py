"""
Domain layer for file conversion.
Provides the upload store, job tracker, and a service orchestrating jobs
against a hosted conversion provider, so front-ends (HTTP or others) can
use the same core logic.
"""

from .interfaces import KeyValueStore, ProviderGateway
from .models import ConversionJob, Failed, JobStatus, Ok, UploadedFile
from .polling import CancellationToken, poll_until_terminal
from .service import ConversionService
from .tracker import JobTracker
from .uploads import UploadStore
