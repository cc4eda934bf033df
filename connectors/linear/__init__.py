# Extractors
from connectors.linear.linear_api_backfill_extractor import (
    LinearApiBackfillExtractor,
    LinearBackfillResult,
)

# Errors
from src.utils.errors import (
    LabelChangeRejectedError,
    MalformedPayloadError,
    SignatureInvalidError,
    SignatureLengthMismatchError,
    StorageUnavailableError,
    SyncError,
    TenantUnauthorizedError,
    UnsupportedEntityTypeError,
)

# Helpers
from connectors.linear.linear_helpers import (
    flatten_connections,
    format_linear_timestamp,
    get_user_display_name,
    parse_linear_timestamp,
    priority_to_label,
)

# Models
from connectors.linear.linear_models import (
    LinearComment,
    LinearInitiative,
    LinearIssue,
    LinearProject,
    LinearTeam,
    RecordQuery,
    StoredRecord,
    SyncedEntityType,
    SyncedRecord,
)

# Projectors
from connectors.linear.linear_read_projector import (
    project_comment,
    project_initiative,
    project_issue,
    project_issue_detail,
    project_project,
    project_roadmap_issue,
    project_team,
)

# Mappers
from connectors.linear.linear_record_mapper import map_payload_to_record
from connectors.linear.linear_webhook_extractor import IngestResult, LinearWebhookIngestor

# Webhook Handlers
from connectors.linear.linear_webhook_handler import (
    extract_linear_webhook_id,
    extract_linear_webhook_metadata,
    verify_linear_signature,
)

__all__ = [
    # Extractors
    "LinearApiBackfillExtractor",
    "LinearBackfillResult",
    "LinearWebhookIngestor",
    "IngestResult",
    # Errors
    "SyncError",
    "SignatureInvalidError",
    "SignatureLengthMismatchError",
    "MalformedPayloadError",
    "UnsupportedEntityTypeError",
    "StorageUnavailableError",
    "TenantUnauthorizedError",
    "LabelChangeRejectedError",
    # Helpers
    "flatten_connections",
    "format_linear_timestamp",
    "get_user_display_name",
    "parse_linear_timestamp",
    "priority_to_label",
    # Models
    "SyncedEntityType",
    "SyncedRecord",
    "StoredRecord",
    "RecordQuery",
    "LinearIssue",
    "LinearComment",
    "LinearTeam",
    "LinearProject",
    "LinearInitiative",
    # Mappers / projectors
    "map_payload_to_record",
    "project_issue",
    "project_issue_detail",
    "project_roadmap_issue",
    "project_comment",
    "project_team",
    "project_project",
    "project_initiative",
    # Webhook Handlers
    "verify_linear_signature",
    "extract_linear_webhook_id",
    "extract_linear_webhook_metadata",
]
