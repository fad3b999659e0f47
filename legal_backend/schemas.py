"""
Pydantic Request Schemas
========================

Request bodies for the `/api` routes.

Bodies arrive in camelCase (`vaultId`, `numResults`); every model accepts
either the camelCase alias or the snake_case field name. Required fields
are checked in the routes so the `{"error": ...}` messages stay specific.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting camelCase keys"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"
        protected_namespaces = ()


# =============================================================================
# AUTH & USERS
# =============================================================================

class SignupRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


class AddUserRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: str = "user"


class UpdateRoleRequest(CamelModel):
    role: Optional[str] = None


class SignupSettingRequest(CamelModel):
    enabled: Optional[bool] = None


# =============================================================================
# GROUPS
# =============================================================================

class CreateGroupRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[Dict[str, Any]] = None


class UpdateGroupRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[Dict[str, Any]] = None


class GroupMemberRequest(CamelModel):
    user_id: Optional[str] = None


# =============================================================================
# CASES
# =============================================================================

class CreateCaseRequest(CamelModel):
    """New matter"""
    title: Optional[str] = None
    description: Optional[str] = None
    case_type: Optional[str] = None
    status: Optional[str] = None
    jurisdiction: Optional[str] = None
    court_name: Optional[str] = None
    official_case_number: Optional[str] = None
    trial_date: Optional[str] = None
    estimated_value: Optional[float] = None
    visibility: Optional[str] = None
    allowed_group_ids: Optional[List[str]] = None
    allowed_user_ids: Optional[List[str]] = None
    vault_id: Optional[str] = None
    custom_fields: Optional[Dict[str, Any]] = None


class CreateTaskRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[str] = None
    priority: str = "medium"


class UpdateTaskRequest(CamelModel):
    task_id: Optional[str] = None
    status: Optional[str] = None


class CreateEventRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    event_type: Optional[str] = None
    event_date: Optional[str] = None
    importance: str = "normal"
    source_document_id: Optional[str] = None


class CreatePartyRequest(CamelModel):
    contact_id: Optional[str] = None
    role: Optional[str] = None
    is_primary: bool = False
    notes: Optional[str] = None


class CreateContactRequest(CamelModel):
    type: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    organization_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


# =============================================================================
# VAULTS
# =============================================================================

class CreateVaultRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    enable_graph: bool = False


class UploadUrlRequest(CamelModel):
    filename: Optional[str] = None
    content_type: str = "application/octet-stream"
    size: Optional[int] = None


class IngestRequest(CamelModel):
    enable_graphrag: bool = False


class VaultSearchRequest(CamelModel):
    query: Optional[str] = None
    method: str = "hybrid"
    top_k: int = 10
    filters: Optional[Dict[str, Any]] = None


# =============================================================================
# OCR & VOICE
# =============================================================================

class OcrSubmitRequest(CamelModel):
    """Either documentUrl, or vaultId + objectId"""
    document_url: Optional[str] = None
    vault_id: Optional[str] = None
    object_id: Optional[str] = None
    filename: Optional[str] = None
    engine: str = "doctr"
    features: Optional[Dict[str, Any]] = None


class TranscriptionSubmitRequest(CamelModel):
    audio_url: Optional[str] = None
    vault_id: Optional[str] = None
    object_id: Optional[str] = None
    filename: Optional[str] = None
    language_code: str = "en"
    speaker_labels: bool = True
    punctuate: bool = True
    format_text: bool = True
    auto_chapters: bool = False
    summarization: bool = False
    redact_pii: bool = False
    word_boost: Optional[List[str]] = None


class SpeakRequest(CamelModel):
    text: Optional[str] = None
    voice_id: Optional[str] = None
    model_id: Optional[str] = None
    output_format: Optional[str] = None
    voice_settings: Optional[Dict[str, Any]] = None


# =============================================================================
# SEARCH
# =============================================================================

class WebSearchRequest(CamelModel):
    query: Optional[str] = None
    num_results: int = 10
    type: str = "auto"
    category: Optional[str] = None
    include_domains: Optional[List[str]] = None
    exclude_domains: Optional[List[str]] = None
    start_published_date: Optional[str] = None
    end_published_date: Optional[str] = None


class WebAnswerRequest(CamelModel):
    query: Optional[str] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    num_results: int = 10


class HostedResearchRequest(CamelModel):
    instructions: Optional[str] = None
    model: Optional[str] = None
    output_format: Optional[str] = None
    output_schema: Optional[Dict[str, Any]] = None


# =============================================================================
# WORKFLOWS
# =============================================================================

class WorkflowSearchRequest(CamelModel):
    query: Optional[str] = None
    limit: Optional[int] = None
    category: Optional[str] = None


class CombinedDocument(CamelModel):
    vault_id: str
    id: str
    name: Optional[str] = None


class CombinedExecuteRequest(CamelModel):
    documents: List[CombinedDocument] = Field(default_factory=list)
    options: Optional[Dict[str, Any]] = None
    variables: Optional[Dict[str, Any]] = None


# =============================================================================
# CHAT & ARTIFACTS
# =============================================================================

class ChatRequest(CamelModel):
    """Streaming chat turn"""
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    selected_vaults: List[str] = Field(default_factory=list)
    vault_id: Optional[str] = None
    enabled_tools: Optional[Dict[str, bool]] = None
    chat_id: Optional[str] = None
    case_id: Optional[str] = None


class CreateChatRequest(CamelModel):
    id: Optional[str] = None
    title: Optional[str] = None
    case_id: Optional[str] = None


class SaveMessageRequest(CamelModel):
    """One UI message; upserted by id"""
    id: Optional[str] = None
    role: Optional[str] = None
    content: Any = None


class CreateArtifactRequest(CamelModel):
    id: Optional[str] = None
    title: Optional[str] = None
    content: str = ""
    kind: str = "text"
    chat_id: Optional[str] = None
    case_id: Optional[str] = None


class UpdateArtifactRequest(CamelModel):
    id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    kind: Optional[str] = None


class ExportArtifactRequest(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None
    output_format: Optional[str] = None


# =============================================================================
# RESEARCH & TABULAR
# =============================================================================

class DeepResearchRequest(CamelModel):
    query: Optional[str] = None
    sources: Optional[List[Dict[str, Any]]] = None


class ExtractionColumnInput(CamelModel):
    id: Optional[str] = None
    name: str
    prompt: str = ""
    data_type: str = "text"
    order: Optional[int] = None
    model_id: Optional[str] = None

    def to_column(self, index: int) -> Dict[str, Any]:
        """Stored JSON shape of a column"""
        column = {
            "id": self.id,
            "name": self.name,
            "prompt": self.prompt,
            "dataType": self.data_type,
            "order": self.order if self.order is not None else index,
        }
        if self.model_id:
            column["modelId"] = self.model_id
        return column


class CreateTabularRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    vault_id: Optional[str] = None
    case_id: Optional[str] = None
    document_ids: List[str] = Field(default_factory=list)
    columns: List[ExtractionColumnInput] = Field(default_factory=list)
    model_id: Optional[str] = None


class UpdateTabularRequest(CamelModel):
    status: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    vault_id: Optional[str] = None
    document_ids: Optional[List[str]] = None
    columns: Optional[List[ExtractionColumnInput]] = None
    model_id: Optional[str] = None
