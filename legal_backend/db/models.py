"""
SQLAlchemy Models for Database
==============================

Local bookkeeping for the legal AI workspace:
- Users, settings, groups and the activity log
- Case management (cases, contacts, parties, events, tasks, documents)
- Chats, messages and artifacts
- Mirrors of Case.dev vaults, OCR jobs and transcription jobs
- Tabular analyses and their extracted rows

Case.dev is the source of truth for vault contents; the rows here only
track ownership and job status.

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, ForeignKey,
    BigInteger, UniqueConstraint, Index, JSON
)
from sqlalchemy.orm import relationship, declarative_base
import uuid

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, enum.Enum):
    """User roles"""
    ADMIN = "admin"
    USER = "user"
    PENDING = "pending"


class CaseVisibility(str, enum.Enum):
    """Who can see a case besides its creator"""
    PRIVATE = "private"
    TEAM = "team"
    ORGANIZATION = "organization"


class CaseStatus(str, enum.Enum):
    """Case lifecycle status"""
    ACTIVE = "active"
    PENDING = "pending"
    CLOSED = "closed"
    ARCHIVED = "archived"


class TaskStatus(str, enum.Enum):
    """Case task status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ArtifactKind(str, enum.Enum):
    """Kinds of AI-generated documents"""
    TEXT = "text"
    MEMO = "memo"
    LETTER = "letter"
    BRIEF = "brief"
    CONTRACT = "contract"
    SUMMARY = "summary"


class JobStatus(str, enum.Enum):
    """OCR / transcription job status (mirrors Case.dev)"""
    QUEUED = "queued"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisStatus(str, enum.Enum):
    """Tabular analysis status"""
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ColumnDataType(str, enum.Enum):
    """Tabular column data types"""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


# =============================================================================
# USERS, SETTINGS & GROUPS
# =============================================================================

class User(Base):
    """Workspace user"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)  # admin/user/pending
    profile_image_url = Column(String(500), nullable=True)
    case_api_key = Column(String(255), nullable=True)  # Per-user Case.dev key (optional)
    last_active_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    group_memberships = relationship("UserGroup", back_populates="user", cascade="all, delete-orphan")
    chats = relationship("Chat", back_populates="user", cascade="all, delete-orphan")


class Setting(Base):
    """Key/value system setting (e.g. ENABLE_SIGNUP)"""
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ActivityLog(Base):
    """Audit trail entry"""
    __tablename__ = "activity_log"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(100), nullable=True)
    details = Column(JSONB, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)


class Group(Base):
    """Permission group; permissions is a partial permission tree"""
    __tablename__ = "groups"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    permissions = Column(JSONB, default=dict)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("UserGroup", back_populates="group", cascade="all, delete-orphan")


class UserGroup(Base):
    """Group membership"""
    __tablename__ = "user_groups"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    group_id = Column(String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True)
    added_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="group_memberships")
    group = relationship("Group", back_populates="members")


# =============================================================================
# CASE MANAGEMENT MODELS
# =============================================================================

class Case(Base):
    """Legal case / matter"""
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # creator
    case_number = Column(String(20), nullable=False, unique=True)  # YYYY-NNN
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    case_type = Column(String(100), nullable=True)
    status = Column(String(20), default=CaseStatus.ACTIVE.value, nullable=False)

    # Court details
    jurisdiction = Column(String(255), nullable=True)
    court_name = Column(String(255), nullable=True)
    official_case_number = Column(String(100), nullable=True)

    # Dates / value
    date_opened = Column(DateTime, default=datetime.utcnow)
    trial_date = Column(DateTime, nullable=True)
    date_closed = Column(DateTime, nullable=True)
    estimated_value = Column(Float, nullable=True)
    custom_fields = Column(JSONB, default=dict)

    # Access control
    visibility = Column(String(20), default=CaseVisibility.PRIVATE.value, nullable=False)
    allowed_group_ids = Column(JSONB, default=list)
    allowed_user_ids = Column(JSONB, default=list)

    vault_id = Column(String(100), nullable=True)  # Case.dev vault for this matter

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    parties = relationship("CaseParty", back_populates="case", cascade="all, delete-orphan")
    events = relationship("CaseEvent", back_populates="case", cascade="all, delete-orphan")
    tasks = relationship("CaseTask", back_populates="case", cascade="all, delete-orphan")
    documents = relationship("CaseDocument", back_populates="case", cascade="all, delete-orphan")


class Contact(Base):
    """Person or organization that can be a party to cases"""
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    type = Column(String(20), nullable=False)  # individual/organization
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    organization_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CaseParty(Base):
    """Contact participating in a case (client, opposing counsel, witness...)"""
    __tablename__ = "case_parties"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(100), nullable=False)
    is_primary = Column(Boolean, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="parties")
    contact = relationship("Contact")


class CaseEvent(Base):
    """Timeline event"""
    __tablename__ = "case_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(50), nullable=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(DateTime, nullable=False)
    importance = Column(String(20), default="normal")
    extracted_by = Column(String(20), default="manual")  # manual/ai
    source_document_id = Column(String(100), nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="events")

    __table_args__ = (
        Index("ix_case_events_case_date", "case_id", "event_date"),
    )


class CaseTask(Base):
    """Task attached to a case"""
    __tablename__ = "case_tasks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    assigned_to = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    due_date = Column(DateTime, nullable=True)
    priority = Column(String(20), default="medium")
    status = Column(String(20), default=TaskStatus.PENDING.value)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="tasks")


class CaseDocument(Base):
    """Vault object linked to a case"""
    __tablename__ = "case_documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    vault_id = Column(String(100), nullable=True)
    object_id = Column(String(100), nullable=True)
    filename = Column(String(500), nullable=False)
    document_type = Column(String(100), nullable=True)
    added_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="documents")


# =============================================================================
# CHAT & ARTIFACTS
# =============================================================================

class Chat(Base):
    """Chat conversation"""
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), default="New Chat", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="chats")
    messages = relationship("Message", back_populates="chat", cascade="all, delete-orphan",
                            order_by="Message.created_at")


class Message(Base):
    """Chat message; content is serialized JSON (text or parts)"""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False)  # user/assistant/system/tool
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    chat = relationship("Chat", back_populates="messages")


class Artifact(Base):
    """AI-generated document, editable by the user"""
    __tablename__ = "artifacts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="SET NULL"), nullable=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), nullable=False)
    content = Column(Text, default="")
    kind = Column(String(20), default=ArtifactKind.TEXT.value)
    version = Column(Integer, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# CASE.DEV MIRRORS (vaults, OCR, transcription)
# =============================================================================

class Vault(Base):
    """Local record of a Case.dev vault (id is the Case.dev id)"""
    __tablename__ = "vaults"

    id = Column(String(100), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    region = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    objects = relationship("VaultObject", back_populates="vault", cascade="all, delete-orphan")


class VaultObject(Base):
    """Local record of an uploaded vault object"""
    __tablename__ = "vault_objects"

    id = Column(String(100), primary_key=True)
    vault_id = Column(String(100), ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False)
    filename = Column(String(500), nullable=False)
    content_type = Column(String(200), nullable=True)
    size = Column(BigInteger, nullable=True)
    status = Column(String(20), default="pending")
    uploaded_at = Column(DateTime, default=datetime.utcnow)

    vault = relationship("Vault", back_populates="objects")


class OcrJob(Base):
    """OCR job submitted to Case.dev (id is the Case.dev job id)"""
    __tablename__ = "ocr_jobs"

    id = Column(String(100), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    document_id = Column(String(100), nullable=True)
    vault_id = Column(String(100), nullable=True)
    object_id = Column(String(100), nullable=True)
    filename = Column(String(500), nullable=False)
    document_url = Column(Text, nullable=True)
    engine = Column(String(50), default="doctr")
    status = Column(String(20), default=JobStatus.QUEUED.value)
    page_count = Column(Integer, nullable=True)
    chunk_count = Column(Integer, nullable=True)
    chunks_completed = Column(Integer, default=0)
    chunks_processing = Column(Integer, default=0)
    chunks_failed = Column(Integer, default=0)
    confidence = Column(Integer, nullable=True)  # 0-100
    text_length = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)


class TranscriptionJob(Base):
    """Transcription job submitted to Case.dev (id is the Case.dev id)"""
    __tablename__ = "transcription_jobs"

    id = Column(String(100), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    filename = Column(String(500), nullable=False)
    audio_url = Column(Text, nullable=False)
    language_code = Column(String(10), default="en")
    speaker_labels = Column(Boolean, default=False)
    status = Column(String(20), default=JobStatus.QUEUED.value)
    audio_duration = Column(Float, nullable=True)
    confidence = Column(Float, nullable=True)
    word_count = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)


# =============================================================================
# TABULAR ANALYSIS
# =============================================================================

class TabularAnalysis(Base):
    """
    User-defined extraction table.

    columns: list of {id, name, prompt, dataType, order, modelId?}
    document_ids: vault object ids (one row each)
    """
    __tablename__ = "tabular_analyses"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    vault_id = Column(String(100), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    document_ids = Column(JSONB, default=list)
    columns = Column(JSONB, default=list)
    model_id = Column(String(100), default="anthropic/claude-sonnet-4.5")
    status = Column(String(20), default=AnalysisStatus.DRAFT.value)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    rows = relationship("TabularAnalysisRow", back_populates="analysis", cascade="all, delete-orphan")


class TabularAnalysisRow(Base):
    """One document's extracted cells: data maps column id -> CellValue"""
    __tablename__ = "tabular_analysis_rows"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    analysis_id = Column(String(36), ForeignKey("tabular_analyses.id", ondelete="CASCADE"), nullable=False)
    document_id = Column(String(100), nullable=False)
    data = Column(JSONB, default=dict)
    tokens_used = Column(Integer, default=0)
    extracted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    analysis = relationship("TabularAnalysis", back_populates="rows")

    __table_args__ = (
        UniqueConstraint("analysis_id", "document_id", name="uq_tabular_row_document"),
    )
