"""
Database Package - SQLAlchemy
=============================

Local bookkeeping for users, cases, chats and Case.dev job mirrors.
"""

from .models import (
    Base,
    User, Setting, ActivityLog, Group, UserGroup,
    Case, Contact, CaseParty, CaseEvent, CaseTask, CaseDocument,
    Chat, Message, Artifact,
    Vault, VaultObject, OcrJob, TranscriptionJob,
    TabularAnalysis, TabularAnalysisRow,
    UserRole, CaseVisibility, CaseStatus, TaskStatus, ArtifactKind,
    JobStatus, AnalysisStatus, ColumnDataType
)
from .session import get_db, init_db, get_engine, get_db_session, reset_engine, DatabaseManager

__all__ = [
    # Base
    "Base",
    # Users & permissions
    "User", "Setting", "ActivityLog", "Group", "UserGroup",
    # Case Management
    "Case", "Contact", "CaseParty", "CaseEvent", "CaseTask", "CaseDocument",
    # Chat
    "Chat", "Message", "Artifact",
    # Case.dev mirrors
    "Vault", "VaultObject", "OcrJob", "TranscriptionJob",
    # Tabular
    "TabularAnalysis", "TabularAnalysisRow",
    # Enums
    "UserRole", "CaseVisibility", "CaseStatus", "TaskStatus", "ArtifactKind",
    "JobStatus", "AnalysisStatus", "ColumnDataType",
    # Session
    "get_db", "init_db", "get_engine", "get_db_session", "reset_engine", "DatabaseManager",
]
