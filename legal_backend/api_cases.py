"""
Case Management API Endpoints
=============================

Matters, their tasks, timeline events and parties, plus the contact book.
Access to a case follows `cases.can_access_case`.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .auth import AuthContext, require_auth, log_activity
from .cases import can_access_case, get_accessible_cases, generate_case_number
from .db import (
    Case, Contact, CaseParty, CaseEvent, CaseTask, CaseDocument,
    CaseStatus, CaseVisibility, TaskStatus, get_db,
)
from .schemas import (
    CreateCaseRequest, CreateTaskRequest, UpdateTaskRequest,
    CreateEventRequest, CreatePartyRequest, CreateContactRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["cases"])


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_date(value: Optional[str], field: str) -> Optional[datetime]:
    """Parse an ISO-ish date string from a request body (400 on garbage)"""
    if not value:
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail=f"Invalid {field}")


def case_to_dict(case: Case) -> Dict[str, Any]:
    return {
        "id": case.id,
        "userId": case.user_id,
        "caseNumber": case.case_number,
        "title": case.title,
        "description": case.description,
        "caseType": case.case_type,
        "status": case.status,
        "jurisdiction": case.jurisdiction,
        "courtName": case.court_name,
        "officialCaseNumber": case.official_case_number,
        "dateOpened": _iso(case.date_opened),
        "trialDate": _iso(case.trial_date),
        "dateClosed": _iso(case.date_closed),
        "estimatedValue": case.estimated_value,
        "customFields": case.custom_fields or {},
        "visibility": case.visibility,
        "allowedGroupIds": case.allowed_group_ids or [],
        "allowedUserIds": case.allowed_user_ids or [],
        "vaultId": case.vault_id,
        "createdAt": _iso(case.created_at),
        "updatedAt": _iso(case.updated_at),
    }


def task_to_dict(task: CaseTask) -> Dict[str, Any]:
    return {
        "id": task.id,
        "caseId": task.case_id,
        "title": task.title,
        "description": task.description,
        "assignedTo": task.assigned_to,
        "dueDate": _iso(task.due_date),
        "priority": task.priority,
        "status": task.status,
        "completedAt": _iso(task.completed_at),
        "createdBy": task.created_by,
        "createdAt": _iso(task.created_at),
    }


def event_to_dict(event: CaseEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "caseId": event.case_id,
        "eventType": event.event_type,
        "title": event.title,
        "description": event.description,
        "eventDate": _iso(event.event_date),
        "importance": event.importance,
        "extractedBy": event.extracted_by,
        "sourceDocumentId": event.source_document_id,
        "createdAt": _iso(event.created_at),
    }


def contact_to_dict(contact: Contact) -> Dict[str, Any]:
    return {
        "id": contact.id,
        "type": contact.type,
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "organizationName": contact.organization_name,
        "email": contact.email,
        "phone": contact.phone,
        "address": contact.address,
        "notes": contact.notes,
        "createdAt": _iso(contact.created_at),
    }


def party_to_dict(party: CaseParty, contact: Optional[Contact]) -> Dict[str, Any]:
    return {
        "id": party.id,
        "caseId": party.case_id,
        "contactId": party.contact_id,
        "role": party.role,
        "isPrimary": party.is_primary,
        "notes": party.notes,
        "contact": contact_to_dict(contact) if contact else None,
    }


def document_to_dict(doc: CaseDocument) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "caseId": doc.case_id,
        "vaultId": doc.vault_id,
        "objectId": doc.object_id,
        "filename": doc.filename,
        "documentType": doc.document_type,
        "createdAt": _iso(doc.created_at),
    }


def get_case_for_user(db: Session, auth: AuthContext, case_id: str) -> Case:
    """Load a case the caller may access (404 / 403 otherwise)"""
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    if not can_access_case(auth, case):
        raise HTTPException(status_code=403, detail="Access denied")
    return case


# =============================================================================
# CASES
# =============================================================================

@router.get("/cases")
async def list_cases(
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    try:
        cases = get_accessible_cases(auth, db)
    except Exception:
        logger.exception("Failed to list cases")
        raise HTTPException(status_code=500, detail="Failed to list cases")
    return {"cases": [case_to_dict(c) for c in cases]}


@router.post("/cases", status_code=201)
async def create_case(
    request: CreateCaseRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    if not request.title:
        raise HTTPException(status_code=400, detail="Title is required")

    visibility = request.visibility or CaseVisibility.PRIVATE.value
    if visibility not in [v.value for v in CaseVisibility]:
        raise HTTPException(status_code=400, detail="Invalid visibility")

    trial_date = parse_date(request.trial_date, "trialDate")

    try:
        case = Case(
            user_id=auth.user_id,
            case_number=generate_case_number(db),
            title=request.title,
            description=request.description,
            case_type=request.case_type,
            status=request.status or CaseStatus.ACTIVE.value,
            jurisdiction=request.jurisdiction,
            court_name=request.court_name,
            official_case_number=request.official_case_number,
            trial_date=trial_date,
            estimated_value=request.estimated_value,
            custom_fields=request.custom_fields or {},
            visibility=visibility,
            allowed_group_ids=request.allowed_group_ids or [],
            allowed_user_ids=request.allowed_user_ids or [],
            vault_id=request.vault_id,
        )
        db.add(case)
        db.flush()
        log_activity(db, auth.user_id, "case.create", "case", case.id)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to create case")
        raise HTTPException(status_code=500, detail="Failed to create case")

    logger.info(f"Case created: {case.case_number} by {auth.user_id}")
    return {"success": True, "caseId": case.id, "caseNumber": case.case_number}


@router.get("/cases/{case_id}")
async def get_case(
    case_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Case details with parties, events, tasks and documents"""
    case = get_case_for_user(db, auth, case_id)

    parties = (
        db.query(CaseParty, Contact)
        .outerjoin(Contact, Contact.id == CaseParty.contact_id)
        .filter(CaseParty.case_id == case_id)
        .all()
    )
    events = (
        db.query(CaseEvent)
        .filter(CaseEvent.case_id == case_id)
        .order_by(CaseEvent.event_date)
        .all()
    )
    tasks = db.query(CaseTask).filter(CaseTask.case_id == case_id).all()
    documents = db.query(CaseDocument).filter(CaseDocument.case_id == case_id).all()

    return {
        "case": case_to_dict(case),
        "parties": [party_to_dict(p, c) for p, c in parties],
        "events": [event_to_dict(e) for e in events],
        "tasks": [task_to_dict(t) for t in tasks],
        "documents": [document_to_dict(d) for d in documents],
    }


# =============================================================================
# TASKS / EVENTS / PARTIES
# =============================================================================

@router.post("/cases/{case_id}/tasks", status_code=201)
async def create_task(
    case_id: str,
    request: CreateTaskRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    get_case_for_user(db, auth, case_id)
    if not request.title:
        raise HTTPException(status_code=400, detail="Title is required")

    task = CaseTask(
        case_id=case_id,
        title=request.title,
        description=request.description,
        assigned_to=request.assigned_to or auth.user_id,
        due_date=parse_date(request.due_date, "dueDate"),
        priority=request.priority or "medium",
        status=TaskStatus.PENDING.value,
        created_by=auth.user_id,
    )
    db.add(task)
    db.commit()
    return {"success": True, "taskId": task.id}


@router.patch("/cases/{case_id}/tasks")
async def update_task(
    case_id: str,
    request: UpdateTaskRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    get_case_for_user(db, auth, case_id)
    if not request.task_id or not request.status:
        raise HTTPException(status_code=400, detail="taskId and status are required")
    if request.status not in [s.value for s in TaskStatus]:
        raise HTTPException(status_code=400, detail="Invalid status")

    task = db.query(CaseTask).filter(CaseTask.id == request.task_id, CaseTask.case_id == case_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    task.status = request.status
    task.completed_at = datetime.utcnow() if request.status == TaskStatus.COMPLETED.value else None
    db.commit()
    return {"success": True}


@router.post("/cases/{case_id}/events", status_code=201)
async def create_event(
    case_id: str,
    request: CreateEventRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    get_case_for_user(db, auth, case_id)
    if not request.event_date or not request.title:
        raise HTTPException(status_code=400, detail="Event date and title are required")

    event = CaseEvent(
        case_id=case_id,
        title=request.title,
        description=request.description,
        event_type=request.event_type,
        event_date=parse_date(request.event_date, "eventDate"),
        importance=request.importance or "normal",
        extracted_by="manual",
        source_document_id=request.source_document_id,
        created_by=auth.user_id,
    )
    db.add(event)
    db.commit()
    return {"success": True, "eventId": event.id}


@router.post("/cases/{case_id}/parties", status_code=201)
async def add_party(
    case_id: str,
    request: CreatePartyRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    get_case_for_user(db, auth, case_id)
    if not request.contact_id or not request.role:
        raise HTTPException(status_code=400, detail="Contact ID and role are required")
    if not db.query(Contact).filter(Contact.id == request.contact_id).first():
        raise HTTPException(status_code=404, detail="Contact not found")

    party = CaseParty(
        case_id=case_id,
        contact_id=request.contact_id,
        role=request.role,
        is_primary=request.is_primary,
        notes=request.notes,
    )
    db.add(party)
    db.commit()
    return {"success": True, "partyId": party.id}


# =============================================================================
# CONTACTS
# =============================================================================

@router.get("/contacts")
async def list_contacts(
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    contacts = db.query(Contact).order_by(Contact.created_at.desc()).all()
    return {"contacts": [contact_to_dict(c) for c in contacts]}


@router.post("/contacts", status_code=201)
async def create_contact(
    request: CreateContactRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    if not request.type:
        raise HTTPException(status_code=400, detail="Contact type is required")
    if request.type not in ("individual", "organization"):
        raise HTTPException(status_code=400, detail="Invalid contact type")

    contact = Contact(
        type=request.type,
        first_name=request.first_name,
        last_name=request.last_name,
        organization_name=request.organization_name,
        email=request.email,
        phone=request.phone,
        address=request.address,
        notes=request.notes,
        created_by=auth.user_id,
    )
    db.add(contact)
    db.commit()
    return {"success": True, "contactId": contact.id}
