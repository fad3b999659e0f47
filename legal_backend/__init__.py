"""
Legal AI Workspace Backend
==========================

FastAPI service for a legal AI workspace:
- Authentication, onboarding and role/group permissions
- Case management (cases, parties, events, tasks)
- Document vaults, OCR, transcription and text-to-speech via Case.dev
- AI chat with tool-calling and artifacts
- Tabular extraction over vault documents
- Multi-phase deep research reports
"""

__version__ = "1.0.0"
