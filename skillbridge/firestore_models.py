"""
Firestore document models using Python dataclasses.

Each model includes:
  - An `id` field for the Firestore document ID
  - A `to_dict()` instance method for serialization
  - A `from_dict(data, doc_id)` classmethod where documents are read back
    into a model (user profiles)
  - Sensible defaults for all fields

Documents are shared with the original web clients, so persisted field names
are camelCase while the dataclass attributes are snake_case. Datetime fields
are kept as native timezone-aware datetime objects since Firestore handles
them natively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Statuses and transition tables
# ---------------------------------------------------------------------------

ROLE_STUDENT = "student"
ROLE_FACULTY = "faculty"
ROLE_SPEAKER = "speaker"
ROLES = (ROLE_STUDENT, ROLE_FACULTY, ROLE_SPEAKER)

SESSION_PROPOSED = "proposed"
SESSION_PENDING = "pending"
SESSION_APPROVED = "approved"
SESSION_REJECTED = "rejected"
SESSION_COMPLETED = "completed"

# state: [allowed next state, ] pairs
SESSION_TRANSITIONS = {
    SESSION_PROPOSED: [SESSION_APPROVED, SESSION_REJECTED],
    SESSION_PENDING: [SESSION_APPROVED, SESSION_REJECTED],
    # only reached through the date projection
    SESSION_APPROVED: [SESSION_COMPLETED],
    SESSION_REJECTED: [],
    SESSION_COMPLETED: [],
}

PROPOSAL_PENDING = "pending"
PROPOSAL_APPROVED = "approved"
PROPOSAL_REJECTED = "rejected"
PROPOSAL_SCHEDULED = "scheduled"
PROPOSAL_INTERVIEW_COMPLETED = "interview_completed"
PROPOSAL_FINAL_APPROVED = "final_approved"
PROPOSAL_FINAL_DISAPPROVED = "final_disapproved"

PROPOSAL_TRANSITIONS = {
    PROPOSAL_PENDING: [PROPOSAL_APPROVED, PROPOSAL_REJECTED],
    PROPOSAL_APPROVED: [PROPOSAL_SCHEDULED],
    # rescheduling is allowed until the interview time has passed
    PROPOSAL_SCHEDULED: [PROPOSAL_SCHEDULED, PROPOSAL_INTERVIEW_COMPLETED],
    PROPOSAL_INTERVIEW_COMPLETED: [PROPOSAL_FINAL_APPROVED, PROPOSAL_FINAL_DISAPPROVED],
    PROPOSAL_REJECTED: [],
    PROPOSAL_FINAL_APPROVED: [],
    PROPOSAL_FINAL_DISAPPROVED: [],
}

PROPOSAL_FINAL_STATES = (PROPOSAL_FINAL_APPROVED, PROPOSAL_FINAL_DISAPPROVED)

VOTE_PERMANENT = "permanent"
VOTE_TOGGLEABLE = "toggleable"

PAYMENT_COMPLETED = "completed"
PAYMENT_REFUNDED = "refunded"

TOPIC_REQUEST_PENDING = "pending"
TOPIC_REQUEST_TOPIC_MAX = 200
TOPIC_REQUEST_DESCRIPTION_MAX = 2000

FEEDBACK_COMMENT_MAX = 150
RATING_MIN = 1
RATING_MAX = 5


def can_transition(table: Dict[str, List[str]], current: str, new: str) -> bool:
    return new in table.get(current, [])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_datetime(value) -> Optional[datetime]:
    """Convert a value to an aware datetime. Accepts datetime objects,
    ISO-format strings, and Firestore DatetimeWithNanoseconds objects.
    Naive values are taken to be UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        # Handle ISO format strings (with or without trailing Z)
        value = value.strip().replace("Z", "+00:00")
        if not value:
            return None
        try:
            value = datetime.fromisoformat(value)
        except (ValueError, TypeError):
            return None
    # Firestore DatetimeWithNanoseconds is a datetime subclass
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===========================================================================
# 1. UserProfile
# ===========================================================================

@dataclass
class UserProfile:
    id: Optional[str] = None          # Firestore document ID (Firebase Auth UID)
    uid: Optional[str] = None
    display_name: str = ""
    email: str = ""
    role: str = ROLE_STUDENT
    is_approved: bool = True
    bio: Optional[str] = None

    # Set once, on speaker promotion
    promoted_by: Optional[str] = None
    promoted_at: Optional[datetime] = None

    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid or self.id,
            "displayName": self.display_name,
            "email": self.email,
            "role": self.role,
            # faculty accounts wait for approval, everyone else is approved
            "isApproved": self.is_approved if self.role == ROLE_FACULTY else True,
            "bio": self.bio,
            "promotedBy": self.promoted_by,
            "promotedAt": self.promoted_at,
            "createdAt": self.created_at or utcnow(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> UserProfile:
        return cls(
            id=doc_id or data.get("id"),
            uid=data.get("uid") or doc_id or data.get("id"),
            display_name=data.get("displayName", ""),
            email=data.get("email", ""),
            role=data.get("role", ROLE_STUDENT),
            is_approved=data.get("isApproved", True),
            bio=data.get("bio"),
            promoted_by=data.get("promotedBy"),
            promoted_at=parse_datetime(data.get("promotedAt")),
            created_at=parse_datetime(data.get("createdAt")),
        )


# ===========================================================================
# 2. Session
# ===========================================================================

@dataclass
class Session:
    id: Optional[str] = None
    title: str = ""
    description: str = ""
    author_id: Optional[str] = None
    author_name: str = ""
    status: str = SESSION_PENDING
    created_at: Optional[datetime] = None
    date: Optional[datetime] = None
    max_attendees: Optional[int] = None
    price: float = 0
    tags: List[str] = field(default_factory=list)

    # Derived counters, owned by the counter reconciler
    attendee_count: int = 0
    upvotes: int = 0

    # Decision audit
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "authorId": self.author_id,
            "authorName": self.author_name,
            "status": self.status,
            "createdAt": self.created_at or utcnow(),
            "date": self.date,
            "maxAttendees": self.max_attendees,
            "price": self.price,
            "tags": list(self.tags),
            "attendeeCount": self.attendee_count,
            "upvotes": self.upvotes,
            "approvedBy": self.approved_by,
            "approvedAt": self.approved_at,
            "rejectionReason": self.rejection_reason,
            "completedAt": self.completed_at,
        }


# ===========================================================================
# 3. SpeakerProposal
# ===========================================================================

@dataclass
class SpeakerProposal:
    id: Optional[str] = None
    student_id: Optional[str] = None
    name: str = ""
    email: str = ""
    linkedin: str = ""
    phone: str = ""
    year: str = ""
    resume: str = ""
    status: str = PROPOSAL_PENDING
    created_at: Optional[datetime] = None

    # Interview (set when the proposal is scheduled)
    interview_date: Optional[str] = None
    interview_time: Optional[str] = None
    interview_venue: Optional[str] = None
    interview_timestamp: Optional[datetime] = None

    # Decisions
    rejection_message: Optional[str] = None
    disapproval_message: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    finalized_by: Optional[str] = None
    finalized_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "name": self.name,
            "email": self.email,
            "linkedin": self.linkedin,
            "phone": self.phone,
            "year": self.year,
            "resume": self.resume,
            "status": self.status,
            "createdAt": self.created_at or utcnow(),
            "interviewDate": self.interview_date,
            "interviewTime": self.interview_time,
            "interviewVenue": self.interview_venue,
            "interviewTimestamp": self.interview_timestamp,
            "rejectionMessage": self.rejection_message,
            "disapprovalMessage": self.disapproval_message,
            "reviewedBy": self.reviewed_by,
            "reviewedAt": self.reviewed_at,
            "finalizedBy": self.finalized_by,
            "finalizedAt": self.finalized_at,
        }


# ===========================================================================
# 4. Registration
# ===========================================================================

@dataclass
class Registration:
    id: Optional[str] = None          # "{session_id}_{attendee_id}"
    session_id: str = ""
    attendee_id: str = ""
    attendee_name: str = ""
    attendee_email: str = ""
    created_at: Optional[datetime] = None
    payment_amount: float = 0
    payment_status: str = PAYMENT_COMPLETED
    payment_reference: Optional[str] = None
    payment_date: Optional[datetime] = None
    cancelled: bool = False
    cancelled_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "attendeeId": self.attendee_id,
            "attendeeName": self.attendee_name,
            "attendeeEmail": self.attendee_email,
            "createdAt": self.created_at or utcnow(),
            "paymentAmount": self.payment_amount,
            "paymentStatus": self.payment_status,
            "paymentReference": self.payment_reference,
            "paymentDate": self.payment_date,
            "cancelled": self.cancelled,
            "cancelledAt": self.cancelled_at,
        }


# ===========================================================================
# 5. Upvote
# ===========================================================================

@dataclass
class Upvote:
    id: Optional[str] = None
    session_id: str = ""
    user_id: str = ""
    flavor: str = VOTE_PERMANENT
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "flavor": self.flavor,
            "createdAt": self.created_at or utcnow(),
        }


# ===========================================================================
# 6. Feedback
# ===========================================================================

@dataclass
class Feedback:
    id: Optional[str] = None          # "{session_id}_{attendee_id}"
    session_id: str = ""
    attendee_id: str = ""
    attendee_name: str = ""
    rating: int = 0
    comment: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "attendeeId": self.attendee_id,
            "attendeeName": self.attendee_name,
            "rating": self.rating,
            "comment": self.comment,
            "createdAt": self.created_at or utcnow(),
            "updatedAt": self.updated_at or utcnow(),
        }


# ===========================================================================
# 7. TopicRequest
# ===========================================================================

@dataclass
class TopicRequest:
    id: Optional[str] = None          # "{student_id}_{epoch_ms}"
    student_id: str = ""
    student_name: str = ""
    student_email: str = ""
    topic: str = ""
    description: str = ""
    preferred_date: Optional[str] = None
    status: str = TOPIC_REQUEST_PENDING
    merged_count: int = 1
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name,
            "studentEmail": self.student_email,
            "topic": self.topic,
            "description": self.description,
            "preferredDate": self.preferred_date,
            "status": self.status,
            "mergedCount": self.merged_count,
            "createdAt": self.created_at or utcnow(),
        }
