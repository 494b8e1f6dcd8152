"""Domain enumerations for the print-shop backend.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Role of a platform user."""

    ADMIN = "admin"
    EMPLOYEE = "employee"
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    COURIER = "courier"


class UserStatus(str, Enum):
    """Account status. Users are deactivated, never deleted."""

    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    REJECTED = "rejected"
    DEACTIVATED = "deactivated"


class QuoteStatus(str, Enum):
    """Status of a quote version through its lifecycle."""

    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"
    IN_PRODUCTION = "in_production"
    READY = "ready"


class SupplierJobStatus(str, Enum):
    """Status of one supplier fulfillment job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ScoringModel(str, Enum):
    """Which supplier scoring strategy ranks recommendations."""

    BOUNDED = "bounded"
    WEIGHTED = "weighted"


# Job statuses that count as a completed fulfillment
COMPLETED_JOB_STATUSES = (
    SupplierJobStatus.DELIVERED.value,
    SupplierJobStatus.READY.value,
    SupplierJobStatus.PICKED_UP.value,
)

# Job statuses that still occupy supplier capacity
OPEN_JOB_STATUSES = (
    SupplierJobStatus.PENDING.value,
    SupplierJobStatus.IN_PROGRESS.value,
)
