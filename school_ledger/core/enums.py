from enum import Enum


class EnrollmentStatus(str, Enum):
    ACTIVE = "Active"
    TRANSFERRED = "Transferred"
    LEFT = "Left"


class TerminationReason(str, Enum):
    TRANSFERRED = "Transferred"
    LEFT = "Left"


class PromotionDecision(str, Enum):
    PROMOTED = "Promoted"
    DETAINED = "Detained"
    WITHDRAWN = "Withdrawn"


class FeeFrequency(str, Enum):
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUALLY = "Annually"


class FeeHeadType(str, Enum):
    STANDARD = "Standard"
    OPTIONAL = "Optional"


class PaymentStatus(str, Enum):
    SUCCESS = "Success"
    PENDING = "Pending"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class GatewayStatus(str, Enum):
    """Statuses a gateway callback may report."""

    SUCCESS = "Success"
    FAILED = "Failed"


class AdjustmentType(str, Enum):
    REFUND = "Refund"
    ADJUSTMENT_UP = "AdjustmentUp"
    ADJUSTMENT_DOWN = "AdjustmentDown"


class AuditOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
