from school_ledger.core.models.school import Branch, School
from school_ledger.core.models.academic_year import AcademicYear
from school_ledger.core.models.class_model import SchoolClass
from school_ledger.core.models.section_model import Section
from school_ledger.core.models.student import Student
from school_ledger.core.models.fee_head import FeeHead
from school_ledger.core.models.fee_structure import FeeStructure
from school_ledger.core.models.student_enrollment import StudentEnrollment
from school_ledger.core.models.student_progression import StudentProgression
from school_ledger.core.models.student_fee_due import StudentFeeDue
from school_ledger.core.models.payment import Payment
from school_ledger.core.models.payment_allocation import PaymentAllocation
from school_ledger.core.models.payment_adjustment import PaymentAdjustment
from school_ledger.core.models.audit_log import AuditLog

__all__ = [
    "AcademicYear",
    "AuditLog",
    "Branch",
    "FeeHead",
    "FeeStructure",
    "Payment",
    "PaymentAdjustment",
    "PaymentAllocation",
    "School",
    "SchoolClass",
    "Section",
    "Student",
    "StudentEnrollment",
    "StudentFeeDue",
    "StudentProgression",
]
