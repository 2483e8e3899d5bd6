"""
Closed value sets shared by the ORM models, the payload schemas and the registry.
"""
from enum import Enum


class ProductType(str, Enum):
    """Products a counsellor can record a payment against."""

    ALL_FINANCE_EMPLOYEMENT = "ALL_FINANCE_EMPLOYEMENT"
    INDIAN_SIDE_EMPLOYEMENT = "INDIAN_SIDE_EMPLOYEMENT"
    NOC_LEVEL_JOB_ARRANGEMENT = "NOC_LEVEL_JOB_ARRANGEMENT"
    LAWYER_REFUSAL_CHARGE = "LAWYER_REFUSAL_CHARGE"
    ONSHORE_PART_TIME_EMPLOYEMENT = "ONSHORE_PART_TIME_EMPLOYEMENT"
    TRV_WORK_PERMIT_EXT_STUDY_PERMIT_EXTENSION = "TRV_WORK_PERMIT_EXT_STUDY_PERMIT_EXTENSION"
    MARRIAGE_PHOTO_FOR_COURT_MARRIAGE = "MARRIAGE_PHOTO_FOR_COURT_MARRIAGE"
    MARRIAGE_PHOTO_CERTIFICATE = "MARRIAGE_PHOTO_CERTIFICATE"
    RECENTE_MARRIAGE_RELATIONSHIP_AFFIDAVIT = "RECENTE_MARRIAGE_RELATIONSHIP_AFFIDAVIT"
    JUDICAL_REVIEW_CHARGE = "JUDICAL_REVIEW_CHARGE"
    SIM_CARD_ACTIVATION = "SIM_CARD_ACTIVATION"
    INSURANCE = "INSURANCE"
    BEACON_ACCOUNT = "BEACON_ACCOUNT"
    AIR_TICKET = "AIR_TICKET"
    OTHER_NEW_SELL = "OTHER_NEW_SELL"
    SPONSOR_CHARGES = "SPONSOR_CHARGES"
    FINANCE_EMPLOYEMENT = "FINANCE_EMPLOYEMENT"
    IELTS_ENROLLMENT = "IELTS_ENROLLMENT"
    LOAN_DETAILS = "LOAN_DETAILS"
    FOREX_CARD = "FOREX_CARD"
    FOREX_FEES = "FOREX_FEES"
    TUTION_FEES = "TUTION_FEES"
    CREDIT_CARD = "CREDIT_CARD"
    VISA_EXTENSION = "VISA_EXTENSION"
    REFUSAL_CHARGES = "REFUSAL_CHARGES"
    KIDS_STUDY_PERMIT = "KIDS_STUDY_PERMIT"
    CANADA_FUND = "CANADA_FUND"
    EMPLOYMENT_VERIFICATION_CHARGES = "EMPLOYMENT_VERIFICATION_CHARGES"
    ADDITIONAL_AMOUNT_STATEMENT_CHARGES = "ADDITIONAL_AMOUNT_STATEMENT_CHARGES"


class EntityKind(str, Enum):
    """Shape of the record holding a payment's real fields."""

    SIM_CARD = "sim_card"
    AIR_TICKET = "air_ticket"
    IELTS = "ielts"
    LOAN = "loan"
    FOREX_CARD = "forex_card"
    FOREX_FEES = "forex_fees"
    TUITION_FEES = "tuition_fees"
    INSURANCE = "insurance"
    BEACON_ACCOUNT = "beacon_account"
    CREDIT_CARD = "credit_card"
    ALL_FINANCE = "all_finance"
    NEW_SELL = "new_sell"
    VISA_EXTENSION = "visa_extension"
    MASTER_ONLY = "master_only"

    @property
    def has_detail(self) -> bool:
        """Whether rows of this kind point at a detail table."""
        return self is not EntityKind.MASTER_ONLY


class ApprovalStatus(str, Enum):
    """Approval workflow states of a financing payment."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ForexSide(str, Enum):
    """Which side a forex fee was collected on."""

    PI = "PI"
    TP = "TP"


class TuitionFeesStatus(str, Enum):
    """Tuition fee payment state."""

    PAID = "paid"
    PENDING = "pending"


class LedgerAction(str, Enum):
    """Mutation names carried by real-time events."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def sql_in(enum_cls: type[Enum]) -> str:
    """Render an enum's values as a SQL IN list for check constraints."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
