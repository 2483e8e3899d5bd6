"""Database package for the product-payment ledger."""
from .connection import (
    build_engine,
    build_session_factory,
    close_db,
    get_session_factory,
    init_db,
)
from .models import (
    AirTicket,
    AllFinance,
    Base,
    BeaconAccount,
    ClientInformation,
    ClientProductPayment,
    CreditCard,
    ForexCard,
    ForexFees,
    Ielts,
    Insurance,
    Loan,
    NewSell,
    SimCard,
    TuitionFees,
    User,
    VisaExtension,
)

__all__ = [
    "Base",
    "User",
    "ClientInformation",
    "ClientProductPayment",
    "SimCard",
    "AirTicket",
    "Ielts",
    "Loan",
    "ForexCard",
    "ForexFees",
    "TuitionFees",
    "Insurance",
    "BeaconAccount",
    "CreditCard",
    "AllFinance",
    "NewSell",
    "VisaExtension",
    "build_engine",
    "build_session_factory",
    "close_db",
    "get_session_factory",
    "init_db",
]
