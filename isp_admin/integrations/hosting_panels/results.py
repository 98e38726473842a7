"""
Request and result types exchanged with hosting control panels.

Panel clients never raise for API-level failures; they return a result with
``success=False``, a message and an error code such as ``API_ERROR``.
"""

from dataclasses import dataclass, field
from typing import List, Optional

NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
API_ERROR = "API_ERROR"
CONNECTION_ERROR = "CONNECTION_ERROR"
UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


@dataclass
class WebAccountRequest:
    username: str
    domain: str
    password: Optional[str] = None
    email: Optional[str] = None
    plan: Optional[str] = None
    disk_quota_mb: Optional[int] = None
    bandwidth_limit_mb: Optional[int] = None


@dataclass
class PanelResult:
    success: bool
    message: str = ""
    error_code: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def error(cls, message: str, error_code: str = API_ERROR, **kwargs):
        return cls(
            success=False,
            message=message,
            error_code=error_code,
            errors=[message],
            **kwargs,
        )


@dataclass
class HostingAccountResult(PanelResult):
    account_id: Optional[str] = None
    username: Optional[str] = None
    domain: Optional[str] = None


@dataclass
class AccountUpdateResult(PanelResult):
    account_id: Optional[str] = None
    updated_field: Optional[str] = None
    new_value: Optional[str] = None


@dataclass
class AccountInfoResult(PanelResult):
    account_id: Optional[str] = None
    username: Optional[str] = None
    domain: Optional[str] = None
    email: Optional[str] = None
    plan: Optional[str] = None
    status: Optional[str] = None
    disk_usage_mb: Optional[int] = None
    disk_quota_mb: Optional[int] = None
    bandwidth_usage_mb: Optional[int] = None
    bandwidth_limit_mb: Optional[int] = None


@dataclass
class MailAccountResult(PanelResult):
    email_address: Optional[str] = None
    quota_mb: Optional[int] = None
    usage_mb: Optional[int] = None


@dataclass
class DatabaseResult(PanelResult):
    database_name: Optional[str] = None
    database_type: str = "MySQL"
    username: Optional[str] = None
    size_mb: Optional[int] = None


def to_int(value) -> Optional[int]:
    """Coerce panel numbers such as ``"1024"``, ``"unlimited"`` or ``None``."""
    if value is None:
        return None
    try:
        return int(float(str(value).strip().rstrip("M")))
    except (TypeError, ValueError):
        return None
