"""
Database seeding and initialization functions.

Every function here is idempotent: rows that already exist are left alone,
so create_app() can call them on each start.
"""

import logging
import os
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from isp_admin.core.security import hash_password
from isp_admin.db.base import ControlPanelType, DnsRecordType, SystemSetting, User
from isp_admin.db.session import SessionLocal

logger = logging.getLogger(__name__)

DNS_RECORD_TYPES: List[Dict] = [
    {"type": "A", "description": "IPv4 address"},
    {"type": "AAAA", "description": "IPv6 address"},
    {"type": "CNAME", "description": "Canonical name"},
    {"type": "MX", "description": "Mail exchange", "has_priority": True},
    {"type": "TXT", "description": "Text record"},
    {
        "type": "NS",
        "description": "Name server",
        "is_editable_by_user": False,
        "default_ttl": 86400,
    },
    {
        "type": "SRV",
        "description": "Service locator",
        "has_priority": True,
        "has_weight": True,
        "has_port": True,
    },
    {"type": "CAA", "description": "Certification authority authorization"},
    {"type": "PTR", "description": "Pointer", "is_editable_by_user": False},
    {
        "type": "SOA",
        "description": "Start of authority",
        "is_editable_by_user": False,
        "default_ttl": 86400,
    },
]

DEFAULT_SETTINGS: List[Dict] = [
    {"key": "PNR", "value": "1001", "description": "Next customer reference number"},
    {"key": "RSX", "value": "", "description": "Customer reference prefix"},
    {"key": "CNR", "value": "1001", "description": "Next customer number"},
    {"key": "CSX", "value": "", "description": "Customer number prefix"},
]

CONTROL_PANEL_TYPES: List[Dict] = [
    {"name": "cpanel", "display_name": "CPanel"},
    {"name": "plesk", "display_name": "Plesk"},
    {"name": "virtualmin", "display_name": "Virtualmin"},
    {"name": "directadmin", "display_name": "DirectAdmin"},
    {"name": "ispconfig", "display_name": "ISPConfig"},
    {"name": "cyberpanel", "display_name": "CyberPanel"},
    {"name": "cloudpanel", "display_name": "CloudPanel"},
]


def seed_dns_record_types(db) -> int:
    existing = set(db.scalars(select(DnsRecordType.type)).all())
    created = 0
    for values in DNS_RECORD_TYPES:
        if values["type"] in existing:
            continue
        db.add(DnsRecordType(**values))
        created += 1
    return created


def seed_system_settings(db) -> int:
    existing = set(db.scalars(select(SystemSetting.key)).all())
    created = 0
    for values in DEFAULT_SETTINGS:
        if values["key"] in existing:
            continue
        db.add(SystemSetting(**values))
        created += 1
    return created


def seed_control_panel_types(db) -> int:
    existing = set(db.scalars(select(ControlPanelType.name)).all())
    created = 0
    for values in CONTROL_PANEL_TYPES:
        if values["name"] in existing:
            continue
        db.add(ControlPanelType(is_active=True, **values))
        created += 1
    return created


def ensure_admin_user(db) -> bool:
    """
    Create the bootstrap admin from ADMIN_EMAIL / ADMIN_PASSWORD.

    Nothing happens when either variable is unset or the email is taken;
    an existing user's password is never overwritten.
    """
    email = os.getenv("ADMIN_EMAIL", "").strip().lower()
    password = os.getenv("ADMIN_PASSWORD", "")
    if not email or not password:
        return False
    if db.scalars(select(User).where(User.email == email)).first() is not None:
        return False
    db.add(
        User(
            email=email,
            name=os.getenv("ADMIN_NAME", "Administrator"),
            password_hash=hash_password(password),
            role="Admin",
            active_flag=True,
        )
    )
    return True


def seed_reference_data() -> None:
    """Seed lookup tables and the bootstrap admin in one transaction."""
    try:
        with SessionLocal() as db:
            counts = {
                "dns_record_types": seed_dns_record_types(db),
                "system_settings": seed_system_settings(db),
                "control_panel_types": seed_control_panel_types(db),
                "admin_user": int(ensure_admin_user(db)),
            }
            db.commit()
        if any(counts.values()):
            logger.info("Reference data seeded", extra={"context": counts})
        else:
            logger.debug("Reference data already present")
    except SQLAlchemyError as e:
        logger.error(
            "Failed to seed reference data",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )
        # App still starts; lookups can be created through the API
