import logging
from typing import Optional

from isp_admin.domain.interfaces import IDomainRegistrar

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def normalize_extension(extension: Optional[str]) -> str:
    """``".COM "`` -> ``"com"``."""
    return (extension or "").strip().lstrip(".").lower()


def extract_tld(domain_name: str) -> str:
    """TLD of a registrable name: ``example.co.uk`` -> ``co.uk``.

    Registrable names are ``label.tld``, so the TLD is everything after the
    first dot.
    """
    name = normalize_domain_name(domain_name)
    if "." not in name:
        raise ValueError(f"Invalid domain name: {domain_name}")
    return name.split(".", 1)[1]


def normalize_domain_name(domain_name: str) -> str:
    return (domain_name or "").strip().rstrip(".").lower()


class BaseRegistrar(IDomainRegistrar):
    registrar_name = "Registrar"

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout
