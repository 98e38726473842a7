import logging
import re
from decimal import Decimal
from typing import List, Optional

from isp_admin.core.config import DEFAULT_TAX_NAME, utc_now
from isp_admin.core.exceptions import EntityNotFoundError
from isp_admin.db.base import TaxRule
from isp_admin.domain.entities import TaxCalculation
from isp_admin.domain.interfaces import ICustomerRepository, ITaxRuleRepository
from isp_admin.schemas.dtos import TaxRuleCreateRequest, TaxRuleUpdateRequest
from isp_admin.utils.billing_utils import to_money

logger = logging.getLogger(__name__)

# VAT number body per EU member state, without the country prefix
EU_VAT_PATTERNS = {
    "AT": r"U\d{8}",
    "BE": r"[01]\d{9}",
    "BG": r"\d{9,10}",
    "CY": r"\d{8}[A-Z]",
    "CZ": r"\d{8,10}",
    "DE": r"\d{9}",
    "DK": r"\d{8}",
    "EE": r"\d{9}",
    "EL": r"\d{9}",
    "ES": r"[A-Z0-9]\d{7}[A-Z0-9]",
    "FI": r"\d{8}",
    "FR": r"[A-HJ-NP-Z0-9]{2}\d{9}",
    "HR": r"\d{11}",
    "HU": r"\d{8}",
    "IE": r"\d{7}[A-W][A-I]?|\d[A-Z+*]\d{5}[A-W]",
    "IT": r"\d{11}",
    "LT": r"\d{9}|\d{12}",
    "LU": r"\d{8}",
    "LV": r"\d{11}",
    "MT": r"\d{8}",
    "NL": r"\d{9}B\d{2}",
    "PL": r"\d{10}",
    "PT": r"\d{9}",
    "RO": r"\d{2,10}",
    "SE": r"\d{12}",
    "SI": r"\d{8}",
    "SK": r"\d{10}",
}

# ISO country code -> VAT prefix where they differ
VAT_PREFIX_ALIASES = {"GR": "EL"}

ZERO_TAX = TaxCalculation(Decimal("0.00"), Decimal("0"), DEFAULT_TAX_NAME)


class TaxService:
    def __init__(self, repo: ITaxRuleRepository, customer_repo: ICustomerRepository) -> None:
        self.repo = repo
        self.customer_repo = customer_repo

    def get_all(self) -> List[TaxRule]:
        return self.repo.get_all()

    def get_active(self) -> List[TaxRule]:
        return self.repo.get_active(utc_now())

    def get_by_id(self, rule_id: int) -> Optional[TaxRule]:
        return self.repo.get_by_id(rule_id)

    def get_by_location(self, country_code: str, state_code: Optional[str] = None) -> List[TaxRule]:
        return self.repo.get_by_location(
            country_code.upper(), state_code.upper() if state_code else None, utc_now()
        )

    def create(self, dto: TaxRuleCreateRequest) -> TaxRule:
        dto.validate()
        rule = self.repo.add(TaxRule(**dto.changes()))
        logger.info(
            "Tax rule created",
            extra={
                "context": {
                    "rule_id": rule.id,
                    "country": rule.country_code,
                    "rate": str(rule.tax_rate),
                }
            },
        )
        return rule

    def update(self, rule_id: int, dto: TaxRuleUpdateRequest) -> TaxRule:
        dto.validate()
        rule = self.repo.get_by_id(rule_id)
        if rule is None:
            raise EntityNotFoundError("Tax rule", rule_id)
        for name, value in dto.changes().items():
            setattr(rule, name, value)
        return self.repo.save(rule)

    def delete(self, rule_id: int) -> None:
        rule = self.repo.get_by_id(rule_id)
        if rule is None:
            raise EntityNotFoundError("Tax rule", rule_id)
        self.repo.delete(rule)

    def calculate_tax(
        self, customer_id: int, amount: Decimal, is_setup_fee: bool = False
    ) -> TaxCalculation:
        """Tax for ``amount`` charged to a customer.

        Returns a zero amount when no rule applies, when the rule excludes
        this kind of charge, or when B2B reverse charge applies.
        """
        customer = self.customer_repo.get_by_id(customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", customer_id)
        if not customer.country_code:
            return ZERO_TAX

        rules = self.get_by_location(customer.country_code, customer.state_code)
        if not rules:
            return ZERO_TAX
        rule = rules[0]

        if is_setup_fee and not rule.applies_to_setup_fees:
            return TaxCalculation(Decimal("0.00"), Decimal("0"), rule.tax_name)
        if not is_setup_fee and not rule.applies_to_recurring:
            return TaxCalculation(Decimal("0.00"), Decimal("0"), rule.tax_name)
        if rule.reverse_charge_for_b2b and customer.is_company and customer.vat_number:
            logger.info(
                "Reverse charge applied",
                extra={"context": {"customer_id": customer_id, "rule_id": rule.id}},
            )
            return TaxCalculation(Decimal("0.00"), Decimal("0"), rule.tax_name)

        rate = Decimal(rule.tax_rate)
        return TaxCalculation(to_money(Decimal(amount) * rate), rate, rule.tax_name)

    def validate_vat_number(self, vat_number: str, country_code: str) -> bool:
        """Check an EU VAT number's format and its country prefix."""
        if not vat_number or not country_code:
            return False
        country = country_code.strip().upper()
        prefix = VAT_PREFIX_ALIASES.get(country, country)
        pattern = EU_VAT_PATTERNS.get(prefix)
        if pattern is None:
            return False

        normalized = re.sub(r"[\s.\-]", "", vat_number).upper()
        if not normalized.startswith(prefix):
            return False
        return re.fullmatch(pattern, normalized[len(prefix):]) is not None
