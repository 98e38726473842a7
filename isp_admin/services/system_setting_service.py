import logging
from typing import List, Optional

from isp_admin.core.exceptions import EntityNotFoundError
from isp_admin.db.base import SystemSetting
from isp_admin.domain.interfaces import ISystemSettingRepository

logger = logging.getLogger(__name__)

DEFAULT_SEQUENCE_START = 1001

# Well-known setting keys
CUSTOMER_REFERENCE_SEQUENCE = "PNR"
CUSTOMER_REFERENCE_PREFIX = "RSX"
CUSTOMER_NUMBER_SEQUENCE = "CNR"
CUSTOMER_NUMBER_PREFIX = "CSX"


class SystemSettingService:
    """Key/value settings, also used as persistent number sequences."""

    def __init__(self, repo: ISystemSettingRepository) -> None:
        self.repo = repo

    def get_all(self) -> List[SystemSetting]:
        return self.repo.get_all()

    def get_by_key(self, key: str) -> Optional[SystemSetting]:
        return self.repo.get_by_key(key)

    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        setting = self.repo.get_by_key(key)
        return setting.value if setting is not None else default

    def upsert(self, key: str, value: str, description: Optional[str] = None) -> SystemSetting:
        setting = self.repo.get_by_key(key)
        if setting is None:
            return self.repo.add(
                SystemSetting(key=key, value=value, description=description)
            )
        setting.value = value
        if description is not None:
            setting.description = description
        return self.repo.save(setting)

    def delete(self, key: str) -> None:
        setting = self.repo.get_by_key(key)
        if setting is None:
            raise EntityNotFoundError("System setting", message=f"System setting '{key}' not found")
        self.repo.delete(setting)

    def next_number(self, key: str, default: int = DEFAULT_SEQUENCE_START) -> int:
        """Return the next number of a sequence and advance it.

        A missing key starts at ``default``; a stored value that is not a
        number is reset to ``default``.
        """
        setting = self.repo.get_by_key(key)
        if setting is None:
            self.repo.add(SystemSetting(key=key, value=str(default + 1)))
            return default

        try:
            current = int(setting.value)
        except (TypeError, ValueError):
            logger.warning(
                "Non-numeric sequence value reset",
                extra={"context": {"key": key, "value": setting.value, "default": default}},
            )
            current = default

        setting.value = str(current + 1)
        self.repo.save(setting)
        return current

    def get_prefix(self, key: str, default: str = "") -> str:
        setting = self.repo.get_by_key(key)
        if setting is None or setting.value is None:
            return default
        return setting.value
