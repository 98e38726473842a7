from typing import List, Optional

from isp_admin.db.base import SystemSetting
from isp_admin.domain.interfaces import ISystemSettingRepository

from .base_repository import SqlAlchemyRepository


class SystemSettingRepository(SqlAlchemyRepository[SystemSetting], ISystemSettingRepository):
    model = SystemSetting

    def get_by_key(self, key: str) -> Optional[SystemSetting]:
        return self.db.query(SystemSetting).filter(SystemSetting.key == key).first()

    def get_all(self) -> List[SystemSetting]:
        return self.db.query(SystemSetting).order_by(SystemSetting.key).all()
