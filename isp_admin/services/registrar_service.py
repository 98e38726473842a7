import logging
from typing import List, Optional

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import Registrar, RegistrarTld, Tld
from isp_admin.domain.interfaces import (
    IRegistrarRepository,
    IRegistrarTldRepository,
    ITldRepository,
)
from isp_admin.integrations.registrars.base import normalize_extension
from isp_admin.schemas.dtos import (
    RegistrarCreateRequest,
    RegistrarTldCreateRequest,
    RegistrarTldUpdateRequest,
    RegistrarUpdateRequest,
    TldCreateRequest,
    TldUpdateRequest,
)

logger = logging.getLogger(__name__)


class TldService:
    def __init__(self, repo: ITldRepository) -> None:
        self.repo = repo

    def get_all(self) -> List[Tld]:
        return self.repo.get_all()

    def get_active(self) -> List[Tld]:
        return self.repo.get_active()

    def get_by_id(self, tld_id: int) -> Optional[Tld]:
        return self.repo.get_by_id(tld_id)

    def get_by_extension(self, extension: str) -> Optional[Tld]:
        return self.repo.get_by_extension(normalize_extension(extension))

    def create(self, dto: TldCreateRequest) -> Tld:
        dto.validate()
        if self.repo.get_by_extension(dto.extension) is not None:
            raise InvalidOperationError(f"TLD '.{dto.extension}' already exists")
        tld = self.repo.add(Tld(**dto.changes()))
        logger.info("TLD created", extra={"context": {"tld_id": tld.id, "extension": tld.extension}})
        return tld

    def update(self, tld_id: int, dto: TldUpdateRequest) -> Tld:
        dto.validate()
        tld = self.repo.get_by_id(tld_id)
        if tld is None:
            raise EntityNotFoundError("TLD", tld_id)
        for name, value in dto.changes().items():
            setattr(tld, name, value)
        return self.repo.save(tld)

    def delete(self, tld_id: int) -> None:
        tld = self.repo.get_by_id(tld_id)
        if tld is None:
            raise EntityNotFoundError("TLD", tld_id)
        self.repo.delete(tld)


class RegistrarService:
    def __init__(self, repo: IRegistrarRepository) -> None:
        self.repo = repo

    def get_all(self) -> List[Registrar]:
        return self.repo.get_all()

    def get_active(self) -> List[Registrar]:
        return self.repo.get_active()

    def get_by_id(self, registrar_id: int) -> Optional[Registrar]:
        return self.repo.get_by_id(registrar_id)

    def get_default(self) -> Optional[Registrar]:
        return self.repo.get_default()

    def create(self, dto: RegistrarCreateRequest) -> Registrar:
        dto.validate()
        if self.repo.get_by_code(dto.code) is not None:
            raise InvalidOperationError(f"Registrar with code '{dto.code}' already exists")
        if dto.is_default:
            self.repo.clear_default()
        registrar = self.repo.add(Registrar(**dto.changes()))
        logger.info(
            "Registrar created",
            extra={"context": {"registrar_id": registrar.id, "code": registrar.code}},
        )
        return registrar

    def update(self, registrar_id: int, dto: RegistrarUpdateRequest) -> Registrar:
        dto.validate()
        registrar = self.repo.get_by_id(registrar_id)
        if registrar is None:
            raise EntityNotFoundError("Registrar", registrar_id)
        changes = dto.changes()
        if changes.get("is_default"):
            self.repo.clear_default(except_id=registrar.id)
        for name, value in changes.items():
            setattr(registrar, name, value)
        return self.repo.save(registrar)

    def delete(self, registrar_id: int) -> None:
        registrar = self.repo.get_by_id(registrar_id)
        if registrar is None:
            raise EntityNotFoundError("Registrar", registrar_id)
        self.repo.delete(registrar)


class RegistrarTldService:
    """Which registrar offers which TLD, with the cost price history."""

    def __init__(
        self,
        repo: IRegistrarTldRepository,
        registrar_repo: IRegistrarRepository,
        tld_repo: ITldRepository,
    ) -> None:
        self.repo = repo
        self.registrar_repo = registrar_repo
        self.tld_repo = tld_repo

    def get_all(self) -> List[RegistrarTld]:
        return self.repo.get_all()

    def get_by_id(self, registrar_tld_id: int) -> Optional[RegistrarTld]:
        return self.repo.get_by_id(registrar_tld_id)

    def get_by_registrar(self, registrar_id: int) -> List[RegistrarTld]:
        return self.repo.get_by_registrar(registrar_id)

    def get_by_tld(self, tld_id: int) -> List[RegistrarTld]:
        return self.repo.get_by_tld(tld_id)

    def get_current_pricing(self, registrar_tld_id: int):
        return self.repo.get_current_pricing(registrar_tld_id, utc_now())

    def get_pricing_history(self, registrar_tld_id: int):
        self._get_or_raise(registrar_tld_id)
        return self.repo.get_pricing_history(registrar_tld_id)

    def get_change_logs(self, registrar_tld_id: int):
        self._get_or_raise(registrar_tld_id)
        return self.repo.get_change_logs(registrar_tld_id)

    def create(self, dto: RegistrarTldCreateRequest) -> RegistrarTld:
        dto.validate()
        if self.registrar_repo.get_by_id(dto.registrar_id) is None:
            raise EntityNotFoundError("Registrar", dto.registrar_id)
        if self.tld_repo.get_by_id(dto.tld_id) is None:
            raise EntityNotFoundError("TLD", dto.tld_id)
        if self.repo.get_by_pair(dto.registrar_id, dto.tld_id) is not None:
            raise InvalidOperationError("This registrar already offers this TLD")
        return self.repo.add(RegistrarTld(**dto.changes()))

    def update(self, registrar_tld_id: int, dto: RegistrarTldUpdateRequest) -> RegistrarTld:
        dto.validate()
        registrar_tld = self._get_or_raise(registrar_tld_id)
        for name, value in dto.changes().items():
            setattr(registrar_tld, name, value)
        if registrar_tld.max_registration_years < registrar_tld.min_registration_years:
            raise ValueError("Maximum registration years must be >= minimum")
        return self.repo.save(registrar_tld)

    def delete(self, registrar_tld_id: int) -> None:
        self.repo.delete(self._get_or_raise(registrar_tld_id))

    def _get_or_raise(self, registrar_tld_id: int) -> RegistrarTld:
        registrar_tld = self.repo.get_by_id(registrar_tld_id)
        if registrar_tld is None:
            raise EntityNotFoundError("Registrar TLD", registrar_tld_id)
        return registrar_tld
