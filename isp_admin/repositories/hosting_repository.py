from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from isp_admin.db.base import (
    ControlPanelType,
    HostingAccount,
    HostingDatabase,
    HostingDomain,
    HostingEmailAccount,
    Server,
    ServerControlPanel,
)
from isp_admin.domain.interfaces import (
    IHostingAccountRepository,
    IServerControlPanelRepository,
    IServerRepository,
)

from .base_repository import SqlAlchemyRepository


class ServerRepository(SqlAlchemyRepository[Server], IServerRepository):
    model = Server

    def get_all(self) -> List[Server]:
        return self.db.query(Server).order_by(Server.name).all()


class ServerControlPanelRepository(
    SqlAlchemyRepository[ServerControlPanel], IServerControlPanelRepository
):
    model = ServerControlPanel

    def get_all(self) -> List[ServerControlPanel]:
        return self.db.query(ServerControlPanel).order_by(ServerControlPanel.id).all()

    def get_by_server(self, server_id: int) -> List[ServerControlPanel]:
        return (
            self.db.query(ServerControlPanel)
            .filter(ServerControlPanel.server_id == server_id)
            .order_by(ServerControlPanel.id)
            .all()
        )

    def get_panel_types(self) -> List[ControlPanelType]:
        return self.db.query(ControlPanelType).order_by(ControlPanelType.name).all()

    def get_panel_type(self, type_id: int) -> Optional[ControlPanelType]:
        return self.db.get(ControlPanelType, type_id)


class HostingAccountRepository(SqlAlchemyRepository[HostingAccount], IHostingAccountRepository):
    """Hosting accounts and the domains, mailboxes and databases they own."""

    model = HostingAccount

    def get_all(self) -> List[HostingAccount]:
        return self.db.query(HostingAccount).order_by(HostingAccount.username).all()

    def get_with_details(self, account_id: int) -> Optional[HostingAccount]:
        return (
            self.db.query(HostingAccount)
            .options(
                selectinload(HostingAccount.domains),
                selectinload(HostingAccount.email_accounts),
                selectinload(HostingAccount.databases),
            )
            .filter(HostingAccount.id == account_id)
            .first()
        )

    def get_by_customer(self, customer_id: int) -> List[HostingAccount]:
        return (
            self.db.query(HostingAccount)
            .filter(HostingAccount.customer_id == customer_id)
            .order_by(HostingAccount.username)
            .all()
        )

    def get_by_server(self, server_id: int) -> List[HostingAccount]:
        return (
            self.db.query(HostingAccount)
            .filter(HostingAccount.server_id == server_id)
            .order_by(HostingAccount.username)
            .all()
        )

    def get_by_external_id(
        self, server_control_panel_id: int, external_account_id: str
    ) -> Optional[HostingAccount]:
        return (
            self.db.query(HostingAccount)
            .filter(
                HostingAccount.server_control_panel_id == server_control_panel_id,
                HostingAccount.external_account_id == external_account_id,
            )
            .first()
        )

    # Child resources

    def get_domain(self, domain_id: int) -> Optional[HostingDomain]:
        return self.db.get(HostingDomain, domain_id)

    def get_domains(self, account_id: int) -> List[HostingDomain]:
        return (
            self.db.query(HostingDomain)
            .filter(HostingDomain.hosting_account_id == account_id)
            .order_by(HostingDomain.domain_name)
            .all()
        )

    def get_email_account(self, email_id: int) -> Optional[HostingEmailAccount]:
        return self.db.get(HostingEmailAccount, email_id)

    def get_email_accounts(self, account_id: int) -> List[HostingEmailAccount]:
        return (
            self.db.query(HostingEmailAccount)
            .filter(HostingEmailAccount.hosting_account_id == account_id)
            .order_by(HostingEmailAccount.email_address)
            .all()
        )

    def get_database(self, database_id: int) -> Optional[HostingDatabase]:
        return self.db.get(HostingDatabase, database_id)

    def get_databases(self, account_id: int) -> List[HostingDatabase]:
        return (
            self.db.query(HostingDatabase)
            .filter(HostingDatabase.hosting_account_id == account_id)
            .order_by(HostingDatabase.database_name)
            .all()
        )

    def count_children(self, account_id: int) -> dict:
        def _count(model):
            return (
                self.db.query(func.count(model.id))
                .filter(model.hosting_account_id == account_id)
                .scalar()
                or 0
            )

        return {
            "domains": _count(HostingDomain),
            "email_accounts": _count(HostingEmailAccount),
            "databases": _count(HostingDatabase),
        }
