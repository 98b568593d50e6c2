"""Import every model so BaseDB.metadata knows all projection tables."""
from ledger_indexer.app.infrastructure.db.models.audit.audit_logs import AuditLogsDB
from ledger_indexer.app.infrastructure.db.models.domain.contributions import ContributionsDB
from ledger_indexer.app.infrastructure.db.models.domain.groups import GroupsDB
from ledger_indexer.app.infrastructure.db.models.domain.memberships import MembershipsDB
from ledger_indexer.app.infrastructure.db.models.sync.approval_events import ApprovalEventsDB
from ledger_indexer.app.infrastructure.db.models.sync.on_chain_events import OnChainEventsDB

__all__ = [
    "AuditLogsDB",
    "ApprovalEventsDB",
    "ContributionsDB",
    "GroupsDB",
    "MembershipsDB",
    "OnChainEventsDB",
]
