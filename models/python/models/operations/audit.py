import logging
from typing import List

from models.errors import NotFoundError
from models.operations.invariants import AuditReport, audit_project

logger = logging.getLogger(__name__)


async def project_audit(store, project_id: str) -> AuditReport:
    """Replay a project's ledger against its stored inventory, holdings and batches."""
    project = await store.projects.get(project_id)
    if not project:
        raise NotFoundError(f"Project {project_id} not found")

    report = audit_project(
        project,
        await store.ledger.list_by_project(project_id),
        await store.holdings.list_by_project(project_id),
        await store.batches.list_by_project(project_id),
    )
    if not report.is_consistent:
        logger.critical(f"Audit of project {project_id} found {len(report.violations)} violations: "
                        + "; ".join(report.violations))
    return report


async def audit_all(store) -> List[AuditReport]:
    reports = []
    for project in await store.projects.list():
        reports.append(await project_audit(store, project.id))
    failed = sum(1 for r in reports if not r.is_consistent)
    logger.info(f"Audited {len(reports)} projects, {failed} inconsistent")
    return reports
