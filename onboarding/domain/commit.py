"""
Staged signup commit - turns a StagedAccount into persisted rows.

Runs inside the caller's transaction so a failure anywhere in the graph
rolls back the client, the project and every membership together. Every
step is an upsert or an insert-if-absent, so replays are harmless.
"""

import logging

from .models import Role, StagedAccount, StagedMember
from .ports import AccountStore

logger = logging.getLogger(__name__)


async def commit_staged_account(accounts: AccountStore, staged: StagedAccount) -> int:
    """
    Persist the client, its project and the project's members.

    Args:
        accounts: Account store bound to the current transaction
        staged: Signup graph to persist

    Returns:
        Client id
    """
    client_id = await accounts.upsert_client(staged.client)

    if staged.project is None:
        logger.info("Committed client %s without project", client_id)
        return client_id

    project_id = await accounts.ensure_project(staged.project, client_id)

    for member, role in (
        (staged.contractor, Role.CONTRACTOR),
        (staged.consultant, Role.CONSULTANT),
    ):
        if not _has_email(member):
            continue
        user_id = await accounts.upsert_staff_user(member, role)
        await accounts.add_project_user(user_id, project_id, role)

    for member in staged.team_members:
        if not _has_email(member):
            continue
        team_member_id = await accounts.upsert_team_member(member)
        await accounts.add_project_team_member(team_member_id, project_id)

    logger.info("Committed client %s with project %s", client_id, project_id)
    return client_id


def _has_email(member: StagedMember | None) -> bool:
    return member is not None and bool(member.email and member.email.strip())
