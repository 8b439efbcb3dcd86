"""
Administration of groups.

Mutating routes lock the group row for the rest of the request's transaction
before touching its members. Automatic groups are refused with a 403 on edits
and a 422 on deletion.
"""

from fastapi import APIRouter, HTTPException

from groupadmin.core.group import GroupData, GroupSummary
from groupadmin.core.models import (
    GroupCreationRequest,
    GroupPatchRequest,
    GroupReplaceRequest,
    SuccessResponse,
    ValidationErrorDetail,
)
from groupadmin.core.uuid import UUID
from groupadmin.service import groups as groups_service

from .dependencies import DatabaseDependency, LoggerDependency, RefresherDependency

group_admin_routes = APIRouter(tags=["Group Administration"])


def validation_failed(e: groups_service.GroupValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=ValidationErrorDetail(field=e.field, message=e.message).model_dump(),
    )


@group_admin_routes.get(
    "",
    summary="List groups",
    description=(
        "Retrieve a summary of every group. Pass `username` to only list the "
        "groups that user is a member of."
    ),
    responses={
        200: {"description": "List of groups."},
    },
)
async def list_groups(
    conn: DatabaseDependency,
    log: LoggerDependency,
    username: str | None = None,
) -> list[GroupSummary]:
    groups = await groups_service.get_group_list(conn=conn, log=log, username=username)
    await log.adebug("api.admin.groups_listed", number_of_groups=len(groups))
    return [g.to_summary() for g in groups]


@group_admin_routes.post(
    "",
    summary="Create a group",
    description=(
        "Create a new group with the given name and members. Whitespace around "
        "the name is removed, and usernames that do not belong to a user are "
        "skipped."
    ),
    responses={
        200: {"description": "Group created."},
        422: {"description": "The name is blank or already taken."},
    },
)
async def create_group(
    content: GroupCreationRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    try:
        group = await groups_service.create(
            name=content.name,
            usernames=content.usernames,
            alias_level=content.alias_level,
            visible=content.visible,
            conn=conn,
            log=log,
        )
    except groups_service.GroupValidationError as e:
        raise validation_failed(e)

    await log.ainfo("api.admin.group_created", group_id=group.group_id)

    return group.to_core()


@group_admin_routes.post(
    "/refresh_automatic_groups",
    summary="Refresh automatic groups",
    description="Recompute the membership of every automatic group from its rule.",
    responses={
        200: {"description": "Automatic groups refreshed."},
    },
)
async def refresh_automatic_groups(
    conn: DatabaseDependency,
    log: LoggerDependency,
    refresher: RefresherDependency,
) -> SuccessResponse:
    await refresher.refresh_all(conn=conn, log=log)
    await log.ainfo("api.admin.automatic_groups_refreshed")
    return SuccessResponse()


@group_admin_routes.get(
    "/{group_id}",
    summary="Get group by ID",
    description="Retrieve a group by its ID, with information about its members.",
    responses={
        200: {"description": "Group details with members."},
        404: {"description": "Group not found."},
    },
)
async def get_group(
    group_id: UUID,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)
    return group.to_core()


@group_admin_routes.put(
    "/{group_id}",
    summary="Replace a group",
    description=(
        "Rename a group and set its members to exactly the given usernames. "
        "Members missing from the list are removed."
    ),
    responses={
        200: {"description": "Group updated."},
        403: {"description": "The group is automatic."},
        404: {"description": "Group not found."},
        422: {"description": "The name is blank or already taken."},
    },
)
async def replace_group(
    group_id: UUID,
    content: GroupReplaceRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    log = log.bind(group_id=group_id)

    group = await groups_service.read_by_id(
        group_id=group_id, conn=conn, log=log, for_update=True
    )

    try:
        group = await groups_service.replace(
            group=group,
            name=content.name,
            usernames=content.usernames,
            alias_level=content.alias_level,
            visible=content.visible,
            conn=conn,
            log=log,
        )
    except groups_service.AutomaticGroupError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except groups_service.GroupValidationError as e:
        raise validation_failed(e)

    await log.ainfo("api.admin.group_replaced")

    return group.to_core()


@group_admin_routes.patch(
    "/{group_id}",
    summary="Add or remove group members",
    description=(
        "Apply `changes.add` and `changes.delete` to the group's members. Each "
        "is a username, a comma separated list, or a JSON list. Unknown users, "
        "existing members in `add`, and non-members in `delete` are ignored."
    ),
    responses={
        200: {"description": "Group updated."},
        403: {"description": "The group is automatic."},
        404: {"description": "Group not found."},
    },
)
async def change_group_members(
    group_id: UUID,
    content: GroupPatchRequest,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> GroupData:
    log = log.bind(group_id=group_id)

    group = await groups_service.read_by_id(
        group_id=group_id, conn=conn, log=log, for_update=True
    )

    try:
        group = await groups_service.apply_changes(
            group=group,
            add=content.changes.add,
            delete=content.changes.delete,
            conn=conn,
            log=log,
        )
    except groups_service.AutomaticGroupError as e:
        raise HTTPException(status_code=403, detail=str(e))

    await log.ainfo("api.admin.group_members_changed")

    return group.to_core()


@group_admin_routes.delete(
    "/{group_id}",
    summary="Delete a group",
    description="Delete a group and its memberships. Automatic groups are kept.",
    responses={
        200: {"description": "Group deleted."},
        404: {"description": "Group not found."},
        422: {"description": "The group is automatic."},
    },
)
async def delete_group(
    group_id: UUID,
    conn: DatabaseDependency,
    log: LoggerDependency,
) -> SuccessResponse:
    log = log.bind(group_id=group_id)

    group = await groups_service.read_by_id(
        group_id=group_id, conn=conn, log=log, for_update=True
    )

    try:
        await groups_service.delete_group(group=group, conn=conn, log=log)
    except groups_service.AutomaticGroupError as e:
        raise HTTPException(status_code=422, detail=str(e))

    await log.ainfo("api.admin.group_deleted")

    return SuccessResponse()
