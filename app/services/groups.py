"""Training groups: membership and the admin set that authorizes writes to members' workouts."""

from datetime import datetime

from beanie.odm.operators.update.array import AddToSet
from beanie.odm.operators.update.general import Set

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.ids import parse_object_id
from app.models.group import Group


async def create_group(owner_id: str, name: str) -> Group:
    name = (name or "").strip()
    if not name:
        raise BadRequestError("Group name required")
    group = Group(name=name, owner_id=owner_id, members=[owner_id], admins=[owner_id])
    await group.insert()
    await log_event(owner_id, "group_created", "group", str(group.id), {"name": name})
    return group


async def get_group(group_id: str) -> Group | None:
    return await Group.get(parse_object_id(group_id, "Group"))


async def require_group(group_id: str) -> Group:
    group = await get_group(group_id)
    if not group:
        raise NotFoundError("Group not found")
    return group


async def require_member(group_id: str, user_id: str) -> Group:
    group = await require_group(group_id)
    if not group.is_member(user_id):
        raise ForbiddenError("Not a member of this group")
    return group


async def list_for_user(user_id: str) -> list[Group]:
    return await Group.find(Group.members == user_id).to_list()


async def add_member(group_id: str, actor_id: str, user_id: str, as_admin: bool = False) -> Group:
    """Group admins add members (optionally as co-admins). Idempotent."""
    group = await require_group(group_id)
    if not group.is_admin(actor_id):
        raise ForbiddenError("Only group admins can add members")
    additions = {Group.members: user_id}
    if as_admin:
        additions[Group.admins] = user_id
    await Group.find_one(Group.id == group.id).update(
        AddToSet(additions),
        Set({Group.updated_at: datetime.utcnow()}),
    )
    await log_event(actor_id, "group_member_added", "group", group_id, {"user_id": user_id, "admin": as_admin})
    return await require_group(group_id)
