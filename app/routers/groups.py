from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.deps import get_current_user
from app.models.group import Group
from app.models.user import User
from app.services import groups as groups_service

router = APIRouter()


class GroupCreate(BaseModel):
    name: str


class MemberAdd(BaseModel):
    user_id: str
    admin: bool = False


def _group_out(g: Group) -> dict:
    return {"id": str(g.id), "name": g.name, "owner_id": g.owner_id, "members": g.members, "admins": g.admins}


@router.get("")
async def groups_list(user: User = Depends(get_current_user)):
    items = await groups_service.list_for_user(user.uid)
    return {"groups": [_group_out(g) for g in items]}


@router.post("", status_code=201)
async def group_create(body: GroupCreate, user: User = Depends(get_current_user)):
    g = await groups_service.create_group(user.uid, body.name)
    return _group_out(g)


@router.get("/{group_id}")
async def group_get(group_id: str, user: User = Depends(get_current_user)):
    g = await groups_service.require_member(group_id, user.uid)
    return _group_out(g)


@router.post("/{group_id}/members")
async def group_add_member(group_id: str, body: MemberAdd, user: User = Depends(get_current_user)):
    """Group admin: add a member (optionally as co-admin)."""
    g = await groups_service.add_member(group_id, user.uid, body.user_id, as_admin=body.admin)
    return _group_out(g)
