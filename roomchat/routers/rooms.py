# roomchat/routers/rooms.py
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Request

from ..core.dependencies import get_current_user, get_room_service
from ..core.responses import success_response
from ..core.security import AuthenticatedUser
from ..schemas.room_schemas import CreateRoomRequest
from ..services.room_service import RoomService

router = APIRouter(prefix="/api/v1/rooms", tags=["Rooms"])


@router.post("", status_code=201)
async def create_room(
    request: Request,
    body: CreateRoomRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    """Create a room; the creator becomes its owner"""
    room = await service.create_room(current_user.uuid, body)
    return success_response(request, room, "Room created", 201)


@router.get("")
async def list_rooms(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=5, le=50, alias="pageSize"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    """Rooms the caller belongs to, newest first"""
    rooms = await service.list_user_rooms(current_user.uuid, page, page_size)
    return success_response(request, rooms, "Rooms fetched")


@router.post("/{room_id}/join")
async def join_room(
    request: Request,
    room_id: UUID,
    invite: Optional[str] = Query(None),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    data = await service.join_room(current_user.uuid, room_id, invite)
    return success_response(request, data, "Joined room")


@router.post("/{room_id}/invitations/{invitee_id}", status_code=201)
async def invite_user(
    request: Request,
    room_id: UUID,
    invitee_id: UUID,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    data = await service.invite_user_to_room(current_user.uuid, room_id, invitee_id)
    return success_response(request, data, "Invite created successfully", 201)


@router.get("/{room_id}/messages")
async def get_room_messages(
    request: Request,
    room_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=5, le=100, alias="pageSize"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    """Message history; the returned page is marked read for the caller"""
    messages = await service.get_room_messages(current_user.uuid, room_id, page, page_size)
    return success_response(request, messages, "Messages fetched")


@router.get("/{room_id}/members")
async def get_room_members(
    request: Request,
    room_id: UUID,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    members = await service.get_room_members(current_user.uuid, room_id)
    return success_response(request, members, "Room members fetched")


@router.get("/{room_id}/presence")
async def get_room_presence(
    request: Request,
    room_id: UUID,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    presence = await service.get_room_presence(current_user.uuid, room_id)
    return success_response(request, presence, "Room presence fetched")


@router.get("/{room_id}/messages/{message_id}/receipts")
async def get_message_receipts(
    request: Request,
    room_id: UUID,
    message_id: UUID,
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: RoomService = Depends(get_room_service),
):
    receipts = await service.get_message_receipts(current_user.uuid, room_id, message_id)
    return success_response(request, receipts, "Message receipts fetched")
