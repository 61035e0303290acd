"""
Tests for delivery and read receipts.
"""
import uuid

import pytest
from sqlalchemy import func, select, text, update

from roomchat.models import MessageReceipt, RoomMember
from roomchat.services.message_service import MessageService
from roomchat.services.receipt_service import ReceiptService, compute_read_status


@pytest.fixture
async def room_setup(create_user, create_room):
    alice = await create_user("alice")
    bob = await create_user("bob")
    carol = await create_user("carol")
    room = await create_room(alice, members=[bob, carol])
    return {"alice": alice, "bob": bob, "carol": carol, "room": room}


async def send(db, room, sender, content="Status update for the team"):
    message = await MessageService(db).create_message(room.id, sender.id, content)
    await ReceiptService(db).create_delivery_receipts(message.id, room.id, sender.id)
    return message


class TestReadStatus:
    def test_summary_values(self):
        assert compute_read_status(0, 0) == "no_recipients"
        assert compute_read_status(3, 0) == "unread"
        assert compute_read_status(3, 1) == "partially_read"
        assert compute_read_status(3, 3) == "all_read"


class TestDeliveryReceipts:
    async def test_one_receipt_per_recipient(self, db, room_setup):
        message = await send(db, room_setup["room"], room_setup["alice"])

        receipts = await ReceiptService(db).get_message_receipts(message.id)

        assert sorted(r["recipient"]["username"] for r in receipts) == ["bob", "carol"]
        assert all(not r["read"] and r["readAt"] is None for r in receipts)

    async def test_sender_gets_no_receipt(self, db, room_setup):
        message = await send(db, room_setup["room"], room_setup["alice"])

        receipts = await ReceiptService(db).get_message_receipts(message.id)

        assert str(room_setup["alice"].id) not in {r["recipientId"] for r in receipts}

    async def test_repeat_creation_adds_nothing(self, db, room_setup):
        room, alice = room_setup["room"], room_setup["alice"]
        message = await send(db, room, alice)

        await ReceiptService(db).create_delivery_receipts(message.id, room.id, alice.id)

        count = await db.scalar(
            select(func.count(MessageReceipt.id)).where(MessageReceipt.message_id == message.id)
        )
        assert count == 2

    async def test_departed_members_are_skipped(self, db, room_setup):
        room, carol = room_setup["room"], room_setup["carol"]
        await db.execute(
            update(RoomMember)
            .where(RoomMember.room_id == room.id, RoomMember.member_id == carol.id)
            .values(is_deleted=True)
        )
        await db.commit()

        message = await send(db, room, room_setup["alice"])

        receipts = await ReceiptService(db).get_message_receipts(message.id)
        assert [r["recipient"]["username"] for r in receipts] == ["bob"]

    async def test_solo_room_has_no_recipients(self, db, create_user, create_room):
        owner = await create_user("solo")
        room = await create_room(owner)

        message = await send(db, room, owner)

        summary = await ReceiptService(db).get_messages_with_receipts([message.id])
        assert summary[str(message.id)] == {
            "totalRecipients": 0,
            "readCount": 0,
            "readStatus": "no_recipients",
        }


class TestReadReceipts:
    async def test_mark_as_read(self, db, room_setup):
        message = await send(db, room_setup["room"], room_setup["alice"])
        receipts = ReceiptService(db)

        assert await receipts.mark_as_read(message.id, room_setup["bob"].id)

        by_user = {r["recipient"]["username"]: r for r in await receipts.get_message_receipts(message.id)}
        assert by_user["bob"]["read"]
        assert by_user["bob"]["readAt"] is not None
        assert not by_user["carol"]["read"]

    async def test_mark_as_read_without_receipt(self, db, room_setup):
        message = await send(db, room_setup["room"], room_setup["alice"])

        assert not await ReceiptService(db).mark_as_read(message.id, room_setup["alice"].id)
        assert not await ReceiptService(db).mark_as_read(uuid.uuid4(), room_setup["bob"].id)

    async def test_bulk_mark_counts_transitions_only(self, db, room_setup):
        room, alice, bob = room_setup["room"], room_setup["alice"], room_setup["bob"]
        first = await send(db, room, alice, "First note for today")
        second = await send(db, room, alice, "Second note for today")
        receipts = ReceiptService(db)
        await receipts.mark_as_read(first.id, bob.id)

        assert await receipts.mark_multiple_as_read([first.id, second.id], bob.id) == 1
        assert await receipts.mark_multiple_as_read([first.id, second.id], bob.id) == 0

    async def test_bulk_mark_empty(self, db, room_setup):
        assert await ReceiptService(db).mark_multiple_as_read([], room_setup["bob"].id) == 0

    async def test_summary_tracks_reads(self, db, room_setup):
        room, alice = room_setup["room"], room_setup["alice"]
        message = await send(db, room, alice)
        receipts = ReceiptService(db)

        summary = await receipts.get_messages_with_receipts([message.id])
        assert summary[str(message.id)]["readStatus"] == "unread"

        await receipts.mark_as_read(message.id, room_setup["bob"].id)
        summary = await receipts.get_messages_with_receipts([message.id])
        assert summary[str(message.id)] == {
            "totalRecipients": 2,
            "readCount": 1,
            "readStatus": "partially_read",
        }

        await receipts.mark_as_read(message.id, room_setup["carol"].id)
        summary = await receipts.get_messages_with_receipts([message.id])
        assert summary[str(message.id)]["readStatus"] == "all_read"


class TestUnreadMessages:
    async def test_unread_for_recipient(self, db, room_setup):
        room, alice, bob = room_setup["room"], room_setup["alice"], room_setup["bob"]
        first = await send(db, room, alice, "First note for today")
        second = await send(db, room, alice, "Second note for today")
        receipts = ReceiptService(db)
        await receipts.mark_as_read(first.id, bob.id)

        assert await receipts.get_unread_messages(bob.id, room.id) == [second.id]
        assert await receipts.get_unread_messages(alice.id, room.id) == []

    async def test_unread_scoped_to_room(self, db, room_setup, create_room):
        alice, bob = room_setup["alice"], room_setup["bob"]
        other_room = await create_room(alice, members=[bob], name="Random")
        await send(db, room_setup["room"], alice)
        elsewhere = await send(db, other_room, alice)

        assert await ReceiptService(db).get_unread_messages(bob.id, other_room.id) == [elsewhere.id]
        assert len(await ReceiptService(db).get_unread_messages(bob.id)) == 2


class TestStoreFailures:
    """Receipt failures never reach the message path."""

    @pytest.fixture
    async def message(self, engine, session_factory, room_setup):
        async with session_factory() as session:
            message = await MessageService(session).create_message(
                room_setup["room"].id, room_setup["alice"].id, "Sent just before the outage"
            )
        async with engine.begin() as conn:
            await conn.execute(text("DROP TABLE message_receipts"))
        return message

    async def test_every_call_falls_back(self, db, room_setup, message):
        receipts = ReceiptService(db)
        room, alice, bob = room_setup["room"], room_setup["alice"], room_setup["bob"]

        assert await receipts.create_delivery_receipts(message.id, room.id, alice.id) is None
        assert await receipts.mark_as_read(message.id, bob.id) is False
        assert await receipts.mark_multiple_as_read([message.id], bob.id) == 0
        assert await receipts.get_message_receipts(message.id) == []
        assert await receipts.get_messages_with_receipts([message.id]) == {}
        assert await receipts.get_unread_messages(bob.id, room.id) == []

    async def test_session_stays_usable(self, db, room_setup, message):
        await ReceiptService(db).mark_as_read(message.id, room_setup["bob"].id)

        assert await MessageService(db).get_in_room(message.id, room_setup["room"].id) is not None
