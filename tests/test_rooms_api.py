"""
Tests for the room REST API and the socket endpoint, end to end through
the FastAPI test client.
"""
import uuid

import pytest
from starlette.websockets import WebSocketDisconnect


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


def create_room(client, user, name="General", is_private=False, description=None):
    response = client.post(
        "/api/v1/rooms",
        json={"name": name, "description": description, "isPrivate": is_private},
        headers=user["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestEnvelope:
    def test_unknown_route(self, client):
        response = client.get("/api/v1/nothing-here")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Whoops! Route does not exist"
        assert body["error"]["code"] == "NOT_FOUND"

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "REQ_00000000000042"})

        assert response.headers["X-Request-ID"] == "REQ_00000000000042"
        assert "X-Process-Time" in response.headers

    def test_rooms_require_auth(self, client):
        response = client.get("/api/v1/rooms")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"


class TestHealth:
    def test_basic(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_full(self, client):
        response = client.get("/health/full")

        assert response.status_code == 200
        assert response.json()["components"] == {
            "service": "healthy",
            "database": "healthy",
            "cache": "healthy",
        }


class TestCreateAndList:
    def test_create_room(self, client, alice):
        room = create_room(client, alice, name="Design", description="Mockups and reviews")

        assert room["name"] == "Design"
        assert room["description"] == "Mockups and reviews"
        assert room["is_private"] is False

    def test_creator_is_owner(self, client, alice):
        room = create_room(client, alice)

        response = client.get(f"/api/v1/rooms/{room['id']}/members", headers=alice["headers"])

        assert response.status_code == 200
        members = response.json()["data"]
        assert len(members) == 1
        assert members[0]["role"] == "owner"
        assert members[0]["user"]["id"] == alice["id"]
        assert members[0]["user"]["presence"]["status"] == "offline"

    def test_blank_name_rejected(self, client, alice):
        response = client.post(
            "/api/v1/rooms",
            json={"name": "", "isPrivate": False},
            headers=alice["headers"],
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"][0]["field"] == "name"

    def test_list_only_my_rooms(self, client, alice, bob):
        create_room(client, alice, name="First")
        create_room(client, alice, name="Second")
        create_room(client, bob, name="Elsewhere")

        response = client.get("/api/v1/rooms", headers=alice["headers"])

        assert response.status_code == 200
        page = response.json()["data"]
        assert page["total"] == 2
        assert [room["name"] for room in page["items"]] == ["Second", "First"]

    def test_page_size_bounds(self, client, alice):
        assert client.get("/api/v1/rooms?pageSize=2", headers=alice["headers"]).status_code == 400
        assert client.get("/api/v1/rooms?pageSize=51", headers=alice["headers"]).status_code == 400
        assert client.get("/api/v1/rooms?pageSize=5", headers=alice["headers"]).status_code == 200

    def test_create_is_rate_limited(self, client, alice):
        for number in range(5):
            create_room(client, alice, name=f"Room {number}")

        response = client.post(
            "/api/v1/rooms",
            json={"name": "One too many", "isPrivate": False},
            headers=alice["headers"],
        )

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.json()["error"]["details"]["limit"] == 5
        assert response.json()["error"]["details"]["windowSeconds"] == 300
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert response.json()["error"]["details"]["retryAfter"] == int(response.headers["Retry-After"])
        assert "X-RateLimit-Reset" in response.headers


class TestJoinAndInvite:
    def test_join_public_room(self, client, alice, bob):
        room = create_room(client, alice)

        response = client.post(f"/api/v1/rooms/{room['id']}/join", headers=bob["headers"])

        assert response.status_code == 200
        assert response.json()["data"] == {"roomId": room["id"]}

    def test_join_is_idempotent(self, client, alice, bob):
        room = create_room(client, alice)
        client.post(f"/api/v1/rooms/{room['id']}/join", headers=bob["headers"])
        client.post(f"/api/v1/rooms/{room['id']}/join", headers=bob["headers"])

        members = client.get(f"/api/v1/rooms/{room['id']}/members", headers=alice["headers"]).json()["data"]

        assert len(members) == 2

    def test_join_unknown_room(self, client, bob):
        response = client.post(f"/api/v1/rooms/{uuid.uuid4()}/join", headers=bob["headers"])

        assert response.status_code == 404

    def test_private_room_requires_invite(self, client, alice, bob):
        room = create_room(client, alice, is_private=True)

        response = client.post(f"/api/v1/rooms/{room['id']}/join", headers=bob["headers"])

        assert response.status_code == 401
        assert response.json()["message"] == "Invite required"

    def test_invite_flow(self, client, alice, bob, make_user):
        carol = make_user("carol")
        room = create_room(client, alice, is_private=True)

        response = client.post(f"/api/v1/rooms/{room['id']}/invitations/{bob['id']}", headers=alice["headers"])
        assert response.status_code == 201
        invite = response.json()["data"]["invite"]

        stolen = client.post(f"/api/v1/rooms/{room['id']}/join?invite={invite}", headers=carol["headers"])
        assert stolen.status_code == 401
        assert stolen.json()["message"] == "Invalid invite"

        joined = client.post(f"/api/v1/rooms/{room['id']}/join?invite={invite}", headers=bob["headers"])
        assert joined.status_code == 200

    def test_invite_for_another_room_is_rejected(self, client, alice, bob):
        first = create_room(client, alice, name="First", is_private=True)
        second = create_room(client, alice, name="Second", is_private=True)
        invite = client.post(
            f"/api/v1/rooms/{first['id']}/invitations/{bob['id']}", headers=alice["headers"]
        ).json()["data"]["invite"]

        response = client.post(f"/api/v1/rooms/{second['id']}/join?invite={invite}", headers=bob["headers"])

        assert response.status_code == 401

    def test_only_members_invite(self, client, alice, bob):
        room = create_room(client, alice)

        response = client.post(f"/api/v1/rooms/{room['id']}/invitations/{alice['id']}", headers=bob["headers"])

        assert response.status_code == 403

    def test_invitee_must_exist(self, client, alice):
        room = create_room(client, alice)

        response = client.post(f"/api/v1/rooms/{room['id']}/invitations/{uuid.uuid4()}", headers=alice["headers"])

        assert response.status_code == 404
        assert response.json()["message"] == "Invitee not found"

    def test_existing_member_cannot_be_invited(self, client, alice, bob):
        room = create_room(client, alice)
        client.post(f"/api/v1/rooms/{room['id']}/join", headers=bob["headers"])

        response = client.post(f"/api/v1/rooms/{room['id']}/invitations/{bob['id']}", headers=alice["headers"])

        assert response.status_code == 409


class TestMembersOnly:
    @pytest.mark.parametrize("suffix", ["messages", "members", "presence"])
    def test_non_member_forbidden(self, client, alice, bob, suffix):
        room = create_room(client, alice)

        response = client.get(f"/api/v1/rooms/{room['id']}/{suffix}", headers=bob["headers"])

        assert response.status_code == 403
        assert response.json()["message"] == "You are not a member of this room"

    def test_bad_room_id(self, client, alice):
        response = client.get("/api/v1/rooms/not-a-uuid/members", headers=alice["headers"])

        assert response.status_code == 400


class TestSocketFlow:
    def test_rejects_bad_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws?token=garbage"):
                pass

        assert exc.value.code == 1008

    def test_rejects_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws"):
                pass

        assert exc.value.code == 1008

    def test_chat_round_trip(self, client, alice, bob):
        room = create_room(client, alice)
        client.post(f"/api/v1/rooms/{room['id']}/join", headers=bob["headers"])

        with client.websocket_connect(f"/ws?token={alice['token']}") as socket:
            connected = socket.receive_json()
            assert connected["event"] == "connected"
            assert connected["data"]["user_id"] == alice["id"]

            socket.send_json({"event": "join_room", "data": {"roomId": room["id"]}})
            joined = socket.receive_json()
            assert joined["event"] == "joined_room"
            assert joined["data"]["roomId"] == room["id"]

            socket.send_json({
                "event": "send_message",
                "data": {"roomId": room["id"], "content": "Welcome to the room"},
            })
            received = socket.receive_json()
            assert received["event"] == "receive_message"
            assert received["data"]["content"] == "Welcome to the room"
            message_id = received["data"]["id"]

            socket.send_text("this is not json")
            assert socket.receive_json()["event"] == "error"

            socket.send_json({"data": {}})
            assert socket.receive_json()["event"] == "error"

            presence = client.get(f"/api/v1/rooms/{room['id']}/presence", headers=alice["headers"]).json()["data"]
            assert presence["summary"] == {"totalUsers": 1, "onlineUsers": 1, "offlineUsers": 0}
            assert presence["data"][0]["userId"] == alice["id"]

        receipts = client.get(
            f"/api/v1/rooms/{room['id']}/messages/{message_id}/receipts", headers=alice["headers"]
        ).json()["data"]
        assert receipts["summary"] == {"totalRecipients": 1, "readCount": 0}
        assert receipts["receipts"][0]["recipientId"] == bob["id"]

        history = client.get(f"/api/v1/rooms/{room['id']}/messages", headers=bob["headers"]).json()["data"]
        assert history["total"] == 1
        item = history["items"][0]
        assert item["content"] == "Welcome to the room"
        assert item["sender"]["username"] == "alice"
        assert item["receipts"]["readStatus"] == "unread"

        receipts = client.get(
            f"/api/v1/rooms/{room['id']}/messages/{message_id}/receipts", headers=alice["headers"]
        ).json()["data"]
        assert receipts["summary"] == {"totalRecipients": 1, "readCount": 1}

    def test_private_room_conversation(self, client, alice, bob):
        room = create_room(client, alice, is_private=True)
        invite = client.post(
            f"/api/v1/rooms/{room['id']}/invitations/{bob['id']}", headers=alice["headers"]
        ).json()["data"]["invite"]
        assert client.post(f"/api/v1/rooms/{room['id']}/join?invite={invite}", headers=bob["headers"]).status_code == 200

        with client.websocket_connect(f"/ws?token={alice['token']}") as alice_socket, \
                client.websocket_connect("/ws", headers={"Authorization": f"Bearer {bob['token']}"}) as bob_socket:
            assert alice_socket.receive_json()["event"] == "connected"
            assert bob_socket.receive_json()["event"] == "connected"

            alice_socket.send_json({"event": "join_room", "data": {"roomId": room["id"]}})
            assert alice_socket.receive_json()["event"] == "joined_room"

            bob_socket.send_json({"event": "join_room", "data": {"roomId": room["id"]}})
            joined = bob_socket.receive_json()
            assert joined["event"] == "joined_room"
            assert joined["data"]["unreadCount"] == 0
            assert alice_socket.receive_json()["event"] == "user_joined"
            assert alice_socket.receive_json()["event"] == "user_status"

            alice_socket.send_json({"event": "send_message", "data": {"roomId": room["id"], "content": "hi"}})
            sent = alice_socket.receive_json()
            delivered = bob_socket.receive_json()
            assert sent["event"] == delivered["event"] == "receive_message"
            assert sent["data"]["id"] == delivered["data"]["id"]

            bob_socket.send_json({
                "event": "message_read",
                "data": {"roomId": room["id"], "messageId": delivered["data"]["id"]},
            })
            receipt = alice_socket.receive_json()
            assert receipt["event"] == "message_receipt"
            assert receipt["data"]["status"] == "read"
            assert receipt["data"]["recipient_id"] == bob["id"]

    def test_receipts_for_unknown_message(self, client, alice):
        room = create_room(client, alice)

        response = client.get(
            f"/api/v1/rooms/{room['id']}/messages/{uuid.uuid4()}/receipts", headers=alice["headers"]
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Message not found"
