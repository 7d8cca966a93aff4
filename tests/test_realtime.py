import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chat_service.core.utils.jwt import create_access_token
from chat_service.schemas.auth import TokenData


def token(user_id):
    return create_access_token(TokenData(sub=user_id, username=user_id.title()))


@pytest.fixture
def test_client(api):
    with TestClient(api) as tc:
        yield tc


def test_socket_requires_token(test_client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with test_client.websocket_connect("/ws/discovery"):
            pass
    assert exc.value.code == 1008


def test_room_socket_rejects_outsiders(test_client, auth_headers):
    response = test_client.post(
        "/api/chatrooms",
        json={"title": "Book Club", "topic": "Discussing novels weekly", "interests": ["books"]},
        headers=auth_headers("alice"),
    )
    room_id = response.json()["data"]["id"]

    with pytest.raises(WebSocketDisconnect) as exc:
        with test_client.websocket_connect(f"/ws/rooms/{room_id}?token={token('mallory')}"):
            pass
    assert exc.value.code == 1008


def test_room_socket_replays_since(test_client, auth_headers):
    alice = auth_headers("alice")
    response = test_client.post(
        "/api/chatrooms",
        json={"title": "Book Club", "topic": "Discussing novels weekly", "interests": ["books"]},
        headers=alice,
    )
    room_id = response.json()["data"]["id"]
    test_client.post(f"/api/chatrooms/{room_id}/messages", json={"content": "Hello"}, headers=alice)

    with test_client.websocket_connect(f"/ws/rooms/{room_id}?token={token('alice')}&since=0") as ws:
        event = ws.receive_json()

    assert event["type"] == "message"
    assert event["content"] == "Hello"
    assert event["roomId"] == room_id

    # disconnecting is not leaving
    response = test_client.get(f"/api/chatrooms/{room_id}", headers=alice)
    assert response.json()["data"]["participants"] == ["alice"]
