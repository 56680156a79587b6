import socket

import pytest

from pv_whisper.ipc import (
    LENGTH_PREFIX,
    MAX_MESSAGE_SIZE,
    connect_unix,
    encode_message,
    listen_unix,
    make_error_response,
    make_event_request,
    make_ok_response,
    recv_message,
    send_message,
)


@pytest.fixture
def sockets():
    left, right = socket.socketpair()
    yield left, right
    left.close()
    right.close()


def test_message_framing(sockets):
    left, right = sockets
    request = make_event_request("disconnected", {"listener_id": "alice"})

    send_message(left, request)

    assert recv_message(right) == request


def test_messages_read_back_to_back(sockets):
    left, right = sockets
    left.sendall(encode_message({"n": 1}) + encode_message({"n": 2}))

    assert recv_message(right) == {"n": 1}
    assert recv_message(right) == {"n": 2}


def test_closed_connection_returns_none(sockets):
    left, right = sockets
    left.close()
    assert recv_message(right) is None


def test_empty_payload_is_an_error_not_a_close(sockets):
    left, right = sockets
    left.sendall(LENGTH_PREFIX.pack(0))
    with pytest.raises(ValueError, match="Empty message"):
        recv_message(right)


def test_close_inside_header_is_an_error(sockets):
    left, right = sockets
    left.sendall(b"\x00\x00")
    left.close()
    with pytest.raises(ConnectionError):
        recv_message(right)


def test_close_before_payload_is_an_error(sockets):
    left, right = sockets
    left.sendall(LENGTH_PREFIX.pack(10) + b'{"a"')
    left.close()
    with pytest.raises(ConnectionError):
        recv_message(right)


def test_oversized_header_rejected(sockets):
    left, right = sockets
    left.sendall(LENGTH_PREFIX.pack(MAX_MESSAGE_SIZE + 1))
    with pytest.raises(ValueError, match="too large"):
        recv_message(right)


def test_non_object_message_rejected(sockets):
    left, right = sockets
    left.sendall(LENGTH_PREFIX.pack(2) + b"[]")
    with pytest.raises(ValueError, match="JSON object"):
        recv_message(right)


def test_unix_socket_round_trip(tmp_path):
    path = tmp_path / "bridge.sock"
    path.write_text("stale")
    server = listen_unix(path)
    client = connect_unix(path)
    conn, _ = server.accept()
    try:
        send_message(client, make_ok_response(epoch=3))
        assert recv_message(conn) == {"status": "ok", "epoch": 3}
    finally:
        conn.close()
        client.close()
        server.close()


def test_connect_without_bridge(tmp_path):
    with pytest.raises(ConnectionError, match="No bridge"):
        connect_unix(tmp_path / "missing.sock")


def test_responses():
    assert make_ok_response() == {"status": "ok"}
    assert make_ok_response(actions=[]) == {"status": "ok", "actions": []}
    assert make_error_response("nope") == {"status": "error", "message": "nope"}
