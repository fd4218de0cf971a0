import json

import pytest

from rxtunnel.channel import (
    Connect,
    Connected,
    GatewayError,
    Hello,
    HelloReply,
    Ready,
    UnknownMessage,
    decode_control,
    encode_control,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"_": "hello"}', Hello()),
        ('{"_": "hello", "version": 2}', Hello(version=2)),
        ('{"_": "hello", "version": "two"}', Hello()),
        ('{"_": "ready"}', Ready()),
        ('{"_": "connected", "extra": true}', Connected()),
        ('{"_": "error", "details": "boom"}', GatewayError(details="boom")),
        ('{"_": "error"}', GatewayError(details="")),
    ],
)
def test_decode_known(text, expected):
    assert decode_control(text) == expected


def test_decode_structured_error_details():
    msg = decode_control('{"_": "error", "details": {"code": 7}}')
    assert isinstance(msg, GatewayError)
    assert json.loads(msg.details) == {"code": 7}


def test_decode_unknown_keeps_raw():
    msg = decode_control('{"_": "ping", "nonce": 1}')
    assert msg == UnknownMessage(kind="ping")
    assert msg.raw == {"_": "ping", "nonce": 1}


@pytest.mark.parametrize("text", ["", "not json", "[1]", "42", '{"kind": "hello"}', '{"_": 3}'])
def test_decode_invalid(text):
    with pytest.raises(ValueError):
        decode_control(text)


def test_encode_client_messages():
    hello = json.loads(encode_control(HelloReply(version=1, auth_token="t0k")))
    connect = json.loads(encode_control(Connect(host="db.internal", port=5432)))
    assert hello == {"_": "hello", "version": 1, "auth_token": "t0k"}
    assert connect == {"_": "connect", "host": "db.internal", "port": 5432}
