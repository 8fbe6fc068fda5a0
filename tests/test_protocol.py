import struct

import pytest

from minikv.protocol import (
    MAX_ARGS,
    ErrorCode,
    ErrorReply,
    ProtocolError,
    ResponseBuffer,
    Tag,
    decode_response,
    encode_request,
    format_response,
    frame,
    parse_request,
)


def test_encode_request_wire_bytes():
    assert encode_request([b"get", b"k"]) == (
        b"\x02\x00\x00\x00\x03\x00\x00\x00get\x01\x00\x00\x00k"
    )


@pytest.mark.parametrize(
    "args",
    [[], [b"keys"], [b"set", b"key", b"value"], [b"", b"\x00\xff", b"x" * 300]],
)
def test_request_round_trip(args):
    assert parse_request(encode_request(args)) == args


def test_encode_request_accepts_str():
    assert parse_request(encode_request(["zadd", "z", "1", "a"])) == [
        b"zadd", b"z", b"1", b"a"
    ]


def test_parse_request_trailing_data():
    with pytest.raises(ProtocolError):
        parse_request(encode_request([b"get", b"k"]) + b"!")


def test_parse_request_truncated():
    with pytest.raises(ProtocolError):
        parse_request(encode_request([b"get", b"key"])[:-1])


def test_parse_request_empty():
    with pytest.raises(ProtocolError):
        parse_request(b"")


def test_parse_request_too_many_args():
    with pytest.raises(ProtocolError):
        parse_request(struct.pack("<I", MAX_ARGS + 1))


def test_frame_prefixes_length():
    body = encode_request([b"keys"])
    framed = frame(body)
    assert struct.unpack("<I", framed[:4])[0] == len(body)
    assert framed[4:] == body


def test_nil_bytes():
    out = ResponseBuffer()
    out.nil()
    assert out.getvalue() == bytes([Tag.NIL])
    assert decode_response(out.getvalue()) is None


def test_scalar_round_trips():
    for value, write in [
        (b"hello", ResponseBuffer.str),
        (-42, ResponseBuffer.int),
        (2.5, ResponseBuffer.dbl),
    ]:
        out = ResponseBuffer()
        write(out, value)
        assert decode_response(out.getvalue()) == value


def test_str_accepts_text():
    out = ResponseBuffer()
    out.str("abc")
    assert decode_response(out.getvalue()) == b"abc"


def test_err_round_trip():
    out = ResponseBuffer()
    out.err(ErrorCode.BAD_ARG, "expect int")
    assert decode_response(out.getvalue()) == ErrorReply(ErrorCode.BAD_ARG, b"expect int")


def test_fixed_array():
    out = ResponseBuffer()
    out.arr(2)
    out.str(b"a")
    out.int(7)
    assert decode_response(out.getvalue()) == [b"a", 7]


def test_begin_end_array():
    out = ResponseBuffer()
    ctx = out.begin_arr()
    out.str(b"x")
    out.dbl(1.0)
    out.end_arr(ctx, 2)
    assert decode_response(out.getvalue()) == [b"x", 1.0]
    assert len(out) == len(out.getvalue())


def test_end_arr_rejects_bad_context():
    out = ResponseBuffer()
    out.int(5)
    with pytest.raises(ValueError):
        out.end_arr(1, 0)


def test_decode_trailing_data():
    out = ResponseBuffer()
    out.nil()
    out.nil()
    with pytest.raises(ProtocolError):
        decode_response(out.getvalue())


def test_decode_truncated():
    out = ResponseBuffer()
    out.str(b"hello")
    with pytest.raises(ProtocolError):
        decode_response(out.getvalue()[:-1])


def test_decode_array_missing_items():
    out = ResponseBuffer()
    out.arr(3)
    out.nil()
    with pytest.raises(ProtocolError):
        decode_response(out.getvalue())


def test_decode_unknown_tag():
    with pytest.raises(ProtocolError):
        decode_response(b"\x09")


def test_decode_empty():
    with pytest.raises(ProtocolError):
        decode_response(b"")


def test_format_scalars():
    out = ResponseBuffer()
    out.int(42)
    assert format_response(out.getvalue()) == "(int) 42"
    out = ResponseBuffer()
    out.dbl(1.5)
    assert format_response(out.getvalue()) == "(dbl) 1.5"
    out = ResponseBuffer()
    out.nil()
    assert format_response(out.getvalue()) == "(nil)"


def test_format_error_and_array():
    out = ResponseBuffer()
    out.arr(2)
    out.str(b"name")
    out.err(ErrorCode.BAD_TYP, "expect zset")
    assert format_response(out.getvalue()).splitlines() == [
        "(arr) len=2",
        "(str) name",
        "(err) 3 expect zset",
        "(arr) end",
    ]


def test_format_bad_response():
    with pytest.raises(ProtocolError):
        format_response(b"\x02\x05\x00\x00\x00ab")