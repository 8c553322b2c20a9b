import msgpack
import pytest

from mohoot.messaging.encoder import MAX_FRAME_BYTES, DecodeError, decode, encode
from mohoot.messaging.types import SessionMessageType


class TestEncoder:
    def test_round_trip_message_map(self):
        message = {"type": "submit_answer", "round_id": 3, "answer": "paris"}
        assert decode(encode(message)) == message

    def test_str_enum_values_encode_as_strings(self):
        assert decode(encode({"type": SessionMessageType.PONG})) == {"type": "pong"}

    def test_non_map_frame_rejected(self):
        with pytest.raises(DecodeError, match="must be a map"):
            decode(msgpack.packb([1, 2, 3]))

    def test_garbage_rejected(self):
        with pytest.raises(DecodeError):
            decode(b"\xc1\xc1\xc1")

    def test_oversized_frame_rejected(self):
        with pytest.raises(DecodeError, match="exceeds"):
            decode(b"\x00" * (MAX_FRAME_BYTES + 1))

    def test_too_many_map_entries_rejected(self):
        with pytest.raises(DecodeError):
            decode(msgpack.packb({str(i): i for i in range(1000)}))
