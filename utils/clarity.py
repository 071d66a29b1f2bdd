"""
Clarity value codec for read-only contract calls.

Arguments sent to `/v2/contracts/call-read` and results coming back are
hex-encoded consensus-serialized Clarity values. Only the types the escrow
contract exchanges are supported.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Tuple

TYPE_INT = 0x00
TYPE_UINT = 0x01
TYPE_BUFFER = 0x02
TYPE_TRUE = 0x03
TYPE_FALSE = 0x04
TYPE_STANDARD_PRINCIPAL = 0x05
TYPE_CONTRACT_PRINCIPAL = 0x06
TYPE_RESPONSE_OK = 0x07
TYPE_RESPONSE_ERR = 0x08
TYPE_NONE = 0x09
TYPE_SOME = 0x0A
TYPE_LIST = 0x0B
TYPE_TUPLE = 0x0C
TYPE_STRING_ASCII = 0x0D
TYPE_STRING_UTF8 = 0x0E

UINT128_MAX = (1 << 128) - 1
C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


@dataclass(frozen=True)
class ClarityResponse:
    ok: bool
    value: Any


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


def serialize_uint(value: int) -> str:
    if value < 0 or value > UINT128_MAX:
        raise ValueError(f"uint out of range: {value}")
    return _hex(bytes([TYPE_UINT]) + value.to_bytes(16, "big"))


def serialize_bool(value: bool) -> str:
    return _hex(bytes([TYPE_TRUE if value else TYPE_FALSE]))


def serialize_string_utf8(value: str) -> str:
    data = value.encode("utf-8")
    return _hex(bytes([TYPE_STRING_UTF8]) + len(data).to_bytes(4, "big") + data)


def serialize_string_ascii(value: str) -> str:
    data = value.encode("ascii")
    return _hex(bytes([TYPE_STRING_ASCII]) + len(data).to_bytes(4, "big") + data)


def c32_encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    chars = ""
    while number > 0:
        number, remainder = divmod(number, 32)
        chars = C32_ALPHABET[remainder] + chars
    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return "0" * leading_zeros + chars


def c32_address(version: int, hash160: bytes) -> str:
    """c32check-encode a principal: 'S' + version char + c32(hash160 + checksum)"""
    checksum = hashlib.sha256(hashlib.sha256(bytes([version]) + hash160).digest()).digest()[:4]
    return "S" + C32_ALPHABET[version] + c32_encode(hash160 + checksum)


def _read(data: bytes, offset: int, size: int) -> Tuple[bytes, int]:
    end = offset + size
    if end > len(data):
        raise ValueError("Truncated Clarity value")
    return data[offset:end], end


def _read_length(data: bytes, offset: int) -> Tuple[int, int]:
    raw, offset = _read(data, offset, 4)
    return int.from_bytes(raw, "big"), offset


def _decode(data: bytes, offset: int) -> Tuple[Any, int]:
    raw_type, offset = _read(data, offset, 1)
    type_id = raw_type[0]

    if type_id == TYPE_UINT:
        raw, offset = _read(data, offset, 16)
        return int.from_bytes(raw, "big"), offset
    if type_id == TYPE_INT:
        raw, offset = _read(data, offset, 16)
        return int.from_bytes(raw, "big", signed=True), offset
    if type_id == TYPE_TRUE:
        return True, offset
    if type_id == TYPE_FALSE:
        return False, offset
    if type_id == TYPE_NONE:
        return None, offset
    if type_id == TYPE_SOME:
        return _decode(data, offset)
    if type_id in (TYPE_RESPONSE_OK, TYPE_RESPONSE_ERR):
        value, offset = _decode(data, offset)
        return ClarityResponse(ok=type_id == TYPE_RESPONSE_OK, value=value), offset
    if type_id == TYPE_BUFFER:
        length, offset = _read_length(data, offset)
        return _read(data, offset, length)
    if type_id in (TYPE_STRING_ASCII, TYPE_STRING_UTF8):
        length, offset = _read_length(data, offset)
        raw, offset = _read(data, offset, length)
        return raw.decode("ascii" if type_id == TYPE_STRING_ASCII else "utf-8"), offset
    if type_id in (TYPE_STANDARD_PRINCIPAL, TYPE_CONTRACT_PRINCIPAL):
        version, offset = _read(data, offset, 1)
        hash160, offset = _read(data, offset, 20)
        address = c32_address(version[0], hash160)
        if type_id == TYPE_CONTRACT_PRINCIPAL:
            name_length, offset = _read(data, offset, 1)
            name, offset = _read(data, offset, name_length[0])
            address = f"{address}.{name.decode('ascii')}"
        return address, offset
    if type_id == TYPE_LIST:
        count, offset = _read_length(data, offset)
        items = []
        for _ in range(count):
            item, offset = _decode(data, offset)
            items.append(item)
        return items, offset
    if type_id == TYPE_TUPLE:
        count, offset = _read_length(data, offset)
        fields = {}
        for _ in range(count):
            name_length, offset = _read(data, offset, 1)
            name, offset = _read(data, offset, name_length[0])
            fields[name.decode("ascii")], offset = _decode(data, offset)
        return fields, offset

    raise ValueError(f"Unsupported Clarity type 0x{type_id:02x}")


def deserialize(hex_value: str) -> Any:
    """Decode a hex-encoded Clarity value into plain Python values"""
    text = hex_value[2:] if hex_value.startswith("0x") else hex_value
    data = bytes.fromhex(text)
    value, offset = _decode(data, 0)
    if offset != len(data):
        raise ValueError("Trailing bytes after Clarity value")
    return value


def unwrap_ok(value: Any) -> Any:
    """Value of an (ok ...) response; raises ValueError for (err ...)"""
    if isinstance(value, ClarityResponse):
        if not value.ok:
            raise ValueError(f"Contract returned err {value.value!r}")
        return value.value
    return value
