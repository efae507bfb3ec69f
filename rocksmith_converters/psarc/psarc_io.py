import struct
import zlib
from dataclasses import dataclass
from enum import IntFlag
from typing import Literal

from cryptography.hazmat.decrepit.ciphers.modes import CFB
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# ==== Binary IO ====
# PSARC headers and TOC are big-endian; odd widths (24/40 bit) appear in the TOC.


def read_uint(data: bytes | memoryview, offset: int, byte_size: int) -> int:
    chunk = data[offset : offset + byte_size]
    if len(chunk) != byte_size:
        raise struct.error(
            f"need {byte_size} bytes at offset {offset}, got {len(chunk)}"
        )
    return int.from_bytes(chunk, "big")


def write_uint(value: int, byte_size: int) -> bytes:
    return value.to_bytes(byte_size, "big")


# ==== Details about psarc ====
MAGIC = b"PSAR"
HEADER_SIZE = 32
HEADER_STRUCT = struct.Struct(">4sI4sIIIII")
ENTRY_SIZE = 30  # md5[16] + z_index u32 + length u40 + offset u40
DEFAULT_BLOCK_SIZE = 65536
VERSION = 0x00010004
COMPRESSION = b"zlib"

# Well-known Rocksmith 2014 keys
ARC_KEY = bytes.fromhex(
    "C53DB23870A1A2F71CAE64061FDD0E1157309DC85204D4C5BFDF25090DF2572C"
)
ARC_IV = bytes.fromhex("E915AA018FEF71FC508132E4BB4CEB42")
WIN_KEY = bytes.fromhex(
    "CB648DF3D12A16BF71701414E69619EC171CCA5D2A142E3E59DE7ADDA18A3A30"
)
MAC_KEY = bytes.fromhex(
    "9821330E34B91F70D0A48CBD625993126970CEA09192C0E6CDA676CC9838289D"
)

# Encrypted chart envelope: magic u32 + platform u32 + iv[16] + payload + signature[56]
ENVELOPE_MAGIC = b"\x4a\x00\x00\x00"
ENVELOPE_PLATFORM = b"\x03\x00\x00\x00"
ENVELOPE_HEADER_SIZE = 24
ENVELOPE_SIGNATURE_SIZE = 56

# zlib stream headers (CMF 0x78 with each standard FLEVEL)
ZLIB_HEADERS = (b"\x78\x01", b"\x78\x5e", b"\x78\x9c", b"\x78\xda")


class ArchiveFlag(IntFlag):
    NONE = 0
    RELATIVE_PATHS = 1
    IGNORE_CASE = 2
    ENCRYPTED_TOC = 4


@dataclass
class Header:
    magic: bytes
    version: int
    compression: bytes
    toc_length: int
    entry_size: int
    entry_count: int
    block_size: int
    flags: ArchiveFlag

    def pack(self) -> bytes:
        return HEADER_STRUCT.pack(
            self.magic,
            self.version,
            self.compression,
            self.toc_length,
            self.entry_size,
            self.entry_count,
            self.block_size,
            int(self.flags),
        )


def block_length_width(block_size: int) -> Literal[2, 3, 4]:
    """Byte width of each stored block length for a given block size."""
    if block_size <= 0x10000:
        return 2
    if block_size <= 0x1000000:
        return 3
    return 4


def looks_like_zlib(block: bytes | memoryview) -> bool:
    return bytes(block[:2]) in ZLIB_HEADERS


def chart_key_for(path: str) -> bytes | None:
    """Envelope key for entries stored encrypted, None for plain entries."""
    if "songs/bin/macos" in path:
        return MAC_KEY
    if "songs/bin/generic" in path:
        return WIN_KEY
    return None


# ==== Crypto ====
def toc_decrypt(data: bytes) -> bytes:
    decryptor = Cipher(algorithms.AES(ARC_KEY), CFB(ARC_IV)).decryptor()
    return decryptor.update(data) + decryptor.finalize()


def toc_encrypt(data: bytes) -> bytes:
    encryptor = Cipher(algorithms.AES(ARC_KEY), CFB(ARC_IV)).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def envelope_decrypt(data: bytes, key: bytes) -> bytes:
    """Strip the encrypted chart envelope and inflate its payload.

    Raises ValueError for a malformed envelope and zlib.error for a bad payload.
    """
    if len(data) < ENVELOPE_HEADER_SIZE + ENVELOPE_SIGNATURE_SIZE + 4:
        raise ValueError(f"envelope too short ({len(data)} bytes)")
    if data[:4] != ENVELOPE_MAGIC:
        raise ValueError(f"bad envelope magic {data[:4].hex()}")
    iv = data[8:ENVELOPE_HEADER_SIZE]
    encrypted = data[ENVELOPE_HEADER_SIZE : len(data) - ENVELOPE_SIGNATURE_SIZE]
    decryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).decryptor()
    decrypted = decryptor.update(encrypted) + decryptor.finalize()
    expected = int.from_bytes(decrypted[:4], "little")
    payload = zlib.decompress(decrypted[4:])
    if len(payload) != expected:
        raise ValueError(
            f"envelope declares {expected} bytes, inflated {len(payload)}"
        )
    return payload


def envelope_encrypt(payload: bytes, key: bytes, iv: bytes) -> bytes:
    plain = len(payload).to_bytes(4, "little") + zlib.compress(payload)
    encryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).encryptor()
    encrypted = encryptor.update(plain) + encryptor.finalize()
    return (
        ENVELOPE_MAGIC
        + ENVELOPE_PLATFORM
        + iv
        + encrypted
        + b"\0" * ENVELOPE_SIGNATURE_SIZE
    )
