"""Core constants used across sevenimport modules.

This module centralizes container format identifiers and import defaults.
Keeping values here avoids magic literals in parsing and decoding logic.
"""

from __future__ import annotations

from dataclasses import dataclass

SIGNATURE_MAGIC = b"7z\xbc\xaf\x27\x1c"
SIGNATURE_HEADER_SIZE = 32
SUPPORTED_MAJOR_VERSION = 0
START_HEADER_SIZE = 20

# Header property ids.
PROPERTY_END = 0x00
PROPERTY_HEADER = 0x01
PROPERTY_ARCHIVE_PROPERTIES = 0x02
PROPERTY_ADDITIONAL_STREAMS_INFO = 0x03
PROPERTY_MAIN_STREAMS_INFO = 0x04
PROPERTY_FILES_INFO = 0x05
PROPERTY_PACK_INFO = 0x06
PROPERTY_UNPACK_INFO = 0x07
PROPERTY_SUBSTREAMS_INFO = 0x08
PROPERTY_SIZE = 0x09
PROPERTY_CRC = 0x0A
PROPERTY_FOLDER = 0x0B
PROPERTY_CODERS_UNPACK_SIZE = 0x0C
PROPERTY_NUM_UNPACK_STREAM = 0x0D
PROPERTY_EMPTY_STREAM = 0x0E
PROPERTY_EMPTY_FILE = 0x0F
PROPERTY_ANTI = 0x10
PROPERTY_NAME = 0x11
PROPERTY_CREATION_TIME = 0x12
PROPERTY_ACCESS_TIME = 0x13
PROPERTY_MODIFICATION_TIME = 0x14
PROPERTY_ATTRIBUTES = 0x15
PROPERTY_COMMENT = 0x16
PROPERTY_ENCODED_HEADER = 0x17
PROPERTY_START_POSITION = 0x18
PROPERTY_DUMMY = 0x19

# Coder flag bits in a folder's coder record.
CODER_ID_SIZE_MASK = 0x0F
CODER_IS_COMPLEX = 0x10
CODER_HAS_PROPERTIES = 0x20
CODER_HAS_ALTERNATIVES = 0x80

# Coder method ids.
METHOD_COPY = b"\x00"
METHOD_DELTA = b"\x03"
METHOD_BCJ_X86 = b"\x03\x03\x01\x03"
METHOD_BCJ2 = b"\x03\x03\x01\x1b"
METHOD_BCJ_PPC = b"\x03\x03\x02\x05"
METHOD_BCJ_IA64 = b"\x03\x03\x04\x01"
METHOD_BCJ_ARM = b"\x03\x03\x05\x01"
METHOD_BCJ_ARMT = b"\x03\x03\x07\x01"
METHOD_BCJ_SPARC = b"\x03\x03\x08\x05"
METHOD_LZMA = b"\x03\x01\x01"
METHOD_LZMA2 = b"\x21"
METHOD_PPMD = b"\x03\x04\x01"
METHOD_DEFLATE = b"\x04\x01\x08"
METHOD_BZIP2 = b"\x04\x02\x02"
METHOD_AES = b"\x06\xf1\x07\x01"

BCJ2_INPUT_STREAMS = 4

FILE_ATTRIBUTE_DIRECTORY = 0x10
FILE_ATTRIBUTE_UNIX_EXTENSION = 0x8000

ARCHIVE_PATH_SEPARATOR = "/"
INIT_MODULE_NAME = "__init__"
SOURCE_SUFFIX = ".py"
BYTECODE_SUFFIX = ".pyc"
BYTECODE_HEADER_SIZE = 16

DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(frozen=True)
class SearchOrderEntry:
    """One candidate suffix tried when resolving a module name.

    Attributes:
        suffix: Suffix appended to the module's archive path.
        is_package: Whether a match designates a package.
        is_bytecode: Whether the matched entry holds compiled bytecode.
    """

    suffix: str
    is_package: bool
    is_bytecode: bool


MODULE_SEARCH_ORDER: tuple[SearchOrderEntry, ...] = (
    SearchOrderEntry(f"/{INIT_MODULE_NAME}{BYTECODE_SUFFIX}", True, True),
    SearchOrderEntry(f"/{INIT_MODULE_NAME}{SOURCE_SUFFIX}", True, False),
    SearchOrderEntry(BYTECODE_SUFFIX, False, True),
    SearchOrderEntry(SOURCE_SUFFIX, False, False),
)
