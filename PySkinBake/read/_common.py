from typing import Optional
import struct

import numpy as np

from PySkinBake.common_types import BakeError


class DeserializeError(BakeError):
    """
    The blob is truncated or malformed
    """


class BlobReader:
    """
    Reads the little endian, length prefixed values written by PySkinBake.write._common.BlobWriter
    """

    def __init__(self, buffer: bytes):
        self.buffer = buffer
        self.offset = 0

    def _unpack(self, value_format: str):
        try:
            values = struct.unpack_from(value_format, self.buffer, self.offset)
        except struct.error as error:
            raise DeserializeError(f"Could not read '{value_format}' at offset {self.offset}: {error}")
        self.offset += struct.calcsize(value_format)
        return values[0]

    def read_u32(self) -> int:
        return self._unpack('<I')

    def read_f64(self) -> float:
        return self._unpack('<d')

    def read_flag(self) -> bool:
        flag = self._unpack('<B')
        if flag not in (0, 1):
            raise DeserializeError(f"Expected a presence flag at offset {self.offset - 1}, got {flag}")
        return flag == 1

    def read_bytes(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.buffer):
            raise DeserializeError(f"Expected {size} bytes at offset {self.offset}, "
                                   f"only {len(self.buffer) - self.offset} left")
        data = bytes(self.buffer[self.offset:end])
        self.offset = end
        return data

    def read_string(self) -> str:
        size = self.read_u32()
        try:
            return self.read_bytes(size).decode('utf-8')
        except UnicodeDecodeError as error:
            raise DeserializeError(f"Invalid string before offset {self.offset}: {error}")

    def read_array(self) -> np.ndarray:
        dtype_name = self.read_string()
        try:
            dtype = np.dtype(dtype_name)
        except TypeError:
            raise DeserializeError(f"Unknown array type '{dtype_name}' before offset {self.offset}")
        ndim = self.read_u32()
        shape = tuple(self.read_u32() for _ in range(ndim))
        count = int(np.prod(shape, dtype=np.int64))
        data = self.read_bytes(count * dtype.itemsize)
        return np.frombuffer(data, dtype=dtype).reshape(shape).copy()

    def read_optional_u32(self) -> Optional[int]:
        return self.read_u32() if self.read_flag() else None

    def read_optional_array(self) -> Optional[np.ndarray]:
        return self.read_array() if self.read_flag() else None

    def at_end(self) -> bool:
        return self.offset == len(self.buffer)
