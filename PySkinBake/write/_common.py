from typing import List, Optional
import struct

import numpy as np

from PySkinBake.common_types import BakeError


class SerializeError(BakeError):
    """
    A value cannot be represented in the blob
    """


class BlobWriter:
    """
    Accumulates little endian, length prefixed values
    """

    def __init__(self):
        self._chunks: List[bytes] = []

    def _pack(self, value_format: str, value):
        try:
            self._chunks.append(struct.pack(value_format, value))
        except struct.error as error:
            raise SerializeError(f"Could not write {value!r} as '{value_format}': {error}")

    def write_u32(self, value: int):
        self._pack('<I', value)

    def write_f64(self, value: float):
        self._pack('<d', value)

    def write_flag(self, flag: bool):
        self._pack('<B', 1 if flag else 0)

    def write_string(self, value: str):
        data = value.encode('utf-8')
        self.write_u32(len(data))
        self._chunks.append(data)

    def write_array(self, array: np.ndarray):
        array = np.asarray(array)
        if array.dtype.hasobject:
            raise SerializeError(f"Cannot write arrays of {array.dtype}")
        array = np.ascontiguousarray(array, dtype=array.dtype.newbyteorder('<'))
        self.write_string(array.dtype.str)
        self.write_u32(array.ndim)
        for dimension in array.shape:
            self.write_u32(dimension)
        self._chunks.append(array.tobytes())

    def write_optional_u32(self, value: Optional[int]):
        self.write_flag(value is not None)
        if value is not None:
            self.write_u32(value)

    def write_optional_array(self, array: Optional[np.ndarray]):
        self.write_flag(array is not None)
        if array is not None:
            self.write_array(array)

    def getvalue(self) -> bytes:
        return b''.join(self._chunks)
