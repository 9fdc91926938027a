"""Voxel buffers of one image, laid out per storage backend."""
from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import numpy as np

from zmqimgtransfer.errors import ProtocolViolation
from zmqimgtransfer.messages import Backend, Envelope, VoxelType

logger = logging.getLogger(__name__)


def plane_layout(dims: Sequence[int]) -> Tuple[int, int]:
    """Return ``(plane_count, plane_size)`` of the planar layout.

    A plane spans the first two dims; there is one plane per index of the
    remaining dims. Rank-1 images form a single plane.
    """
    plane_size = int(dims[0]) * (int(dims[1]) if len(dims) > 1 else 1)
    plane_count = 1
    for extent in dims[2:]:
        plane_count *= int(extent)
    return plane_count, plane_size


class ArrayPayload:
    """Flat voxel storage of one image.

    CONTIGUOUS payloads hold one flat buffer; PLANAR payloads hold one flat
    buffer per plane. All buffers use the native dtype of ``voxel_type`` and
    list voxels fastest-varying dim first (C order of ``reversed(dims)``).
    """

    def __init__(
        self,
        dims: Sequence[int],
        voxel_type: VoxelType,
        backend: Backend,
        buffers: Sequence[np.ndarray],
    ) -> None:
        backend.require_supported()
        self.dims: Tuple[int, ...] = tuple(int(d) for d in dims)
        if len(self.dims) < 1:
            raise ProtocolViolation("Image must have at least one dimension")
        self.voxel_type = voxel_type
        self.backend = backend
        self.buffers: List[np.ndarray] = list(buffers)

    # ------------------------------------------------------------------
    @classmethod
    def from_array(cls, array, backend: Backend = Backend.CONTIGUOUS) -> "ArrayPayload":
        """Wrap a numpy array; axis order is reversed onto the wire dims."""
        backend.require_supported()
        array = np.asarray(array)
        if array.ndim < 1:
            raise ProtocolViolation("Image must have at least one dimension")
        voxel_type = VoxelType.from_dtype(array.dtype)
        data = np.ascontiguousarray(array, dtype=voxel_type.dtype)
        dims = tuple(reversed(data.shape))

        if backend is Backend.CONTIGUOUS:
            buffers = [data.reshape(-1)]
        else:
            plane_count, plane_size = plane_layout(dims)
            planes = data.reshape(plane_count, plane_size)
            buffers = [planes[i] for i in range(plane_count)]
        return cls(dims, voxel_type, backend, buffers)

    @classmethod
    def allocate(cls, envelope: Envelope) -> "ArrayPayload":
        """Allocate zeroed buffers matching ``envelope``; fails for TILED."""
        backend = envelope.backend.require_supported()
        dtype = envelope.voxel_type.dtype
        try:
            if backend is Backend.CONTIGUOUS:
                buffers = [np.zeros(envelope.element_count, dtype=dtype)]
            else:
                plane_count, plane_size = plane_layout(envelope.dims)
                storage = np.zeros((plane_count, plane_size), dtype=dtype)
                buffers = [storage[i] for i in range(plane_count)]
        except (MemoryError, ValueError) as error:
            raise ProtocolViolation(f"Cannot allocate image of shape {envelope.dims}") from error
        return cls(envelope.dims, envelope.voxel_type, backend, buffers)

    # ------------------------------------------------------------------
    @property
    def element_count(self) -> int:
        count = 1
        for extent in self.dims:
            count *= extent
        return count

    @property
    def shape(self) -> Tuple[int, ...]:
        """numpy shape of the image (slowest axis first)."""
        return tuple(reversed(self.dims))

    def envelope(self) -> Envelope:
        return Envelope(dims=self.dims, voxel_type=self.voxel_type, backend=self.backend)

    def expected_buffer_sizes(self) -> List[int]:
        if self.backend is Backend.CONTIGUOUS:
            return [self.element_count]
        plane_count, plane_size = plane_layout(self.dims)
        return [plane_size] * plane_count

    def validate_for_transfer(self) -> None:
        """Reject empty images and buffers that disagree with ``dims``."""
        if self.element_count == 0:
            raise ProtocolViolation("Refusing to transfer an empty image")
        if not self.buffers or any(buffer.size == 0 for buffer in self.buffers):
            raise ProtocolViolation("Refusing to transfer an empty image (no voxel data)")

        expected = self.expected_buffer_sizes()
        actual = [int(buffer.size) for buffer in self.buffers]
        if actual != expected:
            raise ProtocolViolation(
                f"Voxel buffers {actual} do not match declared shape {self.dims} "
                f"({self.backend.name.lower()} layout expects {expected})"
            )
        for buffer in self.buffers:
            if buffer.dtype != self.voxel_type.dtype:
                raise ProtocolViolation(
                    f"Buffer dtype {buffer.dtype} does not match voxel type {self.voxel_type.name}"
                )

    def to_array(self) -> np.ndarray:
        if len(self.buffers) == 1:
            flat = self.buffers[0]
        else:
            flat = np.concatenate(self.buffers)
        return flat.reshape(self.shape)

    def __repr__(self) -> str:
        return (
            f"ArrayPayload(dims={self.dims}, voxel_type={self.voxel_type.name}, "
            f"backend={self.backend.name}, buffers={len(self.buffers)})"
        )
