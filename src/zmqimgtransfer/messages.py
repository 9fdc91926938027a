"""Wire vocabulary of the image transfer protocol.

Everything that travels as text lives here: the voxel and backend names
used inside the envelope, the handshake tokens, the per-image metadata line
and the "v0" session hint lines layered over the per-image protocol.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from zmqimgtransfer.errors import ProtocolViolation, UnsupportedBackendError


logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "v1"
SESSION_PROTOCOL_VERSION = "v0"
METADATA_SEPARATOR = "__QWE__"


# =============================================================================
# Closed type vocabularies
# =============================================================================

class VoxelType(Enum):
    """Supported scalar voxel types.

    The wire names are the imglib2 class names used by the Java peers,
    so envelopes stay readable by them.
    """
    INT8 = ("ByteType", "int8")
    UINT8 = ("UnsignedByteType", "uint8")
    INT16 = ("ShortType", "int16")
    UINT16 = ("UnsignedShortType", "uint16")
    FLOAT32 = ("FloatType", "float32")
    FLOAT64 = ("DoubleType", "float64")

    @property
    def wire_name(self) -> str:
        return self.value[0]

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value[1])

    @property
    def wire_dtype(self) -> np.dtype:
        # payload travels in network byte order
        return self.dtype.newbyteorder(">")

    @property
    def byte_width(self) -> int:
        return self.dtype.itemsize

    @classmethod
    def from_wire(cls, token: str) -> "VoxelType":
        for voxel_type in cls:
            if token.startswith(voxel_type.wire_name):
                return voxel_type
        raise ProtocolViolation(f"Unsupported voxel type: {token!r}")

    @classmethod
    def from_dtype(cls, dtype) -> "VoxelType":
        native = np.dtype(dtype).newbyteorder("=")
        for voxel_type in cls:
            if voxel_type.dtype == native:
                return voxel_type
        raise ProtocolViolation(f"Unsupported voxel type: {np.dtype(dtype)}")


class Backend(Enum):
    """Storage layout families of a transferred array."""
    CONTIGUOUS = "ArrayImg"
    PLANAR = "PlanarImg"
    TILED = "CellImg"

    @property
    def wire_name(self) -> str:
        return self.value

    @property
    def is_supported(self) -> bool:
        return self is not Backend.TILED

    def require_supported(self) -> "Backend":
        if not self.is_supported:
            raise UnsupportedBackendError(
                f"Transfer of {self.wire_name} ({self.name.lower()}) images is not implemented"
            )
        return self

    @classmethod
    def from_wire(cls, token: str) -> "Backend":
        for backend in cls:
            if token.startswith(backend.wire_name):
                return backend
        raise ProtocolViolation(f"Unsupported image backend type: {token!r}")


# =============================================================================
# Handshake tokens
# =============================================================================

class HandshakeToken(Enum):
    READY = "ready"
    DONE = "done"
    CAN_GET = "can get"

    def matches(self, message: str) -> bool:
        return message.startswith(self.value)


def expect_token(message: str, token: HandshakeToken, context: str) -> None:
    if not token.matches(message):
        raise ProtocolViolation(
            f"Protocol error, expected {context} ({token.value!r}), got {message[:64]!r}"
        )


# =============================================================================
# Per-image messages
# =============================================================================

@dataclass(frozen=True)
class Envelope:
    """Header of one image: shape, voxel type and storage backend.

    ``dims`` are listed fastest-varying axis first, the order used on the
    wire.
    """
    dims: Tuple[int, ...]
    voxel_type: VoxelType
    backend: Backend
    protocol_version: str = PROTOCOL_VERSION

    def __post_init__(self):
        object.__setattr__(self, "dims", tuple(int(d) for d in self.dims))
        if len(self.dims) < 1:
            raise ProtocolViolation("Image must have at least one dimension")
        if any(d < 0 for d in self.dims):
            raise ProtocolViolation(f"Negative image extent in {self.dims}")

    @property
    def rank(self) -> int:
        return len(self.dims)

    @property
    def element_count(self) -> int:
        count = 1
        for extent in self.dims:
            count *= extent
        return count

    @property
    def is_empty(self) -> bool:
        return self.element_count == 0


@dataclass(frozen=True)
class Metadata:
    """Per-image metadata; currently the display name plus optional extras."""
    name: str = ""
    extras: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    IMAGE_NAME_KEY = "imagename"
    BEGIN_MARKER = "metadata"
    END_MARKER = "endmetadata"

    def encode(self) -> str:
        terms = [self.BEGIN_MARKER, self.IMAGE_NAME_KEY, self.name]
        for key, value in self.extras:
            terms.extend((key, value))
        for term in terms:
            if METADATA_SEPARATOR in term:
                raise ProtocolViolation(
                    f"Metadata term {term!r} contains the reserved separator {METADATA_SEPARATOR!r}"
                )
        terms.append(self.END_MARKER)
        return METADATA_SEPARATOR.join(terms)

    @classmethod
    def decode(cls, message: str) -> "Metadata":
        if not message.startswith(cls.BEGIN_MARKER):
            raise ProtocolViolation("Protocol error, expected metadata part from the sender.")
        terms = message.split(METADATA_SEPARATOR)
        if len(terms) < 2 or terms[-1] != cls.END_MARKER or len(terms) % 2 != 0:
            raise ProtocolViolation("Protocol error, received likely corrupted metadata part.")

        name = ""
        extras = []
        pairs = terms[1:-1]
        for key, value in zip(pairs[0::2], pairs[1::2]):
            if key == cls.IMAGE_NAME_KEY:
                name = value
            else:
                extras.append((key, value))
        if extras:
            logger.debug("Metadata carries extra keys: %s", [key for key, _ in extras])
        return cls(name=name, extras=tuple(extras))


# =============================================================================
# Session hint lines
# =============================================================================

@dataclass(frozen=True)
class SessionHint:
    """One ``v0`` control line: either an image-count hint or a hangup.

    The count is informational only; receivers never check it against the
    number of images actually delivered.
    """
    hangup: bool = False
    expected_images: Optional[int] = None

    @classmethod
    def expect(cls, expected_images: int) -> "SessionHint":
        return cls(hangup=False, expected_images=expected_images)

    @classmethod
    def hang_up(cls) -> "SessionHint":
        return cls(hangup=True)

    def encode(self) -> str:
        if self.hangup:
            return f"{SESSION_PROTOCOL_VERSION} hangup"
        return f"{SESSION_PROTOCOL_VERSION} expect {self.expected_images or 0} images"

    @classmethod
    def parse(cls, message: str) -> "SessionHint":
        tokens = message.split()
        if not tokens or tokens[0] != SESSION_PROTOCOL_VERSION:
            raise ProtocolViolation(
                f"Protocol error, expected {SESSION_PROTOCOL_VERSION} header from the sender, "
                f"got {message[:64]!r}"
            )
        if len(tokens) > 1 and tokens[1].startswith("hangup"):
            return cls.hang_up()
        if len(tokens) > 2 and tokens[1].startswith("expect"):
            try:
                return cls.expect(int(tokens[2]))
            except ValueError:
                raise ProtocolViolation(f"Malformed image count in header: {message!r}") from None
        # a bare or unknown v0 line still announces another image
        return cls(hangup=False, expected_images=None)
