"""Protocol layer: ASCII line encoding and decoding for the fdcanusb."""

from .framing import WireLine, encode_frame, decode_frame, padded_length
