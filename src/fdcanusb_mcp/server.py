"""MCP server entry point for the mjbots fdcanusb.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .errors import FdCanUSBError, LostSyncError
from .models.frame import CanFdFrame, MAX_ARBITRATION_ID
from .transport.bus import FdCanUSB
from .transport.serial_connection import SerialConnection, find_ports

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "fdcanusb",
    instructions="MCP server for the mjbots fdcanusb USB to CAN-FD adapter",
)

# Global connection state
_connection: SerialConnection | None = None
_bus: FdCanUSB | None = None
_stats: dict[str, Any] = {"transfers": 0, "failures": 0, "last_error": None}


def _get_bus() -> FdCanUSB:
    """Get the active framer, raising if not connected."""
    if _bus is None or _connection is None or not _connection.connected:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _bus


def _parse_hex(data: str) -> bytes:
    cleaned = data.replace(" ", "").replace(":", "")
    return bytes.fromhex(cleaned)


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_ports() -> dict[str, Any]:
    """List serial ports that look like an fdcanusb (USB 0x0483:0x5740)."""
    return {
        "ports": [
            {
                "port": info.port,
                "description": info.description,
                "serial_number": info.serial_number,
            }
            for info in find_ports()
        ]
    }


@mcp.tool()
def connect(port: str | None = None) -> dict[str, Any]:
    """Open the serial connection to the fdcanusb.

    Auto-discovers the adapter by USB vendor/product ID when no port is
    given, falling back to /dev/fdcanusb.

    Args:
        port: Optional serial device path (e.g. /dev/ttyACM0).
    """
    global _connection, _bus
    if _connection is not None and _connection.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "port": _connection.device_info.port,
        }

    _connection = SerialConnection(port)
    info = _connection.open()
    _bus = FdCanUSB(_connection)

    return {
        "connected": True,
        "port": info.port,
        "description": info.description,
        "serial_number": info.serial_number,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial connection to the adapter."""
    global _connection, _bus
    if _connection is not None:
        _connection.close()
    _connection = None
    _bus = None
    return {"disconnected": True}


@mcp.tool()
def get_device_info() -> dict[str, Any]:
    """Report the USB descriptor information of the connected adapter."""
    _get_bus()
    info = _connection.device_info
    return {
        "port": info.port,
        "description": info.description,
        "serial_number": info.serial_number,
        "manufacturer": info.manufacturer,
    }


@mcp.tool()
def flush() -> dict[str, bool]:
    """Discard pending serial data to recover from a lost-sync error."""
    _get_bus().flush()
    return {"flushed": True}


# ─── CAN TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
def send_frame(
    arbitration_id: int,
    data: str = "",
    brs: bool | None = None,
    fd_can_frame: bool | None = None,
    remote_frame: bool | None = None,
    want_response: bool = False,
) -> dict[str, Any]:
    """Send a single CAN-FD frame and optionally wait for the reply.

    Args:
        arbitration_id: 16-bit arbitration id (0-65535).
        data: Payload as hex, e.g. "01000A0D" (max 64 bytes).
        brs: Bit-rate switching; omit to use the adapter default.
        fd_can_frame: Send as FD (true) or classic (false) frame.
        remote_frame: Send as a remote frame.
        want_response: Wait for and return the next received frame.
    """
    if not 0 <= arbitration_id <= MAX_ARBITRATION_ID:
        return {"error": f"Arbitration id must be 0-{MAX_ARBITRATION_ID}"}
    try:
        payload = _parse_hex(data)
    except ValueError:
        return {"error": f"Data is not valid hex: {data!r}"}

    try:
        frame = CanFdFrame(
            arbitration_id,
            payload,
            brs=brs,
            fd_can_frame=fd_can_frame,
            remote_frame=remote_frame,
        )
    except ValueError as e:
        return {"error": str(e)}

    bus = _get_bus()
    _stats["transfers"] += 1
    try:
        response = bus.transfer(frame, want_response=want_response)
    except FdCanUSBError as e:
        _stats["failures"] += 1
        _stats["last_error"] = str(e)
        result: dict[str, Any] = {"error": str(e)}
        if isinstance(e, LostSyncError):
            result["hint"] = "Use the 'flush' tool before sending again."
        return result

    if response is None:
        return {"sent": True}
    return {"sent": True, "response": response.to_dict()}


# ─── RESOURCES ───────────────────────────────────────────────────────

@mcp.resource("fdcanusb://device/info")
def resource_device_info() -> str:
    """Connected adapter information as JSON."""
    try:
        return json.dumps(get_device_info(), indent=2)
    except RuntimeError as e:
        return json.dumps({"error": str(e)})


@mcp.resource("fdcanusb://device/status")
def resource_device_status() -> str:
    """Connection state and transfer counters."""
    connected = _connection is not None and _connection.connected
    return json.dumps({"connected": connected, **_stats}, indent=2)


# ─── PROMPTS ─────────────────────────────────────────────────────────

@mcp.prompt()
def query_device(arbitration_id: int, request_hex: str) -> str:
    """Walk through a request/response exchange with one CAN node.

    Args:
        arbitration_id: Id to address the request to.
        request_hex: Request payload as hex.
    """
    return f"""Connect to the fdcanusb with the connect tool if not already connected.
Send the request with send_frame(arbitration_id={arbitration_id}, data="{request_hex}", want_response=true).

Then:
- Report the response id, payload bytes, and flags
- Payloads longer than 8 bytes are padded to a CAN-FD size with 0x50 bytes
- If a lost-sync error comes back, call flush and retry once
- If it times out, check the node id and bus wiring before retrying"""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
