"""QR code generation for WireGuard configs"""

import io
import logging
from pathlib import Path
from typing import Optional

import segno


logger = logging.getLogger(__name__)


def generate_qr_code(
    config_text: str,
    output_path: Optional[Path] = None,
    scale: int = 5
) -> str:
    """
    Generate QR code for WireGuard configuration

    Args:
        config_text: Complete WireGuard config text
        output_path: If provided, save QR code as PNG to this path
        scale: Scale factor for QR code

    Returns:
        Text rendering of the QR code for terminal display
    """
    qr = segno.make(config_text, micro=False)

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        qr.save(str(output_path), scale=scale, border=2)
        # The QR code carries the private key
        output_path.chmod(0o600)
        logger.info(f"Saved QR code to {output_path}")

    buffer = io.StringIO()
    qr.terminal(out=buffer, compact=True)
    return buffer.getvalue()
