"""
Candid encoding of upgrade arguments via the external ``didc`` tool.
"""
import logging
import re
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from workers.verifier.errors import ArgumentEncodingFailed

logger = logging.getLogger(__name__)

_HEX = re.compile(r"^[0-9a-fA-F]*$")

# (literal, schema_path, type_descriptor) -> encoded bytes
ArgumentEncoder = Callable[[str, Optional[Path], Optional[str]], bytes]


def didc_command(
    literal: str,
    schema_path: Optional[Path] = None,
    type_descriptor: Optional[str] = None,
    didc: str = "didc",
) -> List[str]:
    cmd = [didc, "encode"]
    if schema_path is not None:
        cmd += ["-d", str(schema_path)]
    if type_descriptor:
        cmd += ["-t", type_descriptor]
    cmd.append(literal)
    return cmd


def encode_arguments(
    literal: str,
    schema_path: Optional[Path] = None,
    type_descriptor: Optional[str] = None,
    didc: str = "didc",
    timeout: int = 60,
) -> bytes:
    """Encode a Candid text literal to its binary form.

    Raises
    ------
    ArgumentEncodingFailed
        ``didc`` is missing, exits non-zero, times out or prints something
        other than hex.
    """
    if schema_path is not None and not schema_path.is_file():
        raise ArgumentEncodingFailed(f"Candid schema not found: {schema_path}")

    cmd = didc_command(literal, schema_path, type_descriptor, didc)
    logger.info("Encoding upgrade arguments with %s", didc)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise ArgumentEncodingFailed(f"{didc} not found") from e
    except subprocess.TimeoutExpired as e:
        raise ArgumentEncodingFailed(f"{didc} timed out after {timeout}s") from e

    if result.returncode != 0:
        raise ArgumentEncodingFailed(
            f"{didc} exited with {result.returncode}: {result.stderr.strip()}"
        )

    encoded = "".join(result.stdout.split())
    if not encoded or len(encoded) % 2 or not _HEX.match(encoded):
        raise ArgumentEncodingFailed(f"{didc} produced non-hex output: {result.stdout[:200]!r}")
    return bytes.fromhex(encoded)


def didc_encoder(didc: str = "didc") -> ArgumentEncoder:
    """An :data:`ArgumentEncoder` bound to a specific ``didc`` binary."""

    def _encode(literal: str, schema_path: Optional[Path], type_descriptor: Optional[str]) -> bytes:
        return encode_arguments(literal, schema_path, type_descriptor, didc=didc)

    return _encode
