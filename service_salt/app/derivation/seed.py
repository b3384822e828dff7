"""
Master seed resolution.

Each seed source resolves to exactly 32 bytes at provider construction
time, or fails with ``SeedError``. Error messages describe where the seed
was expected but never include seed material.
"""

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import httpx

from shared.errors import SeedError
from shared.logging import get_logger
from .kdf import SEED_LENGTH
from ..settings import AwsSeedSource, EnvSeedSource, FileSeedSource, VaultSeedSource

logger = get_logger("salt.seed")


def parse_seed_hex(value: str, origin: str) -> bytearray:
    """Decode a hex seed (optional 0x prefix) into a mutable 32-byte buffer."""
    text = value.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        seed = bytearray.fromhex(text)
    except ValueError:
        raise SeedError(f"Master seed from {origin} is not valid hex") from None
    if len(seed) != SEED_LENGTH:
        raise SeedError(
            f"Master seed from {origin} must be {SEED_LENGTH} bytes ({SEED_LENGTH * 2} hex characters)",
            details={"length": len(seed)}
        )
    return seed


def _extract_json_key(text: str, key: str, origin: str) -> str:
    """Return ``text`` itself, or ``text[key]`` if it is a JSON object."""
    stripped = text.strip()
    if not stripped.startswith("{"):
        return stripped
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        raise SeedError(f"Master seed document from {origin} is not valid JSON") from None
    value = data.get(key)
    if not isinstance(value, str):
        raise SeedError(f"Master seed document from {origin} has no '{key}' field")
    return value


async def resolve_seed(
    source: Any,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bytearray:
    """Resolve a configured seed source to 32 bytes."""
    environ = os.environ if environ is None else environ

    if isinstance(source, EnvSeedSource):
        return _resolve_env(source, environ)
    if isinstance(source, FileSeedSource):
        return _resolve_file(source)
    if isinstance(source, VaultSeedSource):
        return await _resolve_vault(source, environ, transport)
    if isinstance(source, AwsSeedSource):
        return await _resolve_aws(source)
    raise SeedError(f"Unknown seed source: {getattr(source, 'type', type(source).__name__)}")


def _resolve_env(source: EnvSeedSource, environ: Mapping[str, str]) -> bytearray:
    if source.value is not None:
        return parse_seed_hex(source.value.get_secret_value(), "direct value")

    value = environ.get(source.env_var)
    if not value:
        raise SeedError(f"{source.env_var} environment variable is required")
    return parse_seed_hex(value, f"environment variable {source.env_var}")


def _resolve_file(source: FileSeedSource) -> bytearray:
    if not source.path:
        raise SeedError("Seed file path is required")
    path = Path(source.path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SeedError(f"Cannot read seed file {path}: {e.strerror}") from None

    origin = f"file {path}"
    return parse_seed_hex(_extract_json_key(text, source.key, origin), origin)


async def _resolve_vault(
    source: VaultSeedSource,
    environ: Mapping[str, str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bytearray:
    if not source.address or not source.path:
        raise SeedError("Vault address and path are required")
    token = environ.get(source.token_env_var)
    if not token:
        raise SeedError(f"{source.token_env_var} environment variable is required for Vault")

    url = f"{source.address.rstrip('/')}/v1/{source.path.lstrip('/')}"
    origin = f"Vault {source.path}"
    try:
        async with httpx.AsyncClient(timeout=source.timeout, transport=transport) as client:
            response = await client.get(url, headers={"X-Vault-Token": token})
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPStatusError as e:
        raise SeedError(f"{origin} returned {e.response.status_code}") from None
    except (httpx.HTTPError, ValueError) as e:
        raise SeedError(f"{origin} unreachable: {type(e).__name__}") from None

    # KV v2 nests the secret under data.data; KV v1 under data
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise SeedError(f"{origin} returned an unexpected document")
    if isinstance(data.get("data"), dict):
        data = data["data"]
    value = data.get(source.key)
    if not isinstance(value, str):
        raise SeedError(f"{origin} has no '{source.key}' field")

    logger.info("Master seed loaded from Vault", path=source.path)
    return parse_seed_hex(value, origin)


async def _fetch_aws_secret_string(source: AwsSeedSource) -> str:
    import aioboto3

    session = aioboto3.Session()
    async with session.client("secretsmanager", region_name=source.region) as client:
        response = await client.get_secret_value(SecretId=source.secret_name)
    secret = response.get("SecretString")
    if secret is None:
        raise SeedError(f"AWS secret {source.secret_name} has no SecretString")
    return secret


async def _resolve_aws(source: AwsSeedSource) -> bytearray:
    if not source.secret_name:
        raise SeedError("AWS secret name is required")

    origin = f"AWS secret {source.secret_name}"
    try:
        secret = await _fetch_aws_secret_string(source)
    except SeedError:
        raise
    except ImportError:
        raise SeedError("aioboto3 is required for the aws seed source (install the 'aws' extra)") from None
    except Exception as e:
        raise SeedError(f"{origin} unavailable: {type(e).__name__}") from None

    logger.info("Master seed loaded from AWS Secrets Manager", secret_name=source.secret_name, region=source.region)
    return parse_seed_hex(_extract_json_key(secret, source.secret_key, origin), origin)
