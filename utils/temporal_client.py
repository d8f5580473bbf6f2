"""Temporal client construction shared by the worker, the CLI and the API."""

import base64
import logging
from pathlib import Path
from typing import Optional

from temporalio.client import Client
from temporalio.runtime import Runtime
from temporalio.service import TLSConfig

from config.settings import AppConfig, TLSSettings

logger = logging.getLogger(__name__)


def _read_material(file_path: Optional[str], data: Optional[str]) -> Optional[bytes]:
    if file_path:
        return Path(file_path).read_bytes()
    if data:
        return base64.b64decode(data)
    return None


def build_tls_config(tls: TLSSettings) -> Optional[TLSConfig]:
    """Build the SDK TLS configuration, or ``None`` when TLS is not configured.

    Raises:
        ValueError: If an item is given both as file and as data, or a client
            certificate comes without its private key or the other way round
    """
    pairs = [
        ("TLS_CA_CERT", tls.ca_cert_file, tls.ca_cert_data),
        ("TLS_CLIENT_CERT", tls.client_cert_file, tls.client_cert_data),
        ("TLS_CLIENT_CERT_PRIVATE_KEY", tls.client_key_file, tls.client_key_data),
    ]
    for name, file_value, data_value in pairs:
        if file_value and data_value:
            raise ValueError(f"Cannot specify both {name}_FILE and {name}_DATA")

    has_cert = tls.client_cert_file or tls.client_cert_data
    has_key = tls.client_key_file or tls.client_key_data
    if bool(has_cert) != bool(has_key):
        raise ValueError("TLS client certificate and private key must be configured together")

    if not tls.enabled:
        return None

    return TLSConfig(
        server_root_ca_cert=_read_material(tls.ca_cert_file, tls.ca_cert_data),
        client_cert=_read_material(tls.client_cert_file, tls.client_cert_data),
        client_private_key=_read_material(tls.client_key_file, tls.client_key_data),
        domain=tls.server_name,
    )


async def connect_client(app_config: AppConfig, runtime: Optional[Runtime] = None) -> Client:
    """Connect to Temporal with the configured host, namespace and TLS."""
    tls = build_tls_config(app_config.tls)
    logger.info(
        f"Connecting to Temporal at {app_config.temporal.host}, namespace {app_config.temporal.namespace}, "
        f"TLS {'enabled' if tls else 'disabled'}"
    )
    kwargs = {}
    if runtime is not None:
        kwargs["runtime"] = runtime
    return await Client.connect(
        app_config.temporal.host,
        namespace=app_config.temporal.namespace,
        tls=tls or False,
        **kwargs,
    )
