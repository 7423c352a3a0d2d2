"""Credential construction for Microsoft Graph.

All authentication goes through azure-identity. Which credential is built
depends on the configured mode:

    interactive       InteractiveBrowserCredential (default)
    device_code       DeviceCodeCredential
    client_secret     ClientSecretCredential
    certificate       CertificateCredential
    managed_identity  ManagedIdentityCredential

SECURITY INVARIANTS:
1. Client secrets are read from HYDRATION_CLIENT_SECRET only, never from
   the settings file (the settings model rejects them).
2. A credential that cannot produce a token aborts the run before any
   reconciliation starts.
"""

from __future__ import annotations

import logging
import os

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import (
    AzureAuthorityHosts,
    CertificateCredential,
    ClientSecretCredential,
    DeviceCodeCredential,
    InteractiveBrowserCredential,
    ManagedIdentityCredential,
)

from .config import CloudEnvironment, RunContext

logger = logging.getLogger(__name__)

CLIENT_SECRET_ENV_VAR = "HYDRATION_CLIENT_SECRET"

AUTHORITY_HOSTS: dict[CloudEnvironment, str] = {
    CloudEnvironment.GLOBAL: AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
    CloudEnvironment.USGOV: AzureAuthorityHosts.AZURE_GOVERNMENT,
    CloudEnvironment.USGOV_DOD: AzureAuthorityHosts.AZURE_GOVERNMENT,
    CloudEnvironment.CHINA: AzureAuthorityHosts.AZURE_CHINA,
}


class AuthenticationError(Exception):
    """Raised when no usable credential can be obtained.

    This is fatal: the run stops before touching the tenant.
    """

    pass


def build_credential(context: RunContext) -> TokenCredential:
    """Build the azure-identity credential for the context's auth mode.

    Raises:
        AuthenticationError: If the mode's inputs are missing.
    """
    auth = context.auth
    authority = AUTHORITY_HOSTS[context.environment]

    logger.info(
        "Building credential",
        extra={"auth_mode": auth.mode, "environment": context.environment.value},
    )

    match auth.mode:
        case "interactive":
            kwargs = {"tenant_id": context.tenant_id, "authority": authority}
            if auth.client_id:
                kwargs["client_id"] = auth.client_id
            return InteractiveBrowserCredential(**kwargs)
        case "device_code":
            kwargs = {"tenant_id": context.tenant_id, "authority": authority}
            if auth.client_id:
                kwargs["client_id"] = auth.client_id
            return DeviceCodeCredential(**kwargs)
        case "client_secret":
            secret = os.environ.get(CLIENT_SECRET_ENV_VAR)
            if not secret:
                raise AuthenticationError(
                    f"client_secret authentication requires {CLIENT_SECRET_ENV_VAR} to be set"
                )
            return ClientSecretCredential(
                tenant_id=context.tenant_id,
                client_id=auth.client_id,
                client_secret=secret,
                authority=authority,
            )
        case "certificate":
            return CertificateCredential(
                tenant_id=context.tenant_id,
                client_id=auth.client_id,
                certificate_path=str(auth.certificate_path),
                authority=authority,
            )
        case "managed_identity":
            if auth.client_id:
                return ManagedIdentityCredential(client_id=auth.client_id)
            return ManagedIdentityCredential()
        case _:
            raise AuthenticationError(f"Unsupported authentication mode: {auth.mode}")


def verify_credential(credential: TokenCredential, scope: str) -> None:
    """Acquire one token up front so auth problems fail the run early.

    Raises:
        AuthenticationError: If the credential cannot produce a token.
    """
    try:
        credential.get_token(scope)
    except ClientAuthenticationError as e:
        logger.critical(
            "Authentication failed",
            extra={"security_event": "auth_failed", "error": str(e)},
        )
        raise AuthenticationError(f"Failed to authenticate to Microsoft Graph: {e}") from e

    logger.info("Authenticated to Microsoft Graph", extra={"security_event": "auth_verified"})
