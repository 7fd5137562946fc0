from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Any, Optional, Sequence

import structlog
import yaml
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kubepane.config import get_settings
from kubepane.core.credentials import CredentialSlot, PemSource, parse_slot, read_pem_source, validate_credentials
from kubepane.exceptions import KubeconfigError, ProfileNotFoundError
from kubepane.models.connection_profile import ConnectionProfile
from kubepane.schemas.profile import ConnectionProfilePayload

logger = structlog.get_logger(__name__)

# kubeconfig keys per slot: (section, inline base64 key, file path key)
_KUBECONFIG_KEYS = {
    CredentialSlot.SERVER_CA: ("cluster", "certificate-authority-data", "certificate-authority"),
    CredentialSlot.CLIENT_CERT: ("user", "client-certificate-data", "client-certificate"),
    CredentialSlot.CLIENT_KEY: ("user", "client-key-data", "client-key"),
}


class ProfileStore:
    """Persisted collection of connection profiles."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_profiles(self) -> list[ConnectionProfile]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ConnectionProfile).order_by(ConnectionProfile.created_at.asc(), ConnectionProfile.id.asc())
            )
            rows: Sequence[ConnectionProfile] = result.scalars().all()
            return list(rows)

    async def get(self, profile_id: int) -> ConnectionProfile:
        async with self._session_factory() as session:
            return await self._get(session, profile_id)

    async def create(self, payload: Optional[ConnectionProfilePayload] = None) -> ConnectionProfile:
        """Create a profile; without a payload it gets placeholder values."""
        settings = get_settings()
        if payload is None:
            profile = ConnectionProfile(
                name=settings.new_profile_name,
                server=settings.new_profile_server,
                namespace=settings.default_namespace,
            )
        else:
            profile = ConnectionProfile(name=payload.name, server=payload.server_url, namespace=payload.namespace)
        async with self._session_factory() as session:
            session.add(profile)
            await session.commit()
            await session.refresh(profile)
        logger.info("profile.created", profile_id=profile.id, name=profile.name)
        return profile

    async def update(self, profile_id: int, payload: ConnectionProfilePayload) -> ConnectionProfile:
        async with self._session_factory() as session:
            profile = await self._get(session, profile_id)
            profile.name = payload.name
            profile.server = payload.server_url
            profile.namespace = payload.namespace
            await session.commit()
            await session.refresh(profile)
        logger.info("profile.updated", profile_id=profile_id)
        return profile

    async def import_credential(self, profile_id: int, slot: CredentialSlot, source: PemSource) -> ConnectionProfile:
        """
        Store certificate or key material read verbatim from ``source``.

        Raises:
            CredentialError: the material does not parse; nothing is stored
            ProfileNotFoundError: unknown profile
        """
        data = read_pem_source(source)
        parse_slot(slot, data)
        async with self._session_factory() as session:
            profile = await self._get(session, profile_id)
            profile.set_credential_bytes(slot, data)
            await session.commit()
            await session.refresh(profile)
        logger.info("profile.credential_imported", profile_id=profile_id, slot=slot.value)
        return profile

    async def clear_credential(self, profile_id: int, slot: CredentialSlot) -> ConnectionProfile:
        async with self._session_factory() as session:
            profile = await self._get(session, profile_id)
            profile.set_credential_bytes(slot, None)
            await session.commit()
            await session.refresh(profile)
        logger.info("profile.credential_cleared", profile_id=profile_id, slot=slot.value)
        return profile

    async def import_kubeconfig(
        self, text: str, context: Optional[str] = None, name: Optional[str] = None
    ) -> ConnectionProfile:
        """
        Create a profile from one context of a kubeconfig document.

        Args:
            text: kubeconfig YAML
            context: context to import; defaults to ``current-context``
            name: profile name; defaults to the context name

        Raises:
            KubeconfigError: the document or the selected context is unusable
            CredentialError: embedded certificate material does not parse
        """
        document = _load_kubeconfig(text)
        context_name = context or document.get("current-context")
        if not context_name:
            raise KubeconfigError("kubeconfig has no current-context and none was given")

        context_entry = _named_entry(document, "contexts", "context", context_name)
        cluster_entry = _named_entry(document, "clusters", "cluster", context_entry.get("cluster"))
        user_entry = _named_entry(document, "users", "user", context_entry.get("user"))
        sections = {"cluster": cluster_entry, "user": user_entry}

        try:
            payload = ConnectionProfilePayload(
                name=name or context_name,
                server=cluster_entry.get("server"),
                namespace=context_entry.get("namespace") or get_settings().default_namespace,
            )
        except ValidationError as exc:
            raise KubeconfigError(f"context {context_name!r} is not usable: {exc.errors()[0]['msg']}") from exc

        material = {slot: _read_material(sections[section], *keys) for slot, (section, *keys) in _KUBECONFIG_KEYS.items()}
        validate_credentials(
            material[CredentialSlot.SERVER_CA],
            material[CredentialSlot.CLIENT_CERT],
            material[CredentialSlot.CLIENT_KEY],
        )

        profile = ConnectionProfile(name=payload.name, server=payload.server_url, namespace=payload.namespace)
        for slot, data in material.items():
            profile.set_credential_bytes(slot, data)
        async with self._session_factory() as session:
            session.add(profile)
            await session.commit()
            await session.refresh(profile)
        logger.info("profile.kubeconfig_imported", profile_id=profile.id, context=context_name)
        return profile

    async def delete(self, profile_id: int) -> None:
        async with self._session_factory() as session:
            profile = await self._get(session, profile_id)
            await session.delete(profile)
            await session.commit()
        logger.info("profile.deleted", profile_id=profile_id)

    async def _get(self, session: AsyncSession, profile_id: int) -> ConnectionProfile:
        profile = await session.get(ConnectionProfile, profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile


def _load_kubeconfig(text: str) -> dict[str, Any]:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise KubeconfigError(f"kubeconfig is not valid YAML: {exc}") from exc
    if not isinstance(document, dict):
        raise KubeconfigError("kubeconfig must be a mapping")
    return document


def _named_entry(document: dict[str, Any], collection: str, field: str, name: Any) -> dict[str, Any]:
    for entry in document.get(collection) or []:
        if isinstance(entry, dict) and entry.get("name") == name:
            body = entry.get(field)
            if isinstance(body, dict):
                return body
            break
    raise KubeconfigError(f"kubeconfig has no {field} named {name!r}")


def _read_material(section: dict[str, Any], data_key: str, path_key: str) -> bytes | None:
    if section.get(data_key):
        try:
            return base64.b64decode(section[data_key], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise KubeconfigError(f"{data_key} is not valid base64") from exc
    if section.get(path_key):
        try:
            return read_pem_source(Path(section[path_key]).expanduser())
        except OSError as exc:
            raise KubeconfigError(f"cannot read {path_key} file {section[path_key]!r}: {exc}") from exc
    return None
