"""Provider Store: registered providers, their credentials, status and defaults.

Lifecycle per provider::

    unregistered -> inactive -> validating -> active | error | rate-limited

Every transition replaces the provider's ``ProviderState`` with a new value
and returns it, so a state handed out earlier is never mutated afterwards.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Callable

from providers.base import BaseAdapter
from providers.errors import CREDENTIAL_ERRORS, ConfigurationError, ErrorCode, ProviderError
from providers.factory import PROVIDER_META, adapter_class, create_adapter, resolve_provider_type
from providers.types import (
    ContentType,
    ProviderConfig,
    ProviderCredential,
    ProviderState,
    ProviderStatus,
    ProviderType,
    ProviderUsage,
    UsageParams,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., BaseAdapter]


def provider_not_found(provider_id: str) -> ProviderError:
    return ProviderError(ErrorCode.PROVIDER_NOT_FOUND, f"Provider {provider_id} not found", False)


class ProviderStore:
    """In-process registry of providers and their adapters.

    ``adapter_kwargs`` (e.g. a shared ``client`` or a ``retry_policy``) are
    passed to every adapter the store creates.
    """

    def __init__(self, adapter_factory: AdapterFactory = create_adapter, **adapter_kwargs):
        self._adapter_factory = adapter_factory
        self._adapter_kwargs = adapter_kwargs
        self._providers: dict[str, ProviderState] = {}
        self._adapters: dict[str, BaseAdapter] = {}
        self._defaults: dict[ContentType, str] = {}
        # provider id -> (credential id, in-flight validation)
        self._validating: dict[str, tuple[str, asyncio.Task]] = {}

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._providers

    # ── Internals ───────────────────────────────────────

    def _get(self, provider_id: str) -> ProviderState:
        state = self._providers.get(provider_id)
        if state is None:
            raise provider_not_found(provider_id)
        return state

    def _replace(self, provider_id: str, **changes) -> ProviderState:
        state = replace(self._get(provider_id), **changes)
        self._providers[provider_id] = state
        return state

    def _replace_config(self, provider_id: str, **changes) -> ProviderState:
        state = self._get(provider_id)
        config = replace(state.config, updated_at=utcnow(), **changes)
        return self._replace(provider_id, config=config)

    def _build_adapter(self, state: ProviderState) -> BaseAdapter:
        adapter = self._adapter_factory(state.config, state.credential, **self._adapter_kwargs)
        self._adapters[state.id] = adapter
        return adapter

    def _sync_default_flags(self, *provider_ids: str) -> None:
        defaults = set(self._defaults.values())
        for provider_id in provider_ids:
            state = self._providers.get(provider_id)
            if state is not None and state.config.is_default != (provider_id in defaults):
                self._replace_config(provider_id, is_default=provider_id in defaults)

    # ── Registration ────────────────────────────────────

    async def register_provider(
        self,
        provider_type: ProviderType | str,
        api_key: str | None = None,
        *,
        organization_id: str | None = None,
        display_name: str | None = None,
        metadata: dict | None = None,
        api_base_url: str | None = None,
        validate: bool = True,
    ) -> str:
        """Register a new provider of ``provider_type`` and return its id.

        With an API key the provider enters ``validating`` and the key is
        checked before returning (unless ``validate`` is False). Unknown
        vendor types raise ConfigurationError.
        """
        provider_type = resolve_provider_type(provider_type)
        cls = adapter_class(provider_type)
        meta = PROVIDER_META[provider_type]

        provider_id = new_id()
        config = ProviderConfig(
            id=provider_id,
            provider_type=provider_type,
            display_name=display_name or meta.display_name,
            description=cls.description or meta.description,
            capabilities=list(cls.capability_set),
            api_base_url=api_base_url,
            metadata=dict(metadata or {}),
        )
        credential = None
        if api_key:
            credential = ProviderCredential(provider_id=provider_id, api_key=api_key, organization_id=organization_id)

        state = ProviderState(
            config=config,
            credential=credential,
            status=ProviderStatus.VALIDATING if credential and validate else ProviderStatus.INACTIVE,
        )
        self._providers[provider_id] = state
        self._build_adapter(state)
        logger.info("Registered provider %s (%s)", config.display_name, provider_id)

        if credential and validate:
            await self.validate_credential(provider_id)
        return provider_id

    def add_provider(
        self,
        config: ProviderConfig,
        credential: ProviderCredential | None = None,
        status: ProviderStatus = ProviderStatus.INACTIVE,
    ) -> ProviderState:
        """Restore a previously persisted provider without validating it.

        Capabilities always come from the adapter class, not from ``config``.
        """
        if config.id in self._providers:
            raise ConfigurationError(f"Provider {config.id} is already registered")
        provider_type = resolve_provider_type(config.provider_type)
        config = replace(
            config,
            provider_type=provider_type,
            capabilities=list(adapter_class(provider_type).capability_set),
            is_default=False,
        )
        state = ProviderState(config=config, credential=credential, status=status)
        self._providers[config.id] = state
        self._build_adapter(state)
        return state

    def update_provider(
        self,
        provider_id: str,
        *,
        display_name: str | None = None,
        description: str | None = None,
        is_active: bool | None = None,
        metadata: dict | None = None,
        api_base_url: str | None = None,
    ) -> ProviderState:
        changes = {
            key: value
            for key, value in (
                ("display_name", display_name),
                ("description", description),
                ("is_active", is_active),
                ("metadata", dict(metadata) if metadata is not None else None),
                ("api_base_url", api_base_url),
            )
            if value is not None
        }
        state = self._replace_config(provider_id, **changes)
        self._build_adapter(state)
        return state

    def remove_provider(self, provider_id: str) -> None:
        self._get(provider_id)
        del self._providers[provider_id]
        self._adapters.pop(provider_id, None)
        for content_type in [ct for ct, default_id in self._defaults.items() if default_id == provider_id]:
            del self._defaults[content_type]
        logger.info("Removed provider %s", provider_id)

    # ── Credentials ─────────────────────────────────────

    async def set_credential(
        self,
        provider_id: str,
        api_key: str,
        organization_id: str | None = None,
        *,
        validate: bool = True,
    ) -> bool:
        """Replace the provider's credential and validate it.

        Returns the validation result; False when ``validate`` is off or the
        key is empty (which clears the credential).
        """
        self._get(provider_id)
        if not api_key:
            self.clear_credential(provider_id)
            return False

        credential = ProviderCredential(provider_id=provider_id, api_key=api_key, organization_id=organization_id)
        self._replace(
            provider_id,
            credential=credential,
            status=ProviderStatus.VALIDATING if validate else ProviderStatus.INACTIVE,
            last_error=None,
        )
        self._adapters[provider_id].set_credential(credential)

        if not validate:
            return False
        return await self.validate_credential(provider_id)

    def clear_credential(self, provider_id: str) -> ProviderState:
        state = self._replace(provider_id, credential=None, status=ProviderStatus.INACTIVE, last_error=None)
        self._adapters[provider_id].set_credential(None)
        return state

    async def validate_credential(self, provider_id: str) -> bool:
        """Check the stored credential with the vendor and update status.

        Concurrent calls for the same credential share one in-flight check.
        The credential is kept whatever the outcome.
        """
        state = self._get(provider_id)
        credential_id = state.credential.id if state.credential else ""

        in_flight = self._validating.get(provider_id)
        if in_flight is not None and in_flight[0] == credential_id and not in_flight[1].done():
            task = in_flight[1]
        else:
            self._replace(provider_id, status=ProviderStatus.VALIDATING)
            task = asyncio.ensure_future(self._run_validation(provider_id, credential_id))
            self._validating[provider_id] = (credential_id, task)
            task.add_done_callback(lambda done: self._forget_validation(provider_id, done))

        return await asyncio.shield(task)

    def _forget_validation(self, provider_id: str, task: asyncio.Task) -> None:
        in_flight = self._validating.get(provider_id)
        if in_flight is not None and in_flight[1] is task:
            del self._validating[provider_id]

    async def _run_validation(self, provider_id: str, credential_id: str) -> bool:
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            logger.info("Provider %s removed before validation ran", provider_id)
            return False

        error = None
        try:
            valid = await adapter.validate_credentials()
        except ProviderError as e:
            valid, error = False, e
        except Exception as e:
            logger.error("Validation of %s raised: %s", provider_id, e)
            valid = False
            error = ProviderError(ErrorCode.VALIDATION_ERROR, str(e) or e.__class__.__name__, True)

        state = self._providers.get(provider_id)
        current = state.credential.id if state and state.credential else ""
        if state is None or current != credential_id:
            # Removed or re-keyed while the check was running
            return valid

        if valid:
            credential = replace(state.credential, last_validated=utcnow()) if state.credential else None
            self._replace(provider_id, status=ProviderStatus.ACTIVE, last_error=None, credential=credential)
            logger.info("%s credentials validated", state.config.display_name)
        elif error is not None and error.code == ErrorCode.RATE_LIMITED:
            self._replace(provider_id, status=ProviderStatus.RATE_LIMITED, last_error=error)
            logger.warning("%s rate limited during validation", state.config.display_name)
        elif error is not None:
            self._replace(provider_id, status=ProviderStatus.ERROR, last_error=error)
            logger.warning("%s validation failed: %s", state.config.display_name, error.message)
        else:
            self._replace(
                provider_id,
                status=ProviderStatus.ERROR,
                last_error=ProviderError(ErrorCode.INVALID_CREDENTIALS, "API key validation failed", False),
            )
            logger.warning("%s credentials rejected", state.config.display_name)
        return valid

    async def validate_all(self) -> dict[str, bool]:
        """Validate every provider holding a credential, concurrently."""
        ids = [state.id for state in self._providers.values() if state.credential]
        results = await asyncio.gather(*(self.validate_credential(provider_id) for provider_id in ids))
        return dict(zip(ids, results))

    # ── Defaults ────────────────────────────────────────

    def set_default_provider(self, content_type: ContentType | str, provider_id: str) -> None:
        """Make ``provider_id`` the default for ``content_type``.

        The provider must declare the content type; it need not be active.
        """
        content_type = ContentType(content_type)
        state = self._get(provider_id)
        if not state.config.declares(content_type):
            raise ConfigurationError(
                f"{state.config.display_name} does not support {content_type.value} generation"
            )
        previous = self._defaults.get(content_type)
        self._defaults[content_type] = provider_id
        self._sync_default_flags(*(pid for pid in (previous, provider_id) if pid))
        logger.info("Default %s provider: %s", content_type.value, state.config.display_name)

    def clear_default_provider(self, content_type: ContentType | str) -> None:
        previous = self._defaults.pop(ContentType(content_type), None)
        if previous:
            self._sync_default_flags(previous)

    def get_default_provider(self, content_type: ContentType | str) -> str | None:
        return self._defaults.get(ContentType(content_type))

    @property
    def defaults(self) -> dict[ContentType, str]:
        return dict(self._defaults)

    # ── Lookup ──────────────────────────────────────────

    def get_state(self, provider_id: str) -> ProviderState:
        return self._get(provider_id)

    def providers(self) -> list[ProviderState]:
        return list(self._providers.values())

    def providers_for_type(self, content_type: ContentType | str) -> list[ProviderState]:
        return [state for state in self._providers.values() if state.config.declares(content_type)]

    def active_providers(self, content_type: ContentType | str | None = None) -> list[ProviderState]:
        return [
            state
            for state in self._providers.values()
            if state.status == ProviderStatus.ACTIVE
            and state.config.is_active
            and (content_type is None or state.config.declares(content_type))
        ]

    def find_by_type(self, provider_type: ProviderType | str) -> ProviderState | None:
        for state in self._providers.values():
            if state.config.provider_type == provider_type:
                return state
        return None

    def get_adapter(self, provider_id: str) -> BaseAdapter:
        self._get(provider_id)
        return self._adapters[provider_id]

    def get_adapter_for_type(self, content_type: ContentType | str) -> BaseAdapter | None:
        """The default provider's adapter (even if not active), else the first active one."""
        default_id = self._defaults.get(ContentType(content_type))
        if default_id is not None:
            return self._adapters[default_id]
        for state in self.active_providers(content_type):
            return self._adapters[state.id]
        return None

    # ── Status & usage ──────────────────────────────────

    def set_provider_status(
        self, provider_id: str, status: ProviderStatus, error: ProviderError | None = None
    ) -> ProviderState:
        changes = {"status": status}
        if error is not None:
            changes["last_error"] = error
        elif status == ProviderStatus.ACTIVE:
            changes["last_error"] = None
        return self._replace(provider_id, **changes)

    def report_failure(self, provider_id: str, error: ProviderError) -> ProviderState | None:
        """Record an operation failure; credential and rate-limit errors change status."""
        if provider_id not in self._providers:
            return None
        if error.code in CREDENTIAL_ERRORS:
            logger.warning("Provider %s credential failure: %s", provider_id, error.message)
            return self._replace(provider_id, status=ProviderStatus.ERROR, last_error=error)
        if error.code == ErrorCode.RATE_LIMITED:
            logger.warning("Provider %s rate limited", provider_id)
            return self._replace(provider_id, status=ProviderStatus.RATE_LIMITED, last_error=error)
        return self._replace(provider_id, last_error=error)

    def report_success(self, provider_id: str) -> ProviderState | None:
        state = self._providers.get(provider_id)
        if state is None:
            return None
        if state.status == ProviderStatus.RATE_LIMITED:
            return self._replace(provider_id, status=ProviderStatus.ACTIVE, last_error=None)
        return state

    def record_usage(
        self,
        provider_id: str,
        content_type: ContentType | str,
        usage: UsageParams,
        cost: float | None = None,
    ) -> ProviderState | None:
        state = self._providers.get(provider_id)
        if state is None:
            return None
        content_type = ContentType(content_type)
        if cost is None:
            cost = self._adapters[provider_id].estimate_cost(content_type, usage)

        totals = state.usage or ProviderUsage()
        if content_type == ContentType.TEXT:
            totals = replace(
                totals,
                text_tokens_in=totals.text_tokens_in + (usage.input_tokens or 0),
                text_tokens_out=totals.text_tokens_out + (usage.output_tokens or 0),
            )
        elif content_type == ContentType.IMAGE:
            totals = replace(totals, images_generated=totals.images_generated + (usage.image_count or 0))
        else:
            totals = replace(
                totals, video_seconds_generated=totals.video_seconds_generated + (usage.video_seconds or 0.0)
            )
        totals = replace(totals, estimated_cost_usd=totals.estimated_cost_usd + cost)
        return self._replace(provider_id, usage=totals)

    # ── Persistence ─────────────────────────────────────

    async def load_from(self, repository) -> int:
        """Restore providers and defaults from a ProviderRepository. Returns the count loaded."""
        loaded = 0
        for config, credential in await repository.load_providers():
            if config.id in self._providers:
                continue
            try:
                self.add_provider(config, credential)
            except ConfigurationError as e:
                logger.warning("Skipping stored provider %s: %s", config.id, e.message)
                continue
            loaded += 1

        for content_type, provider_id in (await repository.load_defaults()).items():
            if provider_id not in self._providers:
                continue
            try:
                self.set_default_provider(content_type, provider_id)
            except ConfigurationError as e:
                logger.warning("Ignoring stored default: %s", e.message)

        logger.info("Loaded %d provider(s) from storage", loaded)
        return loaded

    async def save_to(self, repository) -> None:
        await repository.save_providers([(state.config, state.credential) for state in self._providers.values()])
        await repository.save_defaults(dict(self._defaults))
