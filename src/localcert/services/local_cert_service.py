"""
Caller-facing local certificate service.

Entry point for code that needs a self-signed identity certificate:

    from localcert.services.local_cert_service import get_local_cert_service

    service = get_local_cert_service()
    certificate = await service.get_or_create_certificate("my-device")

Each request is checked and the key store unlocked on the caller's
context (this may block on a login prompt); the certificate work itself
runs on a worker thread and its result comes back through a single-shot
callback or an awaitable.
"""

import asyncio
from collections.abc import Callable
from datetime import timedelta
from functools import lru_cache
from typing import Any

from loguru import logger

from localcert.config import Settings, get_settings
from localcert.core.logging import configure_logger, intercept_standard_logging
from localcert.infrastructure import InfrastructureFactory
from localcert.infrastructure.repositories import KeyStore
from localcert.models import (
    AuthDeniedError,
    InvalidArgumentError,
    LocalCertificate,
    OperationResult,
    StoreUnavailableError,
)
from localcert.services.certificate_generator import CertificateGenerator
from localcert.services.certificate_validator import CertificateValidator
from localcert.services.key_store_gateway import KeyStoreGateway
from localcert.services.lifecycle_manager import (
    CertificateLifecycleManager,
    check_identity_name,
)
from localcert.services.login_prompt import (
    LoginPrompt,
    NonInteractivePrompt,
    PasswordPrompt,
)
from localcert.services.task_runner import AsyncTaskRunner, ResultCallback


class LocalCertService:
    """
    Get-or-create and removal of self-signed certificates by name.

    The service owns its task runner; call close() (or use it as a context
    manager) to release the worker threads.
    """

    def __init__(
        self,
        key_store: KeyStore,
        login_prompt: LoginPrompt | None = None,
        runner: AsyncTaskRunner | None = None,
        validator: CertificateValidator | None = None,
        generator_options: dict[str, Any] | None = None,
    ):
        """
        Initialize the service.

        Args:
            key_store: Store holding keys and certificates
            login_prompt: Asked to log in when the store is locked
            runner: Task runner (a two-worker runner by default)
            validator: Certificate validator (one-day grace period by default)
            generator_options: Keyword arguments for CertificateGenerator
                (validity, backdate, serial_number_bytes, clock)
        """
        self.validator = validator or CertificateValidator()
        self.gateway = KeyStoreGateway(
            key_store,
            login_prompt=login_prompt or NonInteractivePrompt(),
            validator=self.validator,
        )
        self.generator = CertificateGenerator(self.gateway, **(generator_options or {}))
        self.manager = CertificateLifecycleManager(
            self.gateway, self.validator, self.generator
        )
        self.runner = runner or AsyncTaskRunner()

        logger.info("Initialized LocalCertService")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalCertService":
        """
        Build a service from Settings.

        Args:
            settings: Library settings from config.py

        Returns:
            LocalCertService wired to the configured key store
        """
        factory = InfrastructureFactory.from_settings(settings)

        login_prompt: LoginPrompt
        if settings.key_store_password:
            password = settings.key_store_password
            login_prompt = PasswordPrompt(lambda: password)
        else:
            login_prompt = NonInteractivePrompt()

        return cls(
            key_store=factory.get_key_store(),
            login_prompt=login_prompt,
            runner=AsyncTaskRunner(max_workers=settings.worker_threads),
            validator=CertificateValidator(
                grace_period=timedelta(days=settings.expiry_grace_days)
            ),
            generator_options={
                "validity": timedelta(days=settings.certificate_validity_days),
                "backdate": timedelta(days=settings.certificate_backdate_days),
                "serial_number_bytes": settings.serial_number_bytes,
            },
        )

    def _check_request(self, name: str, callback: Callable[..., Any] | None) -> None:
        check_identity_name(name)
        if callback is None or not callable(callback):
            raise InvalidArgumentError("A result callback is required")

    def _submit(
        self,
        label: str,
        operation: Callable[[], Any],
        callback: ResultCallback,
    ) -> None:
        try:
            self.gateway.ensure_unlocked()
        except (AuthDeniedError, StoreUnavailableError) as e:
            logger.warning(f"{label} not started: {e.message}")
            self.runner.deliver(label, callback, OperationResult.failure(e))
            return
        except Exception as e:
            logger.exception(f"{label} not started: unlocking failed unexpectedly")
            error = StoreUnavailableError(f"Unlocking the key store failed: {e!r}")
            error.__cause__ = e
            self.runner.deliver(label, callback, OperationResult.failure(error))
            return

        self.runner.dispatch(label, operation, callback)

    def get_or_create_cert(self, name: str, callback: ResultCallback) -> None:
        """
        Get or create the certificate for a name, reporting through a callback.

        Args:
            name: Identity name
            callback: Receives an OperationResult[LocalCertificate] exactly once

        Raises:
            InvalidArgumentError: If the name is invalid or callback is missing
        """
        self._check_request(name, callback)
        self._submit(
            f"get-or-create {name!r}",
            lambda: self.manager.get_or_create(name),
            callback,
        )

    def remove_cert(self, name: str, callback: ResultCallback) -> None:
        """
        Remove every certificate stored under a name, reporting through a callback.

        Args:
            name: Identity name
            callback: Receives an OperationResult[None] exactly once

        Raises:
            InvalidArgumentError: If the name is invalid or callback is missing
        """
        self._check_request(name, callback)
        self._submit(
            f"remove {name!r}",
            lambda: self.manager.remove(name),
            callback,
        )

    async def _await_result(
        self, submit: Callable[[str, ResultCallback], None], name: str
    ) -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[OperationResult[Any]] = loop.create_future()

        def resolve(result: OperationResult[Any]) -> None:
            if not future.done():
                future.set_result(result)

        submit(name, resolve)
        result = await future
        return result.unwrap()

    async def get_or_create_certificate(self, name: str) -> LocalCertificate:
        """
        Get or create the certificate for a name.

        Args:
            name: Identity name

        Returns:
            A currently valid self-signed certificate for CN=<name>

        Raises:
            InvalidArgumentError: If the name is invalid
            AuthDeniedError: If the key store could not be unlocked
            StoreUnavailableError: If the key store cannot be used
            UnexpectedCertificateError: If a foreign certificate blocks regeneration
            GenerationError: If generating a replacement fails
        """
        return await self._await_result(self.get_or_create_cert, name)

    async def remove_certificate(self, name: str) -> None:
        """
        Ensure no certificate is stored under a name.

        Args:
            name: Identity name

        Raises:
            InvalidArgumentError: If the name is invalid
            AuthDeniedError: If the key store could not be unlocked
            StoreUnavailableError: If the key store cannot be used
            UnexpectedCertificateError: If a foreign certificate is stored under the name
        """
        await self._await_result(self.remove_cert, name)

    def is_login_prompt_required(self) -> bool:
        """
        Check whether the next operation would prompt for the store password.

        Returns:
            True if a login prompt would be shown

        Raises:
            StoreUnavailableError: If the key store cannot be used
        """
        return self.manager.is_login_required()

    def close(self, wait: bool = True) -> None:
        """Shut down the task runner."""
        self.runner.shutdown(wait=wait)

    def __enter__(self) -> "LocalCertService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@lru_cache
def get_local_cert_service() -> LocalCertService:
    """
    Get the shared service built from get_settings() (LRU cached).

    Configures logging the first time it is called. To rebuild the
    service, clear the cache:
        get_local_cert_service.cache_clear()

    Returns:
        LocalCertService
    """
    settings = get_settings()
    configure_logger(settings)
    intercept_standard_logging()
    return LocalCertService.from_settings(settings)
