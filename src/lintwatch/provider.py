# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Validation provider wiring document events to linter runs.

The provider owns the configuration snapshot, the per-document scheduler, the
consent state for workspace-defined executables and the published diagnostic
collection. Every method runs on the event loop thread; the only suspension
points are the debounce timers, the consent prompt and the linter's output
stream.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from enum import Enum
from functools import partial
from typing import Final

from .config import Setting, TriggerMode, ValidationConfig
from .config_loader import resolve_validation_config
from .decoder import LineDecoder
from .errors import ConfigError, ExecutableNotFoundError, ValidationProcessError
from .events import Disposable
from .interfaces import LinterProcess, ProcessLauncher, Prompter, SettingsOpener
from .models import Diagnostic
from .parsers import extract
from .process import AsyncioProcessLauncher, build_arguments, classify_spawn_error, terminate
from .scheduler import ThrottledDelayer, ValidationScheduler
from .workspace import YAML_LANGUAGE, DiagnosticCollection, TextDocument, Workspace

LOGGER = logging.getLogger(__name__)

UNTRUST_COMMAND: Final[str] = "lintwatch.untrustValidationExecutable"
UNTRUST_CONTEXT: Final[str] = "lintwatch.untrustValidationExecutableContext"
ALLOW: Final[str] = "Allow"
DISALLOW: Final[str] = "Disallow"
OPEN_SETTINGS: Final[str] = "Open Settings"
READ_CHUNK_SIZE: Final[int] = 64 * 1024

CONSENT_MESSAGE: Final[str] = (
    "Do you allow {executable} (defined as a workspace setting) to be executed to lint Ansible files?"
)
WRONG_EXECUTABLE_MESSAGE: Final[str] = (
    "Cannot validate since {executable} is not a valid ansible-lint executable. "
    "Use the setting '{setting}' to configure the ansible-lint executable."
)
NO_EXECUTABLE_MESSAGE: Final[str] = (
    "Cannot validate since no ansible-lint executable is set. "
    "Use the setting '{setting}' to configure the ansible-lint executable."
)
UNKNOWN_FAILURE_MESSAGE: Final[str] = "Failed to run ansible-lint using path: {executable}. Reason is unknown."


class ProviderState(str, Enum):
    """Observable lifecycle state of a :class:`ValidationProvider`."""

    DISABLED = "disabled"
    IDLE = "idle"
    AWAITING_CONSENT = "awaiting-consent"
    PAUSED = "paused"
    VALIDATING = "validating"


class DismissingPrompter(Prompter):
    """Prompter used when no front end is attached: every prompt is dismissed."""

    async def ask(self, message: str, choices: Sequence[str]) -> str | None:
        LOGGER.info("%s", message)
        return None


class ValidationProvider:
    """Validate YAML documents with an external linter and publish diagnostics."""

    def __init__(
        self,
        *,
        launcher: ProcessLauncher | None = None,
        prompter: Prompter | None = None,
        open_settings: SettingsOpener | None = None,
        language_id: str = YAML_LANGUAGE,
    ) -> None:
        """Create an inactive provider.

        Args:
            launcher: Process launcher; defaults to :class:`AsyncioProcessLauncher`.
            prompter: Front end used for consent requests and error
                notifications; defaults to dismissing every prompt.
            open_settings: Callback invoked when the user picks
                ``Open Settings`` on an error notification.
            language_id: Language of the documents this provider validates.
        """

        self._launcher = launcher or AsyncioProcessLauncher()
        self._prompter = prompter or DismissingPrompter()
        self._open_settings = open_settings
        self._language_id = language_id
        self._config = ValidationConfig()
        self._pause_validation = False
        self._workspace: Workspace | None = None
        self._document_listener: Disposable | None = None
        self._subscriptions: list[Disposable] = []
        self._scheduler = ValidationScheduler()
        self._pending_consent: dict[str, asyncio.Future[bool]] = {}
        self._background: set[asyncio.Future[None]] = set()
        self._validating: set[str] = set()
        self.diagnostics = DiagnosticCollection()

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def config(self) -> ValidationConfig:
        """Return the active configuration snapshot."""

        return self._config

    @property
    def paused(self) -> bool:
        """Return ``True`` while validation is paused after a failure or refusal."""

        return self._pause_validation

    @property
    def state(self) -> ProviderState:
        """Return the current lifecycle state."""

        if not self._config.enabled:
            return ProviderState.DISABLED
        if self._pause_validation:
            return ProviderState.PAUSED
        if self._pending_consent:
            return ProviderState.AWAITING_CONSENT
        if self._validating:
            return ProviderState.VALIDATING
        return ProviderState.IDLE

    @property
    def scheduler(self) -> ValidationScheduler:
        """Expose the per-document scheduler."""

        return self._scheduler

    def activate(self, workspace: Workspace) -> None:
        """Attach to ``workspace`` and validate its open documents.

        Must be called from a running event loop.

        Args:
            workspace: Workspace whose events drive validation.
        """

        self._workspace = workspace
        subscriptions = self._subscriptions
        workspace.on_did_change_configuration.subscribe(self._on_configuration_changed, subscriptions)
        self.load_configuration()
        workspace.on_did_open_text_document.subscribe(self.trigger_validate, subscriptions)
        workspace.on_did_close_text_document.subscribe(self._on_document_closed, subscriptions)
        subscriptions.append(workspace.commands.register(UNTRUST_COMMAND, self.untrust_validation_executable))

    def dispose(self) -> None:
        """Release subscriptions, pending work and published diagnostics."""

        self.diagnostics.clear()
        self.diagnostics.dispose()
        if self._document_listener is not None:
            self._document_listener.dispose()
            self._document_listener = None
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions.clear()
        self._scheduler.clear()
        for task in tuple(self._background):
            task.cancel()
        for future in tuple(self._pending_consent.values()):
            future.cancel()

    def _require_workspace(self) -> Workspace:
        if self._workspace is None:
            raise RuntimeError("ValidationProvider.activate() has not been called")
        return self._workspace

    # ------------------------------------------------------------------
    # Configuration

    def _on_configuration_changed(self, _event: None) -> None:
        self.load_configuration()

    def load_configuration(self) -> None:
        """Rebuild state from the workspace settings and revalidate open documents."""

        workspace = self._require_workspace()
        old_executable = self._config.executable_path
        try:
            config = resolve_validation_config(workspace.settings)
        except ConfigError:
            LOGGER.exception("Invalid validation settings; validation disabled")
            config = ValidationConfig(enabled=False)
        self._config = config

        if config.executable_is_user_defined is not True and self._checked_executable() is not None:
            workspace.set_context(UNTRUST_CONTEXT, True)
        self._scheduler.clear()
        if self._pause_validation:
            self._pause_validation = old_executable == config.executable_path
        if self._document_listener is not None:
            self._document_listener.dispose()
            self._document_listener = None
        self.diagnostics.clear()
        if not config.enabled:
            return
        if config.trigger is TriggerMode.ON_TYPE:
            self._document_listener = workspace.on_did_change_text_document.subscribe(self.trigger_validate)
        else:
            self._document_listener = workspace.on_did_save_text_document.subscribe(self.trigger_validate)
        # Configuration has changed. Reevaluate all documents.
        for document in workspace.text_documents:
            self.trigger_validate(document)

    # ------------------------------------------------------------------
    # Trust

    def _checked_executable(self) -> str | None:
        value = self._require_workspace().state.get(Setting.CHECKED_EXECUTABLE_PATH.value)
        return value if isinstance(value, str) and value else None

    def untrust_validation_executable(self) -> None:
        """Forget the approved workspace executable."""

        workspace = self._require_workspace()
        workspace.state.update(Setting.CHECKED_EXECUTABLE_PATH.value, None)
        workspace.set_context(UNTRUST_CONTEXT, False)

    def _needs_consent(self) -> bool:
        if not self._config.requires_consent:
            return False
        return self._checked_executable() != self._config.executable_path

    def _await_consent(self, document: TextDocument, executable: str) -> None:
        pending = self._pending_consent.get(executable)
        if pending is None:
            pending = asyncio.ensure_future(self._request_consent(executable))
            self._pending_consent[executable] = pending
            pending.add_done_callback(partial(self._consent_settled, executable))
        self._track(self._validate_after_consent(document, executable, pending))

    def _consent_settled(self, executable: str, future: asyncio.Future[bool]) -> None:
        if self._pending_consent.get(executable) is future:
            del self._pending_consent[executable]

    async def _request_consent(self, executable: str) -> bool:
        workspace = self._require_workspace()
        message = CONSENT_MESSAGE.format(executable=executable)
        try:
            selected = await self._prompter.ask(message, (ALLOW, DISALLOW))
        except Exception:  # a broken front end counts as dismissal
            LOGGER.exception("Consent prompt failed")
            selected = None
        if selected == ALLOW:
            workspace.state.update(Setting.CHECKED_EXECUTABLE_PATH.value, executable)
            workspace.set_context(UNTRUST_CONTEXT, True)
            return True
        LOGGER.info("Execution of %s was not allowed; validation paused", executable)
        workspace.state.update(Setting.CHECKED_EXECUTABLE_PATH.value, None)
        workspace.set_context(UNTRUST_CONTEXT, False)
        if self._config.executable_path == executable:
            self._pause_validation = True
        return False

    async def _validate_after_consent(
        self,
        document: TextDocument,
        executable: str,
        consent: asyncio.Future[bool],
    ) -> None:
        allowed = await asyncio.shield(consent)
        if not allowed or self._config.executable_path != executable:
            return
        if self._pause_validation or not self._config.enabled:
            return
        if self._require_workspace().is_open(document.uri):
            self._schedule(document)

    # ------------------------------------------------------------------
    # Validation

    def trigger_validate(self, document: TextDocument) -> None:
        """Route ``document`` through the consent gate into the scheduler."""

        if document.language_id != self._language_id or self._pause_validation or not self._config.enabled:
            return
        LOGGER.debug("Validating %s", document.file_name)
        executable = self._config.executable_path
        if executable is not None and self._needs_consent():
            self._await_consent(document, executable)
            LOGGER.debug("Skipping %s until %s is trusted", document.file_name, executable)
            return
        self._schedule(document)

    def _schedule(self, document: TextDocument) -> None:
        key = document.uri
        delay = self._config.debounce_delay
        delayer = self._scheduler.entry(key, delay)
        self._scheduler.trigger(key, delay, partial(self.do_validate, document, delayer))

    async def do_validate(self, document: TextDocument, delayer: ThrottledDelayer[None] | None = None) -> None:
        """Run the linter once for ``document`` and publish what it reports.

        Args:
            document: Document to validate.
            delayer: Scheduler entry that started this run. Results are
                dropped when the entry was discarded in the meantime.
        """

        config = self._config
        workspace = self._require_workspace()
        executable = config.executable
        key = document.uri
        decoder = LineDecoder(config.encoding)
        diagnostics: list[Diagnostic] = []
        self._validating.add(key)
        try:
            try:
                process = await self._launcher.launch(
                    executable,
                    build_arguments(config.trigger, document.file_name),
                    cwd=workspace.root,
                    pipe_input=config.trigger is TriggerMode.ON_TYPE,
                )
            except (ValidationProcessError, OSError) as exc:
                error = exc if isinstance(exc, ValidationProcessError) else classify_spawn_error(exc, executable)
                self._handle_spawn_error(error, executable)
                return
            try:
                await asyncio.gather(
                    self._feed(process, document, config),
                    self._drain(process, decoder, diagnostics),
                )
                await process.wait()
            except BaseException:
                terminate(process)
                raise
            trailing = decoder.end()
            if trailing:
                self._collect(trailing, diagnostics)
            if delayer is not None and not self._scheduler.is_current(key, delayer):
                LOGGER.debug("Discarding results for %s from a superseded run", document.file_name)
                return
            if not workspace.is_open(key) or self.diagnostics.disposed:
                LOGGER.debug("Discarding results for closed document %s", document.file_name)
                return
            self.diagnostics.set(key, diagnostics)
        finally:
            self._validating.discard(key)

    @staticmethod
    def _collect(line: str, diagnostics: list[Diagnostic]) -> None:
        diagnostic = extract(line)
        if diagnostic is not None:
            diagnostics.append(diagnostic)

    @staticmethod
    async def _feed(process: LinterProcess, document: TextDocument, config: ValidationConfig) -> None:
        stdin = process.stdin
        if config.trigger is not TriggerMode.ON_TYPE or stdin is None:
            return
        try:
            stdin.write(document.get_text().encode(config.encoding, errors="replace"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            LOGGER.debug("Linter closed its input early for %s", document.file_name)
        finally:
            stdin.close()

    async def _drain(self, process: LinterProcess, decoder: LineDecoder, diagnostics: list[Diagnostic]) -> None:
        stdout = process.stdout
        if stdout is None:
            return
        while chunk := await stdout.read(READ_CHUNK_SIZE):
            for line in decoder.write(chunk):
                self._collect(line, diagnostics)

    def _handle_spawn_error(self, error: ValidationProcessError, executable: str) -> None:
        LOGGER.debug("Child process got %s", error)
        if self._pause_validation:
            return
        self._pause_validation = True
        self._track(self.show_error(error, executable))

    def error_message(self, error: ValidationProcessError, executable: str) -> str:
        """Return the notification text describing ``error``."""

        setting = Setting.EXECUTABLE_PATH.value
        if isinstance(error, ExecutableNotFoundError):
            if self._config.executable_path:
                return WRONG_EXECUTABLE_MESSAGE.format(executable=executable, setting=setting)
            return NO_EXECUTABLE_MESSAGE.format(setting=setting)
        return error.reason or UNKNOWN_FAILURE_MESSAGE.format(executable=executable)

    async def show_error(self, error: ValidationProcessError, executable: str) -> None:
        """Notify the user about ``error`` and offer to open the settings."""

        message = self.error_message(error, executable)
        selected = await self._prompter.ask(message, (OPEN_SETTINGS,))
        if selected == OPEN_SETTINGS and self._open_settings is not None:
            self._open_settings(Setting.EXECUTABLE_PATH.value)

    # ------------------------------------------------------------------
    # Documents

    def _on_document_closed(self, document: TextDocument) -> None:
        self.diagnostics.delete(document.uri)
        self._scheduler.discard(document.uri)

    def _track(self, awaitable: Awaitable[None]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Future[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Background validation task failed", exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait until no timer, consent prompt or validation is outstanding."""

        while True:
            pending: list[asyncio.Future[None] | asyncio.Future[bool]] = [
                *self._background,
                *self._pending_consent.values(),
            ]
            busy = any(
                (entry := self._scheduler.get(key)) is not None and (entry.is_pending or entry.is_running)
                for key in self._scheduler
            )
            if not pending and not busy:
                return
            if pending:
                await asyncio.wait(pending)
            else:
                await asyncio.sleep(0.01)


__all__ = [
    "ALLOW",
    "DISALLOW",
    "DismissingPrompter",
    "OPEN_SETTINGS",
    "ProviderState",
    "UNTRUST_COMMAND",
    "UNTRUST_CONTEXT",
    "ValidationProvider",
]
