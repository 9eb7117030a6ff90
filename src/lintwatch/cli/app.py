# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Typer application exposing the lintwatch commands."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import typer
from rich.console import Console

from ..config import Setting, TriggerMode
from ..config_loader import SettingsStore, resolve_validation_config
from ..errors import ConfigError
from ..logging import configure_logging, fail, get_console_manager, info, ok, warn
from ..provider import ALLOW, UNTRUST_COMMAND, ProviderState, ValidationProvider
from ..reporting import ConsoleDiagnosticsReporter
from ..state import WorkspaceStore
from ..workspace import YAML_LANGUAGE, Workspace
from .host import WatchHost
from .prompts import ConsolePrompter, SettingsFileOpener

EXIT_CLEAN: Final[int] = 0
EXIT_PROBLEMS: Final[int] = 1
EXIT_NOT_VALIDATED: Final[int] = 2

app = typer.Typer(name="lintwatch", help="Run ansible-lint on YAML documents and report diagnostics.")


@dataclass(slots=True)
class CLIOptions:
    """Presentation flags shared by every command."""

    verbose: bool = False
    color: bool = True
    emoji: bool = True

    def console(self) -> Console:
        """Return the console matching the presentation flags."""

        return get_console_manager().get(color=self.color, emoji=self.emoji)


def _options(ctx: typer.Context) -> CLIOptions:
    options = ctx.obj
    return options if isinstance(options, CLIOptions) else CLIOptions()


def _load_workspace(root: Path | None, overrides: dict[str, Any] | None = None) -> Workspace:
    folder = root if root is not None else Path.cwd()
    resolved = folder.expanduser().resolve()
    if not resolved.is_dir():
        raise typer.BadParameter(f"{folder} is not a directory")
    try:
        settings = SettingsStore.for_workspace(resolved, overrides=overrides)
        state = WorkspaceStore.for_workspace(resolved)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return Workspace(root=resolved, settings=settings, state=state)


def _build_provider(workspace: Workspace, options: CLIOptions, *, allow_executable: bool) -> ValidationProvider:
    console = options.console()
    prompter = ConsolePrompter(
        console,
        auto_answer=ALLOW if allow_executable else None,
        use_emoji=options.emoji,
        use_color=options.color,
    )
    return ValidationProvider(prompter=prompter, open_settings=SettingsFileOpener(workspace.settings, console))


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log spawned commands and matched lines."),
    color: bool = typer.Option(True, "--color/--no-color", help="Colourise console output."),
    emoji: bool = typer.Option(True, "--emoji/--no-emoji", help="Prefix messages with emoji."),
) -> None:
    """Run ansible-lint on YAML documents and report diagnostics."""

    configure_logging(verbose=verbose)
    ctx.obj = CLIOptions(verbose=verbose, color=color, emoji=emoji)


async def _check(
    workspace: Workspace,
    provider: ValidationProvider,
    files: list[Path],
    stdin_text: str | None,
    reporter: ConsoleDiagnosticsReporter,
) -> tuple[ProviderState, int]:
    provider.diagnostics.on_did_change.subscribe(reporter)
    provider.activate(workspace)
    try:
        documents = [workspace.open_document(path, text=stdin_text) for path in files]
        await provider.wait_idle()
        return provider.state, sum(1 for document in documents if document.language_id == YAML_LANGUAGE)
    finally:
        provider.dispose()


@app.command()
def check(
    ctx: typer.Context,
    files: list[Path] = typer.Argument(..., help="YAML documents to validate."),
    root: Path | None = typer.Option(
        None,
        "--root",
        "-r",
        help="Workspace folder (defaults to the current directory).",
    ),
    run: TriggerMode | None = typer.Option(
        None,
        "--run",
        help="Override the configured trigger mode (onSave lints the file, onType pipes its text).",
    ),
    stdin: bool = typer.Option(False, "--stdin", help="Read the document text from standard input."),
    allow_executable: bool = typer.Option(
        False,
        "--allow-executable",
        help="Trust a workspace-defined executable without prompting.",
    ),
) -> None:
    """Validate FILES once and print their diagnostics."""

    options = _options(ctx)
    if stdin and len(files) != 1:
        raise typer.BadParameter("--stdin requires exactly one FILE naming the document")
    overrides: dict[str, Any] = {}
    if stdin:
        overrides = {"validate": {"run": TriggerMode.ON_TYPE.value}}
    elif run is not None:
        overrides = {"validate": {"run": run.value}}
    workspace = _load_workspace(root, overrides)
    provider = _build_provider(workspace, options, allow_executable=allow_executable)
    reporter = ConsoleDiagnosticsReporter(options.console(), root=workspace.root, color=options.color)
    stdin_text = sys.stdin.read() if stdin else None
    missing = [path for path in files if stdin_text is None and not path.is_file()]
    if missing:
        raise typer.BadParameter(f"File not found: {missing[0]}")

    state, matched = asyncio.run(_check(workspace, provider, files, stdin_text, reporter))

    if not matched:
        warn("No YAML documents to validate", use_emoji=options.emoji, use_color=options.color)
        raise typer.Exit(code=EXIT_NOT_VALIDATED)
    if state in (ProviderState.PAUSED, ProviderState.DISABLED):
        warn(f"Validation did not run ({state.value})", use_emoji=options.emoji, use_color=options.color)
        raise typer.Exit(code=EXIT_NOT_VALIDATED)
    if reporter.published:
        fail(f"{reporter.published} problem(s) found", use_emoji=options.emoji, use_color=options.color)
        raise typer.Exit(code=EXIT_PROBLEMS)
    ok("No problems found", use_emoji=options.emoji, use_color=options.color)


async def _watch(
    workspace: Workspace,
    provider: ValidationProvider,
    reporter: ConsoleDiagnosticsReporter,
    *,
    use_emoji: bool = True,
    stop_event: asyncio.Event | None = None,
) -> None:
    provider.diagnostics.on_did_change.subscribe(reporter)
    host = WatchHost(workspace, provider, use_emoji=use_emoji)
    provider.activate(workspace)
    try:
        host.open_existing()
        await host.run(stop_event)
        await provider.wait_idle()
    finally:
        provider.dispose()


@app.command()
def watch(
    ctx: typer.Context,
    root: Path | None = typer.Argument(
        None,
        help="Workspace folder to watch (defaults to the current directory).",
    ),
    allow_executable: bool = typer.Option(
        False,
        "--allow-executable",
        help="Trust a workspace-defined executable without prompting.",
    ),
) -> None:
    """Watch ROOT and revalidate YAML documents as they change."""

    options = _options(ctx)
    workspace = _load_workspace(root)
    provider = _build_provider(workspace, options, allow_executable=allow_executable)
    reporter = ConsoleDiagnosticsReporter(options.console(), root=workspace.root, color=options.color)
    info(f"Watching {workspace.root}", use_emoji=options.emoji, use_color=options.color)
    try:
        asyncio.run(_watch(workspace, provider, reporter, use_emoji=options.emoji))
    except KeyboardInterrupt:
        raise typer.Exit(code=EXIT_CLEAN) from None


@app.command()
def untrust(
    ctx: typer.Context,
    root: Path | None = typer.Argument(None, help="Workspace folder (defaults to the current directory)."),
) -> None:
    """Forget the approved workspace-defined executable for ROOT."""

    options = _options(ctx)
    workspace = _load_workspace(root)
    previous = workspace.state.get(Setting.CHECKED_EXECUTABLE_PATH.value)

    async def _untrust() -> None:
        provider = ValidationProvider()
        provider.activate(workspace)
        try:
            workspace.commands.execute(UNTRUST_COMMAND)
        finally:
            provider.dispose()

    asyncio.run(_untrust())
    if previous:
        ok(f"Revoked trust in {previous}", use_emoji=options.emoji, use_color=options.color)
    else:
        info("No executable was trusted", use_emoji=options.emoji, use_color=options.color)


@app.command("config")
def show_config(
    ctx: typer.Context,
    root: Path | None = typer.Argument(None, help="Workspace folder (defaults to the current directory)."),
) -> None:
    """Print the resolved validation configuration for ROOT."""

    options = _options(ctx)
    workspace = _load_workspace(root)
    try:
        config = resolve_validation_config(workspace.settings)
    except ConfigError as exc:
        fail(str(exc), use_emoji=options.emoji, use_color=options.color)
        raise typer.Exit(code=EXIT_PROBLEMS) from exc
    payload = config.model_dump(mode="json")
    payload["executable"] = config.executable
    payload["scope"] = config.scope.value
    payload["debounce_delay"] = config.debounce_delay
    payload["checked_executable_path"] = workspace.state.get(Setting.CHECKED_EXECUTABLE_PATH.value)
    options.console().print_json(data=payload)


__all__ = ["app"]
