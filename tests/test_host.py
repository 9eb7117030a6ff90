# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for the filesystem-driven watch host."""

from __future__ import annotations

import asyncio

import pytest
from fakes import FakeLauncher, RecordingPrompter, WorkspaceFactory
from rich.console import Console
from watchfiles import Change

from lintwatch.cli.app import _watch
from lintwatch.cli.host import WatchHost, iter_documents
from lintwatch.provider import ValidationProvider
from lintwatch.reporting import ConsoleDiagnosticsReporter


def test_iter_documents_skips_hidden_and_vendored(make_workspace: WorkspaceFactory) -> None:
    root = make_workspace.root
    for relative in ("site.yml", "roles/web/tasks/main.yaml", ".git/config.yml", "node_modules/x.yml", "README.md"):
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("a: 1\n", encoding="utf-8")

    found = [path.relative_to(root).as_posix() for path in iter_documents(root)]

    assert found == ["roles/web/tasks/main.yaml", "site.yml"]


@pytest.mark.asyncio
async def test_changes_drive_document_events(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    provider = ValidationProvider(launcher=launcher, prompter=RecordingPrompter())
    host = WatchHost(workspace, provider, use_emoji=False)
    provider.activate(workspace)
    path = make_workspace.document("site.yml")

    host.handle_changes([(Change.added, str(path))])
    await provider.wait_idle()
    document = workspace.get_document(path.resolve().as_uri())
    assert document is not None

    path.write_text("a: 2\n", encoding="utf-8")
    host.handle_changes([(Change.modified, str(path))])
    await provider.wait_idle()
    assert document.get_text() == "a: 2\n"

    path.unlink()
    host.handle_changes([(Change.deleted, str(path))])

    assert not workspace.is_open(document.uri)
    assert len(launcher.calls) == 2
    provider.dispose()


@pytest.mark.asyncio
async def test_config_change_reloads_settings(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    provider = ValidationProvider(launcher=launcher, prompter=RecordingPrompter())
    host = WatchHost(workspace, provider, use_emoji=False)
    provider.activate(workspace)
    make_workspace.document("site.yml")
    assert host.open_existing() == 1
    await provider.wait_idle()

    make_workspace.write_user('[validate]\nrun = "onType"\n')
    host.handle_changes([(Change.modified, str(make_workspace.user_file))])
    await provider.wait_idle()

    assert provider.config.debounce_delay == pytest.approx(0.25)
    assert launcher.calls[-1].pipe_input is True
    assert make_workspace.user_file.resolve() in host.config_paths
    assert make_workspace.tmp_path.resolve() in host.watch_roots()
    provider.dispose()


@pytest.mark.asyncio
async def test_invalid_config_change_is_reported_not_raised(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    workspace = make_workspace()
    provider = ValidationProvider(launcher=launcher, prompter=RecordingPrompter())
    host = WatchHost(workspace, provider, use_emoji=False)
    provider.activate(workspace)

    make_workspace.write_workspace("[validate\n")
    host.handle_changes([(Change.modified, str(make_workspace.workspace_file))])
    await asyncio.sleep(0)

    assert provider.config.enabled
    provider.dispose()


@pytest.mark.asyncio
async def test_watch_loop_validates_new_documents_until_stopped(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    workspace = make_workspace()
    provider = ValidationProvider(launcher=launcher, prompter=RecordingPrompter())
    console = Console(record=True, width=200, color_system=None)
    reporter = ConsoleDiagnosticsReporter(console, root=workspace.root, color=False)
    stop_event = asyncio.Event()
    task = asyncio.create_task(_watch(workspace, provider, reporter, use_emoji=False, stop_event=stop_event))
    path = workspace.root / "site.yml"

    loop = asyncio.get_running_loop()
    deadline = loop.time() + 15
    revision = 0
    while not launcher.calls:
        assert loop.time() < deadline, "watcher never picked up the new document"
        revision += 1
        path.write_text(f"revision: {revision}\n", encoding="utf-8")
        await asyncio.sleep(0.25)

    stop_event.set()
    await asyncio.wait_for(task, timeout=15)

    assert launcher.calls[0].args[-1] == str(path)
    assert "site.yml: no problems" in console.export_text()
    assert workspace.on_did_open_text_document.listener_count == 0
