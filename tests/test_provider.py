# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for the validation provider: scheduling, consent and error handling."""

from __future__ import annotations

import asyncio

import pytest
from fakes import FakeLauncher, RecordingPrompter, WorkspaceFactory, wait_for

from lintwatch.config import Setting
from lintwatch.errors import ExecutableNotFoundError, SpawnFailureError
from lintwatch.models import END_OF_LINE
from lintwatch.process import BUFFER_ARGS, FILE_ARGS
from lintwatch.provider import (
    ALLOW,
    DISALLOW,
    OPEN_SETTINGS,
    UNTRUST_COMMAND,
    UNTRUST_CONTEXT,
    ProviderState,
    ValidationProvider,
)
from lintwatch.state import MemoryStore
from lintwatch.workspace import DiagnosticsChange

CHECKED = Setting.CHECKED_EXECUTABLE_PATH.value
WORKSPACE_EXECUTABLE = '[validate]\nexecutable_path = "./bin/lint"\n'


def _provider(launcher: FakeLauncher, prompter: RecordingPrompter | None = None, **kwargs) -> ValidationProvider:
    return ValidationProvider(launcher=launcher, prompter=prompter or RecordingPrompter(), **kwargs)


@pytest.mark.asyncio
async def test_on_save_publishes_matching_lines_once(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    launcher.script(b"WARNING  Listing 2 violation(s)\nsite.yml:1: name-missing All tasks ", b"should be named\r\nsite.yml:4:2: yaml-truthy Truthy value")
    provider = _provider(launcher)
    changes: list[DiagnosticsChange] = []
    provider.diagnostics.on_did_change.subscribe(changes.append)
    provider.activate(workspace)

    document = workspace.open_document(path)
    await provider.wait_idle()

    assert len(launcher.calls) == 1
    call = launcher.calls[0]
    assert call.executable == "ansible-lint"
    assert call.args == (*FILE_ARGS, document.file_name)
    assert call.cwd == workspace.root
    assert call.pipe_input is False
    assert len(changes) == 1
    diagnostics = provider.diagnostics.get(document.uri)
    assert [(d.line, d.code, d.message) for d in diagnostics] == [
        (0, "name-missing", "All tasks should be named"),
        (3, "yaml-truthy", "Truthy value"),
    ]
    assert all(d.range.end_column == END_OF_LINE for d in diagnostics)
    assert provider.state is ProviderState.IDLE
    provider.dispose()


@pytest.mark.asyncio
async def test_save_revalidates_and_replaces_results(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    launcher.script(b"site.yml:1: rule-a first\n")
    launcher.script(b"")
    provider = _provider(launcher)
    provider.activate(workspace)

    document = workspace.open_document(path)
    await provider.wait_idle()
    assert len(provider.diagnostics.get(document.uri)) == 1

    workspace.save_document(document)
    await provider.wait_idle()

    assert len(launcher.calls) == 2
    assert provider.diagnostics.has(document.uri)
    assert provider.diagnostics.get(document.uri) == ()
    provider.dispose()


@pytest.mark.asyncio
async def test_on_type_coalesces_edits_and_pipes_latest_text(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    workspace = make_workspace(user='[validate]\nrun = "onType"\n')
    path = make_workspace.document("site.yml", "a: 0\n")
    provider = _provider(launcher)
    provider.activate(workspace)

    document = workspace.open_document(path)
    for index in range(1, 6):
        workspace.change_document(document, f"a: {index}\n")
    await provider.wait_idle()

    assert len(launcher.calls) == 1
    assert launcher.calls[0].args == BUFFER_ARGS
    assert launcher.calls[0].pipe_input is True
    stdin = launcher.processes[0].stdin
    assert bytes(stdin.buffer) == b"a: 5\n"
    assert stdin.closed
    provider.dispose()


@pytest.mark.asyncio
async def test_on_save_ignores_edits(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    provider = _provider(launcher)
    provider.activate(workspace)
    document = workspace.open_document(path)
    await provider.wait_idle()

    workspace.change_document(document, "changed: true\n")
    await asyncio.sleep(0.05)
    await provider.wait_idle()

    assert len(launcher.calls) == 1
    provider.dispose()


@pytest.mark.asyncio
async def test_runs_for_one_document_never_overlap(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    hold = asyncio.Event()
    launcher.script(b"site.yml:1: rule-a stale\n", hold=hold)
    launcher.script(b"site.yml:2: rule-b fresh\n")
    provider = _provider(launcher)
    provider.activate(workspace)

    document = workspace.open_document(path)
    await wait_for(lambda: len(launcher.calls) == 1)
    for _ in range(3):
        workspace.save_document(document, reload=False)
    await asyncio.sleep(0.05)

    assert len(launcher.calls) == 1
    assert provider.state is ProviderState.VALIDATING

    hold.set()
    await provider.wait_idle()

    assert len(launcher.calls) == 2
    assert launcher.max_active == 1
    assert [d.code for d in provider.diagnostics.get(document.uri)] == ["rule-b"]
    provider.dispose()


@pytest.mark.asyncio
async def test_close_during_run_kills_process_and_publishes_nothing(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    hold = asyncio.Event()
    launcher.script(b"site.yml:1: rule-a partial\n", hold=hold)
    provider = _provider(launcher)
    changes: list[DiagnosticsChange] = []
    provider.diagnostics.on_did_change.subscribe(changes.append)
    provider.activate(workspace)

    document = workspace.open_document(path)
    await wait_for(lambda: len(launcher.processes) == 1)
    workspace.close_document(document)
    await wait_for(lambda: launcher.processes[0].killed)
    await provider.wait_idle()

    assert not provider.diagnostics.has(document.uri)
    assert changes == []
    assert document.uri not in provider.scheduler
    provider.dispose()


@pytest.mark.asyncio
async def test_close_removes_published_diagnostics(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    launcher.script(b"site.yml:1: rule-a problem\n")
    provider = _provider(launcher)
    provider.activate(workspace)
    document = workspace.open_document(path)
    await provider.wait_idle()

    workspace.close_document(document)

    assert not provider.diagnostics.has(document.uri)
    provider.dispose()


@pytest.mark.asyncio
async def test_other_languages_are_ignored(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("notes.txt")
    provider = _provider(launcher)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert launcher.calls == []
    provider.dispose()


@pytest.mark.asyncio
async def test_disabled_provider_never_spawns(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace(user="[validate]\nenable = false\n")
    path = make_workspace.document("site.yml")
    provider = _provider(launcher)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert launcher.calls == []
    assert provider.state is ProviderState.DISABLED
    provider.dispose()


@pytest.mark.asyncio
async def test_missing_default_executable_pauses_and_notifies_once(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    workspace = make_workspace()
    first = make_workspace.document("a.yml")
    second = make_workspace.document("b.yml")
    launcher.script(error=ExecutableNotFoundError("ansible-lint", "No such file or directory"))
    prompter = RecordingPrompter()
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(first)
    await provider.wait_idle()
    workspace.open_document(second)
    await provider.wait_idle()

    assert provider.paused
    assert provider.state is ProviderState.PAUSED
    assert len(launcher.calls) == 1
    assert len(prompter.messages) == 1
    message, choices = prompter.messages[0]
    assert message.startswith("Cannot validate since no ansible-lint executable is set.")
    assert Setting.EXECUTABLE_PATH.value in message
    assert choices == (OPEN_SETTINGS,)
    provider.dispose()


@pytest.mark.asyncio
async def test_wrong_executable_offers_settings(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace(user='[validate]\nexecutable_path = "/opt/missing-lint"\n')
    path = make_workspace.document("site.yml")
    launcher.script(error=ExecutableNotFoundError("/opt/missing-lint"))
    opened: list[str] = []
    prompter = RecordingPrompter(OPEN_SETTINGS)
    provider = _provider(launcher, prompter, open_settings=opened.append)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    message, _choices = prompter.messages[0]
    assert "/opt/missing-lint is not a valid ansible-lint executable" in message
    assert opened == [Setting.EXECUTABLE_PATH.value]
    provider.dispose()


@pytest.mark.asyncio
async def test_other_spawn_failures_report_reason(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    launcher.script(error=SpawnFailureError("ansible-lint", "Permission denied"))
    prompter = RecordingPrompter()
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert provider.paused
    assert prompter.messages[0][0] == "Permission denied"
    provider.dispose()


@pytest.mark.asyncio
async def test_raw_os_error_is_classified(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    launcher.script(error=PermissionError(13, "Permission denied"))
    prompter = RecordingPrompter()
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert provider.paused
    assert prompter.messages[0][0] == "Permission denied"
    provider.dispose()


@pytest.mark.asyncio
async def test_pause_lifts_only_when_executable_changes(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace(user='[validate]\nexecutable_path = "/opt/old-lint"\n')
    path = make_workspace.document("site.yml")
    launcher.script(error=ExecutableNotFoundError("/opt/old-lint"))
    provider = _provider(launcher)
    provider.activate(workspace)
    workspace.open_document(path)
    await provider.wait_idle()
    assert provider.paused

    make_workspace.write_user('[validate]\nexecutable_path = "/opt/old-lint"\nrun = "onSave"\n')
    workspace.notify_configuration_changed()
    await provider.wait_idle()
    assert provider.paused
    assert len(launcher.calls) == 1

    make_workspace.write_user('[validate]\nexecutable_path = "/opt/replacement-lint"\n')
    workspace.notify_configuration_changed()
    await provider.wait_idle()

    assert not provider.paused
    assert [call.executable for call in launcher.calls] == ["/opt/old-lint", "/opt/replacement-lint"]
    provider.dispose()


@pytest.mark.asyncio
async def test_configuration_change_clears_and_revalidates(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    workspace = make_workspace()
    path = make_workspace.document("site.yml")
    launcher.script(b"site.yml:1: rule-a problem\n")
    provider = _provider(launcher)
    changes: list[DiagnosticsChange] = []
    provider.diagnostics.on_did_change.subscribe(changes.append)
    provider.activate(workspace)
    document = workspace.open_document(path)
    await provider.wait_idle()

    make_workspace.write_user('[validate]\nrun = "onType"\n')
    workspace.notify_configuration_changed()
    await provider.wait_idle()

    assert [change.removed for change in changes] == [False, True, False]
    assert launcher.calls[-1].pipe_input is True
    assert provider.diagnostics.get(document.uri) == ()
    provider.dispose()


@pytest.mark.asyncio
async def test_workspace_executable_waits_for_consent(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    state = MemoryStore()
    workspace = make_workspace(workspace=WORKSPACE_EXECUTABLE, state=state)
    first = make_workspace.document("a.yml")
    second = make_workspace.document("b.yml")
    gate = asyncio.Event()
    prompter = RecordingPrompter(ALLOW, gate=gate)
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(first)
    workspace.open_document(second)
    await wait_for(lambda: len(prompter.messages) == 1)
    await asyncio.sleep(0.05)

    assert launcher.calls == []
    assert provider.state is ProviderState.AWAITING_CONSENT
    assert len(prompter.messages) == 1
    message, choices = prompter.messages[0]
    assert "./bin/lint" in message
    assert choices == (ALLOW, DISALLOW)

    gate.set()
    await provider.wait_idle()

    assert sorted(call.executable for call in launcher.calls) == ["./bin/lint", "./bin/lint"]
    assert state.get(CHECKED) == "./bin/lint"
    assert workspace.context[UNTRUST_CONTEXT] is True
    provider.dispose()


@pytest.mark.asyncio
async def test_declined_consent_pauses_and_clears_trust(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    state = MemoryStore({CHECKED: "./bin/previous"})
    workspace = make_workspace(workspace=WORKSPACE_EXECUTABLE, state=state)
    path = make_workspace.document("a.yml")
    prompter = RecordingPrompter(DISALLOW)
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()
    workspace.open_document(make_workspace.document("b.yml"))
    await provider.wait_idle()

    assert launcher.calls == []
    assert provider.paused
    assert state.get(CHECKED) is None
    assert workspace.context[UNTRUST_CONTEXT] is False
    assert len(prompter.messages) == 1
    provider.dispose()


@pytest.mark.asyncio
async def test_dismissed_consent_behaves_like_refusal(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace(workspace=WORKSPACE_EXECUTABLE)
    path = make_workspace.document("a.yml")
    provider = _provider(launcher, RecordingPrompter(None))
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert launcher.calls == []
    assert provider.paused
    provider.dispose()


@pytest.mark.asyncio
async def test_previously_trusted_executable_runs_without_prompt(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    state = MemoryStore({CHECKED: "./bin/lint"})
    workspace = make_workspace(workspace=WORKSPACE_EXECUTABLE, state=state)
    path = make_workspace.document("a.yml")
    prompter = RecordingPrompter()
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert prompter.messages == []
    assert [call.executable for call in launcher.calls] == ["./bin/lint"]
    assert workspace.context[UNTRUST_CONTEXT] is True
    provider.dispose()


@pytest.mark.asyncio
async def test_changed_workspace_executable_asks_again(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    state = MemoryStore({CHECKED: "./bin/other"})
    workspace = make_workspace(workspace=WORKSPACE_EXECUTABLE, state=state)
    path = make_workspace.document("a.yml")
    prompter = RecordingPrompter(ALLOW)
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert len(prompter.messages) == 1
    assert state.get(CHECKED) == "./bin/lint"
    assert len(launcher.calls) == 1
    provider.dispose()


@pytest.mark.asyncio
async def test_user_executable_needs_no_consent(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace(user='[validate]\nexecutable_path = "/opt/lint"\n')
    path = make_workspace.document("a.yml")
    prompter = RecordingPrompter()
    provider = _provider(launcher, prompter)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert prompter.messages == []
    assert [call.executable for call in launcher.calls] == ["/opt/lint"]
    provider.dispose()


@pytest.mark.asyncio
async def test_untrust_command_forgets_executable(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    state = MemoryStore({CHECKED: "./bin/lint"})
    workspace = make_workspace(workspace=WORKSPACE_EXECUTABLE, state=state)
    provider = _provider(launcher)
    provider.activate(workspace)

    workspace.commands.execute(UNTRUST_COMMAND)

    assert state.get(CHECKED) is None
    assert workspace.context[UNTRUST_CONTEXT] is False
    provider.dispose()
    assert not workspace.commands.has(UNTRUST_COMMAND)


@pytest.mark.asyncio
async def test_invalid_configuration_disables_validation(
    make_workspace: WorkspaceFactory, launcher: FakeLauncher
) -> None:
    workspace = make_workspace(user='[validate]\nencoding = "klingon"\n')
    path = make_workspace.document("a.yml")
    provider = _provider(launcher)
    provider.activate(workspace)

    workspace.open_document(path)
    await provider.wait_idle()

    assert provider.state is ProviderState.DISABLED
    assert launcher.calls == []
    provider.dispose()


@pytest.mark.asyncio
async def test_dispose_cancels_pending_work(make_workspace: WorkspaceFactory, launcher: FakeLauncher) -> None:
    workspace = make_workspace(user='[validate]\nrun = "onType"\n')
    path = make_workspace.document("a.yml")
    provider = _provider(launcher)
    provider.activate(workspace)

    workspace.open_document(path)
    provider.dispose()
    await asyncio.sleep(0.35)

    assert launcher.calls == []
    assert len(provider.scheduler) == 0
    assert workspace.on_did_open_text_document.listener_count == 0
