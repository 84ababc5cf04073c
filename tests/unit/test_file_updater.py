"""Unit tests for the FileUpdater orchestration."""

import asyncio
import time
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from codemorph.llm.prompts import DEFAULT_PROMPT, build_update_prompt
from codemorph.models.config import Config
from codemorph.services.cancellation import CancellationToken
from codemorph.services.exceptions import GenerationError
from codemorph.services.file_updater import (
    CONFIGURE_ACTION,
    MISSING_API_KEY_MESSAGE,
    PROGRESS_TITLE,
    FileUpdater,
    UpdateOutcome,
    active_file_from_env,
    describe_error,
)


class RecordingProgress:
    """Progress reporter that records every milestone."""

    def __init__(self, reports: List[Tuple[int, str]]):
        self.reports = reports

    def report(self, percent: int, message: str) -> None:
        self.reports.append((percent, message))


class FakeNotifier:
    """Notifier that records messages instead of printing them."""

    def __init__(self, choose_action: Optional[str] = None):
        self.choose_action = choose_action
        self.infos: List[str] = []
        self.warnings: List[str] = []
        self.errors: List[Tuple[str, tuple]] = []
        self.progress_titles: List[str] = []
        self.reports: List[Tuple[int, str]] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)

    def error(self, message: str, *actions: str) -> Optional[str]:
        self.errors.append((message, actions))
        return self.choose_action if actions else None

    @contextmanager
    def progress(self, title: str):
        self.progress_titles.append(title)
        yield RecordingProgress(self.reports)


class FakeClient:
    """Generation client returning a canned answer or raising."""

    def __init__(self, response: str = "", error: Optional[Exception] = None, on_generate=None):
        self.response = response
        self.error = error
        self.on_generate = on_generate
        self.prompts: List[str] = []

    async def generate(self, prompt: str, cancel_token: Optional[CancellationToken] = None) -> str:
        self.prompts.append(prompt)
        if self.on_generate:
            await self.on_generate()
        if self.error:
            raise self.error
        return self.response


class FactorySpy:
    """Client factory recording the arguments it was called with."""

    def __init__(self, client: FakeClient):
        self.client = client
        self.calls = []

    def __call__(self, api_key, ai_config):
        self.calls.append((api_key, ai_config))
        return self.client


def make_updater(notifier, config, client, **kwargs):
    factory = FactorySpy(client)
    updater = FileUpdater(
        notifier=notifier,
        config_loader=lambda: config,
        client_factory=factory,
        **kwargs,
    )
    return updater, factory


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "app.py"
    path.write_text("x=1")
    return path


@pytest.fixture
def configured():
    return Config(api_key="test-key")


class TestUpdateFileSuccess:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_applies_cleaned_response_to_buffer(self, source_file, configured):
        """Test that a fenced answer replaces the whole buffer after cleaning."""
        notifier = FakeNotifier()
        client = FakeClient(response="```python\nx = 1\n```")
        updater, _ = make_updater(notifier, configured, client)

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.COMPLETED
        assert result.document.get_text() == "x = 1"
        assert result.document.is_dirty is True
        assert notifier.infos == ["File updated successfully!"]
        assert notifier.errors == []

    @pytest.mark.asyncio
    async def test_without_auto_save_disk_is_untouched(self, source_file, configured):
        """Test that the file on disk keeps its content when auto_save is off."""
        updater, _ = make_updater(FakeNotifier(), configured, FakeClient(response="x = 1"))

        await updater.update_file(source_file)

        assert source_file.read_text() == "x=1"

    @pytest.mark.asyncio
    async def test_auto_save_writes_file(self, source_file):
        """Test that auto_save persists the updated buffer."""
        config = Config(api_key="test-key", auto_save=True)
        updater, _ = make_updater(FakeNotifier(), config, FakeClient(response="x = 1"))

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.COMPLETED
        assert source_file.read_text() == "x = 1"
        assert result.document.is_dirty is False

    @pytest.mark.asyncio
    async def test_prompt_uses_configured_instruction(self, source_file):
        """Test that the configured instruction and file content are sent."""
        config = Config(api_key="test-key", default_prompt="Add spaces around operators")
        client = FakeClient(response="x = 1")
        updater, _ = make_updater(FakeNotifier(), config, client)

        await updater.update_file(source_file)

        assert client.prompts == [build_update_prompt("Add spaces around operators", "x=1")]

    @pytest.mark.asyncio
    async def test_blank_instruction_uses_default(self, source_file):
        """Test that an empty configured instruction falls back to the default."""
        config = Config(api_key="test-key", default_prompt="")
        client = FakeClient(response="x = 1")
        updater, _ = make_updater(FakeNotifier(), config, client)

        await updater.update_file(source_file)

        assert client.prompts[0].startswith(DEFAULT_PROMPT)

    @pytest.mark.asyncio
    async def test_client_built_from_config(self, source_file):
        """Test that a client is built from the key and ai section per invocation."""
        config = Config(api_key="test-key", ai={"model": "gemini-1.5-pro"})
        updater, factory = make_updater(FakeNotifier(), config, FakeClient(response="x = 1"))

        await updater.update_file(source_file)
        await updater.update_file(source_file)

        assert len(factory.calls) == 2
        assert factory.calls[0][0] == "test-key"
        assert factory.calls[0][1].model == "gemini-1.5-pro"

    @pytest.mark.asyncio
    async def test_progress_milestones(self, source_file):
        """Test the progress titles and percentages in order."""
        notifier = FakeNotifier()
        config = Config(api_key="test-key", auto_save=True)
        updater, _ = make_updater(notifier, config, FakeClient(response="x = 1"))

        await updater.update_file(source_file)

        assert notifier.progress_titles == [PROGRESS_TITLE]
        assert notifier.reports == [
            (0, "Connecting to Gemini API..."),
            (30, "Generating content using Gemini..."),
            (60, "Processing AI response..."),
            (80, "Updating file..."),
            (90, "Saving file..."),
            (100, "Complete!"),
        ]

    @pytest.mark.asyncio
    async def test_target_from_resolver(self, source_file, configured):
        """Test that the focused file is used when no target is given."""
        updater, _ = make_updater(
            FakeNotifier(), configured, FakeClient(response="x = 1"),
            target_resolver=lambda: source_file,
        )

        result = await updater.update_file()

        assert result.outcome is UpdateOutcome.COMPLETED
        assert result.target == source_file.resolve()


class TestUpdateFilePreconditions:
    """Tests for invocations that stop before generation."""

    @pytest.mark.asyncio
    async def test_no_target(self, configured):
        """Test that a missing target is reported and nothing else happens."""
        notifier = FakeNotifier()
        updater, factory = make_updater(
            notifier, configured, FakeClient(response="x"), target_resolver=lambda: None
        )

        result = await updater.update_file()

        assert result.outcome is UpdateOutcome.NO_TARGET
        assert notifier.errors == [("No active file to update", ())]
        assert factory.calls == []

    @pytest.mark.asyncio
    async def test_missing_api_key_offers_configuration(self, source_file):
        """Test that a missing key shows the configure action and builds no client."""
        notifier = FakeNotifier()
        updater, factory = make_updater(notifier, Config(), FakeClient(response="x = 1"))

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.NOT_CONFIGURED
        assert notifier.errors == [(MISSING_API_KEY_MESSAGE, (CONFIGURE_ACTION,))]
        assert factory.calls == []
        assert notifier.progress_titles == []
        assert source_file.read_text() == "x=1"

    @pytest.mark.asyncio
    async def test_configure_action_opens_configuration(self, source_file):
        """Test that choosing the action opens the configuration surface."""
        open_configuration = AsyncMock(return_value=True)
        notifier = FakeNotifier(choose_action=CONFIGURE_ACTION)
        updater, _ = make_updater(
            notifier, Config(api_key="  "), FakeClient(response="x = 1"),
            open_configuration=open_configuration,
        )

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.NOT_CONFIGURED
        open_configuration.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dismissed_action_does_nothing(self, source_file):
        """Test that dismissing the error does not open configuration."""
        open_configuration = AsyncMock()
        updater, _ = make_updater(
            FakeNotifier(choose_action=None), Config(), FakeClient(),
            open_configuration=open_configuration,
        )

        await updater.update_file(source_file)

        open_configuration.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_whitespace_only_file(self, tmp_path, configured):
        """Test that a whitespace-only file is rejected without a request."""
        path = tmp_path / "blank.py"
        path.write_text("  \n\t\n")
        notifier = FakeNotifier()
        updater, factory = make_updater(notifier, configured, FakeClient(response="x"))

        result = await updater.update_file(path)

        assert result.outcome is UpdateOutcome.EMPTY_FILE
        assert notifier.warnings == ["File is empty. Nothing to update."]
        assert factory.calls == []
        assert path.read_text() == "  \n\t\n"

    @pytest.mark.asyncio
    async def test_missing_file_reports_error(self, tmp_path, configured):
        """Test that an unreadable target ends in a reported failure."""
        notifier = FakeNotifier()
        updater, _ = make_updater(notifier, configured, FakeClient(response="x"))

        result = await updater.update_file(tmp_path / "missing.py")

        assert result.outcome is UpdateOutcome.FAILED
        assert notifier.errors[0][0].startswith("Error: ")

    @pytest.mark.asyncio
    async def test_config_error_reports_error(self, source_file):
        """Test that a configuration failure is reported, not raised."""
        def broken_loader():
            raise PermissionError("Config file has overly permissive permissions")

        notifier = FakeNotifier()
        updater = FileUpdater(notifier=notifier, config_loader=broken_loader)

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.FAILED
        assert notifier.errors == [("Error: Config file has overly permissive permissions", ())]


class TestUpdateFileFailures:
    """Tests for failures during generation."""

    @pytest.mark.asyncio
    async def test_remote_error_leaves_file_unchanged(self, source_file):
        """Test that an API error is reported with its own message."""
        notifier = FakeNotifier()
        config = Config(api_key="test-key", auto_save=True)
        client = FakeClient(error=GenerationError("[429 Too Many Requests] quota exceeded", status_code=429))
        updater, _ = make_updater(notifier, config, client)

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.FAILED
        assert notifier.errors == [("Failed to update file: [429 Too Many Requests] quota exceeded", ())]
        assert "quota exceeded" in result.error
        assert result.document.get_text() == "x=1"
        assert source_file.read_text() == "x=1"
        assert notifier.infos == []

    @pytest.mark.asyncio
    async def test_empty_answer_is_rejected(self, source_file, configured):
        """Test that an answer that cleans to nothing does not wipe the file."""
        notifier = FakeNotifier()
        updater, _ = make_updater(notifier, configured, FakeClient(response="```\n\n```"))

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.FAILED
        assert notifier.errors == [("Failed to update file: AI returned empty content", ())]
        assert result.document.get_text() == "x=1"
        assert result.document.is_dirty is False

    @pytest.mark.asyncio
    async def test_error_without_message(self, source_file, configured):
        """Test that an exception with no message is shown as unknown."""
        notifier = FakeNotifier()
        updater, _ = make_updater(notifier, configured, FakeClient(error=RuntimeError()))

        await updater.update_file(source_file)

        assert notifier.errors == [("Failed to update file: Unknown error", ())]

    @pytest.mark.asyncio
    async def test_external_change_blocks_save(self, source_file):
        """Test that a file edited during generation is not overwritten."""
        async def edit_elsewhere():
            time.sleep(0.01)
            source_file.write_text("edited in another editor")

        notifier = FakeNotifier()
        config = Config(api_key="test-key", auto_save=True)
        updater, _ = make_updater(notifier, config, FakeClient(response="x = 1", on_generate=edit_elsewhere))

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.FAILED
        assert "modified" in notifier.errors[0][0]
        assert source_file.read_text() == "edited in another editor"


class TestUpdateFileCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_during_request_discards_answer(self, source_file):
        """Test that cancelling mid-request lets it finish and applies nothing."""
        token = CancellationToken()

        async def cancel_while_waiting():
            token.cancel()

        notifier = FakeNotifier()
        config = Config(api_key="test-key", auto_save=True)
        client = FakeClient(response="x = 1", on_generate=cancel_while_waiting)
        updater, _ = make_updater(notifier, config, client)

        result = await updater.update_file(source_file, cancel_token=token)

        assert result.outcome is UpdateOutcome.CANCELLED
        assert len(client.prompts) == 1
        assert notifier.infos == ["AI update cancelled."]
        assert notifier.errors == []
        assert result.document.get_text() == "x=1"
        assert source_file.read_text() == "x=1"
        assert (60, "Processing AI response...") not in notifier.reports

    @pytest.mark.asyncio
    async def test_cancel_with_failing_request(self, source_file, configured):
        """Test that a failure after cancellation is reported as a cancellation."""
        token = CancellationToken()

        async def cancel_while_waiting():
            token.cancel()

        notifier = FakeNotifier()
        client = FakeClient(error=GenerationError("boom"), on_generate=cancel_while_waiting)
        updater, _ = make_updater(notifier, configured, client)

        result = await updater.update_file(source_file, cancel_token=token)

        assert result.outcome is UpdateOutcome.CANCELLED
        assert notifier.infos == ["AI update was cancelled."]
        assert notifier.errors == []


class TestUpdateFileInterruptScope:
    """Tests for the scope wrapped around the generation phase."""

    @staticmethod
    def recording_scope(events: List[str]):
        @contextmanager
        def scope(token):
            events.append("enter")
            try:
                yield
            finally:
                events.append("exit")

        return scope

    @pytest.mark.asyncio
    async def test_scope_wraps_generation(self, source_file, configured):
        """Test that the request runs inside the scope."""
        events: List[str] = []

        async def mark_generation():
            events.append("generate")

        client = FakeClient(response="x = 1", on_generate=mark_generation)
        updater, _ = make_updater(
            FakeNotifier(), configured, client, interrupt_scope=self.recording_scope(events)
        )

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.COMPLETED
        assert events == ["enter", "generate", "exit"]

    @pytest.mark.asyncio
    async def test_scope_receives_cancel_token(self, source_file, configured):
        """Test that the scope gets the token of the running update."""
        seen = []

        @contextmanager
        def scope(token):
            seen.append(token)
            yield

        token = CancellationToken()
        updater, _ = make_updater(
            FakeNotifier(), configured, FakeClient(response="x = 1"), interrupt_scope=scope
        )

        await updater.update_file(source_file, cancel_token=token)

        assert seen == [token]

    @pytest.mark.asyncio
    async def test_scope_not_active_during_configuration(self, source_file):
        """Test that the missing-key prompt and configuration run outside the scope."""
        events: List[str] = []

        async def open_configuration():
            events.append("configure")

        updater, _ = make_updater(
            FakeNotifier(choose_action=CONFIGURE_ACTION), Config(), FakeClient(),
            open_configuration=open_configuration,
            interrupt_scope=self.recording_scope(events),
        )

        result = await updater.update_file(source_file)

        assert result.outcome is UpdateOutcome.NOT_CONFIGURED
        assert events == ["configure"]


class TestUpdateFileConcurrency:
    """Tests for overlapping invocations."""

    @pytest.mark.asyncio
    async def test_second_update_for_same_file_is_refused(self, source_file, configured):
        """Test that a file with an update in flight is not updated twice."""
        release = asyncio.Event()

        async def wait_for_release():
            await release.wait()

        notifier = FakeNotifier()
        client = FakeClient(response="x = 1", on_generate=wait_for_release)
        updater, _ = make_updater(notifier, configured, client)

        first = asyncio.create_task(updater.update_file(source_file))
        await asyncio.sleep(0.05)

        assert source_file.resolve() in updater.in_flight
        second = await updater.update_file(source_file)

        release.set()
        first_result = await first

        assert second.outcome is UpdateOutcome.BUSY
        assert first_result.outcome is UpdateOutcome.COMPLETED
        assert len(client.prompts) == 1
        assert updater.in_flight == frozenset()

    @pytest.mark.asyncio
    async def test_different_files_may_overlap(self, tmp_path, configured):
        """Test that updates for different files run concurrently."""
        a = tmp_path / "a.py"
        b = tmp_path / "b.py"
        a.write_text("a=1")
        b.write_text("b=1")
        updater, _ = make_updater(FakeNotifier(), configured, FakeClient(response="ok = 1"))

        results = await asyncio.gather(updater.update_file(a), updater.update_file(b))

        assert [r.outcome for r in results] == [UpdateOutcome.COMPLETED, UpdateOutcome.COMPLETED]

    @pytest.mark.asyncio
    async def test_in_flight_cleared_after_failure(self, source_file, configured):
        """Test that a failed update releases the file."""
        updater, _ = make_updater(FakeNotifier(), configured, FakeClient(error=GenerationError("boom")))

        await updater.update_file(source_file)

        assert updater.in_flight == frozenset()


class TestHelpers:
    """Tests for module-level helpers."""

    def test_active_file_from_env(self, monkeypatch):
        """Test reading the focused file from CODEMORPH_ACTIVE_FILE."""
        monkeypatch.setenv("CODEMORPH_ACTIVE_FILE", "/work/app.py")

        assert active_file_from_env() == Path("/work/app.py")

    def test_active_file_from_env_unset(self, monkeypatch):
        """Test that an unset or blank variable means no active file."""
        assert active_file_from_env() is None

        monkeypatch.setenv("CODEMORPH_ACTIVE_FILE", "  ")
        assert active_file_from_env() is None

    def test_describe_error(self):
        """Test user-facing error descriptions."""
        assert describe_error(ValueError("bad value")) == "bad value"
        assert describe_error(ValueError()) == "Unknown error"
