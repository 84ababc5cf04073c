"""Update command: rewrite a file with Gemini and apply the answer.

Flow of one invocation:

    resolve target -> check API key -> read file -> reject empty content
    -> build prompt -> generate -> clean -> replace buffer -> optional save

Every failure ends the invocation. The buffer is changed by a single
full-range replace, so a failure before that step leaves the file as it was.
"""

import os
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol, Set

from codemorph.config.loader import load_config
from codemorph.llm.prompts import build_update_prompt
from codemorph.models.config import AIConfig, Config
from codemorph.services.cancellation import CancellationToken
from codemorph.services.exceptions import EmptyResponseError
from codemorph.services.file_monitor import FileMonitor
from codemorph.services.file_operations import TextDocument
from codemorph.services.llm_client import GeminiClient
from codemorph.services.notifications import Notifier, ProgressReporter
from codemorph.utils.logging import get_logger
from codemorph.utils.response_cleaning import clean_ai_response


logger = get_logger(__name__)

PROGRESS_TITLE = "AI CodeMorph"
CONFIGURE_ACTION = "Configure Now"
MISSING_API_KEY_MESSAGE = "Gemini API key not configured. Please set up your API key."


class GenerationClient(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(self, prompt: str, cancel_token: Optional[CancellationToken] = None) -> str:
        ...


ClientFactory = Callable[[str, AIConfig], GenerationClient]
TargetResolver = Callable[[], Optional[Path]]
InterruptScope = Callable[[CancellationToken], AbstractContextManager[Any]]


class UpdateOutcome(str, Enum):
    """How an update invocation ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    NO_TARGET = "no_target"
    NOT_CONFIGURED = "not_configured"
    EMPTY_FILE = "empty_file"
    BUSY = "busy"


@dataclass
class UpdateResult:
    """Result of one update invocation.

    Attributes:
        outcome: Terminal state reached
        target: Resolved file path (None if no target could be resolved)
        document: Buffer holding the file (None if it was never opened)
        error: Message shown to the user on failure
    """
    outcome: UpdateOutcome
    target: Optional[Path] = None
    document: Optional[TextDocument] = None
    error: Optional[str] = None


def active_file_from_env() -> Optional[Path]:
    """
    Resolve the "currently focused" file from CODEMORPH_ACTIVE_FILE.

    Editors that launch external tools can export the focused buffer's path
    in this variable.

    Returns:
        Path of the active file, or None when the variable is unset or blank
    """
    value = os.environ.get("CODEMORPH_ACTIVE_FILE", "").strip()
    return Path(value) if value else None


def describe_error(error: BaseException) -> str:
    """User-facing description of an exception."""
    return str(error) or "Unknown error"


class FileUpdater:
    """
    Orchestrates "update file with AI" invocations.

    All collaborators are injected so the flow can run without a terminal or
    a network: configuration is re-read on every invocation, a new generation
    client is built from it, and messages go through the notifier.

    Concurrent invocations for the same file are refused while one is in
    flight. Invocations for different files may overlap freely.

    Example:
        >>> updater = FileUpdater(notifier=ConsoleNotifier())
        >>> result = await updater.update_file(Path("app.py"))
        >>> result.outcome
        <UpdateOutcome.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        notifier: Notifier,
        config_loader: Callable[[], Config] = load_config,
        client_factory: ClientFactory = GeminiClient.from_config,
        target_resolver: TargetResolver = active_file_from_env,
        open_configuration: Optional[Callable[[], Awaitable[Any]]] = None,
        interrupt_scope: Optional[InterruptScope] = None,
    ):
        """
        Initialize the updater.

        Args:
            notifier: Where messages and progress are shown
            config_loader: Returns the current configuration
            client_factory: Builds a generation client from (api_key, ai_config)
            target_resolver: Returns the focused file when no target is given
            open_configuration: Called when the user picks "Configure Now"
            interrupt_scope: Context manager factory wrapped around the
                generation phase only, e.g. to map Ctrl+C onto the token
        """
        self.notifier = notifier
        self._config_loader = config_loader
        self._client_factory = client_factory
        self._target_resolver = target_resolver
        self._open_configuration = open_configuration
        self._interrupt_scope = interrupt_scope or (lambda token: nullcontext())
        self._file_monitor = FileMonitor()
        self._in_flight: Set[Path] = set()

    @property
    def in_flight(self) -> frozenset:
        """Paths with an update currently running."""
        return frozenset(self._in_flight)

    async def update_file(
        self,
        target: Optional[Path] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> UpdateResult:
        """
        Rewrite a file with the configured model.

        Args:
            target: File to update. If None, the target resolver is asked.
            cancel_token: Token the user can trigger to abandon the update

        Returns:
            UpdateResult describing how the invocation ended. Errors are
            reported through the notifier, never raised.
        """
        if cancel_token is None:
            cancel_token = CancellationToken()

        try:
            if target is None:
                target = self._target_resolver()
                if target is None:
                    logger.warning("file_update_no_target")
                    self.notifier.error("No active file to update")
                    return UpdateResult(UpdateOutcome.NO_TARGET)

            target = Path(target).expanduser().resolve()

            if target in self._in_flight:
                logger.warning("file_update_already_running", path=str(target))
                self.notifier.warning(f"An update is already running for {target.name}")
                return UpdateResult(UpdateOutcome.BUSY, target=target)

            self._in_flight.add(target)
            try:
                logger.info("file_update_started", path=str(target))
                return await self._update(target, cancel_token)
            finally:
                self._in_flight.discard(target)
                self._file_monitor.forget(target)

        except Exception as e:
            message = f"Error: {describe_error(e)}"
            logger.error(
                "file_update_error",
                path=str(target) if target else None,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self.notifier.error(message)
            return UpdateResult(UpdateOutcome.FAILED, target=target, error=message)

    async def _update(self, target: Path, cancel_token: CancellationToken) -> UpdateResult:
        """Check preconditions, then run generation under a progress indicator."""
        config = self._config_loader()

        if not config.has_api_key:
            logger.warning("file_update_missing_api_key", path=str(target))
            action = self.notifier.error(MISSING_API_KEY_MESSAGE, CONFIGURE_ACTION)
            if action == CONFIGURE_ACTION and self._open_configuration is not None:
                logger.info("configuration_requested")
                await self._open_configuration()
            return UpdateResult(UpdateOutcome.NOT_CONFIGURED, target=target)

        document = await TextDocument.open(target, self._file_monitor)
        file_content = document.get_text()

        if not file_content.strip():
            logger.warning("file_update_empty_file", path=str(target))
            self.notifier.warning("File is empty. Nothing to update.")
            return UpdateResult(UpdateOutcome.EMPTY_FILE, target=target, document=document)

        with self.notifier.progress(PROGRESS_TITLE) as progress, self._interrupt_scope(cancel_token):
            return await self._generate_and_apply(
                config, document, file_content, progress, cancel_token
            )

    async def _generate_and_apply(
        self,
        config: Config,
        document: TextDocument,
        file_content: str,
        progress: ProgressReporter,
        cancel_token: CancellationToken,
    ) -> UpdateResult:
        target = document.path

        try:
            full_prompt = build_update_prompt(config.default_prompt, file_content)

            progress.report(0, "Connecting to Gemini API...")
            client = self._client_factory(config.api_key, config.ai)

            progress.report(30, "Generating content using Gemini...")
            updated_content = await client.generate(full_prompt, cancel_token=cancel_token)

            if cancel_token.is_cancellation_requested:
                logger.info("file_update_cancelled", path=str(target), stage="after_generation")
                self.notifier.info("AI update cancelled.")
                return UpdateResult(UpdateOutcome.CANCELLED, target=target, document=document)

            progress.report(60, "Processing AI response...")
            cleaned_content = clean_ai_response(updated_content)

            if not cleaned_content.strip():
                raise EmptyResponseError()

            progress.report(80, "Updating file...")
            # Range is expressed in the original buffer's coordinates
            document.replace(0, len(file_content), cleaned_content)

            progress.report(90, "Saving file...")
            if config.auto_save:
                await document.save()

            progress.report(100, "Complete!")

            logger.info(
                "file_update_completed",
                path=str(target),
                original_length=len(file_content),
                new_length=len(cleaned_content),
                saved=config.auto_save,
            )
            self.notifier.info("File updated successfully!")
            return UpdateResult(UpdateOutcome.COMPLETED, target=target, document=document)

        except Exception as e:
            if cancel_token.is_cancellation_requested:
                logger.info("file_update_cancelled", path=str(target), stage="error_handler")
                self.notifier.info("AI update was cancelled.")
                return UpdateResult(UpdateOutcome.CANCELLED, target=target, document=document)

            message = f"Failed to update file: {describe_error(e)}"
            logger.error(
                "file_update_failed",
                path=str(target),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self.notifier.error(message)
            return UpdateResult(UpdateOutcome.FAILED, target=target, document=document, error=message)
