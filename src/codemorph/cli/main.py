"""CLI entry point for CodeMorph."""

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import Callable, Iterator, Optional

import click

from codemorph.cli.progress import ConsoleNotifier
from codemorph.config.loader import default_config_path, load_config
from codemorph.models.config import Config
from codemorph.services.cancellation import CancellationToken
from codemorph.services.file_updater import FileUpdater, UpdateOutcome, UpdateResult
from codemorph.services.notifications import Notifier
from codemorph.utils.logging import configure_logging, get_logger
from codemorph.wizard import run_setup_wizard


logger = get_logger(__name__)

EXIT_CANCELLED = 130


def apply_overrides(
    config: Config,
    model: Optional[str] = None,
    prompt: Optional[str] = None,
    save: Optional[bool] = None,
) -> Config:
    """
    Apply command-line overrides on top of the loaded configuration.

    Args:
        config: Configuration read from file and environment
        model: Model name from --model
        prompt: Instruction from --prompt
        save: Value of --save/--no-save (None when neither was given)

    Returns:
        New Config with the overrides applied
    """
    update = {}
    if model:
        update["ai"] = config.ai.model_copy(update={"model": model})
    if prompt:
        update["default_prompt"] = prompt
    if save is not None:
        update["auto_save"] = save

    return config.model_copy(update=update) if update else config


class CtrlCHandler:
    """
    SIGINT callback used while a Gemini request is in flight.

    The first Ctrl+C sets the cancellation token; the request is allowed to
    finish and its answer is discarded. A second Ctrl+C stops waiting and
    raises KeyboardInterrupt.
    """

    def __init__(
        self,
        cancel_token: CancellationToken,
        notifier: Notifier,
        on_force: Optional[Callable[[], None]] = None,
    ):
        self._cancel_token = cancel_token
        self._notifier = notifier
        self._on_force = on_force

    def __call__(self) -> None:
        if self._cancel_token.is_cancellation_requested:
            logger.warning("cancellation_forced")
            if self._on_force is not None:
                self._on_force()
            raise KeyboardInterrupt

        logger.info("cancellation_requested")
        self._notifier.warning(
            "Cancelling... waiting for the Gemini request to finish (Ctrl+C again to abort)"
        )
        self._cancel_token.cancel()


def _remove_sigint_handler(loop: asyncio.AbstractEventLoop) -> None:
    # Puts signal.default_int_handler back in place
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.remove_signal_handler(signal.SIGINT)


def ctrl_c_cancels(notifier: Notifier):
    """Build the updater's interrupt scope: Ctrl+C handling for the generation phase."""

    @contextlib.contextmanager
    def scope(cancel_token: CancellationToken) -> Iterator[None]:
        loop = asyncio.get_running_loop()
        handler = CtrlCHandler(cancel_token, notifier, on_force=lambda: _remove_sigint_handler(loop))

        # Unavailable on Windows event loops and outside the main thread
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(signal.SIGINT, handler)
        try:
            yield
        finally:
            _remove_sigint_handler(loop)

    return scope


async def run_update(updater: FileUpdater, target: Optional[Path]) -> UpdateResult:
    """
    Run one update.

    Ctrl+C raises KeyboardInterrupt as usual, except while the Gemini request
    is in flight, where the updater's interrupt scope takes over.
    """
    # asyncio.run's own handler only cancels the main task, which cannot
    # interrupt a blocking prompt
    with contextlib.suppress(ValueError):
        signal.signal(signal.SIGINT, signal.default_int_handler)

    return await updater.update_file(target, CancellationToken())


@click.group()
@click.version_option(version="0.1.0", prog_name="codemorph")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to configuration file (default: ~/.config/codemorph/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """CodeMorph: rewrite source files with Google Gemini."""
    configure_logging()

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("file", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--model", type=str, help="Override the Gemini model (default: from config)")
@click.option("--prompt", type=str, help="Override the instruction sent with the file")
@click.option(
    "--save/--no-save",
    default=None,
    help="Write the result to FILE (default: the auto_save setting)",
)
@click.pass_context
def update(
    ctx: click.Context,
    file: Optional[Path],
    model: Optional[str],
    prompt: Optional[str],
    save: Optional[bool],
):
    """
    Rewrite FILE with the configured model.

    FILE defaults to the editor's active file, read from the
    CODEMORPH_ACTIVE_FILE environment variable.

    Unless the result is saved, the updated content is printed to stdout.

    Examples:
        codemorph update app.py --save
        codemorph update app.py --prompt "Add type hints" > app_typed.py
    """
    config_path = ctx.obj["config_path"]
    logger.info("update_command_started", file=str(file) if file else None, model=model)

    def config_loader() -> Config:
        return apply_overrides(load_config(config_path), model=model, prompt=prompt, save=save)

    async def open_configuration() -> bool:
        return await run_setup_wizard(config_path or default_config_path())

    notifier = ConsoleNotifier()
    updater = FileUpdater(
        notifier=notifier,
        config_loader=config_loader,
        open_configuration=open_configuration,
        interrupt_scope=ctrl_c_cancels(notifier),
    )

    try:
        result = asyncio.run(run_update(updater, file))
    except KeyboardInterrupt:
        logger.info("update_command_interrupted")
        notifier.warning("Interrupted.")
        ctx.exit(EXIT_CANCELLED)

    logger.info("update_command_completed", outcome=result.outcome.value)

    if result.outcome is UpdateOutcome.COMPLETED:
        if result.document is not None and result.document.is_dirty:
            notifier.warning(
                f"{result.document.path.name} was not saved (auto_save is off). "
                f"Use --save to write the changes."
            )
            click.echo(result.document.get_text())
        ctx.exit(0)
    elif result.outcome is UpdateOutcome.CANCELLED:
        ctx.exit(EXIT_CANCELLED)

    ctx.exit(1)


@cli.command()
@click.pass_context
def configure(ctx: click.Context):
    """
    Open the configuration wizard.

    Prompts for the Gemini API key, model, default prompt and auto-save
    setting, then writes them to the configuration file.
    """
    config_path = ctx.obj["config_path"] or default_config_path()
    logger.info("configure_command_started", config_path=str(config_path))

    if not asyncio.run(run_setup_wizard(config_path)):
        raise click.ClickException(f"Setup did not complete, {config_path} was not changed")


def main():
    """Main entry point for setuptools console script."""
    cli()


if __name__ == "__main__":
    main()
