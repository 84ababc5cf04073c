"""`codemorph configure`: interactive setup of config.yaml."""

import asyncio
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from rich import print as rprint
from rich.panel import Panel
from rich.status import Status

from codemorph.models.config import AIConfig, Config
from codemorph.utils.logging import get_logger
from codemorph.wizard.prompts import (
    prompt_api_key,
    prompt_auto_save,
    prompt_confirm_overwrite,
    prompt_default_prompt,
    prompt_model,
    prompt_retry_on_failure,
)
from codemorph.wizard.validators import validate_gemini_connection

logger = get_logger(__name__)


@dataclass
class ExistingConfig:
    """What the wizard found at the config path before asking anything.

    Attributes:
        config: Parsed settings, or None if the file is absent or unusable
        exists: Whether a file is present at all
        too_permissive: Whether group or others can access the file
    """
    config: Config | None = None
    exists: bool = False
    too_permissive: bool = False


@dataclass
class WizardState:
    """Answers collected so far.

    Attributes:
        existing_config: Settings offered as defaults (built-in defaults if none)
        api_key: Gemini API key entered by the user
        model: Selected model name
        default_prompt: Instruction sent ahead of each file
        auto_save: Whether updates are written to disk automatically
        available_models: Models reported by the API during key validation
    """
    existing_config: Config = field(default_factory=Config)
    api_key: str | None = None
    model: str | None = None
    default_prompt: str | None = None
    auto_save: bool = False
    available_models: list[str] = field(default_factory=list)


def load_existing_config(config_path: Path) -> ExistingConfig:
    """Inspect the current config file so its values can be offered as defaults.

    The mode-600 rule enforced by `Config.load` is not applied here: a file
    that is too open is still read, and flagged so the wizard rewrites it.

    Args:
        config_path: Location of config.yaml
    """
    if not config_path.exists():
        logger.debug("existing_config_absent", config_path=str(config_path))
        return ExistingConfig()

    mode = stat.S_IMODE(config_path.stat().st_mode)
    found = ExistingConfig(exists=True, too_permissive=bool(mode & 0o077))

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        found.config = Config(**data)
    except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
        # TypeError covers a top-level YAML list or scalar
        logger.warning(
            "existing_config_unusable",
            config_path=str(config_path),
            error=str(e),
            error_type=type(e).__name__,
        )
        return found

    logger.info(
        "existing_config_loaded",
        config_path=str(config_path),
        mode=oct(mode),
        too_permissive=found.too_permissive,
    )
    return found


async def configure_api_key(state: WizardState) -> bool:
    """Ask for the API key and try it by listing models.

    Returns:
        False if the user aborts, True otherwise
    """
    logger.info("configure_api_key_started")

    rprint("[bold cyan]═══ Step 1: Gemini API Key ═══[/bold cyan]")
    rprint("[dim]CodeMorph sends your file to the Gemini API using this key.[/dim]\n")

    endpoint = str(state.existing_config.ai.endpoint)

    while True:
        state.api_key = prompt_api_key(state.existing_config.api_key)
        if not state.api_key:
            rprint("[yellow]API key is required, please try again[/yellow]")
            continue

        with Status("[cyan]Testing API key...[/cyan]"):
            result = await validate_gemini_connection(endpoint, state.api_key)

        if result.success:
            state.available_models = result.data["models"]
            logger.info("api_key_validated", model_count=len(state.available_models))
            rprint("[green]✓[/green] API key accepted\n")
            return True

        logger.warning("api_key_validation_failed", error=result.error_message)
        rprint(f"[red]✗[/red] {result.error_message}")

        choice = prompt_retry_on_failure("API key validation")
        if choice == "abort":
            logger.info("api_key_aborted_by_user")
            return False
        if choice == "skip":
            logger.info("api_key_validation_skipped")
            rprint("[yellow]Keeping the key without validation[/yellow]\n")
            return True


def configure_model(state: WizardState) -> None:
    """Prompt for the model, using the list fetched during key validation."""
    rprint("[bold cyan]═══ Step 2: Model ═══[/bold cyan]")
    state.model = prompt_model(state.available_models, state.existing_config.ai.model)
    logger.info("model_selected", model=state.model)
    rprint(f"[green]✓[/green] Selected model: {state.model}\n")


def configure_behaviour(state: WizardState) -> None:
    """Prompt for the default instruction and the auto-save flag."""
    rprint("[bold cyan]═══ Step 3: Behaviour ═══[/bold cyan]")
    state.default_prompt = prompt_default_prompt(state.existing_config.default_prompt)
    state.auto_save = prompt_auto_save(state.existing_config.auto_save)
    logger.info("behaviour_configured", auto_save=state.auto_save)


def assemble_config(state: WizardState) -> Config:
    """Build the Config to save from the collected answers.

    The API endpoint and request timeout are not asked for; they are carried
    over from the existing config.
    """
    previous = state.existing_config
    return Config(
        api_key=state.api_key,
        ai=AIConfig(
            model=state.model or previous.ai.model,
            endpoint=previous.ai.endpoint,
            request_timeout=previous.ai.request_timeout,
        ),
        default_prompt=state.default_prompt or previous.default_prompt,
        auto_save=state.auto_save,
    )


def has_config_changed(new_config: Config, old_config: Config | None) -> bool:
    """True if saving new_config would change what is on disk."""
    if old_config is None:
        return True

    return new_config.model_dump(mode="json") != old_config.model_dump(mode="json")


def _write_private_file(config_path: Path, text: str) -> None:
    """Write text next to config_path with mode 600, then rename it into place."""
    temp_path = config_path.with_name(f".{config_path.name}.{os.getpid()}.tmp")

    fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        # O_CREAT mode is ignored when the temp file already existed
        os.chmod(temp_path, 0o600)
        os.replace(temp_path, config_path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise


async def write_config(config: Config, config_path: Path) -> None:
    """Save config as YAML, readable only by the current user.

    Raises:
        PermissionError: If the config directory cannot be created
        OSError: If writing the file fails
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        logger.error("config_dir_create_failed", directory=str(config_path.parent), error=str(e))
        raise PermissionError(
            f"Cannot create {config_path.parent}\n"
            f"→ Check the permissions of {config_path.parent.parent}, "
            f"or pass another location with --config"
        ) from e

    text = yaml.safe_dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False)

    await asyncio.to_thread(_write_private_file, config_path, text)
    logger.info("config_saved", config_path=str(config_path))


def show_success_message(config_path: Path) -> None:
    """Tell the user where the settings went and what to run next."""
    message = (
        "[bold green]✓ CodeMorph is configured[/bold green]\n\n"
        "Rewrite a file:\n"
        "  [cyan]codemorph update path/to/file.py[/cyan]\n"
        "Change these settings later:\n"
        "  [cyan]codemorph configure[/cyan]\n\n"
        f"[dim]Saved to {config_path}[/dim]"
    )

    rprint(Panel(message, border_style="green", padding=(1, 2)))


async def run_setup_wizard(config_path: Path) -> bool:
    """Run the interactive configuration wizard.

    Values already in the config file are offered as defaults, so re-running
    the wizard only changes what the user edits.

    Args:
        config_path: Location of config.yaml

    Returns:
        True if the config is saved (or already up to date), False if the
        user aborted or saving failed
    """
    logger.info("setup_wizard_started", config_path=str(config_path))
    rprint("\n[bold cyan]CodeMorph Configuration[/bold cyan]\n")

    try:
        existing = load_existing_config(config_path)
        if existing.too_permissive:
            rprint(
                "[yellow]⚠[/yellow] [bold]Your config file can be read by other users.[/bold]\n"
                "[dim]It will be saved again with mode 600.[/dim]\n"
            )
        if existing.config is not None:
            rprint("[dim]Current settings are shown as defaults[/dim]\n")

        state = WizardState(existing_config=existing.config or Config())

        if not await configure_api_key(state):
            logger.info("setup_wizard_aborted", step="api_key")
            return False

        configure_model(state)
        configure_behaviour(state)

        config = assemble_config(state)

        if not existing.too_permissive:
            if not has_config_changed(config, existing.config):
                logger.info("setup_wizard_nothing_to_save")
                rprint("[dim]Nothing changed, config file left as it is.[/dim]\n")
                return True

            if existing.exists and not prompt_confirm_overwrite():
                logger.info("setup_wizard_aborted", step="overwrite")
                rprint("[yellow]Existing config kept, nothing saved[/yellow]")
                return False

        await write_config(config, config_path)
        show_success_message(config_path)
        logger.info("setup_wizard_completed", config_path=str(config_path))
        return True

    except KeyboardInterrupt:
        logger.info("setup_wizard_aborted", step="keyboard_interrupt")
        rprint("\n[yellow]✗ Setup interrupted, nothing saved[/yellow]")
        return False
    except Exception as e:
        logger.error("setup_wizard_failed", error=str(e), error_type=type(e).__name__)
        rprint(f"\n[red]✗ Setup failed: {e}[/red]")
        return False
