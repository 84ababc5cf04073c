"""Questions asked by `codemorph configure`."""

from rich import print as rprint
from rich.prompt import Confirm, Prompt
from rich.table import Table


def mask_api_key(api_key: str) -> str:
    """Mask API key for display (show first 8 + "..." + last 4).

    Args:
        api_key: Full API key

    Returns:
        Masked string (e.g., "AIzaSyAb...xyz9")
    """
    if len(api_key) <= 12:
        return api_key[:4] + "..." + api_key[-4:]

    return api_key[:8] + "..." + api_key[-4:]


def prompt_api_key(existing_key: str | None = None) -> str:
    """Prompt user for the Gemini API key.

    Args:
        existing_key: Existing API key to display masked

    Returns:
        API key string (input is hidden)
    """
    if existing_key:
        rprint(f"\n[dim]Current API key: {mask_api_key(existing_key)}[/dim]")
        rprint("[dim]Press Enter to keep current key, or enter new key:[/dim]")

        key = Prompt.ask(
            "[bold cyan]Gemini API key[/bold cyan]",
            default=existing_key,
            show_default=False,
            password=True
        )
    else:
        rprint("[dim]Get a key at https://aistudio.google.com/apikey[/dim]")
        key = Prompt.ask("[bold cyan]Gemini API key[/bold cyan]", password=True)

    return key.strip()


def prompt_model(models: list[str], default: str) -> str:
    """Prompt user to pick a Gemini model.

    Shows a numbered table when the API returned a model list, otherwise
    asks for a model name.

    Args:
        models: Model names available to the key (may be empty)
        default: Model to pre-select

    Returns:
        Selected model name
    """
    if not models:
        return Prompt.ask("[bold cyan]Model name[/bold cyan]", default=default)

    table = Table(title="Available Gemini Models")
    table.add_column("#", style="cyan", width=3)
    table.add_column("Model", style="green")
    table.add_column("", width=10)

    for i, name in enumerate(models, 1):
        table.add_row(str(i), name, "current" if name == default else "")

    custom_choice = str(len(models) + 1)
    table.add_row(custom_choice, "[dim]Other model name...[/dim]", "")
    rprint(table)

    default_choice = str(models.index(default) + 1) if default in models else custom_choice
    choice = Prompt.ask(
        "\n[bold cyan]Choice[/bold cyan]",
        choices=[str(n) for n in range(1, len(models) + 2)],
        default=default_choice
    )

    if choice == custom_choice:
        return Prompt.ask("[bold cyan]Model name[/bold cyan]", default=default)

    return models[int(choice) - 1]


def prompt_default_prompt(default: str) -> str:
    """Prompt user for the instruction sent ahead of each file.

    Args:
        default: Current instruction

    Returns:
        Instruction text
    """
    rprint("\n[dim]This instruction is sent to the model together with the file content.[/dim]")
    return Prompt.ask("[bold cyan]Default prompt[/bold cyan]", default=default)


def prompt_auto_save(default: bool = False) -> bool:
    """Ask whether updated files are written to disk automatically.

    Returns:
        True to save after every update
    """
    rprint("\n[dim]Without auto-save the updated content is printed instead of written.[/dim]")
    return Confirm.ask("[bold cyan]Save files automatically after an update?[/bold cyan]", default=default)


def prompt_confirm_overwrite() -> bool:
    """Ask before replacing a config file whose settings changed."""
    return Confirm.ask(
        "\n[bold yellow]Replace the existing config file with these settings?[/bold yellow]",
        default=False
    )


RETRY_CHOICES = {"r": "retry", "s": "skip", "a": "abort"}


def prompt_retry_on_failure(operation: str) -> str:
    """Ask how to continue after a failed check.

    Args:
        operation: What failed, shown in the question

    Returns:
        "retry", "skip" or "abort"
    """
    rprint(f"\n[bold yellow]{operation} did not succeed.[/bold yellow]")
    rprint("  [cyan]r[/cyan]  try again")
    rprint("  [cyan]s[/cyan]  keep the value anyway and continue")
    rprint("  [cyan]a[/cyan]  abort without saving")

    choice = Prompt.ask(
        "[bold cyan]What now?[/bold cyan]",
        choices=list(RETRY_CHOICES),
        default="r"
    )

    return RETRY_CHOICES[choice]
