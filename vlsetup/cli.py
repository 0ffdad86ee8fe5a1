"""CLI interface for the virt-lightning setup tool."""
import typer
from . import utils
from . import steps
from .actions import Executor
from .catalog import list_online_distros
from .config import Settings
from .errors import ProvisionError


def setup(
    list_online: bool = typer.Option(False, "--list-online", help="List online available distro images and exit"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview changes without applying them"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Prepare virt-lightning in user space (~/.local/share/virt-lightning)."""
    utils.setup_logging(verbose)
    settings = Settings.from_environment()

    if list_online:
        for name in list_online_distros(settings.images_url):
            typer.echo(name)
        raise typer.Exit(0)

    typer.echo("virt-lightning user environment setup tool")
    if not settings.user:
        typer.echo("❗ Cannot determine the invoking user (USER is not set)")
        raise typer.Exit(1)

    try:
        results = steps.provision_system(settings, Executor(dry_run=dry_run))
    except ProvisionError as e:
        typer.echo(f"❗ {e}")
        raise typer.Exit(1)

    if results and results[-1].stops_run:
        typer.echo("=" * 52)
        typer.echo(results[-1].message)
        typer.echo("=" * 52)
        raise typer.Exit(0)
    typer.echo("✅ Provisioning complete!")


app = typer.Typer(
    name="vl-setup",
    help="User-local quick installer for virt-lightning.",
    add_completion=False,
    invoke_without_command=True,
    callback=setup,
)


if __name__ == "__main__":
    app()
