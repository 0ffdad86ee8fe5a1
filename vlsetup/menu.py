"""Summary and help output printed after a successful setup."""
import typer

SETUP_COMMAND = "vl-setup"


def render_menu(vl_bin: str = "vl", setup_command: str = SETUP_COMMAND) -> str:
    """Build the command reference shown after setup."""
    lines = [
        "",
        "virt-lightning setup complete!",
        "==============================",
        "Available commands:",
        f"  {vl_bin} distro_list               : Show local images",
        f"  {vl_bin} fetch <distro>            : Download image",
        f"  {vl_bin} up                        : Start VMs defined in virt-lightning.yaml",
        f"  {vl_bin} down                      : Stop all running VMs",
        f"  {vl_bin} ssh <name>                : SSH into VM",
        f"  {vl_bin} console <name>            : Attach to console",
        f"  {vl_bin} status                    : Show running VMs",
        "",
        "Additional useful commands:",
        f"  {vl_bin} storage_dir               : Show current storage directory",
        f"  {setup_command} --list-online      : List online available distro images",
        f"  {vl_bin} start <distro>            : Start specific VM",
        f"  {vl_bin} stop <distro>             : Stop specific VM",
        "==============================",
        "To list available images online:",
        f"  {setup_command} --list-online",
    ]
    return "\n".join(lines)


def main_menu(settings) -> None:
    """Print the command reference."""
    typer.echo(render_menu(settings.vl_bin))
