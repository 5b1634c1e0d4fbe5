"""Main CLI implementation using Typer."""

from pathlib import Path
from typing import Any, Callable, List, Optional

import typer
from rich.console import Console

from burrow.cli.client import IPCClient, IPCError
from burrow.cli.commands import (
    build_image,
    build_recipe,
    create_container,
    create_volume,
    delete_recipe,
    list_containers,
    list_images,
    list_recipes,
    list_volume_files,
    list_volumes,
    pull_image,
    remove_container,
    remove_volume,
    save_recipe,
    show_key,
    show_recipe,
    show_status,
    start_container,
    stop_container,
)


app = typer.Typer(
    name="burrowctl",
    help="Burrow - disposable SSH-ready development containers",
    add_completion=False,
)

console = Console(stderr=True)

SocketOption = typer.Option(None, "--socket", "-s", help="Agent socket path", envvar="BURROW_SOCKET")
HostOption = typer.Option(None, "--host", help="Agent host:port (instead of the socket)", envvar="BURROW_HOST")


def _run_cli_command(handler: Callable[..., Any], socket: Optional[str], host: Optional[str] = None, **kwargs: Any):
    """Helper to run a CLI command with an IPC client and error handling."""
    try:
        client = IPCClient(socket_path=socket, host=host)
        handler(client, **kwargs)
    except IPCError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except (ValueError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2) from e


@app.command("list")
def list_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """List managed containers."""
    _run_cli_command(list_containers, socket=socket, host=host)


@app.command("create")
def create_command(
    name: str = typer.Argument(..., help="Container name"),
    image: Optional[str] = typer.Option(None, "--image", "-i", help="Base image to start from"),
    dockerfile: Optional[Path] = typer.Option(
        None, "--dockerfile", "-f", exists=True, dir_okay=False, help="Dockerfile to build from"
    ),
    volume: List[str] = typer.Option([], "--volume", "-v", help="Named volume as NAME:/mount/path"),
    env: List[str] = typer.Option([], "--env", "-e", help="Environment variable as KEY=VALUE"),
    follow: bool = typer.Option(False, "--follow", help="Stream build output while provisioning"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Provision an SSH-ready container."""
    if bool(image) == bool(dockerfile):
        console.print("[red]Error:[/red] Specify exactly one of --image or --dockerfile")
        raise typer.Exit(2)
    _run_cli_command(
        create_container,
        socket=socket,
        host=host,
        name=name,
        image=image,
        dockerfile=dockerfile,
        volumes=volume,
        env=env,
        follow=follow,
    )


@app.command("start")
def start_command(
    container: str = typer.Argument(..., help="Container name or id"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Start a stopped container."""
    _run_cli_command(start_container, socket=socket, host=host, container_id=container)


@app.command("stop")
def stop_command(
    container: str = typer.Argument(..., help="Container name or id"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Stop a running container."""
    _run_cli_command(stop_container, socket=socket, host=host, container_id=container)


@app.command("remove")
def remove_command(
    container: str = typer.Argument(..., help="Container name or id"),
    force: bool = typer.Option(False, "--force", "-f", help="Remove without confirmation"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Remove a container and delete its SSH key."""
    if not force:
        confirm = typer.confirm(f"Remove container {container} and its SSH key?")
        if not confirm:
            raise typer.Abort()
    _run_cli_command(remove_container, socket=socket, host=host, container_id=container)


@app.command("key")
def key_command(
    container: str = typer.Argument(..., help="Container name or id"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the key to this file"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Print or save a container's private SSH key."""
    _run_cli_command(show_key, socket=socket, host=host, container_id=container, output=output)


@app.command("status")
def status_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Show agent, engine and container status."""
    _run_cli_command(show_status, socket=socket, host=host)


# Image subcommands
image_app = typer.Typer(help="Image management commands")
app.add_typer(image_app, name="image")


@image_app.command("list")
def image_list_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """List engine images."""
    _run_cli_command(list_images, socket=socket, host=host)


@image_app.command("pull")
def image_pull_command(
    reference: str = typer.Argument(..., help="Image reference to pull"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Pull an image."""
    _run_cli_command(pull_image, socket=socket, host=host, reference=reference)


@image_app.command("build")
def image_build_command(
    tag: str = typer.Argument(..., help="Tag for the built image"),
    dockerfile: Path = typer.Option(..., "--dockerfile", "-f", exists=True, dir_okay=False, help="Dockerfile to build"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Build a Dockerfile as-is, without SSH setup."""
    _run_cli_command(build_image, socket=socket, host=host, tag=tag, dockerfile=dockerfile)


# Volume subcommands
volume_app = typer.Typer(help="Volume management commands")
app.add_typer(volume_app, name="volume")


@volume_app.command("list")
def volume_list_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """List managed volumes."""
    _run_cli_command(list_volumes, socket=socket, host=host)


@volume_app.command("create")
def volume_create_command(
    name: str = typer.Argument(..., help="Volume name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Create a managed volume."""
    _run_cli_command(create_volume, socket=socket, host=host, name=name)


@volume_app.command("remove")
def volume_remove_command(
    name: str = typer.Argument(..., help="Volume name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Remove a managed volume."""
    _run_cli_command(remove_volume, socket=socket, host=host, name=name)


@volume_app.command("files")
def volume_files_command(
    name: str = typer.Argument(..., help="Volume name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """List the files stored in a volume."""
    _run_cli_command(list_volume_files, socket=socket, host=host, name=name)


# Recipe subcommands
recipe_app = typer.Typer(help="Saved recipe commands")
app.add_typer(recipe_app, name="recipe")


@recipe_app.command("list")
def recipe_list_command(
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """List saved recipes."""
    _run_cli_command(list_recipes, socket=socket, host=host)


@recipe_app.command("show")
def recipe_show_command(
    name: str = typer.Argument(..., help="Recipe name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Print a saved recipe."""
    _run_cli_command(show_recipe, socket=socket, host=host, name=name)


@recipe_app.command("save")
def recipe_save_command(
    name: str = typer.Argument(..., help="Recipe name"),
    dockerfile: Path = typer.Option(..., "--dockerfile", "-f", exists=True, dir_okay=False, help="Dockerfile to save"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Save a Dockerfile as a named recipe."""
    _run_cli_command(save_recipe, socket=socket, host=host, name=name, dockerfile=dockerfile)


@recipe_app.command("delete")
def recipe_delete_command(
    name: str = typer.Argument(..., help="Recipe name"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Delete a saved recipe."""
    _run_cli_command(delete_recipe, socket=socket, host=host, name=name)


@recipe_app.command("build")
def recipe_build_command(
    name: str = typer.Argument(..., help="Recipe name"),
    tag: Optional[str] = typer.Option(None, "--tag", "-t", help="Image tag (default burrow-<name>:latest)"),
    socket: Optional[str] = SocketOption,
    host: Optional[str] = HostOption,
):
    """Build a saved recipe, streaming the build log."""
    _run_cli_command(build_recipe, socket=socket, host=host, name=name, tag=tag)


def main():
    """Main entry point for CLI."""
    app()
