"""Command implementations for CLI."""

import asyncio
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from burrow.cli.client import IPCClient, IPCError


console = Console()
stderr_console = Console(stderr=True)

# Builds routinely outlive the default request timeout
PROVISION_TIMEOUT = None


def _run_action(
    client: IPCClient,
    description: str,
    command: str,
    args: Dict[str, Any],
    success_msg: Optional[str] = None,
    quiet: bool = False,
    timeout: Optional[float] = 10.0,
) -> Dict[str, Any]:
    """Helper to run an IPC action with a progress spinner."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        disable=quiet,
    ) as progress:
        task = progress.add_task(description, total=None)

        response = client.request(command, args, timeout=timeout)

        progress.update(task, completed=True)

    if success_msg and not quiet:
        console.print(success_msg)

    return response


def parse_volume_spec(spec: str) -> Dict[str, str]:
    """Parse ``name:/mount/path`` into a volume mount."""
    name, sep, mount_path = spec.partition(":")
    if not sep or not name or not mount_path.startswith("/"):
        raise ValueError(f"Invalid volume '{spec}', expected NAME:/absolute/path")
    return {"name": name, "mountPath": mount_path}


def parse_env(pairs: List[str]) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` pairs."""
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid environment variable '{pair}', expected KEY=VALUE")
        env[key] = value
    return env


def _print_containers(containers: List[Dict[str, Any]]):
    table = Table(title="Containers")
    table.add_column("Name", style="cyan")
    table.add_column("State", style="green")
    table.add_column("Image", style="magenta")
    table.add_column("SSH Port")
    table.add_column("SSH Command", style="dim")

    for info in containers:
        state = info["state"]
        color = "green" if state == "running" else "yellow"
        port = info.get("ssh_port")
        table.add_row(
            info["name"],
            f"[{color}]{state}[/{color}]",
            info["image"],
            str(port) if port else "-",
            info.get("ssh_command") or "-",
        )

    console.print(table)


def list_containers(client: IPCClient):
    """List managed containers."""
    response = client.request("list")
    containers = response.get("containers", [])
    if not containers:
        console.print("No containers")
        return
    _print_containers(containers)


def _print_provisioned(result: Dict[str, Any]):
    container = result["container"]
    console.print(f"[green]✓[/green] Container {container['name']} is {container['state']}")
    console.print(f"  SSH port: {container.get('ssh_port')}")
    console.print(f"  Private key: {result['private_key_path']}")
    if container.get("ssh_command"):
        console.print(f"  Connect with: [bold]{container['ssh_command']}[/bold]")


def create_container(
    client: IPCClient,
    name: str,
    image: Optional[str] = None,
    dockerfile: Optional[Path] = None,
    volumes: Optional[List[str]] = None,
    env: Optional[List[str]] = None,
    follow: bool = False,
):
    """Provision a container from an image or a Dockerfile."""
    request: Dict[str, Any] = {
        "name": name,
        "volumes": [parse_volume_spec(v) for v in volumes or []],
        "env": parse_env(env or []),
    }
    if image:
        request["image"] = image
    if dockerfile:
        request["dockerfile"] = Path(dockerfile).read_text()

    if not follow:
        result = _run_action(
            client,
            description=f"Provisioning container {name}...",
            command="provision",
            args=request,
            timeout=PROVISION_TIMEOUT,
        )
        _print_provisioned(result)
        return

    async def _run():
        async for event in client.stream_events("/api/v1/stream/provision", payload=request):
            kind = event.get("type")
            if kind == "log":
                console.print(event["line"], markup=False, highlight=False)
            elif kind == "state":
                stderr_console.print(f"[bold]→ {event['state']}[/bold]")
            elif kind == "success":
                _print_provisioned(event)
            elif kind == "error":
                raise IPCError(f"Agent error: {event.get('error')}", kind=event.get("kind"))

    asyncio.run(_run())


def start_container(client: IPCClient, container_id: str, quiet: bool = False):
    """Start a container."""
    _run_action(
        client,
        description=f"Starting container {container_id}...",
        command="start",
        args={"id": container_id},
        success_msg=f"[green]✓[/green] Container {container_id} started",
        quiet=quiet,
    )


def stop_container(client: IPCClient, container_id: str, quiet: bool = False):
    """Stop a container."""
    _run_action(
        client,
        description=f"Stopping container {container_id}...",
        command="stop",
        args={"id": container_id},
        success_msg=f"[green]✓[/green] Container {container_id} stopped",
        quiet=quiet,
        timeout=60.0,
    )


def remove_container(client: IPCClient, container_id: str):
    """Remove a container and its SSH key."""
    _run_action(
        client,
        description=f"Removing container {container_id}...",
        command="remove",
        args={"id": container_id},
        success_msg=f"[green]✓[/green] Container {container_id} and its SSH key removed",
        timeout=60.0,
    )


def show_key(client: IPCClient, container_id: str, output: Optional[Path] = None):
    """Print a container's private key, or save it with owner-only permissions."""
    response = client.request("ssh_key", {"id": container_id})
    key = response["private_key"]

    if output is None:
        print(key, end="" if key.endswith("\n") else "\n")
        return

    fd = os.open(output, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(key)
    os.chmod(output, 0o600)
    stderr_console.print(f"[green]✓[/green] Private key written to {output}")


def list_images(client: IPCClient):
    """List engine images."""
    response = client.request("image_list")

    table = Table(title="Images")
    table.add_column("ID", style="dim")
    table.add_column("Tags", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Created")

    for info in response.get("images", []):
        table.add_row(
            info["id"].split(":")[-1][:12],
            ", ".join(info.get("repo_tags") or []) or "<none>",
            f"{info.get('size', 0) / (1024 * 1024):.1f} MB",
            info.get("created", ""),
        )

    console.print(table)


def pull_image(client: IPCClient, reference: str):
    """Pull an image."""
    _run_action(
        client,
        description=f"Pulling image {reference}...",
        command="image_pull",
        args={"image": reference},
        success_msg=f"[green]✓[/green] Image {reference} pulled successfully",
        timeout=None,
    )


def build_image(client: IPCClient, tag: str, dockerfile: Path):
    """Build a Dockerfile as-is."""
    response = _run_action(
        client,
        description=f"Building image {tag}...",
        command="image_build",
        args={"tag": tag, "dockerfile": Path(dockerfile).read_text()},
        timeout=None,
    )
    if not response.get("success"):
        for line in response.get("logs", [])[-20:]:
            stderr_console.print(line, markup=False, highlight=False)
        raise IPCError(f"Build failed: {response.get('error')}", kind="BuildFailed")
    console.print(f"[green]✓[/green] Image {response['tag']} built")


def list_volumes(client: IPCClient):
    """List managed volumes."""
    response = client.request("volume_list")

    table = Table(title="Volumes")
    table.add_column("Name", style="cyan")
    table.add_column("Driver")
    table.add_column("Mountpoint", style="dim")
    table.add_column("Created")

    for info in response.get("volumes", []):
        table.add_row(info["name"], info.get("driver", ""), info.get("mountpoint", ""), info.get("created_at", ""))

    console.print(table)


def create_volume(client: IPCClient, name: str):
    """Create a managed volume."""
    _run_action(
        client,
        description=f"Creating volume {name}...",
        command="volume_create",
        args={"name": name},
        success_msg=f"[green]✓[/green] Volume {name} created",
    )


def remove_volume(client: IPCClient, name: str):
    """Remove a managed volume."""
    _run_action(
        client,
        description=f"Removing volume {name}...",
        command="volume_remove",
        args={"name": name},
        success_msg=f"[green]✓[/green] Volume {name} removed",
    )


def list_volume_files(client: IPCClient, name: str):
    """List the files stored in a managed volume."""
    response = _run_action(
        client,
        description=f"Reading volume {name}...",
        command="volume_files",
        args={"name": name},
        timeout=60.0,
    )
    files = response.get("files", [])
    if not files:
        console.print(f"Volume {name} is empty")
        return
    for path in files:
        console.print(path, markup=False, highlight=False)


def list_recipes(client: IPCClient):
    """List saved recipes."""
    recipes = client.request("recipe_list").get("recipes", [])
    if not recipes:
        console.print("No saved recipes")
        return
    for name in recipes:
        console.print(name)


def show_recipe(client: IPCClient, name: str):
    """Print a saved recipe."""
    response = client.request("recipe_get", {"name": name})
    print(response["dockerfile"], end="")


def save_recipe(client: IPCClient, name: str, dockerfile: Path):
    """Save a Dockerfile as a named recipe."""
    _run_action(
        client,
        description=f"Saving recipe {name}...",
        command="recipe_save",
        args={"name": name, "dockerfile": Path(dockerfile).read_text()},
        success_msg=f"[green]✓[/green] Recipe {name} saved",
    )


def delete_recipe(client: IPCClient, name: str):
    """Delete a saved recipe."""
    _run_action(
        client,
        description=f"Deleting recipe {name}...",
        command="recipe_delete",
        args={"name": name},
        success_msg=f"[green]✓[/green] Recipe {name} deleted",
    )


def build_recipe(client: IPCClient, name: str, tag: Optional[str] = None):
    """Build a saved recipe, streaming the build log."""
    async def _run():
        params = {"recipe": name, "tag": tag}
        async for event in client.stream_events("/api/v1/stream/build", params=params):
            if event["type"] == "log":
                console.print(event["line"], markup=False, highlight=False)
            elif event["type"] == "success":
                console.print(f"[green]✓[/green] Image {event['tag']} built")
            else:
                raise IPCError(f"Build failed: {event.get('error')}", kind="BuildFailed")

    asyncio.run(_run())


def show_status(client: IPCClient):
    """Show agent, engine and container summary."""
    ping = client.request("ping")
    console.print("[bold]Agent Status[/bold]")
    console.print(f"  Running: {'Yes' if ping.get('agent') else 'No'}")
    console.print(f"  Engine reachable: {'Yes' if ping.get('engine') else 'No'}")

    if not ping.get("engine"):
        return

    containers = client.request("list").get("containers", [])
    running = sum(1 for c in containers if c.get("state") == "running")
    console.print()
    console.print(f"[bold]Containers[/bold]: {running}/{len(containers)} running")
    if containers:
        console.print()
        _print_containers(containers)
