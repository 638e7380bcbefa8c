#!/usr/bin/env python3
"""
CLI tool for the VirtualMachine operator.
Provides a kubectl-like interface for managing VirtualMachine records
"""

import asyncio
import json
from typing import Any, Awaitable, Callable

import click
import yaml
from tabulate import tabulate

from config import DatabaseConfig
from db import DatabaseManager


def _run(action: Callable[[DatabaseManager], Awaitable[Any]]) -> Any:
    """Connect to the database, run an action and disconnect"""

    async def runner():
        db_config = DatabaseConfig.from_env()
        db = DatabaseManager(
            host=db_config.host,
            port=db_config.port,
            database=db_config.database,
            user=db_config.user,
            password=db_config.password,
            min_pool_size=1,
            max_pool_size=2,
        )
        await db.connect()
        try:
            await db.initialize_schema()
            return await action(db)
        finally:
            await db.close()

    try:
        return asyncio.run(runner())
    except ValueError as e:
        raise click.ClickException(str(e))


def _load_file(filename: str) -> Any:
    with open(filename, "r") as f:
        if filename.endswith(".yaml") or filename.endswith(".yml"):
            return yaml.safe_load(f)
        return json.load(f)


@click.group()
def cli():
    """VirtualMachine operator CLI - kubectl-like interface for VirtualMachines"""
    pass


@cli.command()
@click.argument("name")
@click.option(
    "--spec", "-f", "spec_file", type=click.Path(exists=True), help="Spec YAML/JSON"
)
def apply(name, spec_file):
    """Create or update a VirtualMachine for a provider server UUID"""
    spec = _load_file(spec_file) if spec_file else {}
    if not isinstance(spec, dict):
        raise click.ClickException("Spec file must contain a mapping")

    vm = _run(lambda db: db.create_virtual_machine(name, spec))
    click.echo(f"VirtualMachine {vm.name} applied")


@cli.command()
@click.option("--limit", "-l", default=100, help="Maximum number of rows")
def get(limit):
    """List VirtualMachines and their connection status"""
    vms = _run(lambda db: db.list_virtual_machines(limit=limit))

    if not vms:
        click.echo("No VirtualMachines found")
        return

    headers = ["Name", "Connection", "Last Error", "Synced At"]
    rows = []
    for vm in vms:
        status = vm.status
        rows.append(
            [
                vm.name,
                status.connection_status.value if status.connection_status else "-",
                status.connection_last_error or "-",
                (
                    status.connection_synced_at.isoformat()
                    if status.connection_synced_at
                    else "Never"
                ),
            ]
        )

    click.echo(tabulate(rows, headers=headers, tablefmt="grid"))


@cli.command()
@click.argument("name")
@click.option("--output", "-o", type=click.Choice(["json", "yaml"]), default="yaml")
def describe(name, output):
    """Describe a VirtualMachine, including the provider connection details"""
    vm = _run(lambda db: db.get_virtual_machine(name))

    if vm is None:
        raise click.ClickException(f"VirtualMachine {name} not found")

    if output == "yaml":
        click.echo(yaml.safe_dump(vm.to_dict(), default_flow_style=False))
    else:
        click.echo(json.dumps(vm.to_dict(), indent=2))


@cli.command()
@click.argument("name")
@click.confirmation_option(prompt="Are you sure you want to delete this VirtualMachine?")
def delete(name):
    """Delete a VirtualMachine (the operator stops polling it)"""
    deleted = _run(lambda db: db.delete_virtual_machine(name))

    if deleted:
        click.echo(f"VirtualMachine {name} deleted")
    else:
        raise click.ClickException(f"VirtualMachine {name} not found")


if __name__ == "__main__":
    cli()
