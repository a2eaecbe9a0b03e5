"""CLI entry point: command definitions using Click.

Commands:
    init                 Generate a template config file
    rg        create | list | delete
    storage   create | list | delete
    vm        create | list | start | deallocate | delete
    aci       create | list | logs | delete
    role      create | list | delete | assign
    user      create | import | list | delete
    tag       apply
    report    rbac | rightsize | inventory
"""

import functools
import logging
import sys
from pathlib import Path
from typing import Any

import click

from azlab import __version__
from azlab.export import FORMATS

logger = logging.getLogger("azlab.cli")


# ---------------------------------------------------------------------------
# Helpers shared by all data commands
# ---------------------------------------------------------------------------

def _load_config(ctx: click.Context):
    """Load config once per invocation and set up logging. Exits on error."""
    from azlab.config import ConfigError, load
    from azlab.log import setup_logger

    obj = ctx.obj
    if "config" not in obj:
        try:
            config = load(obj["config_path"])
        except ConfigError as exc:
            click.echo(f"Configuration error: {exc}", err=True)
            sys.exit(1)
        level = logging.DEBUG if obj["verbose"] else getattr(logging, config.log_level, logging.INFO)
        setup_logger("azlab", Path(config.log_file) if config.log_file else None, level)
        obj["config"] = config
    return obj["config"]


def _make_client(ctx: click.Context):
    """Load config and return a ready ArmClient."""
    from azlab.client import ArmClient

    config = _load_config(ctx)
    logger.debug("Using subscription %s", config.subscription_id)
    return config, ArmClient(subscription_id=config.subscription_id, token=config.token)


def _make_graph(ctx: click.Context):
    """Load config and return a ready GraphClient (requires a Graph token)."""
    from azlab.client import GraphClient

    config = _load_config(ctx)
    return config, GraphClient(token=config.require_graph())


def _tags(config, items: tuple[str, ...]) -> dict[str, str]:
    """Config default tags overlaid with ``--tag k=v`` options."""
    from azlab.resources.tags import merge_tags, parse_tags
    return merge_tags(config.tags, parse_tags(items))


def _confirm(ctx: click.Context, message: str) -> None:
    if not ctx.obj["yes"]:
        click.confirm(message, abort=True, err=True)


def _emit(data: Any, ctx: click.Context, fields: list[str] | None = None) -> None:
    """Write *data* as JSON / CSV / text to stdout or to the --output file."""
    from azlab import export

    obj = ctx.obj
    fmt = obj["fmt"]
    is_report = isinstance(data, dict) and data.get("report_type") in export.ROWS_KEYS

    if fmt == "json":
        text = export.to_json(data, obj["pretty"])
    elif is_report:
        rows = export.report_rows(data)
        text = export.to_csv(rows, fields) if fmt == "csv" else export.render_report(data, fields)
    else:
        rows = data if isinstance(data, list) else [data]
        text = export.to_csv(rows, fields) if fmt == "csv" else export.render_table(rows, fields)

    output_path: str | None = obj["output_path"]
    if output_path:
        export.write_text(text, output_path)
        click.echo(f"Report written to '{output_path}'", err=True)
    else:
        click.echo(text.rstrip("\n"))


def _handle_client_errors(func):
    """Decorator that catches client / input exceptions and exits cleanly."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from azlab.client import (
            AuthenticationError,
            AuthorizationError,
            AzureClientError,
            ConflictError,
            NetworkError,
            NotFoundError,
            OperationFailedError,
            OperationTimeoutError,
        )
        from azlab.config import ConfigError

        try:
            return func(*args, **kwargs)
        except ConfigError as exc:
            click.echo(f"Configuration error: {exc}", err=True)
        except AuthenticationError as exc:
            click.echo(f"Authentication error: {exc}", err=True)
        except AuthorizationError as exc:
            click.echo(f"Authorization error: {exc}", err=True)
        except NotFoundError as exc:
            click.echo(f"Not found: {exc}", err=True)
        except ConflictError as exc:
            click.echo(f"Conflict: {exc}", err=True)
        except NetworkError as exc:
            click.echo(f"Network error: {exc}", err=True)
        except (OperationFailedError, OperationTimeoutError) as exc:
            click.echo(f"Operation error: {exc}", err=True)
        except AzureClientError as exc:
            click.echo(f"Azure error: {exc}", err=True)
        except ValueError as exc:
            # TagError is a ValueError too
            click.echo(f"Input error: {exc}", err=True)
        sys.exit(1)

    return wrapper


def _wait_or_submit(ctx: click.Context, operation, no_wait: bool, verb: str) -> dict:
    config = ctx.obj["config"]
    if no_wait:
        return {"name": operation.name, "status": "Submitted" if not operation.done else operation.status}
    operation.wait(config.operation_timeout, config.poll_interval)
    click.echo(f"{verb} '{operation.name}'.", err=True)
    return {"name": operation.name, "status": operation.status}


_rg_option = click.option("--resource-group", "-g", "resource_group", required=True,
                          help="Resource group name.")
_rg_filter_option = click.option("--resource-group", "-g", "resource_group", default=None,
                                 help="Limit to one resource group.")
_tag_option = click.option("--tag", "tags", multiple=True, metavar="KEY=VALUE",
                           help="Tag to set (repeatable); merged over the config defaults.")
_location_option = click.option("--location", "-l", default=None,
                                help="Azure region (defaults to the config location).")
_no_wait_option = click.option("--no-wait", is_flag=True, default=False,
                               help="Return once the operation is accepted.")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default="azlab-config.yaml", show_default=True,
              help="Path to the configuration file.")
@click.option("--output", "output_path", default=None,
              help="Write output to a file instead of stdout.")
@click.option("--format", "fmt", type=click.Choice(FORMATS), default="json", show_default=True,
              help="Output format.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print JSON output.")
@click.option("--yes", "-y", is_flag=True, default=False,
              help="Do not ask for confirmation before destructive actions.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable debug logging.")
@click.version_option(__version__, prog_name="azlab")
@click.pass_context
def cli(ctx: click.Context, config_path: str, output_path: str | None, fmt: str,
        pretty: bool, yes: bool, verbose: bool) -> None:
    """Azure lab tool: provision, inventory, audit and tear down practice resources."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["output_path"] = output_path
    ctx.obj["fmt"] = fmt
    ctx.obj["pretty"] = pretty
    ctx.obj["yes"] = yes
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="azlab-config.yaml", show_default=True,
              help="Path where the template config file will be written.")
def init_command(output_path: str) -> None:
    """Generate a template azlab-config.yaml file."""
    from azlab.config import ConfigError, generate_template
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it with your subscription id, tokens and default tags.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# rg
# ---------------------------------------------------------------------------

@cli.group("rg")
def rg_group() -> None:
    """Resource groups."""


@rg_group.command("create")
@click.argument("name")
@_location_option
@_tag_option
@click.pass_context
@_handle_client_errors
def rg_create_command(ctx: click.Context, name: str, location: str | None,
                      tags: tuple[str, ...]) -> None:
    """Create (or update) resource group NAME."""
    from azlab.resources.groups import create_resource_group

    config, client = _make_client(ctx)
    _emit(create_resource_group(client, name, location or config.location,
                                _tags(config, tags)), ctx)


@rg_group.command("list")
@click.option("--prefix", default=None, help="Only groups whose name starts with PREFIX.")
@click.option("--tag", "tag", default=None, metavar="KEY=VALUE", help="Only groups with this tag.")
@click.pass_context
@_handle_client_errors
def rg_list_command(ctx: click.Context, prefix: str | None, tag: str | None) -> None:
    """List resource groups."""
    from azlab.resources.groups import list_resource_groups
    from azlab.resources.tags import parse_tags

    _, client = _make_client(ctx)
    tag_filter = next(iter(parse_tags([tag]).items())) if tag else None
    groups = list_resource_groups(client, prefix=prefix, tag=tag_filter)
    _emit(groups, ctx, ["name", "location", "provisioning_state", "tags"])


@rg_group.command("delete")
@click.argument("names", nargs=-1)
@click.option("--prefix", default=None, help="Also delete every group whose name starts with PREFIX.")
@_no_wait_option
@click.pass_context
@_handle_client_errors
def rg_delete_command(ctx: click.Context, names: tuple[str, ...], prefix: str | None,
                      no_wait: bool) -> None:
    """Delete resource groups NAMES (and/or those matching --prefix)."""
    from azlab.resources.groups import delete_resource_groups, list_resource_groups

    config, client = _make_client(ctx)
    targets = list(dict.fromkeys(names))
    if prefix:
        targets += [g["name"] for g in list_resource_groups(client, prefix=prefix)
                    if g["name"] not in targets]
    if not targets:
        click.echo("No resource groups to delete.", err=True)
        return

    _confirm(ctx, f"Delete {len(targets)} resource group(s) and ALL their resources: "
                  f"{', '.join(targets)}?")
    results = delete_resource_groups(client, targets, wait=not no_wait,
                                     timeout=config.operation_timeout,
                                     poll_interval=config.poll_interval)
    _emit([{"name": n, "status": s} for n, s in results.items()], ctx)
    if any(s in ("Failed", "Canceled", "TimedOut") for s in results.values()):
        sys.exit(1)


# ---------------------------------------------------------------------------
# storage
# ---------------------------------------------------------------------------

@cli.group("storage")
def storage_group() -> None:
    """Storage accounts."""


@storage_group.command("create")
@click.argument("name")
@_rg_option
@_location_option
@click.option("--sku", default="Standard_LRS", show_default=True)
@click.option("--kind", default="StorageV2", show_default=True)
@_tag_option
@click.pass_context
@_handle_client_errors
def storage_create_command(ctx: click.Context, name: str, resource_group: str,
                           location: str | None, sku: str, kind: str,
                           tags: tuple[str, ...]) -> None:
    """Create storage account NAME."""
    from azlab.resources.storage import create_storage_account

    config, client = _make_client(ctx)
    account = create_storage_account(
        client, resource_group, name, location or config.location, sku=sku, kind=kind,
        tags=_tags(config, tags), timeout=config.operation_timeout,
        poll_interval=config.poll_interval,
    )
    _emit(account, ctx)


@storage_group.command("list")
@_rg_filter_option
@click.pass_context
@_handle_client_errors
def storage_list_command(ctx: click.Context, resource_group: str | None) -> None:
    """List storage accounts."""
    from azlab.resources.storage import list_storage_accounts

    _, client = _make_client(ctx)
    _emit(list_storage_accounts(client, resource_group), ctx,
          ["name", "resource_group", "location", "sku", "kind", "provisioning_state"])


@storage_group.command("delete")
@click.argument("name")
@_rg_option
@click.pass_context
@_handle_client_errors
def storage_delete_command(ctx: click.Context, name: str, resource_group: str) -> None:
    """Delete storage account NAME and all its data."""
    from azlab.resources.storage import delete_storage_account

    _, client = _make_client(ctx)
    _confirm(ctx, f"Delete storage account '{name}' and all its data?")
    delete_storage_account(client, resource_group, name)
    _emit({"name": name, "status": "Deleted"}, ctx)


# ---------------------------------------------------------------------------
# vm
# ---------------------------------------------------------------------------

@cli.group("vm")
def vm_group() -> None:
    """Virtual machines."""


@vm_group.command("create")
@click.argument("name")
@_rg_option
@_location_option
@click.option("--size", default="Standard_B1s", show_default=True)
@click.option("--image", default="ubuntu2204", show_default=True,
              help="Image alias: ubuntu2204, debian12 or win2022.")
@click.option("--admin-username", default="azureuser", show_default=True)
@click.option("--ssh-key-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Public key file for Linux VMs.")
@click.option("--admin-password", default=None, help="Admin password (required for Windows).")
@click.option("--allowed-source", default="*", show_default=True,
              help="Source address prefix allowed to reach SSH/RDP.")
@_tag_option
@click.pass_context
@_handle_client_errors
def vm_create_command(ctx: click.Context, name: str, resource_group: str, location: str | None,
                      size: str, image: str, admin_username: str, ssh_key_file: str | None,
                      admin_password: str | None, allowed_source: str,
                      tags: tuple[str, ...]) -> None:
    """Provision VM NAME with its NSG, virtual network, public IP and NIC."""
    from azlab.resources.compute import provision_vm

    config, client = _make_client(ctx)
    ssh_key = Path(ssh_key_file).read_text(encoding="utf-8").strip() if ssh_key_file else None
    if allowed_source == "*":
        logger.warning("Management port of '%s' will be open to the whole internet", name)
    vm = provision_vm(
        client, resource_group, name, location or config.location, size=size, image=image,
        admin_username=admin_username, ssh_public_key=ssh_key, admin_password=admin_password,
        allowed_source=allowed_source, tags=_tags(config, tags),
        timeout=config.operation_timeout, poll_interval=config.poll_interval,
    )
    _emit(vm, ctx)


@vm_group.command("list")
@_rg_filter_option
@click.pass_context
@_handle_client_errors
def vm_list_command(ctx: click.Context, resource_group: str | None) -> None:
    """List VMs with their power state."""
    from azlab.resources.compute import list_vms

    _, client = _make_client(ctx)
    _emit(list_vms(client, resource_group), ctx,
          ["name", "resource_group", "location", "size", "os", "power_state"])


@vm_group.command("start")
@click.argument("name")
@_rg_option
@_no_wait_option
@click.pass_context
@_handle_client_errors
def vm_start_command(ctx: click.Context, name: str, resource_group: str, no_wait: bool) -> None:
    """Start VM NAME."""
    from azlab.resources.compute import start_vm

    _, client = _make_client(ctx)
    _emit(_wait_or_submit(ctx, start_vm(client, resource_group, name), no_wait, "Started"), ctx)


@vm_group.command("deallocate")
@click.argument("name")
@_rg_option
@_no_wait_option
@click.pass_context
@_handle_client_errors
def vm_deallocate_command(ctx: click.Context, name: str, resource_group: str,
                          no_wait: bool) -> None:
    """Stop and deallocate VM NAME."""
    from azlab.resources.compute import deallocate_vm

    _, client = _make_client(ctx)
    operation = deallocate_vm(client, resource_group, name)
    _emit(_wait_or_submit(ctx, operation, no_wait, "Deallocated"), ctx)


@vm_group.command("delete")
@click.argument("name")
@_rg_option
@_no_wait_option
@click.pass_context
@_handle_client_errors
def vm_delete_command(ctx: click.Context, name: str, resource_group: str, no_wait: bool) -> None:
    """Delete VM NAME with its OS disk and NIC."""
    from azlab.resources.compute import delete_vm

    _, client = _make_client(ctx)
    _confirm(ctx, f"Delete VM '{name}' in '{resource_group}'?")
    _emit(_wait_or_submit(ctx, delete_vm(client, resource_group, name), no_wait, "Deleted"), ctx)


# ---------------------------------------------------------------------------
# aci
# ---------------------------------------------------------------------------

@cli.group("aci")
def aci_group() -> None:
    """Container instances."""


@aci_group.command("create")
@click.argument("name")
@_rg_option
@click.option("--image", required=True, help="Container image, e.g. nginx:latest.")
@_location_option
@click.option("--cpu", type=float, default=1.0, show_default=True)
@click.option("--memory", "memory_gb", type=float, default=1.5, show_default=True,
              help="Memory in GB.")
@click.option("--port", "ports", type=int, multiple=True, help="Port to expose (repeatable).")
@click.option("--env", "env", multiple=True, metavar="NAME=VALUE",
              help="Environment variable (repeatable).")
@click.option("--dns-label", default=None)
@click.option("--restart-policy", type=click.Choice(["Always", "OnFailure", "Never"]),
              default="Always", show_default=True)
@_tag_option
@click.pass_context
@_handle_client_errors
def aci_create_command(ctx: click.Context, name: str, resource_group: str, image: str,
                       location: str | None, cpu: float, memory_gb: float,
                       ports: tuple[int, ...], env: tuple[str, ...], dns_label: str | None,
                       restart_policy: str, tags: tuple[str, ...]) -> None:
    """Create container group NAME running IMAGE."""
    from azlab.resources.containers import create_container_group

    config, client = _make_client(ctx)
    group = create_container_group(
        client, resource_group, name, image, location or config.location, cpu=cpu,
        memory_gb=memory_gb, ports=list(ports) or None, env=_parse_pairs(env),
        dns_label=dns_label, restart_policy=restart_policy, tags=_tags(config, tags),
        timeout=config.operation_timeout, poll_interval=config.poll_interval,
    )
    _emit(group, ctx)


@aci_group.command("list")
@_rg_filter_option
@click.pass_context
@_handle_client_errors
def aci_list_command(ctx: click.Context, resource_group: str | None) -> None:
    """List container groups."""
    from azlab.resources.containers import list_container_groups

    _, client = _make_client(ctx)
    _emit(list_container_groups(client, resource_group), ctx,
          ["name", "resource_group", "location", "images", "state", "ip", "fqdn"])


@aci_group.command("logs")
@click.argument("name")
@_rg_option
@click.option("--container", default=None, help="Container name (defaults to the first).")
@click.option("--tail", type=int, default=None, help="Only the last N lines.")
@click.pass_context
@_handle_client_errors
def aci_logs_command(ctx: click.Context, name: str, resource_group: str,
                     container: str | None, tail: int | None) -> None:
    """Print the logs of a container in group NAME."""
    from azlab.resources.containers import get_container_logs

    _, client = _make_client(ctx)
    click.echo(get_container_logs(client, resource_group, name, container, tail), nl=False)


@aci_group.command("delete")
@click.argument("name")
@_rg_option
@_no_wait_option
@click.pass_context
@_handle_client_errors
def aci_delete_command(ctx: click.Context, name: str, resource_group: str,
                       no_wait: bool) -> None:
    """Delete container group NAME."""
    from azlab.resources.containers import delete_container_group

    _, client = _make_client(ctx)
    _confirm(ctx, f"Delete container group '{name}' in '{resource_group}'?")
    operation = delete_container_group(client, resource_group, name)
    _emit(_wait_or_submit(ctx, operation, no_wait, "Deleted"), ctx)


def _parse_pairs(items: tuple[str, ...]) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in items:
        if "=" not in item:
            raise ValueError(f"'{item}' must be in NAME=VALUE form.")
        key, value = item.split("=", 1)
        pairs[key.strip()] = value
    return pairs


# ---------------------------------------------------------------------------
# role
# ---------------------------------------------------------------------------

@cli.group("role")
def role_group() -> None:
    """Custom roles and role assignments."""


@role_group.command("create")
@click.argument("definition_file", type=click.Path(dir_okay=False))
@click.pass_context
@_handle_client_errors
def role_create_command(ctx: click.Context, definition_file: str) -> None:
    """Create or update a custom role from DEFINITION_FILE (az-cli JSON layout)."""
    from azlab.resources.roles import create_custom_role, load_role_definition

    _, client = _make_client(ctx)
    _emit(create_custom_role(client, load_role_definition(definition_file)), ctx)


@role_group.command("list")
@click.pass_context
@_handle_client_errors
def role_list_command(ctx: click.Context) -> None:
    """List custom roles in the subscription."""
    from azlab.resources.roles import list_custom_roles

    _, client = _make_client(ctx)
    _emit(list_custom_roles(client), ctx, ["name", "id", "description", "assignable_scopes"])


@role_group.command("delete")
@click.argument("name")
@click.pass_context
@_handle_client_errors
def role_delete_command(ctx: click.Context, name: str) -> None:
    """Delete custom role NAME."""
    from azlab.resources.roles import delete_custom_role

    _, client = _make_client(ctx)
    _confirm(ctx, f"Delete custom role '{name}'?")
    delete_custom_role(client, name)
    _emit({"name": name, "status": "Deleted"}, ctx)


@role_group.command("assign")
@click.argument("principal_id")
@click.argument("role_name")
@click.option("--scope", default=None, help="Assignment scope (defaults to the subscription).")
@click.option("--principal-type",
              type=click.Choice(["User", "Group", "ServicePrincipal", "ForeignGroup", "Device"]),
              default="User", show_default=True)
@click.pass_context
@_handle_client_errors
def role_assign_command(ctx: click.Context, principal_id: str, role_name: str,
                        scope: str | None, principal_type: str) -> None:
    """Assign ROLE_NAME to PRINCIPAL_ID."""
    from azlab.resources.roles import assign_role

    _, client = _make_client(ctx)
    _emit(assign_role(client, principal_id, role_name, scope, principal_type), ctx)


# ---------------------------------------------------------------------------
# user
# ---------------------------------------------------------------------------

@cli.group("user")
def user_group() -> None:
    """Directory users (Microsoft Graph)."""


@user_group.command("create")
@click.argument("display_name")
@click.argument("mail_nickname")
@click.option("--domain", default=None, help="UPN domain (defaults to the tenant default).")
@click.option("--password", default=None, help="Initial password (generated if omitted).")
@click.option("--no-force-change", is_flag=True, default=False,
              help="Do not require a password change at first sign-in.")
@click.pass_context
@_handle_client_errors
def user_create_command(ctx: click.Context, display_name: str, mail_nickname: str,
                        domain: str | None, password: str | None, no_force_change: bool) -> None:
    """Create directory user DISPLAY_NAME <MAIL_NICKNAME@domain>."""
    from azlab.resources.users import create_user, get_default_domain

    _, graph = _make_graph(ctx)
    user = create_user(graph, display_name, mail_nickname, domain or get_default_domain(graph),
                       password=password, force_change=not no_force_change)
    _emit(user, ctx)


@user_group.command("import")
@click.argument("csv_file", type=click.Path(dir_okay=False))
@click.option("--domain", default=None, help="UPN domain (defaults to the tenant default).")
@click.pass_context
@_handle_client_errors
def user_import_command(ctx: click.Context, csv_file: str, domain: str | None) -> None:
    """Create users from CSV_FILE (display_name,mail_nickname[,password])."""
    from azlab.resources.users import create_users_from_csv, get_default_domain

    _, graph = _make_graph(ctx)
    results = create_users_from_csv(graph, csv_file, domain or get_default_domain(graph))
    _emit(results, ctx, ["user_principal_name", "status", "password", "error"])
    failed = sum(1 for r in results if r["status"] == "failed")
    click.echo(f"{len(results) - failed} created, {failed} failed.", err=True)
    if failed:
        sys.exit(1)


@user_group.command("list")
@click.option("--prefix", default=None, help="Only users whose display name starts with PREFIX.")
@click.pass_context
@_handle_client_errors
def user_list_command(ctx: click.Context, prefix: str | None) -> None:
    """List directory users."""
    from azlab.resources.users import list_users

    _, graph = _make_graph(ctx)
    _emit(list_users(graph, prefix), ctx)


@user_group.command("delete")
@click.argument("user")
@click.pass_context
@_handle_client_errors
def user_delete_command(ctx: click.Context, user: str) -> None:
    """Delete USER (object id or user principal name)."""
    from azlab.resources.users import delete_user

    _, graph = _make_graph(ctx)
    _confirm(ctx, f"Delete user '{user}'?")
    delete_user(graph, user)
    _emit({"user": user, "status": "Deleted"}, ctx)


# ---------------------------------------------------------------------------
# tag
# ---------------------------------------------------------------------------

@cli.group("tag")
def tag_group() -> None:
    """Resource tags."""


@tag_group.command("apply")
@click.argument("resource_id")
@click.option("--tag", "tags", multiple=True, required=True, metavar="KEY=VALUE",
              help="Tag to apply (repeatable).")
@click.option("--operation", type=click.Choice(["Merge", "Replace", "Delete"]),
              default="Merge", show_default=True)
@click.pass_context
@_handle_client_errors
def tag_apply_command(ctx: click.Context, resource_id: str, tags: tuple[str, ...],
                      operation: str) -> None:
    """Apply tags to RESOURCE_ID (any resource, group or subscription id)."""
    from azlab.resources.tags import apply_tags, parse_tags

    _, client = _make_client(ctx)
    if operation == "Replace":
        _confirm(ctx, f"Replace ALL tags on '{resource_id}'?")
    current = apply_tags(client, resource_id, parse_tags(tags), operation)
    _emit({"resource_id": resource_id, "tags": current}, ctx)


# ---------------------------------------------------------------------------
# report
# ---------------------------------------------------------------------------

@cli.group("report")
def report_group() -> None:
    """Audit and inventory reports."""


@report_group.command("rbac")
@click.option("--scope", default=None, help="Scope to audit (defaults to the subscription).")
@click.option("--at-scope-only", is_flag=True, default=False,
              help="Exclude assignments inherited from parent scopes.")
@click.option("--no-principals", is_flag=True, default=False,
              help="Skip the directory lookup of principal names.")
@click.pass_context
@_handle_client_errors
def report_rbac_command(ctx: click.Context, scope: str | None, at_scope_only: bool,
                        no_principals: bool) -> None:
    """RBAC audit: role assignments joined with roles and principals."""
    from azlab.client import GraphClient
    from azlab.reports.rbac import get_rbac_report

    config, client = _make_client(ctx)
    graph = None
    if not no_principals:
        if config.graph_token:
            graph = GraphClient(token=config.graph_token)
        else:
            logger.warning("No Graph token configured; principal names will not be resolved")

    report = get_rbac_report(client, scope, graph, include_inherited=not at_scope_only)
    _emit(report, ctx, ["principal_name", "principal_type", "role_name", "scope_level",
                        "scope", "privileged", "orphaned", "created_on"])


@report_group.command("rightsize")
@_rg_filter_option
@click.option("--days", type=int, default=14, show_default=True,
              help="Metrics window in days.")
@click.pass_context
@_handle_client_errors
def report_rightsize_command(ctx: click.Context, resource_group: str | None, days: int) -> None:
    """Right-sizing recommendations from CPU and memory utilization."""
    from azlab.reports.rightsizing import get_rightsizing_report

    _, client = _make_client(ctx)
    report = get_rightsizing_report(client, resource_group, days)
    _emit(report, ctx, ["vm_name", "resource_group", "current_size", "avg_cpu", "peak_cpu",
                        "avg_memory_used", "tier", "action", "recommended_size"])


@report_group.command("inventory")
@_rg_filter_option
@click.option("--required-tag", "required_tags", multiple=True,
              help="Tag every resource must carry (repeatable; defaults to the config list).")
@click.pass_context
@_handle_client_errors
def report_inventory_command(ctx: click.Context, resource_group: str | None,
                             required_tags: tuple[str, ...]) -> None:
    """Resource inventory with tag compliance."""
    from azlab.reports.inventory import get_inventory_report

    config, client = _make_client(ctx)
    report = get_inventory_report(client, resource_group,
                                  required_tags or config.required_tags)
    _emit(report, ctx, ["name", "type", "resource_group", "location", "missing_tags"])
