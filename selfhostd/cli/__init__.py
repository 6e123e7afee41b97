import click
import coloredlogs, logging
import os, sys
import yaml

from selfhostd import modules
from selfhostd.hostd import hd

from .common import configured, handle_errors
from .module import module_group

logger = logging.getLogger(__name__)

coloredlogs.install(level='DEBUG' if os.environ.get("DEBUG") else 'INFO',
                    fmt='%(asctime)s %(levelname)s %(message)s', stream=sys.stdout)


@click.group()
@click.option("-c", "--config", "config_path", default=None,
              help="config file, relative to the project directory  [default: selfhostd.yaml]")
@click.option("-p", "--path", envvar="SELFHOSTD_ROOT", default=".", show_default=True, help="project directory")
@click.version_option(package_name="selfhostd")
def cli(config_path, path):
    hd.root = os.path.abspath(path)
    hd.config_path = config_path


@click.command(help="print the effective configuration, secrets masked")
@handle_errors
def config():
    data = configured().conf.model_dump(exclude={"spec"})
    for m in data["modules"]:
        m["secrets"] = {k: "********" for k in m["secrets"]}
    click.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


@click.command(name="modules", help="list available modules and their capabilities")
@handle_errors
def list_modules():
    conf = configured().conf
    capabilities = {
        "backup": modules.Backupable,
        "restore": modules.Restorable,
        "admin": modules.AdminCapable,
        "rollout": modules.Rollable,
    }
    for name, cls in modules.REGISTRY.items():
        supported = [c for c, base in capabilities.items() if issubclass(cls, base)]
        state = f"namespace {conf.get_module(name).namespace}" if conf.has_module(name) else "not configured"
        click.echo(f"{name:<10} {state:<28} {', '.join(supported) or '-'}")


@click.command(help="backup every configured module into one archive")
@click.option("-d", "--dest", default=None, help="directory for the archive  [default: backup_root]")
@handle_errors
def backup(dest):
    archive = configured().global_backup(dest)
    click.echo(archive)


cli.add_command(config)
cli.add_command(list_modules)
cli.add_command(backup)

for cls in modules.REGISTRY.values():
    cli.add_command(module_group(cls))
