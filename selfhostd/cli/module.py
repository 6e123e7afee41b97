import click
import logging

from selfhostd.hostd import hd
from selfhostd.modules import AdminCapable, Backupable, Restorable, Rollable, ROLLOUT_OPERATIONS

from .common import configured, handle_errors

logger = logging.getLogger(__name__)


def module_group(cls) -> click.Group:
    """
    command group for one module class, capability commands are added
    only when the class supports them
    """

    @click.group(name=cls.name, help=f"manage {cls.title}")
    def group():
        pass

    def get_module():
        return configured().get_module(cls.name)

    @group.command(help="render resource manifests into the configs directory")
    @handle_errors
    def generate():
        for path in get_module().generate(hd):
            click.echo(path)

    @group.command(help="create all resources in the cluster")
    @handle_errors
    def apply():
        get_module().apply(hd)

    @group.command(help="delete all resources from the cluster")
    @handle_errors
    def clean():
        get_module().clean(hd)

    @group.command(help="show resources and pods")
    @handle_errors
    def status():
        for line in get_module().status(hd).render():
            click.echo(line)

    if issubclass(cls, Backupable):
        @group.command(help="backup data, into DEST_DIR/<module> when given")
        @click.argument("dest_dir", required=False)
        @handle_errors
        def backup(dest_dir):
            manifest = get_module().backup(hd, dest_dir=dest_dir)
            click.echo(manifest.archive_path)

    if issubclass(cls, Restorable):
        @group.command(help="restore from a backup TIMESTAMP (YYYYMMDD_HHMMSS) or 'latest'")
        @click.argument("timestamp")
        @handle_errors
        def restore(timestamp):
            get_module().restore(hd, timestamp)

    if issubclass(cls, AdminCapable):
        @group.command(name="add-db", help="create database NAME owned by USER")
        @click.argument("name")
        @click.argument("user")
        @click.argument("password")
        @handle_errors
        def add_db(name, user, password):
            get_module().add_db(hd, name, user, password)

        @group.command(name="remove-db", help="drop database NAME and role USER")
        @click.argument("name")
        @click.argument("user")
        @handle_errors
        def remove_db(name, user):
            get_module().remove_db(hd, name, user)

    if issubclass(cls, Rollable):
        @group.command(help=f"kubectl rollout of the deployment: {', '.join(ROLLOUT_OPERATIONS)}")
        @click.argument("operation")
        @handle_errors
        def rollout(operation):
            result = get_module().rollout(hd, operation)
            if result.output:
                click.echo(result.output, nl=False)
            logger.info(f"rollout {operation} of {cls.name} completed")

    return group
