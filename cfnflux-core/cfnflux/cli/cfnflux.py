import logging
import signal
import threading
import traceback
from typing import List, Optional, Tuple

import click

from cfnflux import config
from cfnflux.constants import VERSION

LOG = logging.getLogger(__name__)


class CLIError(click.ClickException):
    def format_message(self) -> str:
        return click.style(f"Error: {self.message}", fg="red")

    def show(self, file=None) -> None:
        click.echo(self.format_message(), file=file, err=file is None)


class CfnFluxCliGroup(click.Group):
    """
    The top-level ``cfnflux`` command group. Click exceptions are passed on as they are, all other exceptions are
    wrapped in a ``CLIError`` for a unified error message.
    """

    def invoke(self, ctx: click.Context):
        try:
            return super(CfnFluxCliGroup, self).invoke(ctx)
        except click.exceptions.Exit:
            raise
        except click.ClickException:
            if ctx and ctx.params.get("debug"):
                click.echo(traceback.format_exc())
            raise
        except Exception as e:
            if ctx and ctx.params.get("debug"):
                click.echo(traceback.format_exc())
            raise CLIError(str(e)) from e


def _controller_options(func):
    """Options shared by all commands that reconcile stacks. They override the environment configuration."""
    options = [
        click.option(
            "-f",
            "--filename",
            "filenames",
            multiple=True,
            required=True,
            type=click.Path(exists=True, dir_okay=False),
            help="YAML manifests with CloudFormationStack resources and their sources",
        ),
        click.option("--region", help="Default AWS region of the stacks"),
        click.option("--endpoint-url", help="Endpoint override for all AWS clients"),
        click.option("--template-bucket", help="S3 bucket where templates are uploaded"),
        click.option("--stack-tags", help="Tags applied to all stacks, as k=v,k2=v2"),
        click.option("--events-addr", help="URL of the events receiver"),
        click.option(
            "--no-cross-namespace-refs",
            is_flag=True,
            help="Block references to sources in other namespaces",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _apply_overrides(
    region: Optional[str],
    endpoint_url: Optional[str],
    template_bucket: Optional[str],
    stack_tags: Optional[str],
    events_addr: Optional[str],
    no_cross_namespace_refs: bool,
) -> None:
    from cfnflux.utils.strings import parse_key_value_pairs

    if region:
        config.AWS_REGION = region
    if endpoint_url:
        config.AWS_ENDPOINT_URL = endpoint_url
    if template_bucket:
        config.TEMPLATE_BUCKET = template_bucket
    if stack_tags:
        try:
            config.STACK_TAGS = parse_key_value_pairs(stack_tags)
        except ValueError as e:
            raise CLIError(f"invalid stack tags: {e}")
    if events_addr:
        config.EVENTS_ADDR = events_addr
    if no_cross_namespace_refs:
        config.NO_CROSS_NAMESPACE_REFS = no_cross_namespace_refs


def _load_store(filenames: Tuple[str, ...]):
    from cfnflux.state.store import InvalidManifestError, ObjectStore, load_manifest_files

    try:
        objects = load_manifest_files(filenames)
    except InvalidManifestError as e:
        raise CLIError(str(e))

    store = ObjectStore()
    for obj in objects:
        store.apply(obj)
    if not store.list_stacks():
        raise CLIError("no CloudFormationStack found in the given manifests")
    return store


def _create_reconciler(store):
    from cfnflux.aws.connect import ClientFactory
    from cfnflux.clients.cloudformation import CloudFormation
    from cfnflux.clients.s3 import S3
    from cfnflux.controllers.reconciler import CloudFormationStackReconciler
    from cfnflux.events import EventRecorder

    clients = ClientFactory(endpoint_url=config.AWS_ENDPOINT_URL, default_region=config.AWS_REGION)
    return CloudFormationStackReconciler(
        store,
        CloudFormation(clients),
        S3(clients),
        recorder=EventRecorder(config.EVENTS_ADDR),
        template_bucket=config.TEMPLATE_BUCKET,
        stack_tags=config.STACK_TAGS,
    )


@click.group(
    name="cfnflux",
    help="Reconciles AWS CloudFormation stacks with templates from Flux sources",
    cls=CfnFluxCliGroup,
    context_settings={
        "help_option_names": ["-h", "--help"],
        "show_default": True,
    },
)
@click.version_option(
    VERSION,
    "--version",
    "-v",
    message="cfnflux %(version)s",
    help="Show the version of cfnflux and exit",
)
@click.option("-d", "--debug", is_flag=True, help="Enable debug logging")
def cfnflux(debug: bool) -> None:
    from cfnflux.logging.setup import setup_logging_from_config

    if debug:
        config.DEBUG = True
    setup_logging_from_config()


@cfnflux.command(name="reconcile", short_help="Reconcile all stacks once")
@_controller_options
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, writable=True),
    help="Write the resulting objects, including their status, to this file",
)
def cmd_reconcile(
    filenames: Tuple[str, ...],
    region: Optional[str],
    endpoint_url: Optional[str],
    template_bucket: Optional[str],
    stack_tags: Optional[str],
    events_addr: Optional[str],
    no_cross_namespace_refs: bool,
    output: Optional[str],
) -> None:
    """
    Runs a single reconcile of every CloudFormationStack in the given manifests, in namespace and name order,
    and prints the resulting Ready condition of each stack.
    """
    from cfnflux.controllers.status import readiness_summary
    from cfnflux.state.store import dump_objects

    _apply_overrides(
        region, endpoint_url, template_bucket, stack_tags, events_addr, no_cross_namespace_refs
    )
    store = _load_store(filenames)
    reconciler = _create_reconciler(store)

    failed: List[str] = []
    for stack in store.list_stacks():
        result = reconciler.reconcile(stack.metadata.namespace, stack.metadata.name)
        if result.error:
            failed.append(stack.key)

        current = store.find_stack(stack.metadata.namespace, stack.metadata.name)
        if current is None:
            click.echo(f"{stack.key}: deleted")
        else:
            click.echo(f"{stack.key}: {readiness_summary(current)}")

    if output:
        with open(output, "w") as f:
            f.write(dump_objects(store.list_stacks()))

    if failed:
        raise CLIError(f"reconcile failed for {', '.join(failed)}")


@cfnflux.command(name="run", short_help="Continuously reconcile all stacks")
@_controller_options
@click.option("--concurrent", type=int, help="Maximum number of concurrent reconciles")
def cmd_run(
    filenames: Tuple[str, ...],
    region: Optional[str],
    endpoint_url: Optional[str],
    template_bucket: Optional[str],
    stack_tags: Optional[str],
    events_addr: Optional[str],
    no_cross_namespace_refs: bool,
    concurrent: Optional[int],
) -> None:
    """
    Reconciles every CloudFormationStack in the given manifests and keeps reconciling them at their intervals until
    the process is interrupted.
    """
    from cfnflux.runtime.manager import Manager

    _apply_overrides(
        region, endpoint_url, template_bucket, stack_tags, events_addr, no_cross_namespace_refs
    )
    if concurrent:
        config.CONCURRENT = concurrent

    store = _load_store(filenames)
    reconciler = _create_reconciler(store)
    manager = Manager(reconciler.reconcile, concurrent=config.CONCURRENT)

    stopped = threading.Event()

    def _stop(signum, frame):
        LOG.info("Received signal %s, shutting down", signum)
        stopped.set()

    signal.signal(signal.SIGTERM, _stop)

    manager.start()
    for stack in store.list_stacks():
        manager.enqueue(stack.metadata.namespace, stack.metadata.name)

    try:
        while not stopped.wait(timeout=1):
            pass
    except KeyboardInterrupt:
        LOG.info("Interrupted, shutting down")
    finally:
        # in-flight reconciles cannot be cancelled, they are completed before exiting
        manager.close(wait=True)

