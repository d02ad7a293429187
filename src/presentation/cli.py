"""Command line interface for processing datasets on a node."""
import sys
import argparse
import getpass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from domain.models import JobOptions, NodeInfo
from domain.exceptions import (
    AuthRequiredError,
    ConfigurationError,
    DomainException,
    UnauthorizedError,
)
from infrastructure.config import ConfigLoader, NodeRegistry
from infrastructure.nodeodm import NodeODMClient, fetch_public_nodes
from infrastructure.storage import LocalStorage
from application.orchestrator import build_runner
from shared.logging import configure_levels, get_logger

logger = get_logger(__name__)


def split_arguments(tokens: Sequence[str]) -> Tuple[List[str], List[Tuple[str, str]]]:
    """
    Separate input paths from task options.

    Existing files and directories are inputs. ``--name value`` and
    ``--name=value`` become options; a ``--name`` not followed by a value
    is a boolean option set to ``true``.
    """
    inputs: List[str] = []
    options: List[Tuple[str, str]] = []
    pending: Optional[str] = None

    for token in tokens:
        if Path(token).exists():
            inputs.append(token)
            continue

        if token.startswith('--'):
            if pending is not None:
                options.append((pending, 'true'))
            name, sep, value = token[2:].partition('=')
            if not name:
                raise ConfigurationError(f"Invalid option: {token}")
            if sep:
                options.append((name, value))
                pending = None
            else:
                pending = name
        elif pending is not None:
            options.append((pending, token))
            pending = None
        else:
            raise ConfigurationError(f"{token} is not a file, directory or option")

    if pending is not None:
        options.append((pending, 'true'))
    return inputs, options


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='odm-run',
        description="Process aerial images on a processing node",
        usage='%(prog)s [flags] <images|dirs>... [--<option> [value]]...',
        allow_abbrev=False
    )
    parser.add_argument('--node', '-n', help='Processing node to use (default: default)')
    parser.add_argument('--output', '-o', type=Path, help='Directory where to store processing results (default: ./output)')
    parser.add_argument('--parallel', '-p', type=int, help='Parallel upload/download connections (default: 5)')
    parser.add_argument('--config', type=Path, help='Config YAML file (default: ~/.odm.yaml)')
    parser.add_argument('--list-options', action='store_true', help="Show the node's processing options and exit")
    parser.add_argument('--username', '-u', default='', help='Username for nodes that require a login')
    parser.add_argument('--password', default='', help='Password for nodes that require a login')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose')
    parser.add_argument('--quiet', '-q', action='store_true', help='No progress bars, warnings and errors only')
    return parser


def prompt_credentials() -> Tuple[str, str]:
    """Ask for a username and password on the terminal."""
    username = ""
    while not username:
        username = input("Enter username: ").strip()

    password = ""
    while not password:
        password = getpass.getpass("Enter password: ")
    return username, password


def check_login(
    client: NodeODMClient,
    username: str = "",
    password: str = ""
) -> Tuple[NodeInfo, bool]:
    """
    Fetch node info, logging in first if the node requires a token.

    Returns the info and whether a new token was obtained.

    Raises:
        UnauthorizedError: Invalid stored token or failed login
    """
    try:
        return client.info(), False
    except UnauthorizedError as e:
        error = client.check_authentication(e)
        if not isinstance(error, AuthRequiredError):
            raise error from e

    client.try_login(username, password, prompt=prompt_credentials)
    try:
        info = client.info()
    except UnauthorizedError as e:
        raise client.check_authentication(e) from e
    return info, True


def print_options(client: NodeODMClient) -> None:
    for option in client.options():
        logger.info(f"--{option.name} {option.domain_label()}".rstrip())
        logger.info(option.help)
        logger.info("")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()

    parser = build_parser()
    args, extra = parser.parse_known_args(argv)
    configure_levels(verbose=args.verbose, quiet=args.quiet)

    try:
        loader = ConfigLoader(config_path=args.config)
        loader.initialize(fetch_public_nodes)
        config = loader.load(overrides={
            'node_name': args.node,
            'output_dir': args.output,
            'parallel_connections': args.parallel,
            'show_progress': False if args.quiet else None,
        })
        node = loader.resolve_node(config.node_name)

        client = NodeODMClient(node, timeout=config.request_timeout)
        info, logged_in = check_login(client, args.username, args.password)
        if logged_in:
            node = client.node
            if loader.store_node(config.node_name, node):
                logger.info(f"Saved token for {config.node_name}")

        if args.list_options:
            print_options(client)
            return 0

        inputs, option_pairs = split_arguments(extra)
        files = LocalStorage().collect_input_files(inputs)
        if not files:
            parser.print_usage()
            logger.error("No input images")
            return 1

        logger.info(f"Input files ({len(files)})")
        for file_path in files:
            logger.debug(f" * {file_path}")

        options = JobOptions.from_pairs(option_pairs)
        logger.debug(f"Options: {options.to_json()}")

        if info.max_images is not None and len(files) > info.max_images:
            raise ConfigurationError(
                f"{node} accepts at most {info.max_images} images, got {len(files)}"
            )

        runner = build_runner(
            node,
            poll_interval=config.poll_interval,
            show_progress=config.show_progress,
            gateway=client
        )
        runner.run(files, options, config.output_dir, config.parallel_connections)
        return 0

    except DomainException as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


def node_main(argv: Optional[Sequence[str]] = None) -> int:
    """Manage the node registry: list, add, remove, logout."""
    parser = argparse.ArgumentParser(prog='odm-node', description="Manage processing nodes")
    parser.add_argument('--config', type=Path, help='Config YAML file (default: ~/.odm.yaml)')
    sub = parser.add_subparsers(dest='action')

    sub.add_parser('list', help='List nodes')
    add = sub.add_parser('add', help='Add a node')
    add.add_argument('name')
    add.add_argument('url', help='http://hostname:port/?token=optional')
    remove = sub.add_parser('remove', aliases=['rm'], help='Remove a node')
    remove.add_argument('name')
    logout = sub.add_parser('logout', help='Forget the token of a node')
    logout.add_argument('name', nargs='?', default='default')

    args = parser.parse_args(argv)

    try:
        registry = NodeRegistry.load(args.config)

        if args.action == 'add':
            node = registry.add(args.name, args.url)
            logger.info(f"Added {args.name}: {node}")
        elif args.action in ('remove', 'rm'):
            if not registry.remove(args.name):
                logger.error(f"node: {args.name} does not exist")
                return 1
            logger.info(f"Removed {args.name}")
        elif args.action == 'logout':
            registry.logout(args.name)
            logger.info(f"Logged out of {args.name}")
        else:
            for name, node in sorted(registry.nodes.items()):
                logger.info(f"{name}: {node}")
        return 0

    except DomainException as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
