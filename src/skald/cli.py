"""
Command-line interface for the Skald package manager
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from . import __version__
from .errors import SkaldError
from .package_manager import PackageManager


def split_package_spec(spec: str) -> Tuple[str, Optional[str]]:
    """Split "name@version" into its parts; the version is optional"""
    name, sep, version = spec.partition("@")
    return name, (version or None) if sep else None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skald",
        description="Skald package manager"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only show warnings and errors")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new package")
    init_parser.add_argument("--name", help="Package name")
    init_parser.add_argument("--version", default="0.1.0", help="Initial version")
    init_parser.add_argument("--description", help="Package description")
    init_parser.add_argument("--author", help="Package author")
    init_parser.add_argument("--main", default="src/main.sk", help="Main entry point")

    # install command
    install_parser = subparsers.add_parser("install", help="Install packages")
    install_parser.add_argument("package", nargs="?", help="Package to install, as name or name@version")
    install_parser.add_argument("--global", "-g", dest="global_", action="store_true",
                                help="Install into the shared system-wide directory")
    save_group = install_parser.add_mutually_exclusive_group()
    save_group.add_argument("--save-dev", action="store_true",
                            help="Add to dev dependencies")
    save_group.add_argument("--no-save", dest="save", action="store_false", default=True,
                            help="Don't add to dependencies")

    # uninstall command
    uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall packages")
    uninstall_parser.add_argument("package", nargs="?",
                                  help="Package to remove, as name or name@version")
    uninstall_parser.add_argument("--global", "-g", dest="global_", action="store_true",
                                  help="Remove from the shared system-wide directory")
    uninstall_parser.add_argument("--no-save", dest="save", action="store_false",
                                  default=True, help="Don't remove from dependencies")

    # list command
    list_parser = subparsers.add_parser("list", help="List installed packages")
    list_parser.add_argument("--global", "-g", dest="global_", action="store_true",
                             help="List globally installed packages")

    # search command
    search_parser = subparsers.add_parser("search", help="Search for packages")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", type=int, default=20,
                               help="Maximum results to show")

    # info command
    info_parser = subparsers.add_parser("info", help="Show package details")
    info_parser.add_argument("package", nargs="?", help="Package, as name or name@version")

    # publish command
    publish_parser = subparsers.add_parser("publish", help="Publish a package")
    publish_parser.add_argument("--path", type=Path, default=None,
                                help="Package directory")

    subparsers.add_parser("login", help="Authenticate with the registry")
    subparsers.add_parser("logout", help="Remove stored credentials")

    # cache command
    cache_parser = subparsers.add_parser("cache", help="Manage package cache")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command")
    cache_subparsers.add_parser("clean", help="Remove cached downloads")

    subparsers.add_parser("version", help="Show the package manager version")

    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(args)

    configure_logging(args.verbose, args.quiet)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "version":
        print(f"skald {__version__}")
        return 0

    if args.command == "cache" and args.cache_command != "clean":
        print("Usage: skald cache clean")
        return 1

    try:
        pm = PackageManager()

        if args.command == "init":
            kwargs = {"version": args.version, "main": args.main}
            if args.name:
                kwargs["name"] = args.name
            if args.description:
                kwargs["description"] = args.description
            if args.author:
                kwargs["authors"] = [args.author]

            pm.init(**kwargs)

        elif args.command == "install":
            if args.package:
                name, version = split_package_spec(args.package)
                pm.install(
                    name,
                    version,
                    global_=args.global_,
                    save=args.save and not args.save_dev,
                    save_dev=args.save_dev
                )
            else:
                pm.install()

        elif args.command == "uninstall":
            if args.package:
                name, version = split_package_spec(args.package)
                pm.uninstall(name, version, global_=args.global_, save=args.save)
            else:
                pm.uninstall()

        elif args.command == "list":
            pm.list(global_=args.global_)

        elif args.command == "search":
            pm.search(args.query, args.limit)

        elif args.command == "info":
            if args.package:
                pm.info(*split_package_spec(args.package))
            else:
                pm.info()

        elif args.command == "publish":
            pm.publish(args.path)

        elif args.command == "login":
            username = input("Username: ")
            password = getpass.getpass("Password: ")
            pm.login(username, password)

        elif args.command == "logout":
            pm.logout()

        elif args.command == "cache":
            pm.cache_clean()

        return 0

    except KeyboardInterrupt:
        print("\nOperation cancelled")
        return 130
    except (SkaldError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
