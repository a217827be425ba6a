"""
Command-line interface for treasure hunt operations.

Provides commands for initializing a project, republishing and pruning the
treasure configuration, scoring marker images and checking the server.
"""

import sys
import logging
import argparse
from pathlib import Path

from .errors import TreasureHuntError
from .hunt import TreasureHunt


def _configure_logging(hunt: TreasureHunt) -> None:
    level = logging.DEBUG if hunt.config.debug_logging else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')


def _load(config_path) -> TreasureHunt:
    hunt = TreasureHunt(Path(config_path) if config_path else None)
    _configure_logging(hunt)
    return hunt


def init_project() -> None:
    """Initialize a new treasure hunt project."""
    parser = argparse.ArgumentParser(
        description="Initialize a new treasure hunt project"
    )
    parser.add_argument(
        '--directory',
        '-d',
        default='.',
        help='Project directory (default: current directory)'
    )
    parser.add_argument(
        '--server-url',
        '-s',
        help='Base URL of the treasure server'
    )

    args = parser.parse_args(sys.argv[2:])

    project_dir = Path(args.directory).resolve()
    print(f"Initializing treasure hunt project in {project_dir}...")

    hunt = TreasureHunt.initialize(project_dir, args.server_url)

    print(f"✓ Created project structure")
    print(f"✓ Saved configuration to {hunt.config_manager.config_path}")
    if not args.server_url:
        print("  No server URL set; treasures will only be published locally")
    print(f"\nNext steps:")
    print(f"  1. Check the server: treasure-hunt check-server")
    print(f"  2. Start the web app and hide some treasures")


def publish_treasures() -> None:
    """Republish the local configuration to the server and public mirror."""
    parser = argparse.ArgumentParser(
        description="Republish the local treasure configuration"
    )
    parser.add_argument('--config', '-c', help='Path to config file')
    args = parser.parse_args(sys.argv[2:])

    hunt = _load(args.config)
    try:
        result = hunt.republish()
    except (FileNotFoundError, TreasureHuntError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(f"Published {result.document.total_treasures} treasure(s)")
    for step, status in (('local', result.local), ('remote', result.remote), ('mirror', result.mirror)):
        detail = f" ({status.message})" if status.message else ""
        print(f"  {step}: {status.status.value}{detail}")

    if not result.succeeded:
        sys.exit(1)


def delete_treasure() -> None:
    """Delete a treasure by image name."""
    parser = argparse.ArgumentParser(description="Delete a treasure")
    parser.add_argument('image_name', help='imageName of the treasure to delete')
    parser.add_argument('--file-name', help='Stored asset name (default: from the record)')
    parser.add_argument('--config', '-c', help='Path to config file')
    args = parser.parse_args(sys.argv[2:])

    hunt = _load(args.config)
    try:
        result = hunt.delete_treasure(args.image_name, args.file_name)
    except TreasureHuntError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(f"✓ Removed {result.image_name}")
    print(f"  Image deleted on server: {result.image_delete.status.value}")
    print(f"  Server configuration updated: {result.publish.remote.status.value}")
    if result.diverged:
        print("  Warning: local and server copies differ; run 'treasure-hunt publish' when online")


def validate_image() -> None:
    """Score an image with the marker quality validator."""
    parser = argparse.ArgumentParser(description="Score a marker image")
    parser.add_argument('image', help='Image file to evaluate')
    parser.add_argument('--config', '-c', help='Path to config file')
    args = parser.parse_args(sys.argv[2:])

    hunt = _load(args.config)
    threshold = hunt.config.validator.min_validation_score
    try:
        outcome = hunt.validate_image(args.image)
    except (FileNotFoundError, TreasureHuntError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    verdict = "PASS" if outcome.passes(threshold) else "FAIL"
    print(f"Score: {outcome.score} (threshold {threshold}) -> {verdict}")
    if not outcome.verified:
        print(f"  Unverified: {outcome.detail}")
    if verdict == "FAIL":
        sys.exit(2)


def check_server() -> None:
    """Report whether the treasure server and its upload endpoint respond."""
    parser = argparse.ArgumentParser(description="Check the treasure server")
    parser.add_argument('--config', '-c', help='Path to config file')
    args = parser.parse_args(sys.argv[2:])

    hunt = _load(args.config)
    try:
        report = hunt.check_server()
    except TreasureHuntError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(report.server_result)
    print(report.upload_result)
    if not report.server_reachable:
        sys.exit(1)


def list_treasures() -> None:
    """Print the treasures in the local configuration."""
    parser = argparse.ArgumentParser(description="List published treasures")
    parser.add_argument('--config', '-c', help='Path to config file')
    args = parser.parse_args(sys.argv[2:])

    hunt = _load(args.config)
    try:
        treasures = hunt.list_treasures()
    except TreasureHuntError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    if not treasures:
        print("No treasures published")
        return

    print(f"{len(treasures)} treasure(s):")
    for record in treasures:
        game = " [physical game]" if record.has_physical_game else ""
        flag = "" if record.verified else " (unverified)"
        print(f"  {record.clue_index:>3}  {record.image_name}  "
              f"({record.latitude:.6f}, {record.longitude:.6f}){game}{flag}")


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Treasure hunt operations",
        usage="""treasure-hunt <command> [<args>]

Available commands:
   init          Initialize a new project
   publish       Republish the local treasure configuration
   delete        Delete a treasure by image name
   validate      Score a marker image
   check-server  Check the treasure server connection
   list          List published treasures
"""
    )
    parser.add_argument('command', help='Command to run')

    args = parser.parse_args(sys.argv[1:2])

    commands = {
        'init': init_project,
        'publish': publish_treasures,
        'delete': delete_treasure,
        'validate': validate_image,
        'check-server': check_server,
        'list': list_treasures,
    }

    if args.command not in commands:
        print(f"Error: Unknown command '{args.command}'")
        parser.print_help()
        sys.exit(1)

    commands[args.command]()


if __name__ == '__main__':
    main()
