"""
CLI - command line interface
"""

import argparse
import json
import sys
import logging
from typing import Any, Dict, List, Optional

from .builder import Configs, DockerImageBuilder, new_client
from .settings_manager import SettingsManager

logger = logging.getLogger(__name__)

SIZE_UNITS = ['B', 'kB', 'MB', 'GB', 'TB', 'PB']


def format_size(size: int) -> str:
    """Human readable size with decimal units (e.g. 72.9MB)"""
    value = float(size)
    for unit in SIZE_UNITS:
        if value < 999.5 or unit == SIZE_UNITS[-1]:
            return f"{value:.3g}{unit}"
        value /= 1000
    return f"{size}B"


def parse_key_values(items: Optional[List[str]], allow_bare: bool = False) -> Dict[str, Optional[str]]:
    """
    Parse repeated KEY=VALUE options

    Args:
        items: Raw option values
        allow_bare: Accept KEY without '=' (value None)

    Returns:
        Dict of parsed values
    """
    result = {}
    for item in items or []:
        if '=' in item:
            key, value = item.split('=', 1)
        elif allow_bare:
            key, value = item, None
        else:
            raise ValueError(f"Expected KEY=VALUE, got '{item}'")
        if not key:
            raise ValueError(f"Empty key in '{item}'")
        result[key] = value
    return result


class ImageBuilderCLI:
    """Image builder CLI interface"""

    def __init__(self, builder: DockerImageBuilder):
        self.builder = builder

    @staticmethod
    def print_message(message: Dict[str, Any]):
        """Show build output and progress messages"""
        stream = message.get('stream')
        if isinstance(stream, str):
            text = stream.rstrip()
            if text:
                logger.info(text)
            return

        status = message.get('status')
        if status and not message.get('progressDetail'):
            layer = message.get('id')
            logger.info(f"{layer}: {status}" if layer else status)

    def build(self, context: str, image: str, build_args: Dict[str, Optional[str]]) -> bool:
        """Build image from context directory"""
        image_id = self.builder.build(context, image, build_args, on_message=self.print_message)
        if image_id:
            logger.info(f"✓ Built {image} ({image_id})")
        else:
            logger.info(f"✓ Built {image}")
        return True

    def pull(self, image: str) -> bool:
        """Pull image"""
        self.builder.pull(image, on_message=self.print_message)
        logger.info(f"✓ Pulled {image}")
        return True

    def push(self, image: str) -> bool:
        """Push image"""
        self.builder.push(image, on_message=self.print_message)
        logger.info(f"✓ Pushed {image}")
        return True

    def list_images(self, filters: Dict[str, Optional[str]], as_json: bool = False):
        """List images"""
        images = self.builder.list(filters)

        if as_json:
            print(json.dumps([image.to_dict() for image in images], indent=2))
            return

        if not images:
            logger.info("No images found")
            return

        # Header
        print(f"{'REPOSITORY':<40} {'TAG':<20} {'IMAGE ID':<15} {'SIZE':<10}")
        print("-" * 88)

        for image in images:
            references = image.repo_tags or ['<none>:<none>']
            for reference in references:
                repository, _, tag = reference.rpartition(':')
                print(f"{repository:<40} {tag:<20} {image.short_id:<15} {format_size(image.size):<10}")

        print(f"\nTotal: {len(images)}")

    def tag(self, image: str, target: str) -> bool:
        """Tag image"""
        self.builder.tag(image, target)
        logger.info(f"✓ Tagged {image} as {target}")
        return True

    def rmi(self, image: str) -> bool:
        """Remove image"""
        self.builder.rmi(image)
        logger.info(f"✓ Removed {image}")
        return True


def load_configs(args: argparse.Namespace, settings: SettingsManager) -> Configs:
    """Settings file and environment, overridden by command line options"""
    cfg = Configs.from_settings(settings)
    if args.host:
        cfg.host = args.host
    if args.registry:
        cfg.registry = args.registry
    if args.user:
        cfg.user = args.user
    if args.password:
        cfg.passwd = args.password
    return cfg


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Docker Image Builder - build, push and manage images',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Usage examples:
  %(prog)s build --context ./app --image 127.0.0.1/public/app:master
  %(prog)s push --image 127.0.0.1/public/app:master
  %(prog)s pull --image ubuntu:16.04
  %(prog)s images --filter reference=ubuntu
  %(prog)s tag --image ubuntu:16.04 --target registry.example.com/ubuntu:1
  %(prog)s rmi --image registry.example.com/ubuntu:1
"""
    )

    parser.add_argument(
        'action',
        choices=['build', 'pull', 'push', 'images', 'tag', 'rmi'],
        help='Action'
    )

    # Image parameters
    parser.add_argument('--image', help='Image reference')
    parser.add_argument('--target', help='New reference for tag')
    parser.add_argument('--context', default='.', help='Build context directory (default: .)')
    parser.add_argument('--build-arg', action='append', dest='build_args', metavar='KEY[=VALUE]',
                        help='Build argument (repeatable)')
    parser.add_argument('--filter', action='append', dest='filters', metavar='KEY=VALUE',
                        help='Image list filter (repeatable)')
    parser.add_argument('--json', action='store_true', help='Print image list as JSON')

    # Connection parameters
    parser.add_argument('--host', help='Docker daemon address, e.g. tcp://127.0.0.1:2376')
    parser.add_argument('--registry', help='Registry for credentials')
    parser.add_argument('--user', help='Registry user')
    parser.add_argument('--password', help='Registry password')
    parser.add_argument('--settings', help='Settings file path')

    parser.add_argument('--verbose', action='store_true', help='Debug output')
    return parser


def run_cli(argv: Optional[List[str]] = None):
    """Start CLI application"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.action in ('build', 'pull', 'push', 'tag', 'rmi') and not args.image:
        parser.error(f"{args.action} requires --image")
    if args.action == 'tag' and not args.target:
        parser.error("tag requires --target")

    settings = SettingsManager(args.settings)
    level = 'DEBUG' if args.verbose else str(settings.get('log_level', 'INFO')).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format='%(message)s')

    try:
        cli = ImageBuilderCLI(new_client(load_configs(args, settings)))

        if args.action == 'build':
            cli.build(args.context, args.image, parse_key_values(args.build_args, allow_bare=True))

        elif args.action == 'pull':
            cli.pull(args.image)

        elif args.action == 'push':
            cli.push(args.image)

        elif args.action == 'images':
            cli.list_images(parse_key_values(args.filters), as_json=args.json)

        elif args.action == 'tag':
            cli.tag(args.image, args.target)

        elif args.action == 'rmi':
            cli.rmi(args.image)

    except KeyboardInterrupt:
        logger.info("\n\nInterrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run_cli()
