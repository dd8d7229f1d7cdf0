# cli.py

import argparse
import json
import sys
import time

from PIL import Image
from tqdm import tqdm

from simscan.config import SystemConfig
from simscan.core.analyzer import Analyzer, ScanRequest
from simscan.core.cache import Cache
from simscan.core.errors import InvalidPath, InvalidRequest
from simscan.core.hasher import HashType
from simscan.core.scan_service import COMPLETED, FAILED, NOT_FOUND, ScanService
from simscan.utils.file_utils import format_file_size
from simscan.utils.logging_config import setup_logging


def build_service(config: SystemConfig, n_workers: int = None) -> ScanService:
    analyzer = Analyzer(
        cache=Cache(),
        n_workers=n_workers or config.n_workers,
        extensions=config.scan.image_extensions
    )
    return ScanService(analyzer, job_workers=config.job_workers)


def wait_for_result(service: ScanService, job_key: str, show_progress: bool = True,
                    poll_interval: float = 0.1):
    """Follow a job's progress feed, then poll until it finishes"""
    stream = service.subscribe(job_key)
    if stream is not None:
        with tqdm(total=100, desc="Computing hashes", unit="%",
                  disable=not show_progress) as bar:
            for progress in stream:
                bar.update(progress - bar.n)

    while True:
        status = service.poll(job_key)
        if status.finished or status.status == NOT_FOUND:
            return status
        time.sleep(poll_interval)


def print_groups(result):
    """Print similarity groups to the console"""
    total_files = sum(len(group) for group in result.groups)
    print(f"\nFound {len(result.groups)} similar groups with {total_files} files "
          f"({result.hashed_files}/{result.total_files} images hashed, "
          f"{result.cache_hits} from cache)")

    for i, group in enumerate(result.groups, 1):
        print(f"\nGroup {i}:")
        for info in sorted(group, key=lambda f: f.path):
            print(f"  - {info.path} ({format_file_size(info.size)})")


def scan_command(args):
    """Find groups of similar images in a directory"""
    config = SystemConfig.load(args.config)
    setup_logging(args.log_level or config.log_level, config.log_dir)
    Image.MAX_IMAGE_PIXELS = config.max_image_pixels

    try:
        request = ScanRequest(
            path=args.directory,
            dist=args.distance if args.distance is not None else config.scan.distance,
            hash_type=args.hash_type or config.scan.hash_type,
            hash_size=args.hash_size or config.scan.hash_size
        )
    except InvalidRequest as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(f"Scanning for similar images in: {request.path}")

    with build_service(config, args.workers) as service:
        try:
            job_key = service.submit(request)
        except InvalidPath as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

        status = wait_for_result(service, job_key, show_progress=not args.quiet)

    if status.status == FAILED:
        print(f"Scan failed: {status.reason}", file=sys.stderr)
        return 1
    if status.status != COMPLETED:
        print("Scan result was lost", file=sys.stderr)
        return 1

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(status.result.to_dict(), f, indent=2)
        print(f"\nResults saved to: {args.output}")
    else:
        print_groups(status.result)

    return 0


def init_config_command(args):
    """Write the default configuration file"""
    SystemConfig().save(args.path)
    print(f"Configuration written to: {args.path}")
    return 0


def main_cli(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog="simscan",
        description="Find visually similar images using perceptual hashing"
    )
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Scan command
    scan_parser = subparsers.add_parser('scan', help='Group similar images in a directory')
    scan_parser.add_argument('directory', help='Directory to scan')
    scan_parser.add_argument('-d', '--distance', type=int,
                             help='Maximum hash distance for two images to match')
    scan_parser.add_argument('-t', '--hash-type', choices=[t.value for t in HashType],
                             help='Perceptual hash algorithm')
    scan_parser.add_argument('-s', '--hash-size', type=int,
                             help='Hash resolution (N gives an NxN bit hash)')
    scan_parser.add_argument('-w', '--workers', type=int,
                             help='Number of hashing threads')
    scan_parser.add_argument('-o', '--output', help='Output JSON file for results')
    scan_parser.add_argument('-c', '--config', default='config.yaml',
                             help='Configuration file')
    scan_parser.add_argument('--log-level', help='Console log level')
    scan_parser.add_argument('-q', '--quiet', action='store_true',
                             help='Hide the progress bar')
    scan_parser.set_defaults(func=scan_command)

    # Config command
    config_parser = subparsers.add_parser('init-config', help='Write default configuration')
    config_parser.add_argument('path', nargs='?', default='config.yaml',
                               help='Where to write the configuration')
    config_parser.set_defaults(func=init_config_command)

    # Parse arguments
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    # Execute command
    return args.func(args)


def main():
    sys.exit(main_cli())


if __name__ == "__main__":
    main()
