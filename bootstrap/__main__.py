# bootstrap/__main__.py
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from bootstrap import __version__
from bootstrap.config.host_config import HostConfig
from bootstrap.exceptions import ConfigurationError, ManifestParseError
from bootstrap.host import boot_with_settings, load_settings
from bootstrap.processors.manifest_processor import ManifestProcessor

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='python -m bootstrap', description='Manifold plugin host')
    parser.add_argument('--root', default='.', help='host root containing configs/, frameworks/ and modules/')
    parser.add_argument('--env', default=None, help='configuration environment (configs/<env>/host_config.yaml)')
    parser.add_argument('--debug', action='store_true', help='force debug_mode on')
    parser.add_argument('--validate', metavar='MANIFEST', help='parse one manifest, print its descriptor and exit')
    parser.add_argument('--json', action='store_true', help='print the boot report as JSON')
    parser.add_argument('--version', action='store_true', help='print the host version and exit')
    return parser


def _configure_logging(level: str, fmt: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=fmt)


def _validate(manifest: str) -> int:
    try:
        descriptor = ManifestProcessor().parse_file(Path(manifest))
    except ManifestParseError as exc:
        print(f'✗ FAILED ({exc.reason.value}): {exc}')
        return 1
    print('✓ PASSED')
    print(json.dumps(descriptor.summary(), indent=2))
    return 0


async def main_cli_entry(argv=None) -> int:
    args = _build_parser().parse_args(argv)

    if args.version:
        print(f'Manifold host {__version__}')
        return 0

    if args.validate:
        _configure_logging('WARNING', '%(levelname)s - %(message)s')
        return _validate(args.validate)

    config = HostConfig.from_params(args.root, env=args.env, debug=args.debug)
    try:
        settings = await load_settings(config)
    except ConfigurationError as exc:
        _configure_logging('ERROR', '%(levelname)s - %(message)s')
        logger.error('Fatal configuration error: %s', exc)
        return 1
    _configure_logging('DEBUG' if settings.debug_mode else settings.logging.level, settings.logging.format)

    context, report = await boot_with_settings(settings, config.root)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(f'\n=== Boot Summary (Run ID: {report.run_id}) ===')
        print(f'Load requests issued: {report.requests_issued} {report.counts}')
        print(f'Registered components: {len(context.registry)}')
        for descriptor in context.registry.all():
            print(f'  - {descriptor.name:<28} {descriptor.kind.value:<16} {descriptor.version}')
        if report.failures:
            print(f'Failures: {len(report.failures)}')
            for failure in report.failures:
                print(f'  ✗ {failure.name or failure.manifest_path}: {failure.reason.value if failure.reason else "?"}'
                      f' {failure.message}')
    return 0


def main() -> None:
    sys.exit(asyncio.run(main_cli_entry()))


if __name__ == '__main__':
    main()
