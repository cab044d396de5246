#!/usr/bin/env python3
"""
CDM Util command line.

Runs the CDM Util operations outside a function host. Settings come from the
environment (optionally a ``.env`` file) and ``--header KEY=VALUE`` overrides,
exactly as request headers would supply them.

Usage:
    cdmutil ddl --header ManifestURL=https://acct.dfs.core.windows.net/fs/Tables/Tables.manifest.cdm.json
    cdmutil apply --header SQLEndpoint="Driver={ODBC Driver 18 for SQL Server};Server=..."
    cdmutil event event.json
    cdmutil create entities.json --header StorageAccount=acct --header RootFolder=fs --header LocalFolder=Tables/Finance
    cdmutil model-json --header LocalFolder=Tables/Finance
    cdmutil definitions --header TableList=CustTable,VendTable
"""

import argparse
import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import handlers
from .config import load_environment
from .constants import ExitCode
from .errors import (
    AuthenticationError,
    CDMUtilError,
    ConfigurationError,
    DDLGenerationError,
    ExecutionError,
    ManifestFormatError,
    ManifestNotFoundError,
    StorageError,
    UnsupportedTypeError,
)

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Setup logging configuration with fallback locations.

    If the requested log file cannot be opened, the system temp directory is
    tried, then the user's home directory, then console only.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path. If None, logs to console only.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers_list: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    actual_log_file = None

    if log_file:
        log_filename = os.path.basename(log_file) or "cdmutil.log"
        fallback_locations = [
            log_file,
            os.path.join(tempfile.gettempdir(), log_filename),
            os.path.join(Path.home(), log_filename),
        ]

        for fallback_path in fallback_locations:
            try:
                log_dir = os.path.dirname(fallback_path)
                if log_dir and not os.path.exists(log_dir):
                    os.makedirs(log_dir, exist_ok=True)

                handlers_list.append(logging.FileHandler(fallback_path, encoding='utf-8'))
                actual_log_file = fallback_path

                if fallback_path != log_file:
                    print(f"Note: Using fallback log file: {fallback_path}", file=sys.stderr)
                break
            except OSError as e:
                print(f"  Could not create log at {fallback_path}: {e}", file=sys.stderr)
                continue

        if not actual_log_file:
            print("Warning: Could not write log file to any location, logging to console only", file=sys.stderr)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers_list,
        force=True,
    )

    if actual_log_file:
        logger.info(f"Logging to: {actual_log_file}")


def parse_headers(values: Optional[List[str]]) -> Dict[str, str]:
    """Turn repeated ``KEY=VALUE`` arguments into an override mapping."""
    headers: Dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"Invalid --header '{item}', expected KEY=VALUE")
        headers[key.strip()] = value
    return headers


def load_json_argument(path: str) -> Any:
    """Load a JSON document from a file path, or stdin for ``-``."""
    try:
        if path == "-":
            return json.load(sys.stdin)
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"File not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in {path} at line {e.lineno}, column {e.colno}: {e.msg}"
        ) from e


def exit_code_for(error: CDMUtilError) -> ExitCode:
    """Map an error category to a process exit code."""
    if isinstance(error, ConfigurationError):
        return ExitCode.CONFIG_ERROR
    if isinstance(error, (ManifestNotFoundError, ManifestFormatError)):
        return ExitCode.MANIFEST_ERROR
    if isinstance(error, UnsupportedTypeError):
        return ExitCode.TYPE_ERROR
    if isinstance(error, DDLGenerationError):
        return ExitCode.GENERATION_ERROR
    if isinstance(error, ExecutionError):
        return ExitCode.EXECUTION_ERROR
    if isinstance(error, StorageError):
        return ExitCode.STORAGE_ERROR
    if isinstance(error, AuthenticationError):
        return ExitCode.AUTH_ERROR
    return ExitCode.ERROR


def _emit(result: Any, output: Optional[str]) -> None:
    text = json.dumps(result, indent=2)
    if output:
        with open(output, 'w', encoding='utf-8') as f:
            f.write(text)
        print(f"Output written to: {output}")
    else:
        print(text)


# ============================================================================
# Commands
# ============================================================================

def cmd_ddl(args, headers: Dict[str, str]) -> Any:
    """Generate DDL without executing it."""
    return handlers.manifest_to_sql_ddl(
        headers, app_directory=args.app_dir, local_root=args.local_root
    )


def cmd_apply(args, headers: Dict[str, str]) -> Any:
    """Generate and execute DDL."""
    return handlers.manifest_to_sql(
        headers,
        app_directory=args.app_dir,
        local_root=args.local_root,
        progress=not args.no_progress,
    )


def cmd_event(args, headers: Dict[str, str]) -> Any:
    """Process a storage event payload."""
    if headers:
        logger.warning("Event processing ignores --header overrides; using the environment")
    return handlers.cdm_to_synapse_view(
        load_json_argument(args.event_file),
        app_directory=args.app_dir,
        local_root=args.local_root,
    )


def cmd_create(args, headers: Dict[str, str]) -> Any:
    """Create a manifest from an entity list."""
    return handlers.create_manifest(
        headers, load_json_argument(args.body_file), local_root=args.local_root
    )


def cmd_model_json(args, headers: Dict[str, str]) -> Any:
    """Export a manifest as model.json."""
    return handlers.manifest_to_model_json(headers, local_root=args.local_root)


def cmd_definitions(args, headers: Dict[str, str]) -> Any:
    """Look up manifest definitions for a table list."""
    return handlers.get_manifest_definition(headers, artifacts_path=args.artifacts)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--header', '-H', action='append', metavar='KEY=VALUE',
                        help='Per-call setting override (repeatable)')
    common.add_argument('--env-file', help='Load environment defaults from this .env file')
    common.add_argument('--local-root', help='Read and write CDM documents below this directory')
    common.add_argument('--output', '-o', help='Write the JSON result to this file')
    common.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Log level (default: INFO)')
    common.add_argument('--log-file', help='Also log to this file')

    parser = argparse.ArgumentParser(
        prog='cdmutil',
        description="CDM manifest to Synapse / SQL DDL utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s ddl -H ManifestURL=https://acct.dfs.core.windows.net/fs/Tables/Tables.manifest.cdm.json
    %(prog)s ddl --local-root ./cdm -H ManifestURL=Tables/Tables.manifest.cdm.json -H DDLType=SQLTable
    %(prog)s apply --env-file .env
    %(prog)s event event.json
    %(prog)s create entities.json -H StorageAccount=acct -H RootFolder=fs -H LocalFolder=Tables/Finance
    %(prog)s model-json -H StorageAccount=acct -H RootFolder=fs -H LocalFolder=Tables/Finance
    %(prog)s definitions -H TableList=CustTable,VendTable
        """,
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    ddl_parser = subparsers.add_parser('ddl', parents=[common], help='Generate DDL for a manifest tree')
    ddl_parser.add_argument('--app-dir', help='Directory holding the column override and view syntax files')
    ddl_parser.set_defaults(func=cmd_ddl)

    apply_parser = subparsers.add_parser('apply', parents=[common], help='Generate and execute DDL')
    apply_parser.add_argument('--app-dir', help='Directory holding the column override and view syntax files')
    apply_parser.add_argument('--no-progress', action='store_true', help='Hide the progress bar')
    apply_parser.set_defaults(func=cmd_apply)

    event_parser = subparsers.add_parser('event', parents=[common], help='Apply DDL for a storage event payload')
    event_parser.add_argument('event_file', help="Event JSON file ('-' for stdin)")
    event_parser.add_argument('--app-dir', help='Directory holding the column override and view syntax files')
    event_parser.set_defaults(func=cmd_event)

    create_parser = subparsers.add_parser('create', parents=[common], help='Create a manifest from an entity list')
    create_parser.add_argument('body_file', help="Entity list JSON file ('-' for stdin)")
    create_parser.set_defaults(func=cmd_create)

    model_parser = subparsers.add_parser('model-json', parents=[common], help='Export a manifest as model.json')
    model_parser.set_defaults(func=cmd_model_json)

    definitions_parser = subparsers.add_parser('definitions', parents=[common],
                                               help='Look up manifest definitions for tables')
    definitions_parser.add_argument('--artifacts', help='Artifacts catalogue JSON file')
    definitions_parser.set_defaults(func=cmd_definitions)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return ExitCode.ERROR

    setup_logging(args.log_level, args.log_file)

    try:
        load_environment(args.env_file)
        headers = parse_headers(args.header)
        result = args.func(args, headers)
    except CDMUtilError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return exit_code_for(e)
    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return ExitCode.ERROR
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return ExitCode.ERROR

    _emit(result, args.output)
    return ExitCode.SUCCESS


if __name__ == '__main__':
    sys.exit(main())
