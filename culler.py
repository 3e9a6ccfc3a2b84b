#!/usr/bin/env python3
"""
Culler - narrow a folder of images down round by round.
Round 1 shows every image in the project's folder; each later round shows
only the images kept in the round before it.
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional

from colorama import init, Fore, Style
from dotenv import load_dotenv

from culler_app.errors import CullerError, InvalidInput, RequiresConfirmation
from culler_app.repositories import DocumentRepository, SnapshotRepository
from culler_app.services import DirectoryCandidateSource, ProjectService, RoundService

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root culler logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger = logging.getLogger('culler')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = setup_logging()

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: Dict = {
    'data_file': os.path.join('data', 'projects.json'),
    'default_source_dir': os.path.join(os.path.expanduser('~'), 'Pictures'),
    'default_auxiliary_label': '',
    'log_level': 'WARNING',
    'host': '127.0.0.1',
    'port': 3000,
}

# config key -> environment variable that overrides it
ENV_OVERRIDES = {
    'data_file': 'CULLER_DATA_FILE',
    'default_source_dir': 'CULLER_DEFAULT_SOURCE_DIR',
    'default_auxiliary_label': 'CULLER_DEFAULT_LABEL',
    'log_level': 'CULLER_LOG_LEVEL',
    'host': 'CULLER_HOST',
    'port': 'PORT',
}


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration from an optional JSON file with environment support.

    Environment variables take precedence over config file values (see
    ``ENV_OVERRIDES``).  A missing file is fine; a malformed one is logged
    and ignored.
    """
    config = dict(DEFAULT_CONFIG)
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                config.update(loaded)
            else:
                logger.warning("Config %s is not a JSON object; using defaults", config_path)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load config %s: %s", config_path, e)

    for key, env_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config[key] = value

    try:
        config['port'] = int(config['port'])
    except (TypeError, ValueError):
        logger.warning("Invalid port %r; using %d", config['port'], DEFAULT_CONFIG['port'])
        config['port'] = DEFAULT_CONFIG['port']
    return config


# ---------------------------------------------------------------------------
# Application object
# ---------------------------------------------------------------------------

class Culler:
    """Owns the application document and the services that operate on it.

    One instance per process.  Callers that serve concurrent requests must
    serialise calls to the mutating methods themselves.
    """

    def __init__(self, config: Optional[Dict] = None,
                 candidate_source: Optional[DirectoryCandidateSource] = None):
        self._log = logging.getLogger('culler.app')
        self.config = dict(DEFAULT_CONFIG)
        if config:
            self.config.update(config)
        setup_logging(self.config.get('log_level', 'WARNING'))

        self.documents = DocumentRepository(
            self.config['data_file'],
            default_source_dir=self.config['default_source_dir'],
            default_auxiliary_label=self.config['default_auxiliary_label'],
        )
        self.candidates = candidate_source or DirectoryCandidateSource()
        self.project_service = ProjectService(self.documents)
        self.round_service = RoundService(self.documents, self.candidates,
                                          SnapshotRepository())
        self._log.debug("Loaded %d project(s) from %s",
                        len(self.project_service.projects), self.documents.path)

    @property
    def last_save_ok(self) -> bool:
        """``False`` if the most recent write of the document failed."""
        return self.documents.last_error is None

    def _require_active(self) -> Dict:
        project = self.project_service.get_active()
        if project is None:
            raise InvalidInput("No active project")
        return project

    # ------------------------------------------------------------------
    # Operations used by the GUI and the CLI
    # ------------------------------------------------------------------

    def get_active_project_view(self, requested_file: Optional[str] = None,
                                mode: str = 'single') -> Dict:
        """Return everything the main page needs for the active project."""
        project = self.project_service.get_active()
        if project is None:
            return {
                'project': None,
                'projects': self.project_service.list_projects(),
                'imageList': [],
                'fileName': '',
                'currentRoundSelections': [],
                'maxRound': 1,
                'currentMode': mode or 'single',
            }
        file_name = self.round_service.resolve_viewed_file(project, requested_file)
        return {
            'project': project,
            'projects': self.project_service.list_projects(),
            'imageList': self.round_service.resolve_candidates(project),
            'fileName': file_name,
            'currentRoundSelections': list(self.round_service.current_selections(project)),
            'maxRound': self.round_service.max_round(project),
            'currentMode': mode or 'single',
        }

    def update_settings(self, auxiliary_label: str, source_directory: str) -> bool:
        return self.project_service.update_settings(auxiliary_label, source_directory)

    def create_project(self, name: str = '', source_directory: str = '') -> Dict:
        return self.project_service.create(name, source_directory)

    def switch_project(self, project_id: str) -> bool:
        return self.project_service.switch_active(project_id)

    def delete_project(self, project_id: str) -> bool:
        return self.project_service.delete(project_id)

    def rename_project(self, project_id: str, name: str) -> bool:
        return self.project_service.rename(project_id, name)

    def switch_round(self, round_number) -> int:
        return self.round_service.switch_round(self._require_active(), round_number)

    def toggle_selection(self, filename: str) -> bool:
        return self.round_service.toggle_selection(self._require_active(), filename)

    def finish_round(self) -> str:
        """Export the current round's snapshot; returns the file path."""
        return self.round_service.export_round_snapshot(self._require_active())

    def next_round(self, force: bool = False) -> int:
        return self.round_service.advance_round(self._require_active(), force=force)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def print_status(culler: Culler) -> None:
    """Print the active project and its rounds."""
    project = culler.project_service.get_active()
    if project is None:
        print(f"{Fore.YELLOW}No active project.")
        return
    rounds = culler.round_service
    candidates = rounds.resolve_candidates(project)
    selections = rounds.current_selections(project)
    print(f"{Fore.CYAN}{Style.BRIGHT}{project['name']}{Style.RESET_ALL} ({project['id']})")
    print(f"  Folder:     {project['sourceDirectory'] or '-'}")
    if project['auxiliaryLabel']:
        print(f"  Label:      {project['auxiliaryLabel']}")
    print(f"  Round:      {Fore.GREEN}{project['currentRound']}{Style.RESET_ALL}"
          f" of {rounds.max_round(project)}")
    print(f"  Candidates: {len(candidates)}")
    print(f"  Selected:   {len(selections)}")
    for entry in rounds.round_summary(project):
        marker = '*' if entry['round'] == project['currentRound'] else ' '
        print(f"   {marker} round {entry['round']}: {entry['count']} kept")
    stale = rounds.stale_selections(project)
    if stale:
        print(f"{Fore.YELLOW}  {len(stale)} selection(s) are not candidates of this round")


def print_projects(culler: Culler) -> None:
    for p in culler.project_service.list_projects():
        marker = f"{Fore.GREEN}*{Style.RESET_ALL}" if p['active'] else ' '
        print(f" {marker} {p['id']}  {p['name']}  (round {p['currentRound']})")


def run_command(culler: Culler, args: argparse.Namespace) -> int:
    """Apply the requested CLI action.  Returns a process exit code."""
    try:
        if args.create is not None:
            project = culler.create_project(args.create, args.source or '')
            print(f"{Fore.GREEN}Created project {project['name']} ({project['id']})")
        elif args.switch:
            if not culler.switch_project(args.switch):
                print(f"{Fore.RED}No project with id {args.switch}")
                return 1
            print(f"{Fore.GREEN}Switched to {args.switch}")
        elif args.delete:
            if not culler.delete_project(args.delete):
                print(f"{Fore.RED}Could not delete {args.delete} "
                      f"(unknown id or last remaining project)")
                return 1
            print(f"{Fore.GREEN}Deleted {args.delete}")
        elif args.rename:
            project_id, name = args.rename
            if not culler.rename_project(project_id, name):
                print(f"{Fore.RED}Could not rename {project_id} "
                      f"(unknown id or blank name)")
                return 1
            print(f"{Fore.GREEN}Renamed {project_id} to {name.strip()}")
        elif args.settings:
            label, folder = args.settings
            culler.update_settings(label, folder)
            print(f"{Fore.GREEN}Settings updated")
        elif args.toggle:
            selected = culler.toggle_selection(args.toggle)
            state = 'selected' if selected else 'deselected'
            print(f"{Fore.GREEN}{args.toggle} {state}")
        elif args.round is not None:
            culler.switch_round(args.round)
            print(f"{Fore.GREEN}Now on round {args.round}")
        elif args.finish:
            path = culler.finish_round()
            print(f"{Fore.GREEN}Snapshot written to {path}")
        elif args.next:
            new_round = culler.next_round(force=args.force)
            print(f"{Fore.GREEN}Advanced to round {new_round}")
        elif args.projects:
            print_projects(culler)
            return 0
        else:
            print_status(culler)
            return 0
    except RequiresConfirmation as e:
        print(f"{Fore.YELLOW}{e} Re-run with --force to overwrite.")
        return 1
    except CullerError as e:
        print(f"{Fore.RED}Error: {e}")
        return 1

    if not culler.last_save_ok:
        print(f"{Fore.RED}Warning: changes could not be saved: {culler.documents.last_error}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Culler - narrow a folder of images down round by round',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 culler.py                          # Show the active project
  python3 culler.py --create Trip --source ~/Pictures/trip
  python3 culler.py --toggle IMG_0001.jpg    # Keep / drop an image
  python3 culler.py --next                   # Advance to the next round
  python3 culler.py --next --force           # Advance, clearing stale picks
        """
    )
    parser.add_argument('--config', '-c', default='config.json',
                        help='Path to config file (default: config.json)')
    parser.add_argument('--projects', '-p', action='store_true',
                        help='List all projects')
    parser.add_argument('--create', metavar='NAME',
                        help='Create a project and make it active')
    parser.add_argument('--source', metavar='DIR',
                        help='Source folder for --create')
    parser.add_argument('--switch', metavar='ID', help='Make project ID active')
    parser.add_argument('--delete', metavar='ID', help='Delete project ID')
    parser.add_argument('--rename', nargs=2, metavar=('ID', 'NAME'),
                        help='Give project ID a new display name')
    parser.add_argument('--settings', nargs=2, metavar=('LABEL', 'DIR'),
                        help="Set the active project's label and source folder")
    parser.add_argument('--toggle', metavar='FILE',
                        help='Toggle FILE in the current round')
    parser.add_argument('--round', type=int, metavar='N',
                        help='Jump to round N')
    parser.add_argument('--finish', action='store_true',
                        help='Write the current round to selection_round_<N>.json')
    parser.add_argument('--next', action='store_true',
                        help='Advance to the next round')
    parser.add_argument('--force', action='store_true',
                        help='With --next: overwrite existing next-round selections')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_dotenv()
    args = build_parser().parse_args(argv)
    culler = Culler(load_config(args.config))
    return run_command(culler, args)


if __name__ == "__main__":
    sys.exit(main())
