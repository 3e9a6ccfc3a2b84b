#!/usr/bin/env python3
"""
Culler GUI - Web interface for narrowing down images round by round.
"""

import argparse
import logging
import os
import threading
from typing import Dict, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, redirect, render_template, request, send_file

import culler
from culler_app.errors import (
    EmptySelection, ExportFailure, InvalidInput, RequiresConfirmation,
)

app = Flask(__name__)

gui_logger = logging.getLogger('culler.gui')

# Global culler instance, created on first request or in main()
state: Optional[culler.Culler] = None
# Every mutating request runs read-modify-write-persist under this lock.
state_lock = threading.Lock()

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def setup_file_logging(log_level: str) -> None:
    """Mirror the GUI logger into ``logs/culler_gui.log``."""
    gui_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    try:
        os.makedirs('logs', exist_ok=True)
        fh = logging.FileHandler('logs/culler_gui.log')
        fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
        fh.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        gui_logger.addHandler(fh)
    except OSError:
        gui_logger.warning('Could not create log file handler')


def get_state() -> culler.Culler:
    """Return the global :class:`culler.Culler`, creating it if needed."""
    global state
    if state is None:
        state = culler.Culler(culler.load_config())
    return state


def _params() -> Dict:
    """Return request parameters from a JSON body or a form post."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in _TRUE_VALUES


def _result(payload: Dict, status: int = 200, wrote: bool = False):
    """jsonify *payload*.

    Requests that wrote the document (*wrote*) also report whether that
    write reached the disk as ``saved``.
    """
    if wrote:
        payload['saved'] = get_state().last_save_ok
    return jsonify(payload), status


# ===========================================================================
# Pages
# ===========================================================================

@app.route('/')
def index():
    """Main page"""
    with state_lock:
        view = get_state().get_active_project_view(
            request.args.get('file') or None,
            request.args.get('mode') or 'single',
        )
    return render_template('index.html', **view)


@app.route('/api/state')
def api_state():
    """Same data as the main page, as JSON."""
    with state_lock:
        view = get_state().get_active_project_view(
            request.args.get('file') or None,
            request.args.get('mode') or 'single',
        )
    return jsonify(view)


@app.route('/image')
def image():
    """Serve an image from the active project's folder."""
    name = request.args.get('name', '')
    with state_lock:
        c = get_state()
        project = c.project_service.get_active()
        path = None
        if project is not None and name:
            path = c.candidates.resolve_file(project['sourceDirectory'], name)
    if path is None:
        return 'Image not found', 404
    return send_file(path)


# ===========================================================================
# Settings & project management
# ===========================================================================

@app.route('/updateSettings', methods=['POST'])
def update_settings():
    params = _params()
    label = params.get('auxiliaryLabel', params.get('xSelected', ''))
    folder = params.get('sourceDirectory', params.get('filePath', ''))
    with state_lock:
        get_state().update_settings(label, folder)
    return redirect('/')


@app.route('/createProject', methods=['POST'])
def create_project():
    params = _params()
    folder = params.get('sourceDirectory', params.get('filePath', ''))
    with state_lock:
        project = get_state().create_project(params.get('name', ''), folder)
    gui_logger.info('Created project %s', project['id'])
    return redirect('/')


@app.route('/switchProject', methods=['POST'])
def switch_project():
    project_id = _params().get('projectId', '')
    with state_lock:
        if not get_state().switch_project(project_id):
            gui_logger.info('Ignored switch to unknown project %r', project_id)
    return redirect('/')


@app.route('/deleteProject', methods=['POST'])
def delete_project():
    project_id = _params().get('projectId', '')
    with state_lock:
        if not get_state().delete_project(project_id):
            gui_logger.info('Delete of project %r refused', project_id)
    return redirect('/')


@app.route('/renameProject', methods=['POST'])
def rename_project():
    params = _params()
    project_id = params.get('projectId', '')
    with state_lock:
        if not get_state().rename_project(project_id, params.get('name', '')):
            gui_logger.info('Rename of project %r refused', project_id)
    return redirect('/')


@app.route('/switchRound', methods=['POST'])
def switch_round():
    round_number = _params().get('round')
    with state_lock:
        try:
            get_state().switch_round(round_number)
        except InvalidInput as e:
            gui_logger.info('Ignored round switch: %s', e)
    return redirect('/')


# ===========================================================================
# Selection logic
# ===========================================================================

@app.route('/toggleSelection', methods=['POST'])
def toggle_selection():
    file_name = _params().get('fileName', '')
    with state_lock:
        try:
            selected = get_state().toggle_selection(file_name)
        except InvalidInput as e:
            return _result({'success': False, 'error': str(e)}, 400)
        return _result({'success': True, 'selected': selected}, wrote=True)


@app.route('/finishRound', methods=['POST'])
def finish_round():
    with state_lock:
        try:
            path = get_state().finish_round()
        except InvalidInput as e:
            return _result({'success': False, 'error': str(e)}, 400)
        except ExportFailure as e:
            gui_logger.error('Export failed: %s', e)
            return _result({'success': False, 'error': str(e)})
        return _result({'success': True, 'path': path})


@app.route('/nextRound', methods=['POST'])
def next_round():
    force = _as_bool(_params().get('force'))
    with state_lock:
        try:
            new_round = get_state().next_round(force=force)
        except InvalidInput as e:
            return _result({'success': False, 'error': str(e)}, 400)
        except EmptySelection:
            return _result({'success': False, 'message': 'No images selected'})
        except RequiresConfirmation as e:
            return _result({
                'success': False,
                'requireConfirmation': True,
                'message': str(e),
            })
        return _result({'success': True, 'round': new_round}, wrote=True)


def main():
    """Main entry point for GUI"""
    global state
    parser = argparse.ArgumentParser(description='Culler Web GUI')
    parser.add_argument('--config', default='config.json', help='Path to config file')
    parser.add_argument('--host', help='Interface to bind (default from config)')
    parser.add_argument('--port', type=int, help='Port to listen on (default from config)')
    args = parser.parse_args()

    load_dotenv()
    config = culler.load_config(args.config)
    setup_file_logging(config.get('log_level', 'INFO'))
    state = culler.Culler(config)

    host = args.host or config['host']
    port = args.port or config['port']
    print(f"\nCuller is running on http://{host}:{port}")
    print("Press Ctrl+C to stop the server\n")
    app.run(host=host, port=port, debug=False)


if __name__ == "__main__":
    main()
