"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for watching a network learn.

This module provides endpoints for:
- Listing the available training problems (XOR, circle, spiral)
- Creating training sessions that pair a problem with a fresh network
- Advancing training cycle by cycle with real-time updates via WebSockets
- Querying predictions and rendered decision surfaces

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for cooperative background training tasks
"""

import os
import sys
import uuid
import logging
from typing import Dict, Any

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from neuralvis.datasets import DATASETS, available_datasets, get_dataset
from neuralvis.errors import NeuralVisError
from neuralvis.visualizer import TrainingSession, DEFAULT_RESOLUTION

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('neuralvis').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

is_production = os.getenv('FLASK_ENV') == 'production'

# SocketIO streams per-cycle training updates to connected clients
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

surface_resolution = int(os.getenv('NEURALVIS_RESOLUTION', DEFAULT_RESOLUTION))

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Sessions currently in memory: {session_id: session_info}
active_sessions: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}


def session_summary(session_id: str) -> Dict[str, Any]:
    """Build the JSON description of a session."""
    info = active_sessions[session_id]
    session: TrainingSession = info['session']
    report = session.report()

    return {
        'session_id': session_id,
        'dataset': session.dataset.name,
        'display_name': session.dataset.display_name,
        'architecture': list(session.network.architecture),
        'learning_rate': session.network.learning_rate,
        'epochs_per_cycle': session.dataset.epochs_per_cycle,
        'seed': info['seed'],
        'epoch': session.network.epoch_count,
        'error': report.error if report else None,
        'previous_error': report.previous_error if report else None,
        'improvement': report.improvement if report else None,
        'status_lines': session.status_lines(),
        'active_job': info['active_job']
    }


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """
    Return server status and statistics.

    Returns counts of active sessions and training jobs that are
    currently in progress (status='pending' or 'training').
    """
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_sessions': len(active_sessions),
        'training_jobs': active_training
    }), 200


@app.route('/api/datasets', methods=['GET'])
def list_datasets():
    """List the training problems a session can be created from."""
    datasets = []
    for name in available_datasets():
        dataset = get_dataset(name, rng=np.random.default_rng(0))
        datasets.append({
            'name': name,
            'display_name': dataset.display_name,
            'architecture': list(dataset.architecture),
            'learning_rate': dataset.learning_rate,
            'epochs_per_cycle': dataset.epochs_per_cycle,
            'examples': len(dataset)
        })

    return jsonify({'datasets': datasets}), 200


@app.route('/api/sessions', methods=['POST'])
def create_session():
    """
    Create a new training session.

    Request body:
        {'dataset': 'xor', 'seed': 42}  # seed is optional

    Returns:
        JSON with session_id, dataset and network description
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    dataset_name = data.get('dataset')
    seed = data.get('seed')

    if not isinstance(dataset_name, str) or dataset_name not in DATASETS:
        logger.warning(f"Invalid dataset requested: {dataset_name}")
        return jsonify({
            'error': f"Unknown dataset. Choose one of: {', '.join(available_datasets())}"
        }), 400

    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool) or seed < 0):
        return jsonify({'error': 'seed must be a non-negative integer'}), 400

    session_id = str(uuid.uuid4())

    try:
        rng = np.random.default_rng(seed)
        session = TrainingSession(get_dataset(dataset_name, rng=rng), rng=rng)
    except NeuralVisError as e:
        logger.warning(f"Rejected session for dataset '{dataset_name}': {e}")
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception(f"Error creating session: {e}")
        return jsonify({'error': f'Failed to create session: {str(e)}'}), 500

    active_sessions[session_id] = {
        'session': session,
        'seed': seed,
        'active_job': None,
        'stop_requested': False
    }

    logger.info(f"Created session {session_id} for dataset '{dataset_name}'")

    return jsonify(session_summary(session_id)), 201


@app.route('/api/sessions', methods=['GET'])
def list_sessions():
    """List all sessions held in memory."""
    return jsonify({
        'sessions': [session_summary(sid) for sid in active_sessions]
    }), 200


@app.route('/api/sessions/<session_id>', methods=['GET'])
def get_session(session_id: str):
    """Return the description and latest error statistics of a session."""
    if session_id not in active_sessions:
        logger.warning(f"Requested non-existent session: {session_id}")
        return jsonify({'error': 'Session not found'}), 404

    return jsonify(session_summary(session_id)), 200


@app.route('/api/sessions/<session_id>/train', methods=['POST'])
def train_session(session_id: str):
    """
    Start advancing a session's training in the background.

    Request body (all optional):
        {
            'cycles': 50,
            'epochs_per_cycle': 10   # defaults to the dataset's hint
        }

    Returns:
        JSON with job_id, session_id, and status
    """
    if session_id not in active_sessions:
        logger.warning(f"Training requested for non-existent session: {session_id}")
        return jsonify({'error': 'Session not found'}), 404

    info = active_sessions[session_id]
    if info['active_job'] is not None:
        return jsonify({
            'error': 'Session is already training',
            'job_id': info['active_job']
        }), 409

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    cycles = data.get('cycles', 50)
    epochs = data.get('epochs_per_cycle', info['session'].dataset.epochs_per_cycle)

    if not isinstance(cycles, int) or isinstance(cycles, bool) or cycles < 1:
        return jsonify({'error': 'cycles must be a positive integer'}), 400
    if not isinstance(epochs, int) or isinstance(epochs, bool) or epochs < 1:
        return jsonify({'error': 'epochs_per_cycle must be a positive integer'}), 400

    job_id = str(uuid.uuid4())

    training_jobs[job_id] = {
        'session_id': session_id,
        'status': 'pending',
        'progress': 0,
        'cycles': cycles,
        'epochs_per_cycle': epochs
    }
    info['active_job'] = job_id
    info['stop_requested'] = False

    logger.info(
        f"Created training job {job_id} for session {session_id}: "
        f"cycles={cycles}, epochs_per_cycle={epochs}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_session_task,
        session_id, job_id, cycles, epochs
    )

    return jsonify({
        'job_id': job_id,
        'session_id': session_id,
        'status': 'training_started'
    }), 202


def train_session_task(
    session_id: str,
    job_id: str,
    cycles: int,
    epochs_per_cycle: int
) -> None:
    """
    Background task that advances a session cycle by cycle.

    Each cycle is one blocking ``train`` call; the task yields to other
    greenlets between cycles and checks whether a stop was requested.
    """
    info = active_sessions[session_id]
    session: TrainingSession = info['session']
    completed = 0

    try:
        logger.info(f"Starting training for job {job_id}")
        training_jobs[job_id]['status'] = 'training'

        for cycle in range(1, cycles + 1):
            if info['stop_requested']:
                logger.info(f"Stop requested for job {job_id} after {completed} cycle(s)")
                break

            report = session.advance(epochs_per_cycle)
            completed = cycle
            progress = (cycle / cycles) * 100
            training_jobs[job_id]['progress'] = progress

            socketio.emit('training_update', {
                'job_id': job_id,
                'session_id': session_id,
                'cycle': cycle,
                'total_cycles': cycles,
                'epoch': report.epoch,
                'error': report.error,
                'previous_error': report.previous_error,
                'improvement': report.improvement,
                'progress': progress,
                'status_lines': session.status_lines()
            })

            # Let gevent send the message and serve requests between cycles
            gevent.sleep(0)

        status = 'stopped' if completed < cycles else 'completed'
        report = session.report()

        training_jobs[job_id]['status'] = status
        training_jobs[job_id]['cycles_completed'] = completed
        training_jobs[job_id]['error'] = report.error if report else None

        logger.info(
            f"Training {status} for job {job_id}: "
            f"epoch {session.network.epoch_count}, "
            f"error {report.error if report else float('nan'):.6f}"
        )

        socketio.emit('training_complete', {
            'job_id': job_id,
            'session_id': session_id,
            'status': status,
            'cycles_completed': completed,
            'epoch': session.network.epoch_count,
            'error': report.error if report else None
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error_message'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'session_id': session_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)

    finally:
        info['active_job'] = None
        info['stop_requested'] = False


@app.route('/api/sessions/<session_id>/stop', methods=['POST'])
def stop_session(session_id: str):
    """
    Ask a session's training job to stop after the current cycle.

    A cycle already in progress always runs to completion.
    """
    if session_id not in active_sessions:
        return jsonify({'error': 'Session not found'}), 404

    info = active_sessions[session_id]
    if info['active_job'] is None:
        return jsonify({'error': 'Session is not training'}), 409

    info['stop_requested'] = True
    logger.info(f"Stop requested for session {session_id}")

    return jsonify({
        'session_id': session_id,
        'job_id': info['active_job'],
        'status': 'stop_requested'
    }), 202


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/sessions/<session_id>/predict', methods=['POST'])
def predict(session_id: str):
    """
    Run the session's network on one input.

    Request body:
        {'input': [0.25, 0.75]}
    """
    if session_id not in active_sessions:
        return jsonify({'error': 'Session not found'}), 404

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    if 'input' not in data:
        return jsonify({'error': 'input is required'}), 400

    session: TrainingSession = active_sessions[session_id]['session']
    try:
        output = session.network.predict(data['input'])
    except NeuralVisError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'session_id': session_id,
        'input': data['input'],
        'output': output
    }), 200


@app.route('/api/sessions/<session_id>/surface', methods=['GET'])
def get_surface(session_id: str):
    """Return the session's current decision surface as a base64 PNG."""
    if session_id not in active_sessions:
        return jsonify({'error': 'Session not found'}), 404

    try:
        resolution = int(request.args.get('resolution', surface_resolution))
    except ValueError:
        resolution = 0
    if resolution < 1 or resolution > 400:
        return jsonify({'error': 'resolution must be between 1 and 400'}), 400

    session: TrainingSession = active_sessions[session_id]['session']
    try:
        image = session.render_surface(resolution)
    except Exception as e:
        logger.exception(f"Error rendering surface for session {session_id}: {e}")
        return jsonify({'error': 'Internal server error'}), 500

    return jsonify({
        'session_id': session_id,
        'resolution': resolution,
        'epoch': session.network.epoch_count,
        'image_data': image
    }), 200


@app.route('/api/sessions/<session_id>', methods=['DELETE'])
def delete_session(session_id: str):
    """Delete a session from memory."""
    if session_id not in active_sessions:
        logger.warning(f"Delete attempted for non-existent session: {session_id}")
        return jsonify({'error': 'Session not found'}), 404

    info = active_sessions[session_id]
    if info['active_job'] is not None:
        return jsonify({'error': 'Stop training before deleting the session'}), 409

    del active_sessions[session_id]
    logger.info(f"Deleted session {session_id}")

    return jsonify({'session_id': session_id, 'deleted': True}), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
