"""
Flask REST API Server for the Drilling Rig Controller.

Provides endpoints for:
- Health check and controller status
- Queueing command tokens for the next ticks
- Reading and writing bench device values
- The status panel and the system log
"""

import threading
from typing import Optional, Dict, Any

from flask import Flask, jsonify, request
from flask_cors import CORS

from ..core import RigController, RigStatus, DeviceRegistry, CommandQueue, Command
from .logger import get_logger, LogLevel, LogCategory


def status_to_dict(status: RigStatus) -> Dict[str, Any]:
    """Serialize controller status for JSON responses."""
    return {
        'phase': status.phase.name,
        'step': status.step,
        'total_steps': status.total_steps,
        'step_message': status.step_message,
        'error': status.error.name,
        'error_message': status.error_message,
        'missing_devices': status.missing_devices,
        'paused_phase': status.paused_phase.name if status.paused_phase else None,
        'last_command': status.last_command,
        'tick_count': status.tick_count,
        'sections_completed': status.sections_completed,
        'initialized': status.initialized,
    }


def create_app(
    controller: Optional[RigController] = None,
    registry: Optional[DeviceRegistry] = None,
    commands: Optional[CommandQueue] = None,
    config: Optional[Dict[str, Any]] = None
) -> Flask:
    """
    Create and configure Flask application.

    Args:
        controller: Rig controller instance
        registry: Device registry instance
        commands: Command source the scheduler drains
        config: Application configuration

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    CORS(app)

    app.controller = controller
    app.registry = registry
    app.commands = commands
    app.config_data = config or {}

    syslog = get_logger()
    syslog.system("API server starting", source="server")

    # === Health and Status ===

    @app.route('/api/health', methods=['GET'])
    def health():
        """Health check endpoint."""
        return jsonify({
            'status': 'ok',
            'initialized': app.controller.get_status().initialized if app.controller else False,
            'phase': app.controller.state.name if app.controller else 'N/A'
        })

    @app.route('/api/status', methods=['GET'])
    def status():
        """Get full controller status."""
        if not app.controller:
            return jsonify({'error': 'Controller not initialized'}), 503
        result = status_to_dict(app.controller.get_status())
        result['queued_commands'] = len(app.commands) if app.commands is not None else 0
        return jsonify(result)

    # === Commands ===

    @app.route('/api/command', methods=['POST'])
    def post_command():
        """Queue a command token for the next tick."""
        if app.commands is None:
            return jsonify({'error': 'Command source not initialized'}), 503

        data = request.get_json(silent=True) or {}
        token = data.get('command')
        if not token:
            return jsonify({'error': 'command required'}), 400

        if Command.parse(token) is None:
            syslog.command(f"Rejected unknown command {token!r}", level=LogLevel.WARNING, source="api")
            return jsonify({
                'error': f'Unknown command: {token}',
                'commands': [c.value for c in Command]
            }), 400

        if not app.commands.put(token):
            return jsonify({'error': 'Command queue full'}), 429

        syslog.command(f"Queued command {token}", source="api")
        return jsonify({'status': 'queued', 'command': token})

    @app.route('/api/commands', methods=['GET'])
    def list_commands():
        """Get recognized command tokens."""
        return jsonify({'commands': [c.value for c in Command]})

    # === Devices ===

    @app.route('/api/devices', methods=['GET'])
    def get_devices():
        """Get all device blocks."""
        if not app.registry:
            return jsonify({'error': 'Registry not initialized'}), 503
        return jsonify(app.registry.describe())

    @app.route('/api/devices/<path:name>', methods=['GET'])
    def get_device(name):
        """Get single device block."""
        if not app.registry:
            return jsonify({'error': 'Registry not initialized'}), 503
        device = app.registry.describe(name)
        if not device:
            return jsonify({'error': f'Unknown block: {name}'}), 404
        return jsonify(device)

    @app.route('/api/devices/<path:name>', methods=['POST'])
    def set_device(name):
        """Write a sensed value on a bench block."""
        if not app.registry:
            return jsonify({'error': 'Registry not initialized'}), 503
        if not app.registry.describe(name):
            return jsonify({'error': f'Unknown block: {name}'}), 404

        data = request.get_json(silent=True) or {}
        field_name = data.get('field')
        if not field_name or 'value' not in data:
            return jsonify({'error': 'field and value required'}), 400

        if not app.registry.set_value(name, field_name, data['value']):
            return jsonify({'error': f'Cannot set {field_name} on {name}'}), 400

        syslog.device(f"{name}.{field_name} = {data['value']!r}", source="api")
        return jsonify(app.registry.describe(name))

    # === Status panel ===

    @app.route('/api/display', methods=['GET'])
    def get_display():
        """Get the rendered status panel."""
        if not app.controller:
            return jsonify({'error': 'Controller not initialized'}), 503
        display = app.controller.display
        return jsonify({
            'text': display.render(),
            'lines': display.lines,
            'capacity': display.capacity
        })

    # === Logging API ===

    @app.route('/api/logs', methods=['GET'])
    def api_get_logs():
        """Get logs with optional filters."""
        level = request.args.get('level')
        category = request.args.get('category')
        since_id = request.args.get('since_id', type=int)
        search = request.args.get('search')
        phase = request.args.get('phase')
        limit = request.args.get('limit', 500, type=int)

        try:
            logs = syslog.get_logs(level, category, since_id, search,
                                   limit=min(limit, 1000), phase=phase)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        return jsonify({'logs': logs})

    @app.route('/api/logs/categories', methods=['GET'])
    def api_get_log_categories():
        return jsonify({'categories': [c.value for c in LogCategory]})

    @app.route('/api/logs/levels', methods=['GET'])
    def api_get_log_levels():
        return jsonify({'levels': [lv.value for lv in LogLevel]})

    @app.route('/api/logs/clear', methods=['POST'])
    def api_clear_logs():
        """Clear log buffer."""
        syslog.clear()
        syslog.system("Log buffer cleared", source="api")
        return jsonify({'success': True})

    return app


class APIServer:
    """
    Wrapper for running Flask API server.

    Provides threaded server start functionality.
    """

    def __init__(self, app: Flask, host: str = '0.0.0.0', port: int = 5000):
        """
        Initialize API server.

        Args:
            app: Flask application instance
            host: Host address to bind
            port: Port number
        """
        self._app = app
        self._host = host
        self._port = port
        self._thread: Optional[threading.Thread] = None

    def start(self, threaded: bool = True) -> None:
        """
        Start the API server.

        Args:
            threaded: Run in background thread if True
        """
        if threaded:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        else:
            self._run()

    def _run(self) -> None:
        self._app.run(
            host=self._host,
            port=self._port,
            debug=False,
            use_reloader=False
        )
