import base64
import csv
import io
import logging
import os
import socket
import threading
from datetime import datetime
from io import BytesIO

import qrcode
from flask import Flask, Response, jsonify, request
from flask_socketio import SocketIO

from livewheel.admin import EDITABLE_FIELDS
from livewheel.config import configure_logging, data_path, load_config
from livewheel.errors import RelayError, SegmentValidationError, WebhookAuthError
from livewheel.registry import SegmentRegistry
from livewheel.relay import LocalRelayClient, WebhookRelay
from livewheel.station import WheelStation
from livewheel.surface import timed_surface_factory
from livewheel.transport import SEGMENTS_UPDATED, SPIN, LocalTransport


def create_app(config=None, surface_factory=None):
    """
    Build the relay server: Flask routes, Socket.IO fan-out and the wheel
    station that plays spins in arrival order.

    Returns ``(app, socketio)``; the station and its collaborators live in
    ``app.extensions['livewheel']``.
    """
    config = config or load_config()

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=os.environ.get('WHEEL_SECRET_KEY', 'live-wheel-dev-key'),
        MAX_CONTENT_LENGTH=1 * 1024 * 1024,
    )
    socketio = SocketIO(app, cors_allowed_origins="*", ping_timeout=60, ping_interval=25,
                        async_mode=config.get('async_mode'))

    os.makedirs(config['data_dir'], exist_ok=True)

    transport = LocalTransport()
    registry = SegmentRegistry(data_path(config, 'segments.json'))
    relay = WebhookRelay(registry, transport, secret=config.get('webhook_secret'))
    relay_client = LocalRelayClient(registry, relay, transport)

    if surface_factory is None:
        surface_factory = timed_surface_factory(
            config['spin_duration_seconds'],
            config['spin_rotations'],
            start_task=socketio.start_background_task,
            sleep=socketio.sleep,
            emit=socketio.emit,
        )

    station = WheelStation(transport, relay_client, surface_factory,
                           history_size=config['history_size'],
                           fallback_color=config['fallback_color'])

    # Displays get the same notifications the station does, after it
    transport.subscribe(SEGMENTS_UPDATED, lambda payload: socketio.emit('segments-updated', payload))
    transport.subscribe(SPIN, lambda payload: socketio.emit('spin', payload))

    def broadcast(event, payload):
        if event == 'outcome':
            logging.info(f"📡 Emitting spin_complete: {payload.text}")
            socketio.emit('spin_complete', payload.to_dict())
        elif event == 'status':
            socketio.emit('wheel_status', payload)
        elif event == 'error':
            socketio.emit('spin_error', payload)

    station.subscribe(broadcast)

    segments = registry.load()
    transport.publish(SEGMENTS_UPDATED, [s.to_dict() for s in segments])

    if not relay.enabled:
        logging.warning("⚠️ No webhook secret configured - /webhook/tikfinity will refuse requests")

    clients = ConnectedClients()
    app.extensions['livewheel'] = {
        'config': config,
        'station': station,
        'registry': registry,
        'relay': relay,
        'transport': transport,
        'clients': clients,
    }

    register_routes(app, station, registry, relay, config, clients)
    register_socket_handlers(socketio, station, clients)
    return app, socketio


class ConnectedClients:
    """Display/dashboard sockets currently connected"""

    def __init__(self):
        self._ids = set()
        self._lock = threading.Lock()
        self.peak = 0

    def add(self, client_id):
        with self._lock:
            self._ids.add(client_id)
            self.peak = max(self.peak, len(self._ids))

    def remove(self, client_id):
        with self._lock:
            self._ids.discard(client_id)

    def __len__(self):
        with self._lock:
            return len(self._ids)


def full_status(station, clients):
    status = station.status()
    status.update({
        'connected_clients': len(clients),
        'peak_clients': clients.peak,
        'total_spins': station.machine.total_spins,
        'timestamp': datetime.now().isoformat(),
    })
    return status


# ==============================================================================
# ROUTE HANDLERS
# ==============================================================================

def register_routes(app, station, registry, relay, config, clients):

    @app.route('/')
    def index():
        """Endpoint overview"""
        return jsonify({
            'name': 'livewheel relay',
            'endpoints': {
                'segments': 'GET/POST /api/segments',
                'webhook': 'POST /webhook/tikfinity',
                'test_spin': 'POST /api/test-spin',
                'status': 'GET /api/spin/status',
                'reset': 'POST /api/spin/reset',
                'history': 'GET /api/history',
                'export': 'GET /api/export/csv',
                'admin': 'GET/POST /api/admin/segments, PATCH/DELETE /api/admin/segments/<pos>, '
                         'POST /api/admin/commit',
                'qr_code': 'GET /api/qr_code',
            },
            'status': full_status(station, clients),
        })

    @app.route('/api/segments', methods=['GET'])
    def get_segments():
        """Current registry segments"""
        try:
            return jsonify({'segments': [s.to_dict() for s in registry.segments]})
        except Exception as e:
            logging.error(f"💥 Get segments error: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/segments', methods=['POST'])
    def save_segments():
        """Replace the whole segment list; echoes the normalized list"""
        data = request.get_json(silent=True)
        try:
            saved = station.relay_client.save_segments(data)
            return jsonify([s.to_dict() for s in saved])
        except RelayError as e:
            cause = e.__cause__
            if isinstance(cause, SegmentValidationError):
                return jsonify({'error': str(cause)}), 400
            logging.error(f"💥 Save segments error: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/webhook/tikfinity', methods=['POST'])
    def tikfinity_webhook():
        """
        Gift webhook: value1 = username, value2 = text, value3 = sku (null picks
        a random segment). Token in the x-tikfinity-token header or body 'secret'.
        """
        if not relay.enabled:
            return jsonify({'success': False, 'error': 'webhook_disabled',
                            'message': 'No webhook secret configured'}), 503

        data = request.get_json(silent=True) or request.form.to_dict()
        try:
            spin_request = relay.handle_webhook(data, request.headers)
        except WebhookAuthError as e:
            logging.warning(f"🔒 Webhook rejected from {request.remote_addr}: {e}")
            return jsonify({'success': False, 'error': 'unauthorized', 'message': str(e)}), 401
        except Exception as e:
            logging.error(f"💥 Webhook error: {e}")
            return jsonify({'success': False, 'error': 'server_error', 'message': str(e)}), 500

        return jsonify({
            'success': True,
            'request': spin_request.to_dict(),
            'pending': station.status()['pending'],
            'timestamp': datetime.now().isoformat(),
        })

    @app.route('/api/test-spin', methods=['POST'])
    def test_spin():
        """Publish a test spin, optionally aimed at a sku"""
        data = request.get_json(silent=True) or {}
        sku = data.get('sku') if isinstance(data, dict) else None
        try:
            spin_request = relay.test_spin(sku)
            logging.info(f"🧪 Test spin via API (sku: {sku or 'random'})")
            return jsonify({'success': True, 'request': spin_request.to_dict(),
                            'pending': station.status()['pending']})
        except Exception as e:
            logging.error(f"💥 Test spin error: {e}")
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/spin/status')
    def spin_status():
        """Current wheel status"""
        try:
            return jsonify(full_status(station, clients))
        except Exception as e:
            logging.error(f"💥 Spin status error: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/spin/reset', methods=['POST'])
    def reset_spin():
        """Unstick a wheel whose animation never reported back"""
        data = request.get_json(silent=True) or {}
        reason = data.get('reason', 'operator reset') if isinstance(data, dict) else 'operator reset'
        reset = station.force_idle(reason)
        return jsonify({'success': True, 'reset': reset, 'status': full_status(station, clients)})

    @app.route('/api/history')
    def get_history():
        """Most recent outcomes, newest first"""
        return jsonify({'history': [o.to_dict() for o in station.history()]})

    @app.route('/api/export/csv')
    def export_csv():
        """Export the in-memory history as CSV"""
        try:
            history = station.history()
            if not history:
                return jsonify({'error': 'No history data to export'}), 404

            output = io.StringIO()
            writer = csv.writer(output)
            writer.writerow(['Timestamp', 'Username', 'Segment', 'Segment ID', 'Segment Index', 'SKU', 'Type'])
            for outcome in history:
                writer.writerow([
                    outcome.timestamp,
                    outcome.username,
                    outcome.segment.text,
                    outcome.segment.id,
                    outcome.segment_index,
                    outcome.sku or '',
                    outcome.type,
                ])

            logging.info(f"📊 CSV export generated with {len(history)} records")
            return Response(
                output.getvalue(),
                mimetype='text/csv',
                headers={
                    'Content-Disposition':
                        f'attachment; filename=wheel_history_{datetime.now().strftime("%Y%m%d_%H%M%S")}.csv'
                }
            )
        except Exception as e:
            logging.error(f"💥 Export CSV error: {e}")
            return jsonify({'error': str(e)}), 500

    # --------------------------------------------------------------------------
    # Admin edit session
    # --------------------------------------------------------------------------

    def staged_payload():
        return {'segments': [s.to_dict() for s in station.admin.staged()], 'dirty': station.admin.dirty}

    @app.route('/api/admin/segments', methods=['GET'])
    def admin_segments():
        return jsonify(staged_payload())

    @app.route('/api/admin/segments', methods=['POST'])
    def admin_add_segment():
        data = request.get_json(silent=True)
        data = data if isinstance(data, dict) else {}
        text = data.get('text') or 'Nuevo premio'
        color = data.get('color')
        if not isinstance(text, str):
            return jsonify({'error': 'text must be a string'}), 400
        segment = station.admin.add(text=text, color=color if isinstance(color, str) else None)
        return jsonify({'segment': segment.to_dict(), **staged_payload()}), 201

    @app.route('/api/admin/segments/<int:position>', methods=['PATCH'])
    def admin_update_segment(position):
        data = request.get_json(silent=True) or {}
        changes = {k: v for k, v in data.items() if k in EDITABLE_FIELDS} if isinstance(data, dict) else {}
        if not changes:
            return jsonify({'error': f"Nothing to update; editable fields: {', '.join(EDITABLE_FIELDS)}"}), 400
        try:
            for field, value in changes.items():
                station.admin.update(position, field, value)
        except IndexError as e:
            return jsonify({'error': str(e)}), 404
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        return jsonify(staged_payload())

    @app.route('/api/admin/segments/<int:position>', methods=['DELETE'])
    def admin_remove_segment(position):
        try:
            station.admin.remove(position)
        except IndexError as e:
            return jsonify({'error': str(e)}), 404
        return jsonify(staged_payload())

    @app.route('/api/admin/commit', methods=['POST'])
    def admin_commit():
        try:
            segments = station.admin.commit()
        except RelayError as e:
            return jsonify({'error': str(e), **staged_payload()}), 502
        return jsonify({'message': 'Segments saved', 'segments': [s.to_dict() for s in segments]})

    # QR code for opening the display from a phone or OBS machine
    @app.route('/api/qr_code')
    def generate_qr_code():
        try:
            url = config.get('display_url') or display_url_for(request.host)

            qr = qrcode.QRCode(version=1, box_size=10, border=5)
            qr.add_data(url)
            qr.make(fit=True)
            img = qr.make_image(fill_color="black", back_color="white")

            buffer = BytesIO()
            img.save(buffer, format='PNG')
            img_str = base64.b64encode(buffer.getvalue()).decode()

            return jsonify({'qr_code': f"data:image/png;base64,{img_str}", 'url': url})
        except Exception as e:
            logging.error(f"💥 QR Code generation failed: {e}")
            return jsonify({'error': 'Failed to generate QR code'}), 500

    # ==========================================================================
    # ERROR HANDLERS
    # ==========================================================================

    @app.errorhandler(500)
    def internal_error(error):
        logging.error(f"💥 Internal server error: {error}")
        return jsonify({'error': 'Internal server error', 'message': str(error)}), 500

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found', 'message': 'Endpoint not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'message': str(error)}), 405

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': 'Bad request', 'message': str(error)}), 400


def display_url_for(host):
    """Replace a loopback host with the machine's LAN address"""
    if host.startswith('127.0.0.1') or host.startswith('localhost'):
        port = host.split(':', 1)[1] if ':' in host else '80'
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(('8.8.8.8', 80))
            host = f"{s.getsockname()[0]}:{port}"
        except OSError:
            pass
        finally:
            s.close()
    return f"http://{host}/"


# ==============================================================================
# SOCKET.IO EVENT HANDLERS
# ==============================================================================

def register_socket_handlers(socketio, station, clients):

    @socketio.on('connect')
    def handle_connect():
        clients.add(request.sid)
        logging.info(f"🔌 Client connected: {request.sid} (Total: {len(clients)})")

        socketio.emit('segments-updated', [s.to_dict() for s in station.segments], room=request.sid)
        socketio.emit('wheel_status', station.status(), room=request.sid)
        socketio.emit('connection_confirmed', {
            'client_id': request.sid,
            'server_time': datetime.now().isoformat(),
            'total_clients': len(clients),
        }, room=request.sid)

    @socketio.on('disconnect')
    def handle_disconnect(reason=None):
        clients.remove(request.sid)
        logging.info(f"🔌 Client disconnected: {request.sid} (Remaining: {len(clients)})")

    @socketio.on('trigger_test_spin')
    def handle_test_spin(data=None):
        sku = data.get('sku') if isinstance(data, dict) else None
        logging.info(f"🌐 Test spin requested by client {request.sid}")
        station.test_spin(sku)

    @socketio.on('request_state_update')
    def handle_state_request():
        socketio.emit('wheel_status', station.status(), room=request.sid)


# ==============================================================================
# STARTUP
# ==============================================================================

def main():
    config = load_config(os.environ.get('WHEEL_CONFIG', 'config.json'))
    configure_logging(config)

    try:
        app, socketio = create_app(config)
        host, port = config['host'], config['port']

        logging.info("🎡 LIVE WHEEL RELAY 🎡")
        logging.info("=" * 60)
        logging.info(f"📡 Webhook:      http://{host}:{port}/webhook/tikfinity")
        logging.info(f"🎯 Segments:     http://{host}:{port}/api/segments")
        logging.info(f"🧪 Test Spin:    http://{host}:{port}/api/test-spin")
        logging.info(f"📊 Spin Status:  http://{host}:{port}/api/spin/status")
        logging.info(f"🔄 Unstick:      http://{host}:{port}/api/spin/reset")
        logging.info(f"⏱️ Spin length:  {config['spin_duration_seconds']}s, history of {config['history_size']}")
        logging.info("=" * 60)

        socketio.run(app, host=host, port=port, debug=False, allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        logging.info("🛑 Server shutdown requested")


if __name__ == '__main__':
    main()
