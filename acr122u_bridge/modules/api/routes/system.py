"""
ACR122U NFC Bridge - System Routes

This module implements the API routes for system status.
"""

import platform
import time

import psutil
from flask import current_app, jsonify

from ....utils.logger import get_logger

logger = get_logger(__name__)


def get_system_uptime():
    """Seconds since boot, or None if unavailable."""
    try:
        return time.time() - psutil.boot_time()
    except (OSError, RuntimeError) as e:
        logger.debug(f"Boot time not available: {e}")
        return None


def register_routes(app):
    """
    Register system-related routes with the Flask application.

    Args:
        app: Flask application instance
    """

    @app.route('/api/system/status', methods=['GET'])
    def get_system_status():
        """Get host and bridge status."""
        bridge = current_app.extensions.get('acr122u_bridge')
        try:
            memory = psutil.virtual_memory()
            process = psutil.Process()
            system_info = {
                'hostname': platform.node(),
                'platform': platform.platform(),
                'python_version': platform.python_version(),
                'uptime': get_system_uptime(),
                'cpu_usage': psutil.cpu_percent(interval=None),
                'memory': {
                    'total': memory.total,
                    'available': memory.available,
                    'percent': memory.percent
                },
                'process': {
                    'pid': process.pid,
                    'threads': process.num_threads(),
                    'rss': process.memory_info().rss
                }
            }
        except (psutil.Error, OSError) as e:
            logger.error(f"Error getting system status: {e}")
            # Return partial data if available
            system_info = {
                'hostname': platform.node(),
                'platform': platform.platform(),
                'error': str(e)
            }

        return jsonify({
            'success': True,
            'data': {
                'system': system_info,
                'nfc': bridge.get_status() if bridge is not None else None
            }
        })

    logger.info("System routes registered")
